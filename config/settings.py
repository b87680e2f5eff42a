from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables.

    Built once at process start and handed to the app factory; nothing
    reads the environment after that.
    """

    google_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    safety_threshold: str = "BLOCK_MEDIUM_AND_ABOVE"
    app_env: str = "development"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 3000
    static_dir: Optional[str] = "public"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            google_api_key=os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            temperature=_optional_float("MODEL_TEMPERATURE"),
            top_p=_optional_float("MODEL_TOP_P"),
            safety_threshold=os.getenv("GEMINI_SAFETY_THRESHOLD", "BLOCK_MEDIUM_AND_ABOVE"),
            app_env=os.getenv("APP_ENV", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "3000")),
            static_dir=os.getenv("STATIC_DIR", "public") or None,
        )

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() in {"dev", "development", "local"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
