from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Any = Field("assistant", description="'user' or 'assistant'; anything else is treated as assistant")
    text: str = Field("", description="Message text")

    @property
    def is_user(self) -> bool:
        return isinstance(self.role, str) and self.role.strip().lower() == "user"
