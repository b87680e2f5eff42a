import pytest

from config.settings import Settings


@pytest.fixture()
def clean_env(monkeypatch):
    for name in (
        "GOOGLE_API_KEY", "GEMINI_API_KEY", "GEMINI_MODEL", "MODEL_TEMPERATURE", "MODEL_TOP_P",
        "GEMINI_SAFETY_THRESHOLD", "APP_ENV", "LOG_LEVEL", "HOST", "PORT", "STATIC_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings.from_env()
    assert settings.google_api_key is None
    assert settings.gemini_model == "gemini-2.5-flash"
    assert settings.safety_threshold == "BLOCK_MEDIUM_AND_ABOVE"
    assert settings.temperature is None
    assert settings.port == 3000
    assert settings.is_development


def test_reads_environment(clean_env):
    clean_env.setenv("GOOGLE_API_KEY", "key")
    clean_env.setenv("MODEL_TEMPERATURE", "0.3")
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("APP_ENV", "production")

    settings = Settings.from_env()
    assert settings.google_api_key == "key"
    assert settings.temperature == 0.3
    assert settings.port == 8080
    assert not settings.is_development


def test_legacy_gemini_key_name(clean_env):
    clean_env.setenv("GEMINI_API_KEY", "legacy")
    assert Settings.from_env().google_api_key == "legacy"


def test_settings_are_immutable():
    settings = Settings(google_api_key="key")
    with pytest.raises(AttributeError):
        settings.google_api_key = "other"
