"""
Root conftest — isolate secrets and .env so Settings() behaves the same on
every machine: no API key unless a test passes one explicitly.
"""
import pytest

_ENV_VARS = [
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OLLAMA_BASE_URL",
    "BROWSER_USER_DATA_DIR",
    "START_URL",
    "KEEP_BROWSER_OPEN",
    "WEBPILOT_CONFIG",
]


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    """Remove WebPilot env vars and disable .env loading for every test."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import webpilot.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
