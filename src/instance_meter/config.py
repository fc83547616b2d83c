"""Application configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    data_dir: Path = Path("data")
    sessions_file: str = "sessions.json"
    map_names_path: Path | None = None
    debounce_ms: float = 0
    identity_debounce_ms: float = 0
    sub_instance_window_ms: float = 3000
    verbose_identity_logging: bool = False
    live_log_limit: int = 500
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def resolve_sessions_path(settings: Settings) -> Path:
    """Return the session store file path for the given settings."""
    sessions_path = Path(settings.sessions_file)
    if sessions_path.is_absolute():
        return sessions_path
    return settings.data_dir / sessions_path
