"""
Application settings for My Day.

This module defines all configuration settings for My Day using Pydantic BaseSettings.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RESET_HOUR = 5


class Settings(BaseSettings):
    """Main application settings using Pydantic BaseSettings."""

    # Persisted roster location (plugin-scoped key in the host settings store)
    plugin_name: str = Field(default="mlo-task", alias="MYDAY_PLUGIN_NAME")
    data_key: str = Field(default="taskMyDay.v1", alias="MYDAY_DATA_KEY")

    # Day boundary: wall-clock hours before this still belong to the previous day
    reset_hour: int = Field(default=DEFAULT_RESET_HOUR, alias="MYDAY_RESET_HOUR")

    # Reconciliation retry policy
    insert_retry_delay_ms: int = Field(default=80, ge=0, alias="MYDAY_INSERT_RETRY_DELAY_MS")
    child_poll_attempts: int = Field(default=6, ge=1, alias="MYDAY_CHILD_POLL_ATTEMPTS")
    child_poll_delay_ms: int = Field(default=40, ge=0, alias="MYDAY_CHILD_POLL_DELAY_MS")

    # File used by the CLI settings store
    data_file: Path = Field(
        default=Path.home() / ".myday" / "settings.json",
        alias="MYDAY_DATA_FILE",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    env: str = Field(default="dev", alias="ENV")  # dev|prod|test

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )


def _resolve_env_file() -> str | None:
    # 1) Explicit override
    explicit = os.getenv("MYDAY_ENV_FILE")
    if explicit and Path(explicit).is_file():
        return explicit

    # 2) CWD .env
    cwd_env = Path.cwd() / ".env"
    if cwd_env.is_file():
        return str(cwd_env)

    # 3) Walk up from this file to find nearest .env
    here = Path(__file__).resolve()
    for parent in here.parents:
        candidate = parent / ".env"
        if candidate.is_file():
            return str(candidate)
    return None


# Global settings instance (load from best-effort .env discovery)
_env_file = _resolve_env_file()
settings = Settings(_env_file=_env_file) if _env_file else Settings()  # type: ignore[call-arg]
