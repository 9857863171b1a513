"""
Configuration management for nutwatch.

This module uses Pydantic's BaseSettings to manage configuration
through environment variables. It provides a centralized and typed
way to handle application settings.
"""
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    These settings are loaded from environment variables prefixed with
    ``NUTWATCH_`` or from a local ``.env`` file.
    """

    # NUT Server Configuration
    NUT_HOST: str = "localhost"
    NUT_PORT: int = 3493
    NUT_USERNAME: str | None = None
    NUT_PASSWORD: str | None = None
    UPS_NAME: str = "ups"

    # Polling configuration
    POLL_INTERVAL: float = 1.0  # seconds
    FETCH_TIMEOUT: float = 5.0  # seconds
    CONNECT_TIMEOUT: float = 5.0  # seconds
    READ_TIMEOUT: float = 10.0  # seconds, last-resort guard per line

    # Automatic shutdown
    SHUTDOWN_ENABLED: bool = False
    SHUTDOWN_BATTERY_THRESHOLD: float = 20.0  # percent
    SHUTDOWN_RUNTIME_THRESHOLD: float = 300.0  # seconds
    SHUTDOWN_COUNTDOWN: int = 60  # seconds
    SHUTDOWN_ACTION: Literal["poweroff", "hibernate", "sleep"] = "poweroff"
    SHUTDOWN_DRY_RUN: bool = False

    # History
    DB_PATH: str = "data/history.db"
    HISTORY_RETENTION_DAYS: int = 30
    PRUNE_DELAY: float = 10.0  # seconds after startup

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_prefix="NUTWATCH_",
    )


settings = Settings()
