from __future__ import annotations

"""Configuration model for the liveness monitor service."""

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_TIMEOUT_SEC = 30
MAX_TIMEOUT_SEC = 300


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DB_PATH: str = "data/power.db"
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = Field(default=8090)

    SWEEP_INTERVAL_SEC: float = Field(default=10.0)
    DEFAULT_TIMEOUT_SEC: int = Field(default=90)
    HEARTBEAT_INTERVAL_SEC: float = Field(default=5.0)

    TELEGRAM_API_BASE: str = "https://api.telegram.org"
    REQUEST_TIMEOUT_SEC: float = Field(default=10.0)
    GREEN_AVATAR_PATH: str = "assets/green.png"
    RED_AVATAR_PATH: str = "assets/red.png"
    AVATAR_DELETE_DELAY_SEC: float = Field(default=0.3)
    NOTIFY_TIMEZONE: str = "Europe/Kyiv"

    HISTORY_DEFAULT_LIMIT: int = Field(default=10)
    HISTORY_MAX_LIMIT: int = Field(default=100)

    ADMIN_API_KEY: str | None = None

    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    @field_validator("HTTP_PORT")
    @classmethod
    def validate_port(cls, value: int) -> int:
        """Port must be a valid TCP port number."""
        if value <= 0 or value > 65535:
            raise ValueError("HTTP_PORT must be in [1, 65535]")
        return value

    @field_validator("SWEEP_INTERVAL_SEC", "HEARTBEAT_INTERVAL_SEC", "REQUEST_TIMEOUT_SEC")
    @classmethod
    def validate_positive_interval(cls, value: float) -> float:
        """Intervals and timeouts must be strictly positive."""
        if value <= 0:
            raise ValueError("interval settings must be > 0")
        return value

    @field_validator("AVATAR_DELETE_DELAY_SEC")
    @classmethod
    def validate_delete_delay(cls, value: float) -> float:
        """Delay before deleting the avatar service message cannot be negative."""
        if value < 0:
            raise ValueError("AVATAR_DELETE_DELAY_SEC must be >= 0")
        return value

    @field_validator("DEFAULT_TIMEOUT_SEC")
    @classmethod
    def validate_default_timeout(cls, value: int) -> int:
        """Default device timeout follows the same bounds as per-device overrides."""
        if not MIN_TIMEOUT_SEC <= value <= MAX_TIMEOUT_SEC:
            raise ValueError(f"DEFAULT_TIMEOUT_SEC must be in [{MIN_TIMEOUT_SEC}, {MAX_TIMEOUT_SEC}]")
        return value

    @field_validator("HISTORY_DEFAULT_LIMIT", "HISTORY_MAX_LIMIT")
    @classmethod
    def validate_history_limit(cls, value: int) -> int:
        """History page size is bounded to keep queries cheap."""
        if value <= 0 or value > 100:
            raise ValueError("history limits must be in [1, 100]")
        return value

    @field_validator("NOTIFY_TIMEZONE")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject unknown IANA zone names at startup instead of at first alert."""
        normalized = value.strip()
        try:
            ZoneInfo(normalized)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown NOTIFY_TIMEZONE: {value}") from exc
        return normalized

    @field_validator("ADMIN_API_KEY")
    @classmethod
    def validate_admin_key(cls, value: str | None) -> str | None:
        """Blank key disables device-management auth."""
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Support the loguru level names used in deployment."""
        normalized = value.strip().upper()
        if normalized not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be a loguru level name")
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""
    return Settings()
