from __future__ import annotations

"""Domain models shared by the registry, stores, notifier and HTTP layer."""

from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import MAX_TIMEOUT_SEC, MIN_TIMEOUT_SEC

EventKind = Literal["up", "down"]

DEFAULT_TIMEOUT_SEC = 90


def clamp_timeout(seconds: int | None) -> int:
    """Clamp a configured timeout into bounds; zero keeps the "use default" sentinel."""
    if seconds is None or seconds <= 0:
        return 0
    return min(max(int(seconds), MIN_TIMEOUT_SEC), MAX_TIMEOUT_SEC)


def ensure_utc(value: datetime) -> datetime:
    """Normalize naive or zoned datetimes to aware UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DeviceConfig(BaseModel):
    """Device configuration owned by device management; read-only to the monitor."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    chat_id: str = ""
    bot_token: str = ""
    owner_email: str = ""
    wifi_ssid: str = ""
    paused: bool = False
    timeout: int = Field(default=0)

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        """Device ids are opaque but must not be blank."""
        normalized = value.strip()
        if not normalized:
            raise ValueError("device id must not be empty")
        return normalized

    @field_validator("timeout")
    @classmethod
    def normalize_timeout(cls, value: int) -> int:
        """Stored timeouts are always clamped or the default sentinel."""
        return clamp_timeout(value)

    @property
    def configured(self) -> bool:
        """Return true when a notification destination is set."""
        return bool(self.chat_id) and bool(self.bot_token)

    def effective_timeout(self, default_sec: int = DEFAULT_TIMEOUT_SEC) -> timedelta:
        """Return the silence threshold after which the device counts as down."""
        if self.timeout > 0:
            return timedelta(seconds=self.timeout)
        return timedelta(seconds=default_sec)


class DeviceUpdate(BaseModel):
    """Partial device configuration change submitted by device management."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    bot_token: str | None = None
    chat_id: str | None = None
    wifi_ssid: str | None = None
    paused: bool | None = None
    timeout: int | None = None

    @field_validator("timeout")
    @classmethod
    def clamp_timeout_on_write(cls, value: int | None) -> int | None:
        """Timeout overrides are clamped when written, never when read."""
        if value is None:
            return None
        return clamp_timeout(value)

    def apply(self, device: DeviceConfig) -> DeviceConfig:
        """Return a new config with the non-empty fields of this update applied."""
        changes: dict[str, Any] = {}
        if self.name:
            changes["name"] = self.name
        # Token and chat id describe one destination and change together.
        if self.bot_token or self.chat_id:
            changes["bot_token"] = self.bot_token or ""
            changes["chat_id"] = self.chat_id or ""
        if self.wifi_ssid:
            changes["wifi_ssid"] = self.wifi_ssid
        if self.paused is not None:
            changes["paused"] = self.paused
        if self.timeout is not None:
            changes["timeout"] = self.timeout
        return device.model_copy(update=changes)


class TransitionEvent(BaseModel):
    """Immutable persisted record of one up/down transition."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    kind: EventKind
    timestamp: datetime
    duration_seconds: int | None = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        """Keep every persisted timestamp in aware UTC."""
        return ensure_utc(value)

    def to_payload(self) -> dict[str, Any]:
        """Render the event for the history endpoint."""
        payload: dict[str, Any] = {"type": self.kind, "time": self.timestamp.isoformat()}
        if self.duration_seconds is not None:
            payload["duration"] = self.duration_seconds
        return payload
