from __future__ import annotations

"""Device configuration catalog: sqlite rows cached in memory."""

import sqlite3
import threading
from datetime import timedelta

from loguru import logger

from .database import Database
from .models import DEFAULT_TIMEOUT_SEC, DeviceConfig, DeviceUpdate


class DeviceNotFoundError(LookupError):
    """Raised when a device id is not registered."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"device not found: {device_id}")
        self.device_id = device_id


def _row_to_device(row: sqlite3.Row) -> DeviceConfig:
    return DeviceConfig(
        id=row["id"],
        name=row["name"] or row["id"],
        chat_id=row["chat_id"] or "",
        bot_token=row["bot_token"] or "",
        owner_email=row["owner_email"] or "",
        wifi_ssid=row["wifi_ssid"] or "",
        paused=bool(row["paused"]),
        timeout=int(row["timeout"] or 0),
    )


class DeviceCatalog:
    """Keep device configs in memory and write changes through to sqlite."""

    def __init__(self, database: Database, default_timeout_sec: int = DEFAULT_TIMEOUT_SEC) -> None:
        self.database = database
        self.default_timeout_sec = default_timeout_sec
        self._lock = threading.Lock()
        self._devices: dict[str, DeviceConfig] = {}

    def load(self) -> int:
        """Read every stored device into memory."""
        with self.database.connection() as conn:
            rows = conn.execute(
                "SELECT id, name, chat_id, bot_token, owner_email, wifi_ssid, paused, timeout FROM devices"
            ).fetchall()
        devices = {}
        for row in rows:
            device = _row_to_device(row)
            devices[device.id] = device
            logger.info(
                "loaded device {} ({}) owner={} paused={}", device.id, device.name, device.owner_email, device.paused
            )
        with self._lock:
            self._devices = devices
        return len(devices)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._devices)

    def all(self) -> list[DeviceConfig]:
        with self._lock:
            return list(self._devices.values())

    def get(self, device_id: str) -> DeviceConfig | None:
        with self._lock:
            return self._devices.get(device_id)

    def require(self, device_id: str) -> DeviceConfig:
        """Return the device config or raise `DeviceNotFoundError`."""
        device = self.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    def timeout_for(self, device_id: str) -> timedelta | None:
        """Effective silence threshold, or None for unregistered devices."""
        device = self.get(device_id)
        if device is None:
            return None
        return device.effective_timeout(self.default_timeout_sec)

    def ensure(self, device_id: str) -> tuple[DeviceConfig, bool]:
        """Return the device config, auto-registering unknown ids with defaults."""
        with self._lock:
            device = self._devices.get(device_id)
            if device is not None:
                return device, False
            device = DeviceConfig(id=device_id, name=device_id)
            self._devices[device_id] = device
        self._save(device)
        logger.info("auto-registered device: {}", device_id)
        return device, True

    def update(self, device_id: str, change: DeviceUpdate) -> DeviceConfig:
        """Apply a partial update and persist it."""
        with self._lock:
            current = self._devices.get(device_id)
            if current is None:
                raise DeviceNotFoundError(device_id)
            updated = change.apply(current)
            self._devices[device_id] = updated
        self._save(updated)
        return updated

    def remove(self, device_id: str) -> None:
        """Delete the device config; raises when the id is unknown."""
        with self._lock:
            if self._devices.pop(device_id, None) is None:
                raise DeviceNotFoundError(device_id)
        with self.database.connection() as conn:
            with conn:
                conn.execute("DELETE FROM devices WHERE id = ?", (device_id,))

    def _save(self, device: DeviceConfig) -> None:
        with self.database.connection() as conn:
            with conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO devices (id, name, chat_id, bot_token, owner_email, wifi_ssid, paused, timeout)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        device.id,
                        device.name,
                        device.chat_id,
                        device.bot_token,
                        device.owner_email,
                        device.wifi_ssid,
                        int(device.paused),
                        device.timeout,
                    ),
                )
