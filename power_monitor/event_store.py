from __future__ import annotations

"""Append-only log of per-device up/down transitions."""

from datetime import date, datetime, timedelta, timezone

from loguru import logger

from .database import Database
from .models import EventKind, TransitionEvent, ensure_utc

MAX_HISTORY_LIMIT = 100


def _encode_ts(value: datetime) -> str:
    # Fixed-width UTC ISO text keeps lexical order equal to time order.
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _decode_ts(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


class EventStore:
    """Persist transition events and answer "last event" lookups."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def append_event(
        self,
        device_id: str,
        kind: EventKind,
        timestamp: datetime,
        duration_seconds: int | None,
    ) -> bool:
        """Insert one event and return whether it repeats the previous event kind.

        A repeated kind is only reported and logged; the row is written anyway.
        """
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT event_type FROM events WHERE device_id = ? ORDER BY timestamp DESC, id DESC LIMIT 1",
                (device_id,),
            ).fetchone()
            duplicate = row is not None and row["event_type"] == kind
            if duplicate:
                logger.warning("[{}] duplicate {} event, previous event has the same kind", device_id, kind)
            with conn:
                conn.execute(
                    "INSERT INTO events (device_id, event_type, timestamp, duration_seconds) VALUES (?, ?, ?, ?)",
                    (device_id, kind, _encode_ts(timestamp), duration_seconds),
                )
        return duplicate

    def last_event(self, device_id: str) -> TransitionEvent | None:
        """Return the most recent event for a device."""
        events = self.recent_events(device_id, limit=1)
        return events[0] if events else None

    def recent_events(self, device_id: str, limit: int = 10) -> list[TransitionEvent]:
        """Return up to `limit` newest events, newest first."""
        bounded = min(max(int(limit), 1), MAX_HISTORY_LIMIT)
        with self.database.connection() as conn:
            rows = conn.execute(
                """
                SELECT device_id, event_type, timestamp, duration_seconds
                FROM events
                WHERE device_id = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                (device_id, bounded),
            ).fetchall()
        return [
            TransitionEvent(
                device_id=row["device_id"],
                kind=row["event_type"],
                timestamp=_decode_ts(row["timestamp"]),
                duration_seconds=row["duration_seconds"],
            )
            for row in rows
        ]

    def delete_device_events(self, device_id: str) -> int:
        """Drop the whole history of a removed device."""
        with self.database.connection() as conn:
            with conn:
                cursor = conn.execute("DELETE FROM events WHERE device_id = ?", (device_id,))
        return cursor.rowcount

    def count_events_on(self, day: date) -> int:
        """Count events of all devices whose UTC timestamp falls on `day`."""
        start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM events WHERE timestamp >= ? AND timestamp < ?",
                (_encode_ts(start), _encode_ts(end)),
            ).fetchone()
        return int(row["total"])
