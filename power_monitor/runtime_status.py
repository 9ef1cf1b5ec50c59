from __future__ import annotations

"""Runtime service status shared by the monitor loop and transition dispatch."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RuntimeStatus:
    """Mutable process counters reported by the stats endpoint."""

    service_started_at: datetime = field(default_factory=_utc_now)
    last_heartbeat_at: datetime | None = None
    last_sweep_at: datetime | None = None
    last_error: str | None = None
    sweeps: int = 0
    up_transitions: int = 0
    down_transitions: int = 0
    notifications_sent: int = 0
    persist_failures: int = 0

    def mark_heartbeat(self, now: datetime | None = None) -> None:
        """Update generic process heartbeat timestamp."""
        self.last_heartbeat_at = now or _utc_now()

    def mark_sweep(self, transitions: int, now: datetime | None = None) -> None:
        """Record one monitor sweep and the down transitions it found."""
        timestamp = now or _utc_now()
        self.sweeps += 1
        self.down_transitions += transitions
        self.last_sweep_at = timestamp
        self.mark_heartbeat(timestamp)

    def mark_up_transition(self, now: datetime | None = None) -> None:
        """Record one ping that ended an outage."""
        self.up_transitions += 1
        self.mark_heartbeat(now)

    def mark_notification(self, now: datetime | None = None) -> None:
        """Record one delivered transition message."""
        self.notifications_sent += 1
        self.mark_heartbeat(now)

    def mark_persist_failure(self, error: str, now: datetime | None = None) -> None:
        """Record a failed event write."""
        self.persist_failures += 1
        self.mark_error(error, now)

    def mark_error(self, error: str, now: datetime | None = None) -> None:
        """Record latest runtime error."""
        self.last_error = error
        self.mark_heartbeat(now or _utc_now())

    def heartbeat_age_sec(self, now: datetime | None = None) -> int | None:
        """Return seconds since last heartbeat, or None if not available yet."""
        if self.last_heartbeat_at is None:
            return None
        reference = now or _utc_now()
        return max(int((reference - self.last_heartbeat_at).total_seconds()), 0)
