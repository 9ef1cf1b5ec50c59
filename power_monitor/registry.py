from __future__ import annotations

"""Liveness state machine shared by ping handlers and the monitor loop."""

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

TimeoutLookup = Callable[[str], timedelta | None]


@dataclass
class LivenessState:
    """Current up/down classification of one device.

    `last_ping_at` is None until the device pings in this process. Only the
    anchor matching `is_down` is current; the other one keeps the previous
    anchor so the next transition can compute how long the state lasted.
    """

    last_ping_at: datetime | None = None
    is_down: bool = False
    down_since: datetime | None = None
    up_since: datetime | None = None

    @property
    def since(self) -> datetime | None:
        """Start of the current status."""
        return self.down_since if self.is_down else self.up_since


@dataclass(frozen=True)
class TransitionInfo:
    """Outcome of one recorded ping."""

    occurred: bool
    outage_duration: timedelta | None = None
    down_since: datetime | None = None


@dataclass(frozen=True)
class DownTransition:
    """One device demoted to down by a sweep."""

    device_id: str
    down_since: datetime
    up_duration: timedelta | None


def _elapsed(now: datetime, since: datetime | None) -> timedelta | None:
    if since is None:
        return None
    return now - since


class LivenessRegistry:
    """Own the device id -> state mapping behind one exclusive lock.

    `record_ping` and `sweep` are the only transition operations. Both run
    their whole critical section under the lock, so a physical transition is
    observed exactly once no matter how many pings race with a sweep.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, LivenessState] = {}

    def record_ping(self, device_id: str, now: datetime) -> TransitionInfo:
        """Mark device up at `now` and report whether this ping ended an outage."""
        with self._lock:
            state = self._states.get(device_id)
            if state is None:
                # First sighting in this process: up from now, nothing to report.
                state = LivenessState(up_since=now)
                self._states[device_id] = state

            was_down = state.is_down
            down_since = state.down_since
            state.last_ping_at = now
            state.is_down = False
            if was_down:
                state.up_since = now

        if not was_down:
            return TransitionInfo(occurred=False)
        return TransitionInfo(occurred=True, outage_duration=_elapsed(now, down_since), down_since=down_since)

    def sweep(self, now: datetime, timeout_for: TimeoutLookup) -> list[DownTransition]:
        """Demote every up device whose silence exceeds its timeout."""
        transitions: list[DownTransition] = []
        with self._lock:
            for device_id, state in self._states.items():
                if state.is_down:
                    continue
                timeout = timeout_for(device_id)
                if timeout is None:
                    continue
                if state.last_ping_at is not None and now - state.last_ping_at <= timeout:
                    continue

                if state.last_ping_at is None:
                    # Restored as up but never seen since boot; the real last-seen instant is unknown.
                    down_since = now
                    up_duration = None
                else:
                    down_since = state.last_ping_at
                    up_duration = _elapsed(down_since, state.up_since)
                state.is_down = True
                state.down_since = down_since
                transitions.append(DownTransition(device_id=device_id, down_since=down_since, up_duration=up_duration))
        return transitions

    def restore(self, device_id: str, state: LivenessState) -> None:
        """Install a bootstrap state, replacing any existing entry."""
        with self._lock:
            self._states[device_id] = replace(state)

    def remove(self, device_id: str) -> bool:
        """Forget a device; return whether it was tracked."""
        with self._lock:
            return self._states.pop(device_id, None) is not None

    def get(self, device_id: str) -> LivenessState | None:
        """Return a copy of one device state."""
        with self._lock:
            state = self._states.get(device_id)
            return replace(state) if state is not None else None

    def snapshot(self, device_ids: Iterable[str] | None = None) -> dict[str, LivenessState]:
        """Return consistent copies of all (or selected) device states."""
        with self._lock:
            if device_ids is None:
                return {device_id: replace(state) for device_id, state in self._states.items()}
            return {
                device_id: replace(self._states[device_id]) for device_id in device_ids if device_id in self._states
            }

    def online_count(self) -> int:
        """Count devices currently classified as up."""
        with self._lock:
            return sum(1 for state in self._states.values() if not state.is_down)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
