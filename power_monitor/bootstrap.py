from __future__ import annotations

"""Rebuild in-memory liveness from the last persisted event of each device."""

import sqlite3
from collections.abc import Iterable
from datetime import datetime

from loguru import logger

from .event_store import EventStore
from .models import TransitionEvent
from .registry import LivenessRegistry, LivenessState


def state_from_last_event(event: TransitionEvent | None, now: datetime) -> LivenessState:
    """Map a device's last event to its boot-time state.

    No history means down since `now`. Pings missed while the process was
    stopped are unknown, so `last_ping_at` always starts empty and a device
    restored as up is swept down on the first tick unless it pings again.
    """
    if event is None:
        return LivenessState(is_down=True, down_since=now)
    if event.kind == "down":
        return LivenessState(is_down=True, down_since=event.timestamp)
    return LivenessState(is_down=False, up_since=event.timestamp)


def restore_states(
    registry: LivenessRegistry,
    event_store: EventStore,
    device_ids: Iterable[str],
    now: datetime,
) -> int:
    """Install a boot-time state for every known device; return how many were restored."""
    restored = 0
    for device_id in device_ids:
        try:
            event = event_store.last_event(device_id)
        except sqlite3.Error as exc:
            logger.error("[{}] last event lookup failed, assuming down: {}", device_id, exc)
            event = None
        state = state_from_last_event(event, now)
        registry.restore(device_id, state)
        restored += 1
        logger.debug("[{}] restored down={} since={}", device_id, state.is_down, state.since)
    logger.info("bootstrap restored {} devices", restored)
    return restored
