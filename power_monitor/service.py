from __future__ import annotations

"""Transition handling: registry mutations plus detached persist/notify work."""

import asyncio
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from .devices import DeviceCatalog
from .event_store import EventStore
from .main import utc_now
from .models import DeviceConfig, DeviceUpdate, EventKind
from .notifier import TelegramNotifier, format_duration
from .registry import DownTransition, LivenessRegistry, LivenessState, TransitionInfo
from .runtime_status import RuntimeStatus


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _seconds(duration: timedelta | None) -> int | None:
    return int(duration.total_seconds()) if duration is not None else None


class LivenessService:
    """Glue between the registry, the event store and the notifier.

    Registry calls never await. Everything that touches the database or the
    network after a transition runs in a detached task, so a slow store or
    chat API can neither hold the registry lock nor delay the next sweep.
    """

    def __init__(
        self,
        registry: LivenessRegistry,
        devices: DeviceCatalog,
        event_store: EventStore,
        notifier: TelegramNotifier,
        runtime_status: RuntimeStatus | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.registry = registry
        self.devices = devices
        self.event_store = event_store
        self.notifier = notifier
        self.runtime_status = runtime_status or RuntimeStatus()
        self.clock = clock
        self._tasks: set[asyncio.Task[None]] = set()
        # One lock per device keeps appends in the order transitions were observed.
        self._persist_locks: dict[str, asyncio.Lock] = {}

    async def handle_ping(self, device_id: str, now: datetime | None = None) -> TransitionInfo:
        """Record a ping; on a down->up transition persist and notify in the background."""
        now = now or self.clock()
        if self.devices.get(device_id) is None:
            await asyncio.to_thread(self.devices.ensure, device_id)

        info = self.registry.record_ping(device_id, now)
        if info.occurred:
            logger.info("[{}] light on after {}", device_id, format_duration(info.outage_duration))
            self.runtime_status.mark_up_transition(now)
            self._dispatch(device_id, "up", now, info.outage_duration)
        return info

    async def run_sweep(self, now: datetime | None = None) -> list[DownTransition]:
        """Demote overdue devices and dispatch one down event per transition."""
        now = now or self.clock()
        transitions = self.registry.sweep(now, self.devices.timeout_for)
        for item in transitions:
            logger.info("[{}] light off after {} up", item.device_id, format_duration(item.up_duration))
            # Stamped with detection time so it always sorts after the preceding up event.
            self._dispatch(item.device_id, "down", now, item.up_duration)
        self.runtime_status.mark_sweep(len(transitions), now)
        return transitions

    def _dispatch(
        self,
        device_id: str,
        kind: EventKind,
        when: datetime,
        duration: timedelta | None,
    ) -> None:
        lock = self._persist_locks.setdefault(device_id, asyncio.Lock())
        task = asyncio.create_task(
            self._deliver(lock, device_id, kind, when, duration),
            name=f"transition-{kind}-{device_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(
        self,
        lock: asyncio.Lock,
        device_id: str,
        kind: EventKind,
        when: datetime,
        duration: timedelta | None,
    ) -> None:
        async with lock:
            if self.devices.get(device_id) is None:
                logger.info("[{}] device removed, dropping {} event", device_id, kind)
                return
            try:
                await asyncio.to_thread(self.event_store.append_event, device_id, kind, when, _seconds(duration))
            except (sqlite3.Error, RuntimeError) as exc:
                logger.exception("[{}] failed to persist {} event: {}", device_id, kind, exc)
                self.runtime_status.mark_persist_failure(f"persist {kind} event for {device_id}: {exc}")
            except Exception as exc:
                logger.exception("[{}] unexpected error persisting {} event: {}", device_id, kind, exc)
                self.runtime_status.mark_persist_failure(f"persist {kind} event for {device_id}: {exc}")

        device = self.devices.get(device_id)
        if device is None:
            return
        try:
            sent = await self.notifier.notify_transition(device, kind, when, duration)
        except Exception as exc:
            logger.exception("[{}] notification for {} event failed: {}", device_id, kind, exc)
            self.runtime_status.mark_error(f"notify {kind} for {device_id}: {exc}")
            return
        if sent:
            self.runtime_status.mark_notification()

    async def drain(self) -> None:
        """Wait until every dispatched persist/notify task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def update_device(self, device_id: str, change: DeviceUpdate) -> DeviceConfig:
        """Apply a configuration change from device management."""
        device = await asyncio.to_thread(self.devices.update, device_id, change)
        logger.info("[{}] config updated paused={} timeout={}", device_id, device.paused, device.timeout)
        return device

    async def remove_device(self, device_id: str) -> None:
        """Drop a device together with its live state and history."""
        self.devices.require(device_id)
        # Live state goes first; a ping during the catalog delete re-registers with fresh state.
        self.registry.remove(device_id)
        await asyncio.to_thread(self.devices.remove, device_id)

        # Wait for in-flight appends so none lands after the delete.
        lock = self._persist_locks.setdefault(device_id, asyncio.Lock())
        async with lock:
            deleted = await asyncio.to_thread(self.event_store.delete_device_events, device_id)
        if self._persist_locks.get(device_id) is lock:
            del self._persist_locks[device_id]
        logger.info("[{}] device removed, {} events deleted", device_id, deleted)

    def status_snapshot(self, now: datetime | None = None) -> dict[str, dict[str, Any]]:
        """Return per-device status derived from live state and configuration."""
        now = now or self.clock()
        devices = self.devices.all()
        states = self.registry.snapshot(device.id for device in devices)
        result: dict[str, dict[str, Any]] = {}
        for device in devices:
            state = states.get(device.id) or LivenessState(is_down=True, down_since=now)
            result[device.id] = {
                "name": device.name,
                "status": "down" if state.is_down else "up",
                "last_ping": _iso(state.last_ping_at),
                "since": _iso(state.since),
                "configured": device.configured,
            }
        return result

    async def history(self, device_id: str | None, limit: int) -> dict[str, list[dict[str, Any]]]:
        """Return the newest events per device, newest first."""
        if device_id:
            self.devices.require(device_id)
            device_ids = [device_id]
        else:
            device_ids = self.devices.ids()

        result: dict[str, list[dict[str, Any]]] = {}
        for item in device_ids:
            events = await asyncio.to_thread(self.event_store.recent_events, item, limit)
            result[item] = [event.to_payload() for event in events]
        return result

    async def stats(self, now: datetime | None = None) -> dict[str, Any]:
        """Return online count, today's event count and monitor counters."""
        now = now or self.clock()
        events_today = await asyncio.to_thread(self.event_store.count_events_on, now.date())
        status = self.runtime_status
        return {
            "devices_online": self.registry.online_count(),
            "events_today": events_today,
            "sweeps": status.sweeps,
            "last_sweep_at": _iso(status.last_sweep_at),
            "notifications_sent": status.notifications_sent,
            "persist_failures": status.persist_failures,
            "last_error": status.last_error,
        }
