from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from power_monitor.app import build_components, shutdown
from power_monitor.config import Settings
from power_monitor.database import Database
from power_monitor.devices import DeviceCatalog
from power_monitor.event_store import EventStore

T = datetime(2026, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


class BlockingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.release = asyncio.Event()

    async def notify_transition(self, device, kind, when, duration) -> bool:
        await self.release.wait()
        self.calls.append((device.id, kind))
        return True


def _seed(db_path) -> None:
    database = Database(db_path)
    database.start()
    devices = DeviceCatalog(database)
    store = EventStore(database)
    for device_id in ("d1", "d2", "d3"):
        devices.ensure(device_id)
    store.append_event("d1", "down", T, 3600)
    store.append_event("d2", "down", T - timedelta(hours=2), None)
    store.append_event("d2", "up", T, 7200)
    database.stop()


def _settings(tmp_path) -> Settings:
    return Settings(DB_PATH=str(tmp_path / "power.db"), LOG_DIR=str(tmp_path / "logs"), SWEEP_INTERVAL_SEC=5)


def test_build_components_restores_registry_from_events(tmp_path) -> None:
    _seed(tmp_path / "power.db")
    before = datetime.now(timezone.utc)

    components = build_components(_settings(tmp_path))
    try:
        registry = components.service.registry
        d1 = registry.get("d1")
        d2 = registry.get("d2")
        d3 = registry.get("d3")
    finally:
        asyncio.run(shutdown(components))

    assert d1.is_down is True
    assert d1.down_since == T
    assert d2.is_down is False
    assert d2.up_since == T
    assert d3.is_down is True
    assert d3.down_since >= before
    assert components.monitor.interval_sec == 5
    assert components.monitor.stopped is True


def test_shutdown_waits_for_in_flight_notification(tmp_path) -> None:
    _seed(tmp_path / "power.db")
    components = build_components(_settings(tmp_path))
    notifier = BlockingNotifier()
    components.service.notifier = notifier

    async def scenario() -> None:
        info = await components.service.handle_ping("d1", T + timedelta(hours=1))
        assert info.occurred is True

        stopper = asyncio.create_task(shutdown(components))
        await asyncio.sleep(0.05)
        assert stopper.done() is False
        assert notifier.calls == []

        notifier.release.set()
        await asyncio.wait_for(stopper, timeout=2.0)

    asyncio.run(scenario())

    assert notifier.calls == [("d1", "up")]
    with pytest.raises(RuntimeError):
        with components.database.connection():
            pass

    reopened = Database(tmp_path / "power.db")
    reopened.start()
    try:
        last = EventStore(reopened).last_event("d1")
    finally:
        reopened.stop()
    assert last.kind == "up"
    assert last.duration_seconds == 3600
