"""HTTP route tests against an in-process aiohttp server."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from aiohttp import test_utils

from power_monitor.config import Settings
from power_monitor.database import Database
from power_monitor.devices import DeviceCatalog
from power_monitor.event_store import EventStore
from power_monitor.http_api import create_app
from power_monitor.registry import LivenessRegistry
from power_monitor.service import LivenessService

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> datetime:
        return self.now


class SilentNotifier:
    async def notify_transition(self, device, kind, when, duration) -> bool:
        return False


Scenario = Callable[[test_utils.TestClient, LivenessService, FakeClock], Awaitable[None]]


def _run(tmp_path, scenario: Scenario, **settings_overrides) -> None:
    database = Database(tmp_path / "power.db")
    database.start()
    clock = FakeClock()
    service = LivenessService(
        LivenessRegistry(),
        DeviceCatalog(database),
        EventStore(database),
        SilentNotifier(),  # type: ignore[arg-type]
        clock=clock,
    )
    settings = Settings(DB_PATH=str(tmp_path / "power.db"), **settings_overrides)

    async def main() -> None:
        async with test_utils.TestClient(test_utils.TestServer(create_app(service, settings))) as client:
            await scenario(client, service, clock)
            await service.drain()

    try:
        asyncio.run(main())
    finally:
        database.stop()


def test_ping_then_status(tmp_path) -> None:
    async def scenario(client: test_utils.TestClient, service: LivenessService, clock: FakeClock) -> None:
        resp = await client.get("/ping", params={"device": "d1"})
        assert resp.status == 200
        assert await resp.text() == "ok"

        resp = await client.get("/api/status")
        body = await resp.json()
        assert body["d1"]["status"] == "up"
        assert body["d1"]["since"] == T0.isoformat()
        assert body["d1"]["last_ping"] == T0.isoformat()
        assert body["d1"]["configured"] is False

    _run(tmp_path, scenario)


def test_ping_without_device_uses_default_id(tmp_path) -> None:
    async def scenario(client: test_utils.TestClient, service: LivenessService, clock: FakeClock) -> None:
        resp = await client.post("/ping")
        assert resp.status == 200
        assert service.devices.get("default") is not None

    _run(tmp_path, scenario)


def test_history_after_outage(tmp_path) -> None:
    async def scenario(client: test_utils.TestClient, service: LivenessService, clock: FakeClock) -> None:
        await client.get("/ping", params={"device": "d1"})
        clock.now = T0 + timedelta(seconds=95)
        await service.run_sweep()
        clock.now = T0 + timedelta(seconds=100)
        await client.get("/ping", params={"device": "d1"})
        await service.drain()

        resp = await client.get("/api/history", params={"device": "d1", "limit": "5"})
        assert resp.status == 200
        body = await resp.json()
        assert [item["type"] for item in body["d1"]] == ["up", "down"]
        assert body["d1"][0]["duration"] == 100

        resp = await client.get("/api/history", params={"device": "d1", "limit": "1"})
        assert len((await resp.json())["d1"]) == 1

        resp = await client.get("/api/stats")
        stats = await resp.json()
        assert stats["devices_online"] == 1
        assert stats["events_today"] == 2

    _run(tmp_path, scenario)


def test_history_errors(tmp_path) -> None:
    async def scenario(client: test_utils.TestClient, service: LivenessService, clock: FakeClock) -> None:
        resp = await client.get("/api/history", params={"device": "missing"})
        assert resp.status == 404

        resp = await client.get("/api/history", params={"limit": "many"})
        assert resp.status == 400

    _run(tmp_path, scenario)


def test_device_update_requires_api_key(tmp_path) -> None:
    async def scenario(client: test_utils.TestClient, service: LivenessService, clock: FakeClock) -> None:
        await client.get("/ping", params={"device": "d1"})

        resp = await client.put("/api/devices/d1", json={"timeout": 10})
        assert resp.status == 401

        resp = await client.put("/api/devices/d1", json={"timeout": 10, "paused": True}, headers={"X-API-Key": "s3cret"})
        assert resp.status == 200
        body = await resp.json()
        assert body["timeout"] == 30
        assert body["paused"] is True

        resp = await client.put("/api/devices/d1", json={"timeout": "soon"}, headers={"X-API-Key": "s3cret"})
        assert resp.status == 400

        resp = await client.put("/api/devices/ghost", json={"paused": True}, headers={"X-API-Key": "s3cret"})
        assert resp.status == 404

    _run(tmp_path, scenario, ADMIN_API_KEY="s3cret")


def test_device_delete_removes_state_and_history(tmp_path) -> None:
    async def scenario(client: test_utils.TestClient, service: LivenessService, clock: FakeClock) -> None:
        await client.get("/ping", params={"device": "d1"})
        clock.now = T0 + timedelta(seconds=200)
        await service.run_sweep()
        await service.drain()

        resp = await client.delete("/api/devices/d1")
        assert resp.status == 200
        assert service.registry.get("d1") is None

        resp = await client.get("/api/status")
        assert await resp.json() == {}

        resp = await client.delete("/api/devices/d1")
        assert resp.status == 404

    _run(tmp_path, scenario)
