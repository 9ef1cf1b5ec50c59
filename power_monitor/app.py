from __future__ import annotations

"""Unified entrypoint: bootstrap state, HTTP server and monitor loop in one process."""

import asyncio
from dataclasses import dataclass

from aiohttp import web
from loguru import logger

from .bootstrap import restore_states
from .config import Settings, get_settings
from .database import Database
from .devices import DeviceCatalog
from .event_store import EventStore
from .http_api import create_app
from .main import configure_logger, utc_now
from .monitor import MonitorLoop
from .notifier import TelegramNotifier
from .registry import LivenessRegistry
from .runtime_status import RuntimeStatus
from .service import LivenessService


@dataclass
class Components:
    """Everything `run_app` wires together, exposed for shutdown and tests."""

    database: Database
    service: LivenessService
    monitor: MonitorLoop
    notifier: TelegramNotifier


def build_components(settings: Settings) -> Components:
    """Open storage, load devices and restore liveness from the event log."""
    database = Database(settings.DB_PATH)
    database.start()

    devices = DeviceCatalog(database, default_timeout_sec=settings.DEFAULT_TIMEOUT_SEC)
    loaded = devices.load()
    event_store = EventStore(database)
    registry = LivenessRegistry()
    restore_states(registry, event_store, devices.ids(), now=utc_now())
    logger.info("loaded {} devices", loaded)

    notifier = TelegramNotifier(settings)
    service = LivenessService(registry, devices, event_store, notifier, RuntimeStatus())
    monitor = MonitorLoop(service, interval_sec=settings.SWEEP_INTERVAL_SEC)
    return Components(database=database, service=service, monitor=monitor, notifier=notifier)


async def shutdown(components: Components) -> None:
    """Stop ticking, let in-flight transitions finish, then release resources."""
    components.monitor.stop()
    await components.service.drain()
    await components.notifier.close()
    components.database.stop()


async def run_app(settings: Settings | None = None) -> None:
    """Boot the service and serve until cancelled."""
    settings = settings or get_settings()
    configure_logger(settings.LOG_DIR, settings.LOG_LEVEL)

    components = build_components(settings)
    monitor_task = asyncio.create_task(components.monitor.run(), name="monitor-loop")

    runner = web.AppRunner(create_app(components.service, settings))
    await runner.setup()
    site = web.TCPSite(runner, settings.HTTP_HOST, settings.HTTP_PORT)
    await site.start()
    logger.info("power monitor started on {}:{}", settings.HTTP_HOST, settings.HTTP_PORT)

    try:
        while True:
            components.service.runtime_status.mark_heartbeat()
            await asyncio.sleep(settings.HEARTBEAT_INTERVAL_SEC)
    finally:
        await runner.cleanup()
        components.monitor.stop()
        await asyncio.gather(monitor_task, return_exceptions=True)
        await shutdown(components)
        logger.info("power monitor stopped")


def main() -> None:
    """Console entrypoint for the unified service."""
    try:
        asyncio.run(run_app())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
