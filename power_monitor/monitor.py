from __future__ import annotations

"""Periodic sweep loop that demotes silent devices."""

import asyncio

from loguru import logger

from .service import LivenessService


class MonitorLoop:
    """Call `LivenessService.run_sweep` every `interval_sec` until stopped."""

    def __init__(self, service: LivenessService, interval_sec: float = 10.0) -> None:
        self.service = service
        self.interval_sec = interval_sec
        self._stop = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Stop issuing new ticks; dispatched notifications keep running."""
        self._stop.set()

    async def _wait_tick(self) -> bool:
        """Sleep one interval; return False when stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.interval_sec)
        except asyncio.TimeoutError:
            return True
        return False

    async def tick(self) -> int:
        """Run one sweep and return how many devices went down."""
        try:
            transitions = await self.service.run_sweep()
        except Exception as exc:
            logger.exception("sweep failed: {}", exc)
            self.service.runtime_status.mark_error(f"sweep failed: {exc}")
            return 0
        return len(transitions)

    async def run(self) -> None:
        """Tick forever until `stop()` is called."""
        logger.info("monitor loop started interval={}s", self.interval_sec)
        while await self._wait_tick():
            await self.tick()
        logger.info("monitor loop stopped")
