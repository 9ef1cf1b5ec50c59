from __future__ import annotations

"""Process-level helpers: logging sinks and the service clock."""

import sys
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger


def configure_logger(log_dir: str = "logs", level: str = "INFO") -> None:
    """Configure file and stdout log sinks for runtime observability."""
    logger.remove()
    logger.add(
        str(Path(log_dir) / "runtime_{time:YYYY-MM-DD}.log"),
        level=level,
        rotation="00:00",
        retention="14 days",
        enqueue=True,
    )
    logger.add(sys.stdout, level=level)


def utc_now() -> datetime:
    """Return the current aware UTC time used for pings and sweeps."""
    return datetime.now(timezone.utc)
