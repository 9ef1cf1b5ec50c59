from __future__ import annotations

"""SQLite connection holder shared by the event store and device catalog."""

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    duration_seconds INTEGER
);
CREATE INDEX IF NOT EXISTS idx_device_time ON events(device_id, timestamp DESC);

CREATE TABLE IF NOT EXISTS devices (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    chat_id TEXT,
    bot_token TEXT,
    owner_email TEXT,
    wifi_ssid TEXT,
    paused INTEGER NOT NULL DEFAULT 0,
    timeout INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class Database:
    """Own one sqlite connection; every statement runs under `self._lock`."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

    def start(self) -> None:
        """Open the connection and create the schema when missing."""
        with self._lock:
            if self._conn is not None:
                return
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA busy_timeout = 3000")
            with conn:
                conn.executescript(_SCHEMA)
            self._conn = conn
            logger.info("database ready path={}", self.db_path)

    def stop(self) -> None:
        """Close the connection; safe to call twice."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield the live connection while holding the database lock."""
        with self._lock:
            if self._conn is None:
                raise RuntimeError("database not started")
            yield self._conn
