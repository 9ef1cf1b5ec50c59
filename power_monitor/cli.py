from __future__ import annotations

"""Command-line entrypoint: run the service or inspect stored history."""

import argparse
import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import timedelta
from typing import Any

from .app import run_app
from .config import Settings, get_settings
from .database import Database
from .event_store import MAX_HISTORY_LIMIT, EventStore
from .models import TransitionEvent
from .notifier import format_duration

ServeFn = Callable[[Settings], Awaitable[None]]


def _build_parser() -> argparse.ArgumentParser:
    """Define `serve` and `history` sub-commands."""
    parser = argparse.ArgumentParser(prog="power-monitor", description="Device liveness monitor")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run HTTP server and monitor loop")
    serve.add_argument("--host", default=None, help="bind address override")
    serve.add_argument("--port", type=int, default=None, help="bind port override")
    serve.add_argument("--db", default=None, help="sqlite database path override")
    serve.add_argument("--interval", type=float, default=None, help="sweep interval in seconds")

    history = sub.add_parser("history", help="print recent transition events of one device")
    history.add_argument("--device", required=True, help="device id")
    history.add_argument("--limit", type=int, default=10, help=f"number of events, max {MAX_HISTORY_LIMIT}")
    history.add_argument("--db", default=None, help="sqlite database path override")
    return parser


def _format_history(device_id: str, events: list[TransitionEvent]) -> str:
    """Format stored events as a plain-text table, newest first."""
    lines = [f"=== {device_id} history ({len(events)} events) ==="]
    if not events:
        lines.append("no events")
    for event in events:
        duration = None if event.duration_seconds is None else timedelta(seconds=event.duration_seconds)
        lines.append(f"{event.timestamp:%Y-%m-%d %H:%M:%S} {event.kind:<4} {format_duration(duration)}")
    return "\n".join(lines)


def _serve_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.host:
        overrides["HTTP_HOST"] = args.host
    if args.port is not None:
        overrides["HTTP_PORT"] = args.port
    if args.db:
        overrides["DB_PATH"] = args.db
    if args.interval is not None:
        overrides["SWEEP_INTERVAL_SEC"] = args.interval
    return overrides


def run_cli(argv: Sequence[str] | None = None, serve_fn: ServeFn | None = None) -> int:
    """Run the CLI and return the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "serve":
        overrides = _serve_overrides(args)
        # Re-validate so CLI overrides go through the same field validators as env values.
        effective = Settings.model_validate({**settings.model_dump(), **overrides}) if overrides else settings
        try:
            asyncio.run((serve_fn or run_app)(effective))
        except KeyboardInterrupt:
            return 130
        return 0

    if args.limit <= 0:
        print(f"invalid --limit {args.limit}, expected a positive number")
        return 2
    database = Database(args.db or settings.DB_PATH)
    database.start()
    try:
        events = EventStore(database).recent_events(args.device.strip(), limit=args.limit)
    finally:
        database.stop()
    print(_format_history(args.device.strip(), events))
    return 0


def main() -> None:
    """Console script entrypoint."""
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
