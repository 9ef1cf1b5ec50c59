"""Event store persistence tests on a temporary sqlite file."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from power_monitor.database import Database
from power_monitor.event_store import EventStore

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    database = Database(tmp_path / "power.db")
    database.start()
    yield EventStore(database)
    database.stop()


def test_last_event_empty_and_after_append(store: EventStore) -> None:
    assert store.last_event("d1") is None

    store.append_event("d1", "down", T0, 120)
    store.append_event("d1", "up", T0 + timedelta(minutes=5), 300)

    last = store.last_event("d1")
    assert last is not None
    assert last.kind == "up"
    assert last.timestamp == T0 + timedelta(minutes=5)
    assert last.duration_seconds == 300
    assert store.last_event("other") is None


def test_recent_events_newest_first_and_bounded(store: EventStore) -> None:
    for index in range(120):
        kind = "down" if index % 2 == 0 else "up"
        store.append_event("d1", kind, T0 + timedelta(minutes=index), index)

    recent = store.recent_events("d1", limit=3)
    assert [event.duration_seconds for event in recent] == [119, 118, 117]
    assert len(store.recent_events("d1", limit=1000)) == 100
    assert len(store.recent_events("d1", limit=0)) == 1


def test_duplicate_kind_is_reported_but_still_written(store: EventStore) -> None:
    assert store.append_event("d1", "down", T0, None) is False
    assert store.append_event("d1", "down", T0 + timedelta(seconds=30), None) is True

    events = store.recent_events("d1", limit=10)
    assert len(events) == 2
    assert all(event.kind == "down" for event in events)
    assert events[0].duration_seconds is None


def test_naive_timestamps_are_stored_as_utc(store: EventStore) -> None:
    store.append_event("d1", "up", datetime(2026, 3, 1, 8, 0, 0), 10)

    assert store.last_event("d1").timestamp == datetime(2026, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


def test_delete_device_events(store: EventStore) -> None:
    store.append_event("d1", "down", T0, 1)
    store.append_event("d1", "up", T0 + timedelta(seconds=1), 1)
    store.append_event("d2", "down", T0, 1)

    assert store.delete_device_events("d1") == 2
    assert store.last_event("d1") is None
    assert store.last_event("d2") is not None


def test_count_events_on_day(store: EventStore) -> None:
    store.append_event("d1", "down", datetime(2026, 3, 1, 0, 0, 0, tzinfo=timezone.utc), 1)
    store.append_event("d2", "up", datetime(2026, 3, 1, 23, 59, 59, tzinfo=timezone.utc), 1)
    store.append_event("d1", "up", datetime(2026, 3, 2, 0, 0, 0, tzinfo=timezone.utc), 1)

    assert store.count_events_on(date(2026, 3, 1)) == 2
    assert store.count_events_on(date(2026, 3, 2)) == 1
    assert store.count_events_on(date(2026, 2, 28)) == 0


def test_store_requires_started_database(tmp_path) -> None:
    store = EventStore(Database(tmp_path / "never-started.db"))

    with pytest.raises(RuntimeError):
        store.last_event("d1")
