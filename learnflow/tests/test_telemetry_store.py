"""
Tests for the telemetry event log: validation on write, range queries,
persistence, retention and cache invalidation.
"""

import asyncio
import datetime
import json
import unittest

import pytest

from learnflow.common.exceptions import ValidationError
from learnflow.telemetry.events import EthicsEvent, InteractionEvent, parse_event
from learnflow.telemetry.index import TimeRange
from learnflow.telemetry.store import (
    Period,
    TelemetryStore,
    parse_timestamp,
    period_to_range,
    previous_range,
)

from conftest import NOW, FixedClock, interaction, ts


class TestTimestampsAndPeriods(unittest.TestCase):

    def test_parse_timestamp_accepts_z_suffix(self):
        parsed = parse_timestamp("2024-05-15T12:00:00Z")
        self.assertEqual(parsed, NOW)

    def test_parse_timestamp_treats_naive_as_utc(self):
        parsed = parse_timestamp("2024-05-15T12:00:00")
        self.assertEqual(parsed.tzinfo, datetime.timezone.utc)
        self.assertEqual(parsed, NOW)

    def test_parse_timestamp_rejects_garbage(self):
        self.assertIsNone(parse_timestamp("not-a-date"))
        self.assertIsNone(parse_timestamp(None))
        self.assertIsNone(parse_timestamp(1715774400))

    def test_parse_timestamp_rejects_offsets_past_the_calendar_edges(self):
        self.assertIsNone(parse_timestamp("0001-01-01T00:00:00+01:00"))
        self.assertIsNone(parse_timestamp("9999-12-31T23:59:59-01:00"))

    def test_period_ranges(self):
        self.assertEqual(period_to_range(Period.DAY, NOW).start, NOW - datetime.timedelta(days=1))
        self.assertEqual(period_to_range("week", NOW).start, NOW - datetime.timedelta(days=7))
        self.assertEqual(period_to_range("month", NOW).start, NOW.replace(month=4))
        self.assertEqual(period_to_range("day", NOW).end, NOW)

    def test_month_range_clamps_day(self):
        end = datetime.datetime(2024, 3, 31, 8, 0, tzinfo=datetime.timezone.utc)
        start = period_to_range("month", end).start
        self.assertEqual((start.month, start.day), (2, 29))

    def test_month_range_crosses_year(self):
        end = datetime.datetime(2024, 1, 10, tzinfo=datetime.timezone.utc)
        start = period_to_range("month", end).start
        self.assertEqual((start.year, start.month, start.day), (2023, 12, 10))

    def test_unknown_period_raises(self):
        with self.assertRaises(ValidationError):
            period_to_range("fortnight", NOW)

    def test_previous_range_ends_where_current_starts(self):
        current = period_to_range("week", NOW)
        previous = previous_range("week", current)
        self.assertEqual(previous.end, current.start)
        self.assertEqual(previous.start, current.start - datetime.timedelta(days=7))


class TestEventModels(unittest.TestCase):

    def test_discriminates_on_kind(self):
        event = parse_event(interaction(ts(hours=1)))
        self.assertIsInstance(event, InteractionEvent)

        ethics = parse_event({"kind": "ethics", "timestamp": ts(hours=1), "type": "prompt_modified"})
        self.assertIsInstance(ethics, EthicsEvent)

    def test_rejects_scores_out_of_range(self):
        with self.assertRaises(ValueError):
            parse_event(interaction(ts(hours=1), clarity_score=1.5))


@pytest.mark.asyncio
async def test_record_and_query_in_arrival_order(store):
    assert await store.record(interaction(ts(hours=3), actor="a"))
    assert await store.record(interaction(ts(hours=5), actor="b"))
    assert await store.record({"kind": "privacy", "timestamp": ts(hours=1), "detector": "email"})

    events = await store.query(period_to_range("day", NOW))
    assert [e.kind for e in events] == ["interaction", "interaction", "privacy"]
    assert [e.actor_hash for e in events[:2]] == ["a", "b"]

    only_privacy = await store.query(period_to_range("day", NOW), ("privacy",))
    assert len(only_privacy) == 1


@pytest.mark.asyncio
async def test_query_range_is_inclusive(store):
    window = period_to_range("day", NOW)
    await store.record(interaction(window.start.isoformat()))
    await store.record(interaction(window.end.isoformat()))
    await store.record(interaction((window.start - datetime.timedelta(seconds=1)).isoformat()))

    events = await store.query(window)
    assert len(events) == 2


@pytest.mark.asyncio
async def test_invalid_timestamp_is_dropped_without_raising(store):
    accepted = await store.record(interaction("not-a-date"))
    assert accepted is False

    events = await store.query(TimeRange(NOW - datetime.timedelta(days=365), NOW))
    assert events == []
    assert len(store) == 0


@pytest.mark.asyncio
async def test_timestamp_outside_calendar_range_is_dropped(store):
    assert await store.record(interaction("0001-01-01T00:00:00+01:00")) is False
    assert await store.record(interaction("9999-12-31T23:59:59-01:00")) is False
    assert len(store) == 0


@pytest.mark.asyncio
async def test_malformed_and_expired_events_are_dropped(store):
    assert await store.record({"kind": "interaction", "timestamp": ts(hours=1)}) is False
    assert await store.record({"kind": "unknown", "timestamp": ts(hours=1)}) is False
    assert await store.record(interaction(ts(days=400))) is False
    assert len(store) == 0


@pytest.mark.asyncio
async def test_record_invalidates_dashboard_cache(store, cache):
    await cache.set_cached_metrics("dashboard:teacher:week:teacher", {"cached": True}, 60)
    await cache.set_cached_metrics("other:key", "kept", 60)

    await store.record(interaction(ts(minutes=5)))

    assert await cache.get_cached_metrics("dashboard:teacher:week:teacher") is None
    assert await cache.get_cached_metrics("other:key") == "kept"


@pytest.mark.asyncio
async def test_dropped_event_keeps_cache(store, cache):
    await cache.set_cached_metrics("dashboard:teacher:week:teacher", {"cached": True}, 60)
    await store.record(interaction("yesterday"))
    assert await cache.get_cached_metrics("dashboard:teacher:week:teacher") == {"cached": True}


@pytest.mark.asyncio
async def test_events_survive_reload(tmp_path, clock):
    path = tmp_path / "log.jsonl"
    first = TelemetryStore(file_path=path, clock=clock)
    await first.record(interaction(ts(hours=2), actor="a"))
    await first.record({"kind": "system_error", "timestamp": ts(hours=1), "message": "boom", "status": 500})

    with open(path, "a", encoding="utf-8") as f:
        f.write("{not json\n")

    second = TelemetryStore(file_path=path, clock=clock)
    events = await second.query(period_to_range("day", NOW))
    assert [e.kind for e in events] == ["interaction", "system_error"]

    with open(path, "r", encoding="utf-8") as f:
        lines = [line for line in f.read().splitlines() if line.strip()]
    assert len(lines) == 2
    assert all(json.loads(line)["kind"] for line in lines)


@pytest.mark.asyncio
async def test_purge_old_compacts_log(tmp_path):
    clock = FixedClock()
    path = tmp_path / "log.jsonl"
    store = TelemetryStore(file_path=path, retention_days=30, clock=clock)
    await store.record(interaction(ts(days=20)))
    await store.record(interaction(ts(days=1)))

    clock.advance(days=15)
    removed = await store.purge_old()

    assert removed == 1
    assert len(store) == 1
    with open(path, "r", encoding="utf-8") as f:
        assert len(f.read().splitlines()) == 1


@pytest.mark.asyncio
async def test_get_recent_is_newest_first(store):
    for hours in (5, 1, 3):
        await store.record(interaction(ts(hours=hours)))

    recent = await store.get_recent(2, period_to_range("day", NOW))
    assert [e.timestamp for e in recent] == [ts(hours=1), ts(hours=3)]


@pytest.mark.asyncio
async def test_events_for_actor(store):
    await store.record(interaction(ts(hours=2), actor="a"))
    await store.record(interaction(ts(hours=1), actor="b"))
    await store.record({"kind": "ethics", "timestamp": ts(minutes=30), "actor_hash": "a",
                        "type": "cheating_detected"})

    assert len(await store.events_for_actor("a")) == 2
    assert len(await store.events_for_actor("a", ("ethics",))) == 1
    assert sorted(await store.actors()) == ["a", "b"]


@pytest.mark.asyncio
async def test_is_writable_and_last_ingest(store):
    assert await store.is_writable() is True
    assert store.last_ingest_at is None
    await store.record(interaction(ts(minutes=1)))
    assert store.last_ingest_at == NOW


def test_anonymize_is_salted_and_stable(tmp_path):
    a = TelemetryStore(file_path=tmp_path / "a.jsonl", salt="one")
    b = TelemetryStore(file_path=tmp_path / "b.jsonl", salt="two")

    assert a.anonymize("student-42") == a.anonymize("student-42")
    assert a.anonymize("student-42") != b.anonymize("student-42")
    assert "student-42" not in a.anonymize("student-42")
    assert len(a.anonymize("student-42")) == 64


@pytest.mark.asyncio
async def test_truncated_multibyte_tail_is_skipped_and_compacted(tmp_path, clock):
    path = tmp_path / "log.jsonl"
    first = TelemetryStore(file_path=path, clock=clock)
    assert await first.record(interaction(ts(hours=1)))

    torn = '{"kind": "privacy", "timestamp": "%s", "detector": "caf' % ts(minutes=5)
    with open(path, "ab") as f:
        f.write(torn.encode("utf-8") + "é".encode("utf-8")[:1])

    second = TelemetryStore(file_path=path, clock=clock)
    events = await second.query(period_to_range("day", NOW))
    assert [e.kind for e in events] == ["interaction"]

    with open(path, "r", encoding="utf-8") as f:
        lines = f.read().splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["kind"] == "interaction"


@pytest.mark.asyncio
async def test_concurrent_records_write_whole_lines(tmp_path, clock):
    path = tmp_path / "log.jsonl"
    store = TelemetryStore(file_path=path, clock=clock)

    results = await asyncio.gather(*[
        store.record(interaction(ts(minutes=i + 1), actor=f"actor-{i}", endpoint="/api/chat/é"))
        for i in range(50)
    ])
    assert all(results)

    with open(path, "r", encoding="utf-8") as f:
        lines = f.read().splitlines()
    assert len(lines) == 50
    assert sorted(json.loads(line)["actor_hash"] for line in lines) == sorted(f"actor-{i}" for i in range(50))

    reloaded = TelemetryStore(file_path=path, clock=clock)
    assert len(await reloaded.query(period_to_range("day", NOW))) == 50
    assert len(await reloaded.actors()) == 50


@pytest.mark.asyncio
async def test_failed_append_keeps_event_visible(store, monkeypatch):
    calls = []

    def failing_append(line):
        calls.append(line)
        raise OSError("disk full")

    monkeypatch.setattr(store, "_append", failing_append)

    assert await store.record(interaction(ts(minutes=5))) is True
    events = await store.query(period_to_range("day", NOW))
    assert len(events) == 1
    assert len(calls) == 1

    reloaded = TelemetryStore(file_path=store.file_path, clock=store.now)
    assert len(await reloaded.query(period_to_range("day", NOW))) == 0


@pytest.mark.asyncio
async def test_cache_is_invalidated_after_durable_append(store, cache, monkeypatch):
    await cache.set_cached_metrics("dashboard:teacher:week:teacher", {"cached": True}, 60)
    entries_during_append = []
    original_append = store._append

    def observing_append(line):
        entries_during_append.append(len(cache.backend))
        original_append(line)

    monkeypatch.setattr(store, "_append", observing_append)
    await store.record(interaction(ts(minutes=5)))

    assert entries_during_append == [1]
    assert len(cache.backend) == 0
