"""Tests for the duplicate snapshot audit."""

import asyncio
from unittest.mock import AsyncMock

import xtrend.__main__ as cli
from conftest import HOUR_START as T, JAPAN, TOKYO
from xtrend.domain import HOUR
from xtrend.services.audit import cleanup_duplicate_terms, find_duplicate_terms
from xtrend.store import InMemorySnapshotStore


def test_reports_term_listed_twice_in_one_capture(store):
    term_ids = store.seed_capture(JAPAN.woeid, T, ["AI", "X", "ai"])
    store.seed_capture(TOKYO.woeid, T, ["AI"])

    groups = asyncio.run(find_duplicate_terms(store))

    assert len(groups) == 1
    group = groups[0]
    assert (group.captured_at, group.woeid, group.term_id) == (T, JAPAN.woeid, term_ids[0])
    assert group.positions == [1, 3]


def test_clean_snapshots_report_nothing(store):
    store.seed_capture(JAPAN.woeid, T - HOUR, ["A", "B"])
    store.seed_capture(JAPAN.woeid, T, ["B", "A"])

    assert asyncio.run(find_duplicate_terms(store)) == []


def test_groups_sorted_newest_first(store):
    store.seed_capture(JAPAN.woeid, T - HOUR, ["A", "a"])
    store.seed_capture(JAPAN.woeid, T, ["B", "b"])

    groups = asyncio.run(find_duplicate_terms(store))
    assert [g.captured_at for g in groups] == [T, T - HOUR]


def test_audit_does_not_mutate(store):
    store.seed_capture(JAPAN.woeid, T, ["A", "a"])
    before = dict(store.snapshots)

    asyncio.run(find_duplicate_terms(store))
    assert store.snapshots == before


def test_cleanup_keeps_only_lowest_position(store):
    term_ids = store.seed_capture(JAPAN.woeid, T, ["AI", "X", "ai", "Ai"])
    store.seed_capture(TOKYO.woeid, T, ["AI", "Y"])

    deleted = asyncio.run(cleanup_duplicate_terms(store))

    assert deleted == 2
    japan = {k[2]: s.term_id for k, s in store.snapshots.items() if k[1] == JAPAN.woeid}
    assert japan == {1: term_ids[0], 2: term_ids[1]}
    assert len([k for k in store.snapshots if k[1] == TOKYO.woeid]) == 2
    assert asyncio.run(find_duplicate_terms(store)) == []


class RecordingStore(InMemorySnapshotStore):
    def __init__(self, places=()):
        super().__init__(places)
        self.batches = []

    async def delete_snapshots(self, keys):
        self.batches.append(len(keys))
        return await super().delete_snapshots(keys)


def test_cleanup_deletes_in_batches():
    store = RecordingStore([JAPAN])
    for hours in range(5):
        store.seed_capture(JAPAN.woeid, T - hours * HOUR, ["A", "a", "A "])

    deleted = asyncio.run(cleanup_duplicate_terms(store, batch_size=4))

    assert deleted == 10
    assert store.batches == [4, 4, 2]


def test_cleanup_without_duplicates_deletes_nothing(store):
    store.seed_capture(JAPAN.woeid, T, ["A", "B"])

    assert asyncio.run(cleanup_duplicate_terms(store)) == 0
    assert len(store.snapshots) == 2


def test_delete_skips_rows_overwritten_since_scan(store):
    store.seed_capture(JAPAN.woeid, T, ["A", "a"])
    (group,) = asyncio.run(find_duplicate_terms(store))
    # Re-ingestion replaced position 2 with another term after the scan
    store.seed_capture(JAPAN.woeid, T, ["A", "B"])

    assert asyncio.run(store.delete_snapshots(group.entries[1:])) == 0
    assert len(store.snapshots) == 2


def test_cleanup_command(monkeypatch):
    cleanup = AsyncMock(return_value=3)
    monkeypatch.setattr(cli, "cleanup_duplicate_terms", cleanup)
    monkeypatch.setattr(cli, "configure_logging", lambda: None)

    assert cli.main(["cleanup", "--limit", "100", "--batch-size", "10"]) == 0
    assert cleanup.await_args.kwargs == {"limit": 100, "batch_size": 10}
