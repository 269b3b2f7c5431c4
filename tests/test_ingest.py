"""Tests for the hourly ingestion orchestrator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import HOUR_START, JAPAN, NOW, OSAKA, TOKYO
from xtrend.domain import PlaceIngestResult, PlaceStatus, RunStatus
from xtrend.services.ingest import NO_ACTIVE_PLACES, IngestionOrchestrator, compute_run_status
from xtrend.services.x_api import FetchError, FetchErrorKind, FetchResult, TrendItem
from xtrend.store import InMemorySnapshotStore


def ok(*names):
    return FetchResult(trends=[TrendItem(name=n, tweet_count=100) for n in names])


def failed(code, message, kind=FetchErrorKind.exhausted):
    return FetchResult(error=FetchError(code=code, message=message, kind=kind), attempts=3)


def fetch_client(results):
    """AsyncMock client answering per woeid from `results`."""
    client = AsyncMock()
    client.fetch_trends.side_effect = lambda woeid, token: results[woeid]
    return client


def run(store, client, clock=lambda: NOW):
    return asyncio.run(IngestionOrchestrator(store, client, clock=clock).run_ingest("tok"))


def test_all_places_succeed(store):
    client = fetch_client({p.woeid: ok("#AI", "Tokyo", "雪") for p in (JAPAN, TOKYO, OSAKA)})
    result = run(store, client)

    assert result.status is RunStatus.succeeded
    assert result.error_summary is None
    assert result.captured_at == HOUR_START
    assert [r.woeid for r in result.place_results] == [JAPAN.woeid, TOKYO.woeid, OSAKA.woeid]
    assert all(r.success and r.trend_count == 3 for r in result.place_results)

    run_record = store.runs[result.run_id]
    assert run_record.status is RunStatus.succeeded
    assert run_record.finalize_count == 1
    assert len(store.run_places) == 3
    assert len(store.snapshots) == 9
    assert len(store.terms) == 3
    assert all(s.captured_at == HOUR_START for s in store.snapshots.values())
    client.fetch_trends.assert_any_await(JAPAN.woeid, "tok")


def test_one_failed_place_makes_run_partial(store):
    client = fetch_client(
        {
            JAPAN.woeid: ok("a", "b"),
            TOKYO.woeid: ok("c"),
            OSAKA.woeid: failed("RETRY_EXHAUSTED", "HTTP 503: down"),
        }
    )
    result = run(store, client)

    assert result.status is RunStatus.partial
    assert result.error_summary == "大阪: HTTP 503: down"
    osaka_row = next(r for r in store.run_places if r.woeid == OSAKA.woeid)
    assert osaka_row.status is PlaceStatus.failed
    assert osaka_row.error_code == "RETRY_EXHAUSTED"
    assert store.runs[result.run_id].status is RunStatus.partial


def test_fatal_error_aborts_remaining_places(store):
    client = fetch_client(
        {
            JAPAN.woeid: failed("401", "Unauthorized - check bearer token", FetchErrorKind.fatal),
            TOKYO.woeid: ok("never"),
            OSAKA.woeid: ok("never"),
        }
    )
    result = run(store, client)

    assert result.status is RunStatus.failed
    assert client.fetch_trends.await_count == 1
    assert len(result.place_results) == 1
    assert [r.woeid for r in store.run_places] == [JAPAN.woeid]
    assert result.error_summary == "日本: Unauthorized - check bearer token"
    assert store.snapshots == {}


def test_all_places_failing_is_failed(store):
    client = fetch_client({p.woeid: failed("404", "missing", FetchErrorKind.client) for p in (JAPAN, TOKYO, OSAKA)})
    result = run(store, client)

    assert result.status is RunStatus.failed
    assert len(result.place_results) == 3
    assert result.error_summary.count("missing") == 3


def test_rerun_in_same_hour_overwrites(store):
    client = fetch_client({p.woeid: ok("x", "y") for p in (JAPAN, TOKYO, OSAKA)})
    first = run(store, client)
    second = run(store, client, clock=lambda: NOW.replace(minute=59))

    assert first.run_id != second.run_id
    assert first.captured_at == second.captured_at
    assert len(store.snapshots) == 6
    assert len(store.terms) == 2
    assert all(s.run_id == second.run_id for s in store.snapshots.values())
    assert len(store.runs) == 2


def test_no_active_places_fails_run():
    store = InMemorySnapshotStore()
    client = fetch_client({})
    result = run(store, client)

    assert result.status is RunStatus.failed
    assert result.error_summary == NO_ACTIVE_PLACES
    assert store.runs[result.run_id].finalize_count == 1
    client.fetch_trends.assert_not_awaited()


def test_inactive_places_are_skipped(store):
    store.deactivate(OSAKA.woeid)
    client = fetch_client({JAPAN.woeid: ok("a"), TOKYO.woeid: ok("b")})
    result = run(store, client)

    assert result.status is RunStatus.succeeded
    assert client.fetch_trends.await_count == 2


class FailingWriteStore(InMemorySnapshotStore):
    async def upsert_snapshot(self, run_id, captured_at, woeid, position, term_id, tweet_count, raw_name):
        if raw_name == "bad":
            raise RuntimeError("disk full")
        await super().upsert_snapshot(run_id, captured_at, woeid, position, term_id, tweet_count, raw_name)


def test_partial_write_fails_place():
    store = FailingWriteStore([JAPAN, TOKYO])
    client = fetch_client({JAPAN.woeid: ok("a", "bad", "c"), TOKYO.woeid: ok("d")})
    result = run(store, client)

    japan = result.place_results[0]
    assert not japan.success
    assert japan.error_code == "PARTIAL_WRITE"
    assert japan.trend_count == 2
    assert japan.error_message == "Only 2/3 trends written. Last error: disk full"
    assert result.status is RunStatus.partial
    # Remaining entries are still written at their own positions
    assert sorted(k[2] for k in store.snapshots if k[1] == JAPAN.woeid) == [1, 3]


class FailingOutcomeStore(InMemorySnapshotStore):
    async def record_place_outcome(self, run_id, woeid, status, error_code=None, error_message=None, trend_count=None):
        if woeid == TOKYO.woeid:
            raise RuntimeError("constraint violated")
        await super().record_place_outcome(run_id, woeid, status, error_code, error_message, trend_count)


def test_outcome_record_failure_downgrades_place():
    store = FailingOutcomeStore([JAPAN, TOKYO])
    client = fetch_client({JAPAN.woeid: ok("a"), TOKYO.woeid: ok("b")})
    result = run(store, client)

    tokyo = result.place_results[1]
    assert not tokyo.success
    assert tokyo.error_code == "RECORD_FAILED"
    assert tokyo.error_message == "Record failed: constraint violated"
    assert result.status is RunStatus.partial
    assert result.error_summary == "東京: Record failed: constraint violated"


class BrokenPlacesStore(InMemorySnapshotStore):
    async def get_active_places(self):
        raise RuntimeError("db gone")


def test_unexpected_error_still_finalizes_run():
    store = BrokenPlacesStore([JAPAN])
    result = run(store, fetch_client({}))

    assert result.status is RunStatus.failed
    assert result.error_summary == "Unexpected error: db gone"
    record = store.runs[result.run_id]
    assert record.status is RunStatus.failed
    assert record.finalize_count == 1
    assert record.finished_at is not None


class BrokenFinalizeStore(InMemorySnapshotStore):
    async def finalize_run(self, run_id, status, error_summary=None):
        raise RuntimeError("connection reset")


def test_finalize_failure_does_not_raise():
    store = BrokenFinalizeStore([JAPAN])
    result = run(store, fetch_client({JAPAN.woeid: ok("a")}))

    assert result.status is RunStatus.succeeded
    assert store.runs[result.run_id].status is RunStatus.running


def test_trends_capped_at_fifty(store):
    names = [f"trend {i}" for i in range(60)]
    client = fetch_client({JAPAN.woeid: ok(*names), TOKYO.woeid: ok("a"), OSAKA.woeid: ok("b")})
    result = run(store, client)

    assert result.place_results[0].trend_count == 50
    positions = sorted(k[2] for k in store.snapshots if k[1] == JAPAN.woeid)
    assert positions == list(range(1, 51))


def test_duplicate_names_removed_before_ranking(store):
    client = fetch_client({JAPAN.woeid: ok("AI", "ai", "B"), TOKYO.woeid: ok("a"), OSAKA.woeid: ok("b")})
    run(store, client)

    japan = {k[2]: s.raw_name for k, s in store.snapshots.items() if k[1] == JAPAN.woeid}
    assert japan == {1: "AI", 2: "B"}


def test_terms_shared_through_normalization(store):
    client = fetch_client({JAPAN.woeid: ok("#ＡＩ"), TOKYO.woeid: ok("#ai"), OSAKA.woeid: ok("#AI ")})
    run(store, client)

    assert len(store.terms) == 1
    assert {s.term_id for s in store.snapshots.values()} == {1}


@pytest.mark.parametrize(
    "successes, fatal, unexpected, expected",
    [
        ([True, True], False, False, RunStatus.succeeded),
        ([True, False], False, False, RunStatus.partial),
        ([False, False], False, False, RunStatus.failed),
        ([], False, False, RunStatus.failed),
        ([True, True], False, True, RunStatus.failed),
        ([True, False], True, False, RunStatus.failed),
    ],
)
def test_compute_run_status(successes, fatal, unexpected, expected):
    results = [PlaceIngestResult(woeid=i, success=s) for i, s in enumerate(successes)]
    assert compute_run_status(results, fatal=fatal, unexpected=unexpected) is expected
