"""Hourly trend ingestion.

One run fetches the trend list of every active place, normalizes and
upserts terms, and writes ranked snapshots keyed on the hour-truncated
capture time, so re-running within the same hour overwrites instead of
duplicating.

Failure handling, narrowest scope first:
  - a failed entry write is counted; the place fails with PARTIAL_WRITE
  - a failed fetch fails the place; a fatal (401/403) one stops the loop
  - a failed place-outcome write downgrades the place to failed
  - anything unexpected is caught at the run boundary

The run row is created before anything else and finalized in a `finally`
block, so it never stays in 'running'.
"""

import time
import uuid
from datetime import datetime
from typing import Callable, Optional

import structlog

from xtrend.config import settings
from xtrend.domain import (
    IngestResult,
    Place,
    PlaceIngestResult,
    PlaceStatus,
    RunStatus,
    truncate_to_hour,
    utcnow,
)
from xtrend.metrics import ingest_duration, ingest_places, ingest_runs
from xtrend.services.normalize import dedupe_by_name, normalize_term
from xtrend.services.x_api import TrendFetchClient
from xtrend.store.base import SnapshotStore

log = structlog.get_logger(__name__)

NO_ACTIVE_PLACES = "No active places configured"


def compute_run_status(
    place_results: list[PlaceIngestResult],
    *,
    fatal: bool,
    unexpected: bool,
) -> RunStatus:
    """Aggregate per-place outcomes into the run status.

    failed    -- unexpected error, fatal error, or no place succeeded
    succeeded -- every attempted place succeeded
    partial   -- anything in between
    """
    successes = sum(1 for r in place_results if r.success)
    if unexpected or fatal or successes == 0:
        return RunStatus.failed
    if successes == len(place_results):
        return RunStatus.succeeded
    return RunStatus.partial


class IngestionOrchestrator:
    def __init__(
        self,
        store: SnapshotStore,
        fetch_client: TrendFetchClient,
        clock: Callable[[], datetime] = utcnow,
        max_trends: Optional[int] = None,
    ) -> None:
        self.store = store
        self.fetch_client = fetch_client
        self.clock = clock
        self.max_trends = max_trends or settings.max_trends

    async def run_ingest(self, bearer_token: str) -> IngestResult:
        """Run one ingestion cycle across all active places."""
        started = time.monotonic()
        raw_time = self.clock()
        captured_at = truncate_to_hour(raw_time)

        # Run record FIRST, so a failure loading places still leaves a trace
        run_id = await self.store.create_run(captured_at)
        log.info(
            "ingest_started",
            run_id=str(run_id),
            started_at=raw_time.isoformat(),
            captured_at=captured_at.isoformat(),
        )

        place_results: list[PlaceIngestResult] = []
        errors: list[str] = []
        fatal = False
        unexpected = False
        status = RunStatus.failed
        error_summary: Optional[str] = None

        try:
            places = await self.store.get_active_places()
            log.info("active_places_loaded", run_id=str(run_id), count=len(places))
            if not places:
                errors.append(NO_ACTIVE_PLACES)

            for place in places:
                result, is_fatal = await self._process_place(
                    run_id, place, captured_at, bearer_token
                )
                place_results.append(result)
                await self._record_outcome(run_id, place, result)
                ingest_places.labels(
                    status="succeeded" if result.success else "failed"
                ).inc()

                if not result.success:
                    errors.append(f"{place.display_name}: {result.error_message}")
                    if is_fatal:
                        # An auth failure affects every remaining place
                        log.error(
                            "ingest_fatal_error",
                            run_id=str(run_id),
                            woeid=place.woeid,
                            error_code=result.error_code,
                        )
                        fatal = True
                        break
        except Exception as exc:
            unexpected = True
            log.exception("ingest_unexpected_error", run_id=str(run_id))
            errors.append(f"Unexpected error: {exc}")
        finally:
            status = compute_run_status(place_results, fatal=fatal, unexpected=unexpected)
            if status is not RunStatus.succeeded:
                error_summary = "; ".join(errors) or "No places processed"

            try:
                await self.store.finalize_run(run_id, status, error_summary)
            except Exception:
                log.exception("ingest_finalize_failed", run_id=str(run_id))

            ingest_runs.labels(status=status.value).inc()
            ingest_duration.observe(time.monotonic() - started)
            log.info(
                "ingest_completed",
                run_id=str(run_id),
                status=status.value,
                places_attempted=len(place_results),
                places_succeeded=sum(1 for r in place_results if r.success),
            )

        return IngestResult(
            run_id=run_id,
            captured_at=captured_at,
            status=status,
            place_results=place_results,
            error_summary=error_summary,
        )

    async def _process_place(
        self,
        run_id: uuid.UUID,
        place: Place,
        captured_at: datetime,
        bearer_token: str,
    ) -> tuple[PlaceIngestResult, bool]:
        """Fetch and store one place's trends.

        Returns (result, fatal). The place succeeds only if every retained
        trend was written.
        """
        fetch = await self.fetch_client.fetch_trends(place.woeid, bearer_token)
        if not fetch.success:
            log.warning(
                "place_fetch_failed",
                run_id=str(run_id),
                woeid=place.woeid,
                error_code=fetch.error.code,
                attempts=fetch.attempts,
            )
            return (
                PlaceIngestResult(
                    woeid=place.woeid,
                    success=False,
                    error_code=fetch.error.code,
                    error_message=fetch.error.message,
                ),
                fetch.error.fatal,
            )

        trends = dedupe_by_name(fetch.trends, lambda t: t.name)
        duplicate_count = len(fetch.trends) - len(trends)
        if duplicate_count > 0:
            log.info("duplicate_trends_removed", woeid=place.woeid, count=duplicate_count)

        retained = trends[: self.max_trends]
        written = 0
        last_error: Optional[str] = None

        for position, trend in enumerate(retained, start=1):
            try:
                term_id = await self.store.find_or_create_term(
                    trend.name, normalize_term(trend.name)
                )
                await self.store.upsert_snapshot(
                    run_id=run_id,
                    captured_at=captured_at,
                    woeid=place.woeid,
                    position=position,
                    term_id=term_id,
                    tweet_count=trend.tweet_count,
                    raw_name=trend.name,
                )
                written += 1
            except Exception as exc:
                last_error = str(exc)
                log.warning(
                    "snapshot_write_failed",
                    run_id=str(run_id),
                    woeid=place.woeid,
                    position=position,
                    exc_info=True,
                )

        if written == len(retained):
            log.info("place_ingested", run_id=str(run_id), woeid=place.woeid, trend_count=written)
            return PlaceIngestResult(woeid=place.woeid, success=True, trend_count=written), False

        return (
            PlaceIngestResult(
                woeid=place.woeid,
                success=False,
                error_code="PARTIAL_WRITE",
                error_message=(
                    f"Only {written}/{len(retained)} trends written. Last error: {last_error}"
                ),
                trend_count=written,
            ),
            False,
        )

    async def _record_outcome(
        self, run_id: uuid.UUID, place: Place, result: PlaceIngestResult
    ) -> None:
        """Persist the place outcome; on failure, downgrade the result in place."""
        try:
            await self.store.record_place_outcome(
                run_id=run_id,
                woeid=place.woeid,
                status=PlaceStatus.succeeded if result.success else PlaceStatus.failed,
                error_code=result.error_code,
                error_message=result.error_message,
                trend_count=result.trend_count,
            )
        except Exception as exc:
            log.error(
                "place_outcome_record_failed",
                run_id=str(run_id),
                woeid=place.woeid,
                error=str(exc),
            )
            result.success = False
            result.error_code = result.error_code or "RECORD_FAILED"
            prefix = f"{result.error_message}; " if result.error_message else ""
            result.error_message = f"{prefix}Record failed: {exc}"
