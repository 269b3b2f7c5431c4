"""Time-windowed trend views and momentum signals.

Maps "N hours ago" onto the nearest stored capture at or before
truncate_to_hour(latest - N), and decorates the live view (offset 0) with:

  rank_change    -- previous - current position against the capture exactly
                    one hour earlier; None for every term when that capture
                    is missing, None for terms new to the list
  region_count   -- distinct places listing the term at the same capture,
                    reported only when > 1
  duration_hours -- consecutive hourly captures containing the term,
                    walking back from now and stopping at the first gap,
                    capped at 24

Store round trips are constant in the number of offsets: latest capture,
distinct capture timestamps over the window, one batched snapshot read,
then three independent signal reads run concurrently in a TaskGroup.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

import structlog

from xtrend.domain import HOUR, Place, SnapshotRow, truncate_to_hour
from xtrend.services.normalize import dedupe_by_term
from xtrend.store.base import SnapshotStore

log = structlog.get_logger(__name__)

VALID_OFFSETS = (0, 1, 3, 6, 12, 24, 48, 72)
# Extra history scanned past the largest offset when looking for a
# capture at or before the target hour.
LOOKBACK_SLACK = timedelta(hours=6)
MAX_DURATION_HOURS = 24


@dataclass(frozen=True)
class TrendItemView:
    position: int
    term_id: int
    term_text: str
    tweet_count: Optional[int]


@dataclass(frozen=True)
class TrendWithSignals(TrendItemView):
    rank_change: Optional[int] = None
    duration_hours: Optional[int] = None
    region_count: Optional[int] = None


@dataclass
class OffsetView:
    offset: int
    captured_at: datetime
    trends: list[TrendItemView] = field(default_factory=list)


@dataclass
class PlaceViews:
    place: Place
    views: dict[int, Optional[OffsetView]]


def resolve_offsets(
    latest: datetime,
    offsets: Iterable[int],
    available: Sequence[datetime],
) -> dict[int, Optional[datetime]]:
    """Pick the capture to show for each offset.

    `available` must be sorted newest first. Offset 0 is the latest capture
    as stored; any other offset resolves to the newest capture at or before
    the hour-truncated target, never a later one.
    """
    resolved: dict[int, Optional[datetime]] = {}
    for hours in offsets:
        if hours == 0:
            resolved[hours] = latest
            continue
        target = truncate_to_hour(latest - timedelta(hours=hours))
        resolved[hours] = next((ts for ts in available if ts <= target), None)
    return resolved


def consecutive_hours(current: datetime, present: set[datetime], cap: int = MAX_DURATION_HOURS) -> int:
    """Count hourly captures in `present` going back from `current` without a gap."""
    count = 0
    ts = current
    while count < cap and ts in present:
        count += 1
        ts -= HOUR
    return count


def _to_views(rows: Iterable[SnapshotRow]) -> list[TrendItemView]:
    deduped = dedupe_by_term(rows, lambda r: r.term_id, lambda r: r.position)
    return [
        TrendItemView(
            position=r.position,
            term_id=r.term_id,
            term_text=r.term_text,
            tweet_count=r.tweet_count,
        )
        for r in deduped
    ]


class TemporalSignalEngine:
    def __init__(self, store: SnapshotStore) -> None:
        self.store = store

    async def get_place_views(
        self, slug: str, offsets: Sequence[int]
    ) -> Optional[PlaceViews]:
        """Offset views for a place looked up by slug; None for unknown slugs."""
        place = await self.store.get_place_by_slug(slug)
        if place is None:
            return None
        views = await self.get_trends_at_offsets(place.woeid, offsets)
        return PlaceViews(place=place, views=views)

    async def get_latest_with_signals(self, woeid: int) -> Optional[OffsetView]:
        views = await self.get_trends_at_offsets(woeid, [0])
        return views[0]

    async def get_trends_at_offsets(
        self, woeid: int, offsets: Sequence[int]
    ) -> dict[int, Optional[OffsetView]]:
        """Resolve every requested offset for one place.

        Returns a dict keyed by offset; None where nothing was captured.
        """
        wanted = sorted(set(offsets))
        if not wanted:
            return {}
        if wanted[0] < 0:
            raise ValueError(f"offsets must be non-negative, got {wanted[0]}")

        latest = await self.store.latest_captured_at(woeid)
        if latest is None:
            return {hours: None for hours in wanted}

        since = truncate_to_hour(latest - timedelta(hours=wanted[-1])) - LOOKBACK_SLACK
        available = await self.store.distinct_captured_ats(woeid, since)
        resolved = resolve_offsets(latest, wanted, available)

        needed = sorted({ts for ts in resolved.values() if ts is not None}, reverse=True)
        rows = await self.store.snapshots_at(woeid, needed)
        by_capture: dict[datetime, list[SnapshotRow]] = defaultdict(list)
        for row in rows:
            by_capture[row.captured_at].append(row)

        views: dict[int, Optional[OffsetView]] = {}
        for hours, ts in resolved.items():
            if ts is None:
                views[hours] = None
                continue
            views[hours] = OffsetView(offset=hours, captured_at=ts, trends=_to_views(by_capture.get(ts, [])))

        if views.get(0) is not None:
            views[0] = await self._attach_signals(woeid, views[0], set(available))

        log.debug(
            "offsets_resolved",
            woeid=woeid,
            offsets=wanted,
            captures=len(needed),
        )
        return views

    async def _attach_signals(
        self, woeid: int, view: OffsetView, available: set[datetime]
    ) -> OffsetView:
        current = view.captured_at
        term_ids = [t.term_id for t in view.trends]
        if not term_ids:
            return view

        previous = current - HOUR
        has_previous = previous in available

        async def _previous_positions():
            if not has_previous:
                return []
            return await self.store.snapshots_at_exact(woeid, previous, term_ids)

        # Cross-place matching is on exact captured_at; places ingested on
        # different schedules would not line up and region_count under-counts.
        # A failing read cancels its siblings; the first error is re-raised as is.
        try:
            async with asyncio.TaskGroup() as tg:
                previous_task = tg.create_task(_previous_positions())
                place_task = tg.create_task(
                    self.store.snapshots_for_terms_across_places(current, term_ids)
                )
                window_task = tg.create_task(
                    self.store.snapshots_for_terms_in_window(
                        woeid, term_ids, current - HOUR * (MAX_DURATION_HOURS - 1), current
                    )
                )
        except ExceptionGroup as group:
            raise group.exceptions[0]
        previous_rows = previous_task.result()
        place_rows = place_task.result()
        window_rows = window_task.result()

        previous_positions: dict[int, int] = {}
        for row in previous_rows:
            known = previous_positions.get(row.term_id)
            if known is None or row.position < known:
                previous_positions[row.term_id] = row.position

        regions: dict[int, set[int]] = defaultdict(set)
        for row in place_rows:
            regions[row.term_id].add(row.woeid)

        captures: dict[int, set[datetime]] = defaultdict(set)
        for row in window_rows:
            captures[row.term_id].add(row.captured_at)

        trends: list[TrendItemView] = []
        for item in view.trends:
            rank_change = None
            if has_previous and item.term_id in previous_positions:
                rank_change = previous_positions[item.term_id] - item.position
            region_count = len(regions.get(item.term_id, ()))
            trends.append(
                TrendWithSignals(
                    position=item.position,
                    term_id=item.term_id,
                    term_text=item.term_text,
                    tweet_count=item.tweet_count,
                    rank_change=rank_change,
                    duration_hours=consecutive_hours(current, captures.get(item.term_id, set())),
                    region_count=region_count if region_count > 1 else None,
                )
            )

        if not has_previous:
            log.debug("rank_change_unknown", woeid=woeid, previous=previous.isoformat())
        return OffsetView(offset=view.offset, captured_at=current, trends=trends)
