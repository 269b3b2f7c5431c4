"""In-memory SnapshotStore.

Keeps every table in plain dicts with the same uniqueness rules as the SQL
schema. Used by the test suite and for local dry runs without PostgreSQL.
`calls` records the name of every read so callers can assert on round trips.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Sequence

from xtrend.domain import (
    Place,
    PlaceStatus,
    RunStatus,
    SnapshotKey,
    SnapshotRow,
    Term,
    TermCapture,
    TermPlace,
    TermPosition,
    TermSnapshot,
    utcnow,
)
from xtrend.services.normalize import normalize_term
from xtrend.store.base import SnapshotStore


@dataclass
class RunRecord:
    run_id: uuid.UUID
    captured_at: datetime
    started_at: datetime
    status: RunStatus = RunStatus.running
    finished_at: Optional[datetime] = None
    error_summary: Optional[str] = None
    finalize_count: int = 0


@dataclass(frozen=True)
class RunPlaceRecord:
    run_id: uuid.UUID
    woeid: int
    status: PlaceStatus
    error_code: Optional[str]
    error_message: Optional[str]
    trend_count: Optional[int]


@dataclass(frozen=True)
class SnapshotRecord:
    run_id: uuid.UUID
    captured_at: datetime
    woeid: int
    position: int
    term_id: int
    tweet_count: Optional[int]
    raw_name: str


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self, places: Sequence[Place] = ()) -> None:
        self.places: dict[int, Place] = {p.woeid: p for p in places}
        self.terms: dict[int, Term] = {}
        self._term_ids_by_norm: dict[str, int] = {}
        self.runs: dict[uuid.UUID, RunRecord] = {}
        self.run_places: list[RunPlaceRecord] = []
        self.snapshots: dict[tuple[datetime, int, int], SnapshotRecord] = {}
        self.calls: list[str] = []

    def add_place(self, place: Place) -> None:
        self.places[place.woeid] = place

    # Places

    async def get_active_places(self) -> list[Place]:
        active = [p for p in self.places.values() if p.is_active]
        return sorted(active, key=lambda p: (p.sort_order, p.woeid))

    async def get_place_by_slug(self, slug: str) -> Optional[Place]:
        return next((p for p in self.places.values() if p.slug == slug), None)

    async def get_places_by_woeid(self, woeids: Sequence[int]) -> dict[int, Place]:
        return {w: self.places[w] for w in woeids if w in self.places}

    # Runs

    async def create_run(self, captured_at: datetime) -> uuid.UUID:
        run_id = uuid.uuid4()
        self.runs[run_id] = RunRecord(run_id=run_id, captured_at=captured_at, started_at=utcnow())
        return run_id

    async def finalize_run(
        self,
        run_id: uuid.UUID,
        status: RunStatus,
        error_summary: Optional[str] = None,
    ) -> None:
        run = self.runs[run_id]
        run.status = status
        run.error_summary = error_summary
        run.finished_at = utcnow()
        run.finalize_count += 1

    async def record_place_outcome(
        self,
        run_id: uuid.UUID,
        woeid: int,
        status: PlaceStatus,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        trend_count: Optional[int] = None,
    ) -> None:
        if run_id not in self.runs:
            raise KeyError(run_id)
        if any(r.run_id == run_id and r.woeid == woeid for r in self.run_places):
            raise ValueError(f"outcome already recorded for run {run_id} place {woeid}")
        self.run_places.append(
            RunPlaceRecord(run_id, woeid, status, error_code, error_message, trend_count)
        )

    # Terms and snapshots

    async def find_or_create_term(self, text: str, term_norm: str) -> int:
        existing = self._term_ids_by_norm.get(term_norm)
        if existing is not None:
            return existing
        term_id = len(self.terms) + 1
        self.terms[term_id] = Term(term_id=term_id, term_text=text, term_norm=term_norm)
        self._term_ids_by_norm[term_norm] = term_id
        return term_id

    async def get_term(self, term_id: int) -> Optional[Term]:
        return self.terms.get(term_id)

    async def upsert_snapshot(
        self,
        run_id: uuid.UUID,
        captured_at: datetime,
        woeid: int,
        position: int,
        term_id: int,
        tweet_count: Optional[int],
        raw_name: str,
    ) -> None:
        self.snapshots[(captured_at, woeid, position)] = SnapshotRecord(
            run_id, captured_at, woeid, position, term_id, tweet_count, raw_name
        )

    def seed_capture(
        self,
        woeid: int,
        captured_at: datetime,
        names: Sequence[str],
        run_id: Optional[uuid.UUID] = None,
    ) -> list[int]:
        """Write a whole capture synchronously; returns term ids in rank order."""
        run_id = run_id or uuid.uuid4()
        term_ids = []
        for position, name in enumerate(names, start=1):
            norm = normalize_term(name)
            term_id = self._term_ids_by_norm.get(norm)
            if term_id is None:
                term_id = len(self.terms) + 1
                self.terms[term_id] = Term(term_id, name, norm)
                self._term_ids_by_norm[norm] = term_id
            self.snapshots[(captured_at, woeid, position)] = SnapshotRecord(
                run_id, captured_at, woeid, position, term_id, None, name
            )
            term_ids.append(term_id)
        return term_ids

    # Read side

    async def latest_captured_at(self, woeid: int) -> Optional[datetime]:
        self.calls.append("latest_captured_at")
        stamps = [s.captured_at for s in self.snapshots.values() if s.woeid == woeid]
        return max(stamps, default=None)

    async def distinct_captured_ats(self, woeid: int, since: datetime) -> list[datetime]:
        self.calls.append("distinct_captured_ats")
        stamps = {
            s.captured_at
            for s in self.snapshots.values()
            if s.woeid == woeid and s.captured_at >= since
        }
        return sorted(stamps, reverse=True)

    async def snapshots_at(
        self, woeid: int, timestamps: Sequence[datetime]
    ) -> list[SnapshotRow]:
        self.calls.append("snapshots_at")
        wanted = set(timestamps)
        rows = [
            SnapshotRow(
                captured_at=s.captured_at,
                position=s.position,
                term_id=s.term_id,
                tweet_count=s.tweet_count,
                term_text=self.terms[s.term_id].term_text,
            )
            for s in self.snapshots.values()
            if s.woeid == woeid and s.captured_at in wanted
        ]
        return sorted(rows, key=lambda r: (-r.captured_at.timestamp(), r.position))

    async def snapshots_at_exact(
        self, woeid: int, timestamp: datetime, term_ids: Sequence[int]
    ) -> list[TermPosition]:
        self.calls.append("snapshots_at_exact")
        ids = set(term_ids)
        return [
            TermPosition(s.term_id, s.position)
            for s in self.snapshots.values()
            if s.woeid == woeid and s.captured_at == timestamp and s.term_id in ids
        ]

    async def snapshots_for_terms_across_places(
        self, captured_at: datetime, term_ids: Sequence[int]
    ) -> list[TermPlace]:
        self.calls.append("snapshots_for_terms_across_places")
        ids = set(term_ids)
        return [
            TermPlace(s.term_id, s.woeid)
            for s in self.snapshots.values()
            if s.captured_at == captured_at and s.term_id in ids
        ]

    async def snapshots_for_terms_in_window(
        self,
        woeid: int,
        term_ids: Sequence[int],
        since: datetime,
        until: datetime,
    ) -> list[TermCapture]:
        self.calls.append("snapshots_for_terms_in_window")
        ids = set(term_ids)
        return [
            TermCapture(s.term_id, s.captured_at)
            for s in self.snapshots.values()
            if s.woeid == woeid and s.term_id in ids and since <= s.captured_at <= until
        ]

    async def term_snapshots_since(self, term_id: int, since: datetime) -> list[TermSnapshot]:
        rows = [
            TermSnapshot(s.captured_at, s.position, s.woeid)
            for s in self.snapshots.values()
            if s.term_id == term_id and s.captured_at >= since
        ]
        return sorted(rows, key=lambda r: (r.captured_at, r.woeid))

    async def recent_snapshots(self, limit: int) -> list[SnapshotKey]:
        rows = sorted(
            self.snapshots.values(),
            key=lambda s: (-s.captured_at.timestamp(), s.woeid, s.position),
        )
        return [
            SnapshotKey(s.captured_at, s.woeid, s.term_id, s.position, s.raw_name, s.run_id)
            for s in rows[:limit]
        ]

    def deactivate(self, woeid: int) -> None:
        self.places[woeid] = replace(self.places[woeid], is_active=False)

    async def delete_snapshots(self, keys: Sequence[SnapshotKey]) -> int:
        deleted = 0
        for key in keys:
            natural = (key.captured_at, key.woeid, key.position)
            row = self.snapshots.get(natural)
            if row is not None and row.term_id == key.term_id:
                del self.snapshots[natural]
                deleted += 1
        return deleted
