"""SnapshotStore contract.

The persistence gateway shared by ingestion (writes) and the signal engine
(reads). Implementations must preserve two uniqueness invariants:

  - term_norm is unique; find_or_create_term is race-safe (first insert
    wins, a loser re-reads and returns the winner's id)
  - (captured_at, woeid, position) is unique; upsert_snapshot overwrites
"""

import abc
import uuid
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
)


class SnapshotStore(abc.ABC):
    # Places

    @abc.abstractmethod
    async def get_active_places(self) -> list[Place]:
        """Active places ordered by (sort_order, woeid)."""

    @abc.abstractmethod
    async def get_place_by_slug(self, slug: str) -> Optional[Place]: ...

    @abc.abstractmethod
    async def get_places_by_woeid(self, woeids: Sequence[int]) -> dict[int, Place]: ...

    # Runs

    @abc.abstractmethod
    async def create_run(self, captured_at: datetime) -> uuid.UUID:
        """Insert an ingest run in status 'running' and return its id."""

    @abc.abstractmethod
    async def finalize_run(
        self,
        run_id: uuid.UUID,
        status: RunStatus,
        error_summary: Optional[str] = None,
    ) -> None: ...

    @abc.abstractmethod
    async def record_place_outcome(
        self,
        run_id: uuid.UUID,
        woeid: int,
        status: PlaceStatus,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        trend_count: Optional[int] = None,
    ) -> None: ...

    # Terms and snapshots (write side)

    @abc.abstractmethod
    async def find_or_create_term(self, text: str, term_norm: str) -> int: ...

    @abc.abstractmethod
    async def get_term(self, term_id: int) -> Optional[Term]: ...

    @abc.abstractmethod
    async def upsert_snapshot(
        self,
        run_id: uuid.UUID,
        captured_at: datetime,
        woeid: int,
        position: int,
        term_id: int,
        tweet_count: Optional[int],
        raw_name: str,
    ) -> None: ...

    # Read side

    @abc.abstractmethod
    async def latest_captured_at(self, woeid: int) -> Optional[datetime]: ...

    @abc.abstractmethod
    async def distinct_captured_ats(self, woeid: int, since: datetime) -> list[datetime]:
        """Distinct capture timestamps >= since, newest first."""

    @abc.abstractmethod
    async def snapshots_at(
        self, woeid: int, timestamps: Sequence[datetime]
    ) -> list[SnapshotRow]:
        """All rows of the given captures, joined to term text."""

    @abc.abstractmethod
    async def snapshots_at_exact(
        self, woeid: int, timestamp: datetime, term_ids: Sequence[int]
    ) -> list[TermPosition]: ...

    @abc.abstractmethod
    async def snapshots_for_terms_across_places(
        self, captured_at: datetime, term_ids: Sequence[int]
    ) -> list[TermPlace]: ...

    @abc.abstractmethod
    async def snapshots_for_terms_in_window(
        self,
        woeid: int,
        term_ids: Sequence[int],
        since: datetime,
        until: datetime,
    ) -> list[TermCapture]:
        """Captures in [since, until] containing any of term_ids."""

    @abc.abstractmethod
    async def term_snapshots_since(self, term_id: int, since: datetime) -> list[TermSnapshot]:
        """Every appearance of a term across places, oldest first."""

    @abc.abstractmethod
    async def recent_snapshots(self, limit: int) -> list[SnapshotKey]:
        """Most recent raw snapshot rows, newest capture first."""

    @abc.abstractmethod
    async def delete_snapshots(self, keys: Sequence[SnapshotKey]) -> int:
        """Delete the rows matching (captured_at, woeid, position, term_id).

        A row overwritten with another term since it was read is kept.
        Returns the number of rows deleted.
        """
