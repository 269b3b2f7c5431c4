"""PostgreSQL SnapshotStore on SQLAlchemy 2.0 async.

Each operation opens its own short session from the injected
async_sessionmaker, so the signal engine can gather independent reads
without sharing a session across tasks.
"""

import uuid
from datetime import datetime
from typing import Optional, Sequence

import structlog
from sqlalchemy import delete, func, insert, select, tuple_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xtrend import domain
from xtrend.domain import PlaceStatus, RunStatus
from xtrend.models import IngestRun, IngestRunPlace, Place, Term, TrendSnapshot
from xtrend.store.base import SnapshotStore

log = structlog.get_logger(__name__)


def _to_place(row: Place) -> domain.Place:
    return domain.Place(
        woeid=row.woeid,
        slug=row.slug,
        name_ja=row.name_ja,
        country_code=row.country_code,
        name_en=row.name_en,
        timezone=row.timezone,
        is_active=row.is_active,
        sort_order=row.sort_order,
    )


class SqlSnapshotStore(SnapshotStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # Places

    async def get_active_places(self) -> list[domain.Place]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Place)
                .where(Place.is_active.is_(True))
                .order_by(Place.sort_order, Place.woeid)
            )
            return [_to_place(p) for p in result.scalars().all()]

    async def get_place_by_slug(self, slug: str) -> Optional[domain.Place]:
        async with self.session_factory() as session:
            place = await session.scalar(select(Place).where(Place.slug == slug))
            return _to_place(place) if place is not None else None

    async def get_places_by_woeid(self, woeids: Sequence[int]) -> dict[int, domain.Place]:
        if not woeids:
            return {}
        async with self.session_factory() as session:
            result = await session.execute(select(Place).where(Place.woeid.in_(list(woeids))))
            return {p.woeid: _to_place(p) for p in result.scalars().all()}

    # Runs

    async def create_run(self, captured_at: datetime) -> uuid.UUID:
        async with self.session_factory() as session:
            run_id = await session.scalar(
                insert(IngestRun)
                .values(captured_at=captured_at, status=RunStatus.running.value)
                .returning(IngestRun.run_id)
            )
            await session.commit()
            return run_id

    async def finalize_run(
        self,
        run_id: uuid.UUID,
        status: RunStatus,
        error_summary: Optional[str] = None,
    ) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(IngestRun)
                .where(IngestRun.run_id == run_id)
                .values(
                    finished_at=func.now(),
                    status=status.value,
                    error_summary=error_summary,
                )
            )
            await session.commit()

    async def record_place_outcome(
        self,
        run_id: uuid.UUID,
        woeid: int,
        status: PlaceStatus,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        trend_count: Optional[int] = None,
    ) -> None:
        async with self.session_factory() as session:
            await session.execute(
                insert(IngestRunPlace).values(
                    run_id=run_id,
                    woeid=woeid,
                    status=status.value,
                    error_code=error_code,
                    error_message=error_message,
                    trend_count=trend_count,
                )
            )
            await session.commit()

    # Terms and snapshots

    async def find_or_create_term(self, text: str, term_norm: str) -> int:
        """Return the term_id for term_norm, inserting it on first sighting.

        Concurrent ingesters may both miss the read and race on the insert;
        the unique constraint on term_norm lets exactly one win and the loser
        re-reads the winner's row.
        """
        lookup = select(Term.term_id).where(Term.term_norm == term_norm)
        async with self.session_factory() as session:
            existing = await session.scalar(lookup)
            if existing is not None:
                return existing

            try:
                term_id = await session.scalar(
                    insert(Term)
                    .values(term_text=text, term_norm=term_norm)
                    .returning(Term.term_id)
                )
                await session.commit()
                return term_id
            except IntegrityError:
                await session.rollback()
                log.debug("term_insert_race", term_norm=term_norm)
                term_id = await session.scalar(lookup)
                if term_id is None:
                    raise
                return term_id

    async def get_term(self, term_id: int) -> Optional[domain.Term]:
        async with self.session_factory() as session:
            term = await session.get(Term, term_id)
            if term is None:
                return None
            return domain.Term(term.term_id, term.term_text, term.term_norm)

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
        stmt = pg_insert(TrendSnapshot).values(
            run_id=run_id,
            captured_at=captured_at,
            woeid=woeid,
            position=position,
            term_id=term_id,
            tweet_count=tweet_count,
            raw_name=raw_name,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_trend_snapshot_captured_at_woeid_position",
            set_={
                "run_id": stmt.excluded.run_id,
                "term_id": stmt.excluded.term_id,
                "tweet_count": stmt.excluded.tweet_count,
                "raw_name": stmt.excluded.raw_name,
            },
        )
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    # Read side

    async def latest_captured_at(self, woeid: int) -> Optional[datetime]:
        async with self.session_factory() as session:
            return await session.scalar(
                select(func.max(TrendSnapshot.captured_at)).where(TrendSnapshot.woeid == woeid)
            )

    async def distinct_captured_ats(self, woeid: int, since: datetime) -> list[datetime]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(TrendSnapshot.captured_at)
                .where(TrendSnapshot.woeid == woeid, TrendSnapshot.captured_at >= since)
                .distinct()
                .order_by(TrendSnapshot.captured_at.desc())
            )
            return list(result.scalars().all())

    async def snapshots_at(
        self, woeid: int, timestamps: Sequence[datetime]
    ) -> list[domain.SnapshotRow]:
        if not timestamps:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    TrendSnapshot.captured_at,
                    TrendSnapshot.position,
                    TrendSnapshot.term_id,
                    TrendSnapshot.tweet_count,
                    Term.term_text,
                )
                .join(Term, Term.term_id == TrendSnapshot.term_id)
                .where(
                    TrendSnapshot.woeid == woeid,
                    TrendSnapshot.captured_at.in_(list(timestamps)),
                )
                .order_by(TrendSnapshot.captured_at.desc(), TrendSnapshot.position)
            )
            return [
                domain.SnapshotRow(
                    captured_at=row.captured_at,
                    position=row.position,
                    term_id=row.term_id,
                    tweet_count=row.tweet_count,
                    term_text=row.term_text,
                )
                for row in result.all()
            ]

    async def snapshots_at_exact(
        self, woeid: int, timestamp: datetime, term_ids: Sequence[int]
    ) -> list[domain.TermPosition]:
        if not term_ids:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(TrendSnapshot.term_id, TrendSnapshot.position).where(
                    TrendSnapshot.woeid == woeid,
                    TrendSnapshot.captured_at == timestamp,
                    TrendSnapshot.term_id.in_(list(term_ids)),
                )
            )
            return [domain.TermPosition(row.term_id, row.position) for row in result.all()]

    async def snapshots_for_terms_across_places(
        self, captured_at: datetime, term_ids: Sequence[int]
    ) -> list[domain.TermPlace]:
        if not term_ids:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(TrendSnapshot.term_id, TrendSnapshot.woeid).where(
                    TrendSnapshot.captured_at == captured_at,
                    TrendSnapshot.term_id.in_(list(term_ids)),
                )
            )
            return [domain.TermPlace(row.term_id, row.woeid) for row in result.all()]

    async def snapshots_for_terms_in_window(
        self,
        woeid: int,
        term_ids: Sequence[int],
        since: datetime,
        until: datetime,
    ) -> list[domain.TermCapture]:
        if not term_ids:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(TrendSnapshot.term_id, TrendSnapshot.captured_at).where(
                    TrendSnapshot.woeid == woeid,
                    TrendSnapshot.term_id.in_(list(term_ids)),
                    TrendSnapshot.captured_at >= since,
                    TrendSnapshot.captured_at <= until,
                )
            )
            return [domain.TermCapture(row.term_id, row.captured_at) for row in result.all()]

    async def term_snapshots_since(self, term_id: int, since: datetime) -> list[domain.TermSnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    TrendSnapshot.captured_at,
                    TrendSnapshot.position,
                    TrendSnapshot.woeid,
                )
                .where(TrendSnapshot.term_id == term_id, TrendSnapshot.captured_at >= since)
                .order_by(TrendSnapshot.captured_at, TrendSnapshot.woeid)
            )
            return [
                domain.TermSnapshot(row.captured_at, row.position, row.woeid)
                for row in result.all()
            ]

    async def recent_snapshots(self, limit: int) -> list[domain.SnapshotKey]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    TrendSnapshot.captured_at,
                    TrendSnapshot.woeid,
                    TrendSnapshot.term_id,
                    TrendSnapshot.position,
                    TrendSnapshot.raw_name,
                    TrendSnapshot.run_id,
                )
                .order_by(
                    TrendSnapshot.captured_at.desc(),
                    TrendSnapshot.woeid,
                    TrendSnapshot.position,
                )
                .limit(limit)
            )
            return [
                domain.SnapshotKey(
                    captured_at=row.captured_at,
                    woeid=row.woeid,
                    term_id=row.term_id,
                    position=row.position,
                    raw_name=row.raw_name,
                    run_id=row.run_id,
                )
                for row in result.all()
            ]

    async def delete_snapshots(self, keys: Sequence[domain.SnapshotKey]) -> int:
        if not keys:
            return 0
        natural_key = tuple_(
            TrendSnapshot.captured_at,
            TrendSnapshot.woeid,
            TrendSnapshot.position,
            TrendSnapshot.term_id,
        )
        async with self.session_factory() as session:
            result = await session.execute(
                delete(TrendSnapshot).where(
                    natural_key.in_(
                        [(k.captured_at, k.woeid, k.position, k.term_id) for k in keys]
                    )
                )
            )
            await session.commit()
            return result.rowcount
