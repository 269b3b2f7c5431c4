"""Term history: where and at which rank a term appeared over recent hours."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from xtrend.domain import Term, utcnow
from xtrend.store.base import SnapshotStore

DEFAULT_SORT_ORDER = 100


@dataclass(frozen=True)
class HistoryPoint:
    captured_at: datetime
    position: int
    woeid: int
    place_name: str
    sort_order: int


@dataclass
class TermHistory:
    term: Term
    history: list[HistoryPoint] = field(default_factory=list)


async def get_term_history(
    store: SnapshotStore,
    term_id: int,
    hours: int = 24,
    now: Optional[datetime] = None,
) -> Optional[TermHistory]:
    """Every appearance of term_id across places in the last `hours`, oldest first.

    Returns None when the term does not exist.
    """
    term = await store.get_term(term_id)
    if term is None:
        return None

    since = (now or utcnow()) - timedelta(hours=hours)
    rows = await store.term_snapshots_since(term_id, since)
    places = await store.get_places_by_woeid(sorted({r.woeid for r in rows}))

    history = []
    for row in rows:
        place = places.get(row.woeid)
        history.append(
            HistoryPoint(
                captured_at=row.captured_at,
                position=row.position,
                woeid=row.woeid,
                place_name=place.name_ja if place else "",
                sort_order=place.sort_order if place else DEFAULT_SORT_ORDER,
            )
        )
    return TermHistory(term=term, history=history)
