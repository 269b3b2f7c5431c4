"""Duplicate snapshot audit.

Read-side dedup hides a term listed at two positions of the same capture,
but the rows are still stored. This scans recent snapshots and reports the
(captured_at, woeid, term_id) groups holding more than one position, so
upstream regressions in ingestion dedup show up. find_duplicate_terms never
mutates; cleanup_duplicate_terms deletes every row of a group except the
lowest position, in batches.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

import structlog

from xtrend.domain import SnapshotKey
from xtrend.store.base import SnapshotStore

log = structlog.get_logger(__name__)

DEFAULT_SCAN_LIMIT = 5000
DEFAULT_BATCH_SIZE = 100


@dataclass(frozen=True)
class DuplicateGroup:
    captured_at: datetime
    woeid: int
    term_id: int
    entries: tuple[SnapshotKey, ...]

    @property
    def positions(self) -> list[int]:
        return sorted(e.position for e in self.entries)


async def find_duplicate_terms(
    store: SnapshotStore, limit: int = DEFAULT_SCAN_LIMIT
) -> list[DuplicateGroup]:
    rows = await store.recent_snapshots(limit)

    groups: dict[tuple[datetime, int, int], list[SnapshotKey]] = defaultdict(list)
    for row in rows:
        groups[(row.captured_at, row.woeid, row.term_id)].append(row)

    duplicates = [
        DuplicateGroup(
            captured_at=captured_at,
            woeid=woeid,
            term_id=term_id,
            entries=tuple(sorted(entries, key=lambda e: e.position)),
        )
        for (captured_at, woeid, term_id), entries in groups.items()
        if len(entries) > 1
    ]
    duplicates.sort(key=lambda g: (g.captured_at, g.woeid, g.term_id), reverse=True)

    if duplicates:
        log.warning("duplicate_snapshots_found", groups=len(duplicates), scanned=len(rows))
    else:
        log.info("duplicate_snapshots_none", scanned=len(rows))
    return duplicates


async def cleanup_duplicate_terms(
    store: SnapshotStore,
    limit: int = DEFAULT_SCAN_LIMIT,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """Delete duplicate rows, keeping the lowest position of each group.

    Returns the number of rows deleted.
    """
    groups = await find_duplicate_terms(store, limit=limit)
    doomed = [entry for group in groups for entry in group.entries[1:]]
    if not doomed:
        return 0

    deleted = 0
    for start in range(0, len(doomed), batch_size):
        deleted += await store.delete_snapshots(doomed[start : start + batch_size])
        log.info("duplicate_snapshots_deleted", deleted=deleted, total=len(doomed))
    return deleted
