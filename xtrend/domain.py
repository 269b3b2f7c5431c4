"""Store-facing value types.

These are what the SnapshotStore implementations return and what the
ingestion and signal services pass around. The SQLAlchemy models in
xtrend.models are the relational rendering of the same entities.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

HOUR = timedelta(hours=1)


class RunStatus(str, enum.Enum):
    running = "running"
    succeeded = "succeeded"
    partial = "partial"
    failed = "failed"


class PlaceStatus(str, enum.Enum):
    succeeded = "succeeded"
    failed = "failed"


def truncate_to_hour(dt: datetime) -> datetime:
    """Floor a timestamp to the top of its UTC hour."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Place:
    woeid: int
    slug: str
    name_ja: str
    country_code: str = ""
    name_en: Optional[str] = None
    timezone: str = "Asia/Tokyo"
    is_active: bool = True
    sort_order: int = 100

    @property
    def display_name(self) -> str:
        return self.name_ja or self.name_en or str(self.woeid)


@dataclass(frozen=True)
class Term:
    term_id: int
    term_text: str
    term_norm: str


@dataclass(frozen=True)
class SnapshotRow:
    """One ranked entry of a capture, joined to its term text."""

    captured_at: datetime
    position: int
    term_id: int
    tweet_count: Optional[int]
    term_text: str


@dataclass(frozen=True)
class TermPosition:
    term_id: int
    position: int


@dataclass(frozen=True)
class TermPlace:
    term_id: int
    woeid: int


@dataclass(frozen=True)
class TermCapture:
    term_id: int
    captured_at: datetime


@dataclass(frozen=True)
class TermSnapshot:
    """A term's appearance in some place's capture (term history rows)."""

    captured_at: datetime
    position: int
    woeid: int


@dataclass(frozen=True)
class SnapshotKey:
    """Raw snapshot row used by the duplicate audit."""

    captured_at: datetime
    woeid: int
    term_id: int
    position: int
    raw_name: str
    run_id: uuid.UUID


@dataclass
class PlaceIngestResult:
    woeid: int
    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    trend_count: Optional[int] = None


@dataclass
class IngestResult:
    run_id: uuid.UUID
    captured_at: datetime
    status: RunStatus
    place_results: list[PlaceIngestResult] = field(default_factory=list)
    error_summary: Optional[str] = None

