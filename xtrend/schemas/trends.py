"""Pydantic schemas for place, trend and term history responses."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from xtrend.domain import RunStatus


class PlaceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    woeid: int
    slug: str
    country_code: str
    name_ja: str
    name_en: Optional[str] = None
    sort_order: int = 100


class TrendItemResponse(BaseModel):
    """One ranked trend; signal fields are set on the live view only.

    A missing signal is null, which is distinct from a zero rank change.
    """

    model_config = ConfigDict(from_attributes=True)

    position: int
    term_id: int
    term_text: str
    tweet_count: Optional[int] = None
    rank_change: Optional[int] = None
    duration_hours: Optional[int] = None
    region_count: Optional[int] = None


class OffsetViewResponse(BaseModel):
    offset: int
    captured_at: Optional[datetime] = None  # None when no capture resolves
    trends: list[TrendItemResponse] = Field(default_factory=list)


class PlaceTrendsResponse(BaseModel):
    place: PlaceResponse
    views: list[OffsetViewResponse]


class HistoryPointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    captured_at: datetime
    position: int
    woeid: int
    place_name: str
    sort_order: int


class TermHistoryResponse(BaseModel):
    term_id: int
    term_text: str
    term_norm: str
    history: list[HistoryPointResponse]


class PlaceResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    woeid: int
    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    trend_count: Optional[int] = None


class IngestResponse(BaseModel):
    """Body of POST /ingest, also printed by the CLI."""

    model_config = ConfigDict(from_attributes=True)

    run_id: uuid.UUID
    captured_at: datetime
    status: RunStatus
    place_results: list[PlaceResultResponse]
    error_summary: Optional[str] = None
