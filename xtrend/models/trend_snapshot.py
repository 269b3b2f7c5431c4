"""Trend snapshot model.

One ranked entry of one place's trend list at one hour-aligned capture.
(captured_at, woeid, position) is the natural key; re-running ingestion in
the same hour overwrites rows in place instead of duplicating them.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Identity,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class TrendSnapshot(Base):
    __tablename__ = "trend_snapshot"
    __table_args__ = (
        UniqueConstraint(
            "captured_at", "woeid", "position",
            name="uq_trend_snapshot_captured_at_woeid_position",
        ),
        Index("ix_trend_snapshot_woeid_captured_at", "woeid", "captured_at"),
        Index("ix_trend_snapshot_term_id_captured_at", "term_id", "captured_at"),
    )

    snapshot_id: Mapped[int] = mapped_column(BigInteger, Identity(), primary_key=True)
    run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("ingest_run.run_id"), nullable=False
    )
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    woeid: Mapped[int] = mapped_column(
        Integer, ForeignKey("place.woeid"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    term_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("term.term_id"), nullable=False
    )
    tweet_count: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    raw_name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
