"""Term model.

One row per canonical trending phrase. term_norm is the normalized lookup
key and is unique: concurrent ingesters race on the insert and the loser
re-reads the winner's term_id.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Identity, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Term(Base):
    __tablename__ = "term"

    term_id: Mapped[int] = mapped_column(BigInteger, Identity(), primary_key=True)
    term_text: Mapped[str] = mapped_column(Text, nullable=False)
    term_norm: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
