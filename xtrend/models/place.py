"""Place model.

Reference data for the geographic scopes being tracked. Rows are seeded
and toggled out of band; ingestion only reads active places.
"""

from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Place(Base):
    __tablename__ = "place"

    woeid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    slug: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    country_code: Mapped[str] = mapped_column(String(2), nullable=False)
    name_ja: Mapped[str] = mapped_column(String(100), nullable=False)
    name_en: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, server_default="Asia/Tokyo"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="true"
    )
    sort_order: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="100"
    )
