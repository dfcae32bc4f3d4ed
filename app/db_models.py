"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .utils import utcnow


class CatalogCacheRecord(Base):
    """Enriched catalog pages keyed by the full request signature."""

    __tablename__ = "catalog_cache"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[list[dict[str, Any]]] = mapped_column(JSON)
    written_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    ttl_seconds: Mapped[int] = mapped_column(Integer)
    page: Mapped[int] = mapped_column(Integer, default=1)
    skip: Mapped[int] = mapped_column(Integer, default=0)
    genre: Mapped[str | None] = mapped_column(String(120), nullable=True)
    year: Mapped[str | None] = mapped_column(String(32), nullable=True)
    rating: Mapped[str | None] = mapped_column(String(32), nullable=True)
    media_type: Mapped[str] = mapped_column(String(16))


class ConsumedPage(Base):
    """A discover page already served for a filter partition."""

    __tablename__ = "consumed_pages"
    __table_args__ = (
        UniqueConstraint(
            "genre", "year", "rating", "media_type", "page", name="uq_consumed_page"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    genre: Mapped[str] = mapped_column(String(120), default="")
    year: Mapped[str] = mapped_column(String(32), default="")
    rating: Mapped[str] = mapped_column(String(32), default="")
    media_type: Mapped[str] = mapped_column(String(16))
    page: Mapped[int] = mapped_column(Integer)
    consumed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class GenreRecord(Base):
    """Localized TMDB genre names."""

    __tablename__ = "genres"

    genre_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    media_type: Mapped[str] = mapped_column(String(16), primary_key=True)
    language: Mapped[str] = mapped_column(String(16), primary_key=True)
    genre_name: Mapped[str] = mapped_column(String(120))
