"""Persistent record of discover pages already served per filter partition."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import ConsumedPage
from ..errors import PersistenceFailure
from ..models import FilterSignature

logger = logging.getLogger(__name__)

TMDB_MAX_PAGES = 500


@dataclass(slots=True)
class PageSelection:
    """Result of picking an unconsumed page."""

    page: int | None
    available: int

    @property
    def exhausted(self) -> bool:
        return self.page is None


class PageTracker:
    """Pick random pages that have not been served for a filter partition.

    Consumption records are never expired: once a page is recorded for a
    partition it stays excluded, even after the catalog cache entry built
    from it has gone stale.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_pages: int = TMDB_MAX_PAGES,
        rng: random.Random | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._max_pages = max_pages
        self._rng = rng or random.Random()

    @property
    def max_pages(self) -> int:
        return self._max_pages

    def cap_total_pages(self, total_pages: int) -> int:
        if total_pages > self._max_pages:
            logger.warning(
                "Capping total pages at %d (TMDB limitation, reported %d)",
                self._max_pages,
                total_pages,
            )
            return self._max_pages
        return max(total_pages, 0)

    async def consumed_pages(self, signature: FilterSignature) -> list[int]:
        """Return the sorted page numbers already served for ``signature``."""

        genre, year, rating, media_type = signature.partition_key()
        stmt = select(ConsumedPage.page).where(
            ConsumedPage.genre == genre,
            ConsumedPage.year == year,
            ConsumedPage.rating == rating,
            ConsumedPage.media_type == media_type,
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return sorted(set(result.scalars().all()))
        except SQLAlchemyError as exc:
            logger.error("Failed to read consumed pages for %s: %s", signature, exc)
            raise PersistenceFailure("Could not read consumed pages") from exc

    async def select_unconsumed_page(
        self, signature: FilterSignature, total_pages: int
    ) -> PageSelection:
        """Choose a page in ``[1, total_pages]`` not yet served for ``signature``."""

        capped = self.cap_total_pages(total_pages)
        consumed = set(await self.consumed_pages(signature))
        available = [page for page in range(1, capped + 1) if page not in consumed]
        if not available:
            logger.warning("All pages have been fetched for %s", signature.partition_key())
            return PageSelection(page=None, available=0)

        page = self._rng.choice(available)
        logger.debug(
            "Random page %d selected from %d available for %s",
            page,
            len(available),
            signature.partition_key(),
        )
        return PageSelection(page=page, available=len(available))

    async def record_consumed(self, signature: FilterSignature, page: int) -> bool:
        """Mark ``page`` as served. Returns ``False`` if it could not be stored."""

        genre, year, rating, media_type = signature.partition_key()
        try:
            async with self._session_factory() as session:
                existing = await session.execute(
                    select(ConsumedPage.id).where(
                        ConsumedPage.genre == genre,
                        ConsumedPage.year == year,
                        ConsumedPage.rating == rating,
                        ConsumedPage.media_type == media_type,
                        ConsumedPage.page == page,
                    )
                )
                if existing.scalar_one_or_none() is not None:
                    return True
                session.add(
                    ConsumedPage(
                        genre=genre,
                        year=year,
                        rating=rating,
                        media_type=media_type,
                        page=page,
                    )
                )
                await session.commit()
        except IntegrityError:
            # A concurrent request recorded the same page first.
            return True
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to record page %d for %s: %s",
                page,
                signature.partition_key(),
                exc,
            )
            return False
        return True
