"""TTL cache of enriched catalog pages stored in the database."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from pydantic import ValidationError
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import CatalogCacheRecord
from ..models import CachedCatalog, EnrichedItem, FilterSignature
from ..utils import utcnow

logger = logging.getLogger(__name__)


class CatalogCache:
    """Lazily expiring key/value store for catalog results.

    Expired rows are left in place and overwritten by the next ``put`` for
    the same key.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, key: str) -> CachedCatalog | None:
        """Return the cached catalog for ``key`` if present and fresh."""

        try:
            async with self._session_factory() as session:
                record = await session.get(CatalogCacheRecord, key)
        except SQLAlchemyError as exc:
            logger.error("Error retrieving cache for key %s: %s", key, exc)
            return None

        if record is None:
            logger.debug("Cache miss for key %s", key)
            return None

        age = (self._clock() - record.written_at).total_seconds()
        if age >= record.ttl_seconds:
            logger.debug("Cache expired for key %s", key)
            return None

        try:
            items = [EnrichedItem.model_validate(entry) for entry in record.value or []]
        except ValidationError as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            return None

        logger.debug("Cache hit for key %s", key)
        return CachedCatalog(
            items=items,
            page=record.page,
            skip=record.skip,
            genre=record.genre,
            year=record.year,
            rating=record.rating,
            media_type=record.media_type,
            written_at=record.written_at,
        )

    async def put(
        self,
        key: str,
        items: Sequence[EnrichedItem],
        ttl_seconds: int,
        *,
        page: int = 1,
        skip: int = 0,
        signature: FilterSignature | None = None,
    ) -> bool:
        """Store ``items`` under ``key``, replacing any previous entry."""

        values = {
            "value": [item.model_dump(mode="json") for item in items],
            "written_at": self._clock(),
            "ttl_seconds": ttl_seconds,
            "page": page,
            "skip": skip,
            "genre": signature.genre if signature else None,
            "year": (signature.year_key or None) if signature else None,
            "rating": (signature.rating_key or None) if signature else None,
            "media_type": signature.media_type if signature else "movie",
        }
        # Single-statement upsert so concurrent writers for one key never race
        # between a SELECT and an INSERT.
        statement = sqlite_insert(CatalogCacheRecord).values(key=key, **values)
        statement = statement.on_conflict_do_update(
            index_elements=[CatalogCacheRecord.key], set_=values
        )
        try:
            async with self._session_factory() as session:
                await session.execute(statement)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to set cache for key %s: %s", key, exc)
            return False

        logger.debug("Cache set for key %s with ttl %ds", key, ttl_seconds)
        return True
