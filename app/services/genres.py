"""Localized TMDB genre table."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import GenreRecord
from ..errors import PersistenceFailure, UpstreamUnavailable
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

MEDIA_TYPES = ("movie", "tv")


class GenreStore:
    """Read and populate the ``genres`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def lookup_genre_names(
        self, genre_ids: Sequence[int], media_type: str, language: str
    ) -> list[str]:
        """Return genre names in the order of ``genre_ids``; unknown ids are skipped."""

        if not genre_ids:
            return []
        stmt = select(GenreRecord.genre_id, GenreRecord.genre_name).where(
            GenreRecord.genre_id.in_(list(genre_ids)),
            GenreRecord.media_type == media_type,
            GenreRecord.language == language,
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                names = {row.genre_id: row.genre_name for row in result}
        except SQLAlchemyError as exc:
            logger.error("Error fetching genre names from database: %s", exc)
            return []
        return [names[genre_id] for genre_id in genre_ids if genre_id in names]

    async def genre_id(self, media_type: str, genre_name: str) -> int | None:
        stmt = (
            select(GenreRecord.genre_id)
            .where(
                GenreRecord.media_type == media_type,
                GenreRecord.genre_name == genre_name,
            )
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Error resolving genre %s: %s", genre_name, exc)
            return None

    async def list_genre_names(self, media_type: str, language: str) -> list[str]:
        stmt = (
            select(GenreRecord.genre_name)
            .where(
                GenreRecord.media_type == media_type,
                GenreRecord.language == language,
            )
            .order_by(GenreRecord.genre_name)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def has_language(self, language: str) -> bool:
        stmt = select(GenreRecord.genre_id).where(GenreRecord.language == language).limit(1)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.first() is not None

    async def store_genres(
        self, genres: Iterable[dict[str, Any]], media_type: str, language: str
    ) -> int:
        """Insert genres in one transaction; any failure rolls back the batch."""

        inserted = 0
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for genre in genres:
                        key = (int(genre["id"]), media_type, language)
                        if await session.get(GenreRecord, key) is not None:
                            continue
                        session.add(
                            GenreRecord(
                                genre_id=key[0],
                                media_type=media_type,
                                language=language,
                                genre_name=str(genre["name"]),
                            )
                        )
                        inserted += 1
        except (SQLAlchemyError, KeyError, TypeError, ValueError) as exc:
            logger.error("Error inserting genres for %s (%s): %s", media_type, language, exc)
            raise PersistenceFailure("Could not store genres") from exc
        logger.info("Genres stored for %s (%s)", media_type, language)
        return inserted

    async def ensure_language(
        self, language: str, tmdb: TMDBClient, *, api_key: str
    ) -> bool:
        """Populate genres for ``language`` when missing. Returns ``True`` on success."""

        try:
            if await self.has_language(language):
                return True
            logger.debug("Fetching genres for language: %s", language)
            for media_type in MEDIA_TYPES:
                genres = await tmdb.fetch_genres(media_type, language, api_key=api_key)
                await self.store_genres(genres, media_type, language)
        except (UpstreamUnavailable, PersistenceFailure, SQLAlchemyError) as exc:
            logger.error("Error fetching/storing genres: %s", exc)
            return False
        logger.info("Genres fetched and stored for %s", language)
        return True
