"""Poster resolution through RPDB with a TMDB fallback."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

import httpx

from ..models import Credentials, content_type_for
from .fanart import FanartClient
from .poster_cache import PosterCache
from .scheduler import RequestScheduler
from .tmdb import IMAGE_BASE_URL, POSTER_SIZE, build_image_url

logger = logging.getLogger(__name__)

RPDB_BASE_URL = "https://api.ratingposterdb.com"
# Tiers that do not support localized posters.
UNLOCALIZED_TIERS = frozenset({"t0", "t1"})


def build_rpdb_url(
    media_type: str,
    tmdb_id: int | str,
    language: str,
    api_key: str,
    base_url: str = RPDB_BASE_URL,
) -> str:
    """Return the RPDB poster URL for a TMDB item."""

    tier = api_key.split("-")[0]
    lang = (language or "en").split("-")[0]
    rpdb_type = content_type_for(media_type)
    url = (
        f"{base_url.rstrip('/')}/{api_key}/tmdb/poster-default/"
        f"{rpdb_type}-{tmdb_id}.jpg"
    )
    if tier in UNLOCALIZED_TIERS:
        return url
    return f"{url}?lang={lang}"


def poster_identity(media_type: str, tmdb_id: int | str) -> str:
    return f"poster:{media_type}:{tmdb_id}"


class PosterWriteBackQueue:
    """Posters resolved during one pipeline run, waiting to be cached locally."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def stage(self, identity: str, url: str) -> bool:
        """Queue ``url`` for ``identity``; returns ``False`` if already queued."""

        if identity in self._entries:
            return False
        self._entries[identity] = url
        return True

    def items(self) -> list[tuple[str, str]]:
        return list(self._entries.items())

    async def flush(
        self, poster_cache: PosterCache, scheduler: RequestScheduler
    ) -> tuple[int, int]:
        """Download every staged poster. Returns ``(written, failed)``."""

        entries = self.items()
        self._entries.clear()
        written = failed = 0
        for identity, url in entries:
            try:
                await scheduler.submit(
                    lambda identity=identity, url=url: poster_cache.put(identity, url)
                )
            except Exception as exc:
                failed += 1
                logger.error("Failed to cache poster id %s: %s", identity, exc)
            else:
                written += 1
        if entries:
            logger.info("Poster write-back finished: %d cached, %d failed", written, failed)
        return written, failed


class PosterResolver:
    """Walk the poster fallback chain for discover results."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        scheduler: RequestScheduler,
        poster_cache: PosterCache,
        fanart: FanartClient | None = None,
        *,
        rpdb_base_url: str = RPDB_BASE_URL,
        image_base_url: str = IMAGE_BASE_URL,
    ) -> None:
        self._client = http_client
        self._scheduler = scheduler
        self._poster_cache = poster_cache
        self._fanart = fanart
        self._rpdb_base_url = rpdb_base_url
        self._image_base_url = image_base_url

    def fallback_poster(self, item: Mapping[str, Any]) -> str | None:
        return build_image_url(item.get("poster_path"), POSTER_SIZE, self._image_base_url)

    async def resolve(
        self,
        item: Mapping[str, Any],
        media_type: str,
        language: str,
        credentials: Credentials,
        queue: PosterWriteBackQueue,
    ) -> str | None:
        """Return a poster URL for ``item``. Never raises."""

        tmdb_id = item.get("id")
        rpdb_key = credentials.rpdb_api_key
        if rpdb_key and tmdb_id is not None:
            identity = poster_identity(media_type, tmdb_id)
            try:
                cached = await self._poster_cache.get(identity)
            except Exception:  # pragma: no cover - defensive logging branch
                logger.exception("Poster cache lookup failed for %s", identity)
                cached = None
            if cached:
                logger.debug("Using cached poster URL for id %s", identity)
                return cached

            rpdb_url = build_rpdb_url(
                media_type, tmdb_id, language, rpdb_key, self._rpdb_base_url
            )
            if await self._exists(rpdb_url):
                logger.debug("RPDB poster found for id %s", identity)
                queue.stage(identity, rpdb_url)
                return rpdb_url
            logger.warning(
                "RPDB poster unavailable for id %s. Falling back to TMDB poster.",
                identity,
            )

        return self.fallback_poster(item)

    async def resolve_logo(
        self,
        item: Mapping[str, Any],
        media_type: str,
        language: str,
        credentials: Credentials,
    ) -> str | None:
        """Resolve a title logo independently of the poster chain. Never raises."""

        tmdb_id = item.get("id")
        if not credentials.fanart_api_key or self._fanart is None or tmdb_id is None:
            return None
        try:
            return await self._fanart.get_logo(
                int(tmdb_id),
                media_type,
                language,
                api_key=credentials.fanart_api_key,
                tmdb_api_key=credentials.tmdb_api_key,
            )
        except Exception:  # pragma: no cover - defensive logging branch
            logger.exception("Logo lookup failed for %s %s", media_type, tmdb_id)
            return None

    async def resolve_artwork(
        self,
        item: Mapping[str, Any],
        media_type: str,
        language: str,
        credentials: Credentials,
        queue: PosterWriteBackQueue,
    ) -> tuple[str | None, str | None]:
        """Return ``(poster, logo)`` resolved concurrently."""

        poster, logo = await asyncio.gather(
            self.resolve(item, media_type, language, credentials, queue),
            self.resolve_logo(item, media_type, language, credentials),
        )
        return poster, logo

    async def _exists(self, url: str) -> bool:
        async def call() -> httpx.Response:
            return await self._client.head(url)

        try:
            response = await self._scheduler.submit(call)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Error fetching RPDB poster %s: %s", url, exc)
            return False
        except Exception:
            logger.exception("Unexpected error checking RPDB poster %s", url)
            return False
        return response.status_code == 200
