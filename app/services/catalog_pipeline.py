"""Orchestration of random, non-repeating catalog pages."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from ..models import CatalogRequest, CatalogResult, Credentials, EnrichedItem, content_type_for
from ..utils import cache_duration_to_seconds
from .catalog_cache import CatalogCache
from .genres import GenreStore
from .page_tracker import PageTracker
from .poster_cache import PosterCache
from .posters import PosterResolver, PosterWriteBackQueue
from .scheduler import RequestScheduler
from .tmdb import BACKDROP_SIZE, IMAGE_BASE_URL, TMDBClient, build_image_url

logger = logging.getLogger(__name__)


class CatalogPipeline:
    """Serve a cached or freshly fetched random discover page for a request."""

    def __init__(
        self,
        tmdb: TMDBClient,
        scheduler: RequestScheduler,
        page_tracker: PageTracker,
        catalog_cache: CatalogCache,
        poster_cache: PosterCache,
        poster_resolver: PosterResolver,
        genres: GenreStore,
        *,
        image_base_url: str = IMAGE_BASE_URL,
        defer_poster_flush: bool = True,
    ) -> None:
        self._tmdb = tmdb
        self._scheduler = scheduler
        self._page_tracker = page_tracker
        self._catalog_cache = catalog_cache
        self._poster_cache = poster_cache
        self._poster_resolver = poster_resolver
        self._genres = genres
        self._image_base_url = image_base_url
        self._defer_poster_flush = defer_poster_flush
        self._flush_tasks: set[asyncio.Task[tuple[int, int]]] = set()

    async def fetch_catalog(self, request: CatalogRequest) -> CatalogResult:
        """Return enriched items for ``request``.

        Raises ``ConfigurationError`` for a malformed cache duration before any
        I/O happens and ``UpstreamUnavailable`` when TMDB cannot be reached.
        An exhausted page pool is reported through ``CatalogResult.exhausted``.
        """

        ttl_seconds = cache_duration_to_seconds(request.cache_duration)
        media_type = request.media_type
        signature = request.signature()
        cache_key = request.cache_key()
        logger.debug("Cache key generated: %s", cache_key)

        cached = await self._catalog_cache.get(cache_key)
        if cached is not None:
            logger.info("Using cached data for key: %s", cache_key)
            return CatalogResult(items=cached.items, page=cached.page, from_cache=True)

        api_key = request.credentials.tmdb_api_key
        initial = await self._tmdb.discover(media_type, request.extra, page=1, api_key=api_key)
        logger.info("Total pages available: %d", initial.total_pages)

        selection = await self._page_tracker.select_unconsumed_page(
            signature, initial.total_pages
        )
        if selection.page is None:
            return CatalogResult(items=[], exhausted=True)
        page = selection.page

        discover_page = await self._tmdb.discover(
            media_type, request.extra, page=page, api_key=api_key
        )
        logger.info(
            "Fetched %d results from TMDB on page %d", len(discover_page.results), page
        )

        queue = PosterWriteBackQueue()
        enriched = await asyncio.gather(
            *(
                self._enrich(entry, media_type, request.language, request.credentials, queue)
                for entry in discover_page.results
            )
        )
        items = [item for item in enriched if item is not None]

        stored = await self._catalog_cache.put(
            cache_key,
            items,
            ttl_seconds,
            page=page,
            skip=request.skip,
            signature=signature,
        )
        if not stored:
            logger.warning("Serving page %d for key %s without caching it", page, cache_key)
        await self._page_tracker.record_consumed(signature, page)
        await self._schedule_flush(queue)
        return CatalogResult(items=items, page=page)

    async def _enrich(
        self,
        entry: Mapping[str, Any],
        media_type: str,
        language: str,
        credentials: Credentials,
        queue: PosterWriteBackQueue,
    ) -> EnrichedItem | None:
        tmdb_id = entry.get("id")
        if tmdb_id is None:
            return None

        genre_ids = [gid for gid in entry.get("genre_ids") or [] if isinstance(gid, int)]
        if not genre_ids:
            logger.warning("No genre IDs for item %s", tmdb_id)
        genre_names, (poster, logo) = await asyncio.gather(
            self._genres.lookup_genre_names(genre_ids, media_type, language),
            self._poster_resolver.resolve_artwork(
                entry, media_type, language, credentials, queue
            ),
        )
        logger.debug("Poster URL for item %s: %s", tmdb_id, poster)

        vote_average = entry.get("vote_average")
        return EnrichedItem(
            id=f"tmdb:{tmdb_id}",
            tmdb_id=int(tmdb_id),
            name=str(entry.get("title") or entry.get("name") or ""),
            type=content_type_for(media_type),
            poster=poster,
            banner=build_image_url(
                entry.get("backdrop_path"), BACKDROP_SIZE, self._image_base_url
            ),
            logo=logo,
            description=entry.get("overview") or None,
            release_info=entry.get("release_date") or entry.get("first_air_date") or None,
            imdb_rating=f"{float(vote_average):.1f}" if vote_average else None,
            genres=genre_names,
        )

    async def _schedule_flush(self, queue: PosterWriteBackQueue) -> None:
        if not len(queue):
            return
        if not self._defer_poster_flush:
            await queue.flush(self._poster_cache, self._scheduler)
            return
        task = asyncio.create_task(queue.flush(self._poster_cache, self._scheduler))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def wait_for_flushes(self) -> None:
        """Wait for background poster write-backs started by earlier requests."""

        if self._flush_tasks:
            await asyncio.gather(*list(self._flush_tasks), return_exceptions=True)
