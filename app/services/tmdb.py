"""Client for The Movie Database (TMDB) discover and genre endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from ..errors import UpstreamUnavailable
from ..utils import parse_rating_range, parse_year_range
from .scheduler import RequestScheduler

logger = logging.getLogger(__name__)

IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
POSTER_SIZE = "w500"
BACKDROP_SIZE = "original"

# Extras consumed locally and never forwarded to TMDB.
LOCAL_ONLY_PARAMS = frozenset({"year", "rating", "hideNoPoster", "skip", "genre"})


@dataclass(slots=True)
class DiscoverPage:
    """A single page of discover results."""

    page: int
    total_pages: int
    results: list[dict[str, Any]]


def build_discover_params(
    media_type: str, extra: Mapping[str, Any], page: int
) -> dict[str, Any]:
    """Translate add-on filters into TMDB discover query parameters."""

    params: dict[str, Any] = {}
    year = parse_year_range(extra.get("year"))
    if year:
        date_field = "primary_release_date" if media_type == "movie" else "first_air_date"
        params[f"{date_field}.gte"] = f"{year[0]}-01-01"
        params[f"{date_field}.lte"] = f"{year[1]}-12-31"

    rating = parse_rating_range(extra.get("rating"))
    if rating:
        params["vote_average.gte"] = rating[0]
        params["vote_average.lte"] = rating[1]

    for key, value in extra.items():
        if value is None or key in LOCAL_ONLY_PARAMS:
            continue
        params[key] = value

    params["page"] = page
    return params


def build_image_url(
    path: str | None, size: str = POSTER_SIZE, base_url: str = IMAGE_BASE_URL
) -> str | None:
    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url.rstrip('/')}/{size}{path}"


class TMDBClient:
    """Thin wrapper around the TMDB v3 API. Every call goes through the scheduler."""

    def __init__(
        self, http_client: httpx.AsyncClient, scheduler: RequestScheduler
    ) -> None:
        self._client = http_client
        self._scheduler = scheduler

    async def _get_json(self, path: str, params: Mapping[str, Any]) -> dict[str, Any]:
        async def call() -> httpx.Response:
            return await self._client.get(path, params=dict(params))

        try:
            response = await self._scheduler.submit(call)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("TMDB request to %s failed: %s", path, exc)
            raise UpstreamUnavailable(f"TMDB request to {path} failed") from exc
        if not isinstance(payload, dict):
            raise UpstreamUnavailable(f"TMDB returned an unexpected payload for {path}")
        return payload

    async def discover(
        self,
        media_type: str,
        extra: Mapping[str, Any],
        *,
        page: int,
        api_key: str,
    ) -> DiscoverPage:
        """Fetch one discover page for the given filters."""

        params = build_discover_params(media_type, extra, page)
        params["api_key"] = api_key
        payload = await self._get_json(f"/discover/{media_type}", params)
        results = payload.get("results") or []
        try:
            total_pages = int(payload.get("total_pages") or 0)
        except (TypeError, ValueError):
            total_pages = 0
        return DiscoverPage(
            page=page,
            total_pages=total_pages,
            results=[entry for entry in results if isinstance(entry, dict)],
        )

    async def fetch_genres(
        self, media_type: str, language: str, *, api_key: str
    ) -> list[dict[str, Any]]:
        """Return the ``[{id, name}]`` genre list for a media type and language."""

        payload = await self._get_json(
            f"/genre/{media_type}/list",
            {"api_key": api_key, "language": language},
        )
        genres = payload.get("genres") or []
        logger.debug("Genres retrieved for %s (%s)", media_type, language)
        return [
            genre
            for genre in genres
            if isinstance(genre, dict) and "id" in genre and genre.get("name")
        ]

    async def fetch_tvdb_id(self, tmdb_id: int, *, api_key: str) -> int | None:
        """Look up the TVDB identifier for a TMDB series."""

        payload = await self._get_json(
            f"/tv/{tmdb_id}/external_ids", {"api_key": api_key}
        )
        tvdb_id = payload.get("tvdb_id")
        try:
            return int(tvdb_id) if tvdb_id else None
        except (TypeError, ValueError):
            return None
