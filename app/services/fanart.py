"""Logo lookups against the fanart.tv API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import UpstreamUnavailable
from .scheduler import RequestScheduler
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

FANART_BASE_URL = "https://webservice.fanart.tv/v3"

_LOGO_KEYS = {
    "movie": ("hdmovielogo", "movielogo"),
    "tv": ("hdtvlogo", "clearlogo"),
}


class FanartClient:
    """Resolve transparent title logos for TMDB items."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        scheduler: RequestScheduler,
        tmdb: TMDBClient,
        base_url: str = FANART_BASE_URL,
    ) -> None:
        self._client = http_client
        self._scheduler = scheduler
        self._tmdb = tmdb
        self._base_url = base_url.rstrip("/")

    async def get_logo(
        self,
        tmdb_id: int,
        media_type: str,
        language: str,
        *,
        api_key: str,
        tmdb_api_key: str,
    ) -> str | None:
        """Return the best logo URL, or ``None`` when nothing usable exists."""

        try:
            if media_type == "tv":
                lookup_id = await self._tmdb.fetch_tvdb_id(tmdb_id, api_key=tmdb_api_key)
                if lookup_id is None:
                    return None
                url = f"{self._base_url}/tv/{lookup_id}"
            else:
                url = f"{self._base_url}/movies/{tmdb_id}"

            async def call() -> httpx.Response:
                return await self._client.get(url, params={"api_key": api_key})

            response = await self._scheduler.submit(call)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError, UpstreamUnavailable) as exc:
            logger.warning("Fanart logo lookup failed for %s %s: %s", media_type, tmdb_id, exc)
            return None

        if not isinstance(payload, dict):
            return None
        return self._pick_logo(payload, media_type, language)

    @staticmethod
    def _pick_logo(payload: dict[str, Any], media_type: str, language: str) -> str | None:
        candidates: list[dict[str, Any]] = []
        for key in _LOGO_KEYS.get(media_type, _LOGO_KEYS["movie"]):
            entries = payload.get(key) or []
            candidates.extend(entry for entry in entries if isinstance(entry, dict))
        candidates = [entry for entry in candidates if entry.get("url")]
        if not candidates:
            return None

        lang = (language or "en").split("-")[0].lower()

        def likes(entry: dict[str, Any]) -> int:
            try:
                return int(entry.get("likes") or 0)
            except (TypeError, ValueError):
                return 0

        for wanted in (lang, "en"):
            matches = [entry for entry in candidates if entry.get("lang") == wanted]
            if matches:
                return str(max(matches, key=likes)["url"])
        return str(candidates[0]["url"])
