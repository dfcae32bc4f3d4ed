"""File-backed cache of downloaded rating posters."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable

import httpx

from ..errors import PersistenceFailure, UpstreamUnavailable
from ..utils import sanitize_identity

logger = logging.getLogger(__name__)

POSTER_SUFFIX = ".jpg"


class PosterCache:
    """Store poster images on disk and serve them through the add-on."""

    def __init__(
        self,
        directory: str | Path,
        ttl_seconds: int,
        public_base_url: str,
        http_client: httpx.AsyncClient,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self._ttl_seconds = ttl_seconds
        self._public_base_url = public_base_url.rstrip("/")
        self._client = http_client
        self._clock = clock

    @property
    def directory(self) -> Path:
        return self._directory

    def filename_for(self, identity: str) -> str:
        return f"{sanitize_identity(identity)}{POSTER_SUFFIX}"

    def path_for(self, filename: str) -> Path | None:
        """Resolve a served filename to a path inside the cache directory."""

        stem, suffix = os.path.splitext(filename)
        if suffix != POSTER_SUFFIX or not stem or sanitize_identity(stem) != stem:
            return None
        return self._directory / filename

    async def get(self, identity: str) -> str | None:
        """Return the public URL of a fresh cached poster, evicting stale ones."""

        path = self._directory / self.filename_for(identity)
        try:
            stats = await asyncio.to_thread(path.stat)
        except FileNotFoundError:
            logger.debug("Cache miss for poster id %s", identity)
            return None
        except OSError as exc:
            logger.error("Could not stat cached poster %s: %s", path, exc)
            return None

        age = self._clock() - stats.st_mtime
        if age < self._ttl_seconds:
            url = f"{self._public_base_url}/poster/{path.name}"
            logger.debug("Cache hit for poster id %s, serving from %s", identity, url)
            return url

        logger.debug("Cache expired for poster id %s", identity)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove expired poster %s: %s", path, exc)
        return None

    async def put(self, identity: str, source_url: str) -> Path:
        """Download ``source_url`` and store it under ``identity``."""

        try:
            response = await self._client.get(source_url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(
                "Error caching poster id %s from URL %s: %s", identity, source_url, exc
            )
            raise UpstreamUnavailable(f"Poster download failed for {identity}") from exc

        path = self._directory / self.filename_for(identity)
        try:
            await asyncio.to_thread(self._write_atomic, path, response.content)
        except OSError as exc:
            logger.error("Error writing poster id %s to %s: %s", identity, path, exc)
            raise PersistenceFailure(f"Poster write failed for {identity}") from exc

        logger.debug("Poster id %s cached at %s", identity, path)
        return path

    @staticmethod
    def _write_atomic(path: Path, content: bytes) -> None:
        # Each writer gets its own temp file; the last rename wins.
        fd, temp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
            os.replace(temp_name, path)
        except BaseException:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise
