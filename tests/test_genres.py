"""Tests for the localized genre table."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from app.database import Database
from app.errors import PersistenceFailure
from app.services.genres import GenreStore
from app.services.scheduler import RequestScheduler
from app.services.tmdb import TMDBClient


def _run(tmp_path, scenario) -> None:
    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'genres.db'}")
        await database.create_all()
        try:
            await scenario(database)
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_lookup_preserves_requested_order(tmp_path) -> None:
    async def scenario(database: Database) -> None:
        store = GenreStore(database.session_factory)
        await store.store_genres(
            [{"id": 18, "name": "Drama"}, {"id": 35, "name": "Comedy"}], "movie", "en-US"
        )

        assert await store.lookup_genre_names([35, 18, 99], "movie", "en-US") == [
            "Comedy",
            "Drama",
        ]
        assert await store.lookup_genre_names([18], "tv", "en-US") == []
        assert await store.lookup_genre_names([], "movie", "en-US") == []
        assert await store.genre_id("movie", "Comedy") == 35
        assert await store.genre_id("movie", "Western") is None

    _run(tmp_path, scenario)


def test_store_is_idempotent(tmp_path) -> None:
    async def scenario(database: Database) -> None:
        store = GenreStore(database.session_factory)
        genres = [{"id": 18, "name": "Drama"}]
        assert await store.store_genres(genres, "movie", "en-US") == 1
        assert await store.store_genres(genres, "movie", "en-US") == 0
        assert await store.list_genre_names("movie", "en-US") == ["Drama"]

    _run(tmp_path, scenario)


def test_partial_failure_rolls_back_batch(tmp_path) -> None:
    """A malformed entry aborts the whole insert."""

    async def scenario(database: Database) -> None:
        store = GenreStore(database.session_factory)
        with pytest.raises(PersistenceFailure):
            await store.store_genres(
                [{"id": 18, "name": "Drama"}, {"name": "No id"}], "movie", "en-US"
            )
        assert await store.list_genre_names("movie", "en-US") == []
        assert not await store.has_language("en-US")

    _run(tmp_path, scenario)


def test_ensure_language_fetches_once(tmp_path) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        genre = {"id": 18, "name": "Drame"}
        return httpx.Response(200, json={"genres": [genre]})

    async def scenario(database: Database) -> None:
        store = GenreStore(database.session_factory)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="https://api.example.com/3"
        ) as http_client:
            tmdb = TMDBClient(http_client, RequestScheduler())
            assert await store.ensure_language("fr-FR", tmdb, api_key="k")
            assert await store.ensure_language("fr-FR", tmdb, api_key="k")

        assert calls == ["/3/genre/movie/list", "/3/genre/tv/list"]
        assert await store.list_genre_names("tv", "fr-FR") == ["Drame"]

    _run(tmp_path, scenario)
