"""HTTP route tests using stubbed catalog services."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.config import Settings
from app.errors import ConfigurationError, UpstreamUnavailable
from app.main import AddonServices, parse_extra, register_routes
from app.manifest import generate_year_intervals
from app.models import CatalogRequest, CatalogResult, EnrichedItem
from app.services.poster_cache import PosterCache


class StubGenres:
    def __init__(self) -> None:
        self.ensured: list[str] = []

    async def ensure_language(self, language: str, tmdb: Any, *, api_key: str) -> bool:
        self.ensured.append(language)
        return True

    async def list_genre_names(self, media_type: str, language: str) -> list[str]:
        return ["Drama"] if media_type == "movie" else []

    async def genre_id(self, media_type: str, genre_name: str) -> int | None:
        return 18 if genre_name == "Drama" else None


class StubPipeline:
    def __init__(self, result: CatalogResult | Exception) -> None:
        self.result = result
        self.requests: list[CatalogRequest] = []

    async def fetch_catalog(self, request: CatalogRequest) -> CatalogResult:
        self.requests.append(request)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _item(tmdb_id: int, poster: str | None) -> EnrichedItem:
    return EnrichedItem(id=f"tmdb:{tmdb_id}", tmdb_id=tmdb_id, name="Title", type="movie", poster=poster)


def _client(tmp_path, pipeline: StubPipeline, **settings_overrides: Any) -> tuple[TestClient, StubGenres]:
    app = FastAPI()
    register_routes(app)
    settings = Settings(_env_file=None, **settings_overrides)
    genres = StubGenres()
    app.state.services = AddonServices(
        settings=settings,
        scheduler=None,  # type: ignore[arg-type]
        tmdb=None,  # type: ignore[arg-type]
        genres=genres,  # type: ignore[arg-type]
        poster_cache=PosterCache(tmp_path, 3_600, settings.base_url, httpx.AsyncClient()),
        pipeline=pipeline,  # type: ignore[arg-type]
    )
    return TestClient(app), genres


def _config(**values: Any) -> str:
    return quote(json.dumps(values), safe="")


def test_manifest_lists_random_catalogs(tmp_path) -> None:
    client, genres = _client(tmp_path, StubPipeline(CatalogResult(items=[])))
    with client:
        response = client.get(f"/{_config(language='fr-FR', tmdbApiKey='k')}/manifest.json")

    assert response.status_code == 200
    payload = response.json()
    assert payload["resources"] == ["catalog"]
    assert [catalog["id"] for catalog in payload["catalogs"]] == [
        "random_movies",
        "random_series",
    ]
    movie_genres = payload["catalogs"][0]["extra"][0]["options"]
    series_genres = payload["catalogs"][1]["extra"][0]["options"]
    assert movie_genres == ["Drama"]
    assert series_genres == ["No genres available"]
    assert genres.ensured == ["fr-FR"]


def test_catalog_builds_request_from_config_and_extra(tmp_path) -> None:
    pipeline = StubPipeline(CatalogResult(items=[_item(1, "https://p/1.jpg")], page=3))
    client, _ = _client(tmp_path, pipeline)
    config = _config(language="de-DE", tmdbApiKey="tmdb", rpdbApiKey="t0-x")
    with client:
        response = client.get(
            f"/{config}/catalog/movie/random_movies/genre=Drama&skip=20.json",
            params={"cacheDuration": "12h"},
        )

    assert response.status_code == 200
    assert response.json()["metas"][0]["id"] == "tmdb:1"
    request = pipeline.requests[0]
    assert request.cache_duration == "12h"
    assert request.language == "de-DE"
    assert request.credentials.rpdb_api_key == "t0-x"
    assert request.extra == {
        "genre": "Drama",
        "skip": "20",
        "language": "de-DE",
        "with_genres": "18",
    }


def test_hide_no_poster_filters_metas(tmp_path) -> None:
    pipeline = StubPipeline(
        CatalogResult(items=[_item(1, "https://p/1.jpg"), _item(2, None)])
    )
    client, _ = _client(tmp_path, pipeline)
    with client:
        response = client.get(
            f"/{_config(tmdbApiKey='k', hideNoPoster=True)}/catalog/movie/random_movies.json"
        )

    assert [meta["id"] for meta in response.json()["metas"]] == ["tmdb:1"]


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (ConfigurationError("Invalid cache duration format"), 400),
        (UpstreamUnavailable("TMDB down"), 502),
    ],
)
def test_catalog_errors_degrade_to_empty_metas(tmp_path, error, status) -> None:
    client, _ = _client(tmp_path, StubPipeline(error))
    with client:
        response = client.get(f"/{_config(tmdbApiKey='k')}/catalog/movie/random_movies.json")

    assert response.status_code == status
    assert response.json() == {"metas": []}


def test_exhausted_catalog_is_empty_success(tmp_path) -> None:
    client, _ = _client(tmp_path, StubPipeline(CatalogResult(items=[], exhausted=True)))
    with client:
        response = client.get(f"/{_config(tmdbApiKey='k')}/catalog/series/random_series.json")

    assert response.status_code == 200
    assert response.json() == {"metas": []}


def test_catalog_rejects_unknown_type_and_missing_key(tmp_path) -> None:
    pipeline = StubPipeline(CatalogResult(items=[]))
    client, _ = _client(tmp_path, pipeline)
    with client:
        bad_type = client.get(f"/{_config(tmdbApiKey='k')}/catalog/anime/random.json")
        no_key = client.get("/catalog/movie/random_movies.json")

    assert bad_type.status_code == 400
    assert no_key.status_code == 400
    assert pipeline.requests == []


def test_server_key_used_when_config_has_none(tmp_path) -> None:
    pipeline = StubPipeline(CatalogResult(items=[]))
    client, _ = _client(tmp_path, pipeline, TMDB_API_KEY="server-key")
    with client:
        response = client.get("/catalog/movie/random_movies.json")

    assert response.status_code == 200
    assert pipeline.requests[0].credentials.tmdb_api_key == "server-key"


def test_poster_route_serves_cached_files(tmp_path) -> None:
    (tmp_path / "poster_movie_1.jpg").write_bytes(b"jpeg")
    client, _ = _client(tmp_path, StubPipeline(CatalogResult(items=[])))
    with client:
        found = client.get("/poster/poster_movie_1.jpg")
        missing = client.get("/poster/poster_movie_2.jpg")

    assert found.status_code == 200
    assert found.content == b"jpeg"
    assert missing.status_code == 404


def test_parse_extra_keeps_spaced_ampersands() -> None:
    assert parse_extra("genre=Action%20%26%20Adventure&skip=20") == {
        "genre": "Action & Adventure",
        "skip": "20",
    }
    assert parse_extra(None) == {}


def test_year_intervals_cover_range() -> None:
    intervals = generate_year_intervals(2000, 2010, 4)

    assert intervals == ["2007-2010", "2003-2006", "2000-2002"]
