"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations

import logging
import re
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import ValidationError

from .config import Settings, settings
from .database import Database
from .errors import ConfigurationError, PersistenceFailure, UpstreamUnavailable
from .manifest import build_manifest
from .models import AddonConfig, CatalogRequest, Credentials, media_type_for
from .services.catalog_cache import CatalogCache
from .services.catalog_pipeline import CatalogPipeline
from .services.fanart import FanartClient
from .services.genres import GenreStore
from .services.page_tracker import PageTracker
from .services.poster_cache import PosterCache
from .services.posters import PosterResolver
from .services.scheduler import RequestScheduler
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Split on "&" unless it is surrounded by spaces, as in "Action & Adventure".
EXTRA_SEPARATOR_RE = re.compile(r"(?<!\s)&(?!\s)")

app: FastAPI


@dataclass(slots=True)
class AddonServices:
    """Collaborators shared by the HTTP routes."""

    settings: Settings
    scheduler: RequestScheduler
    tmdb: TMDBClient
    genres: GenreStore
    poster_cache: PosterCache
    pipeline: CatalogPipeline


def build_services(
    app_settings: Settings,
    database: Database,
    tmdb_http: httpx.AsyncClient,
    image_http: httpx.AsyncClient,
) -> AddonServices:
    """Wire the catalog core from explicit settings."""

    scheduler = RequestScheduler(app_settings.scheduler_concurrency)
    tmdb = TMDBClient(tmdb_http, scheduler)
    genres = GenreStore(database.session_factory)
    poster_cache = PosterCache(
        app_settings.poster_cache_dir,
        app_settings.poster_cache_seconds,
        app_settings.base_url,
        image_http,
    )
    fanart = FanartClient(image_http, scheduler, tmdb, str(app_settings.fanart_api_url))
    resolver = PosterResolver(
        image_http,
        scheduler,
        poster_cache,
        fanart,
        rpdb_base_url=str(app_settings.rpdb_api_url),
        image_base_url=str(app_settings.tmdb_image_url),
    )
    pipeline = CatalogPipeline(
        tmdb,
        scheduler,
        PageTracker(database.session_factory, max_pages=app_settings.tmdb_max_pages),
        CatalogCache(database.session_factory),
        poster_cache,
        resolver,
        genres,
        image_base_url=str(app_settings.tmdb_image_url),
    )
    return AddonServices(
        settings=app_settings,
        scheduler=scheduler,
        tmdb=tmdb,
        genres=genres,
        poster_cache=poster_cache,
        pipeline=pipeline,
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    image_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0))
    )
    database = Database(settings.database_url)
    await database.create_all()

    services = build_services(settings, database, tmdb_http, image_http)
    fastapi_app.state.services = services
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await services.pipeline.wait_for_flushes()
        await services.scheduler.aclose()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Random, non-repeating TMDB catalogs for Stremio",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_services(fastapi_app: FastAPI) -> AddonServices:
    services = getattr(fastapi_app.state, "services", None)
    if not isinstance(services, AddonServices):
        raise RuntimeError("Add-on services not initialised")
    return services


def parse_extra(raw_extra: str | None) -> dict[str, str]:
    """Parse a Stremio ``extra`` path segment such as ``genre=Action&skip=20``."""

    if not raw_extra:
        return {}
    params: dict[str, str] = {}
    for part in EXTRA_SEPARATOR_RE.split(unquote(raw_extra)):
        key, _, value = part.partition("=")
        key = unquote(key).strip()
        if not key:
            continue
        params[key] = unquote(value).strip()
    return params


def _parse_config(raw_config: str | None) -> AddonConfig:
    try:
        return AddonConfig.from_path(unquote(raw_config) if raw_config else None)
    except (ValueError, ValidationError) as exc:
        raise HTTPException(status_code=400, detail="Invalid add-on configuration") from exc


def register_routes(fastapi_app: FastAPI) -> None:
    async def _manifest_endpoint(raw_config: str | None = None) -> dict[str, Any]:
        services = get_services(fastapi_app)
        config = _parse_config(raw_config)
        app_settings = services.settings
        language = config.language or app_settings.default_language
        api_key = config.tmdb_api_key or app_settings.tmdb_api_key
        logger.debug("Manifest request for language: %s", language)

        if api_key:
            await services.genres.ensure_language(language, services.tmdb, api_key=api_key)
        try:
            movie_genres = await services.genres.list_genre_names("movie", language)
            series_genres = await services.genres.list_genre_names("tv", language)
        except Exception as exc:
            logger.exception("Error generating manifest")
            raise HTTPException(status_code=500, detail="Error generating manifest") from exc
        return build_manifest(movie_genres, series_genres, name=app_settings.app_name)

    async def _catalog_endpoint(
        request: Request,
        content_type: str,
        catalog_id: str,
        *,
        raw_config: str | None = None,
        raw_extra: str | None = None,
    ) -> JSONResponse:
        services = get_services(fastapi_app)
        app_settings = services.settings
        config = _parse_config(raw_config)
        language = config.language or app_settings.default_language
        logger.info(
            "Catalog request: type=%s, id=%s, language=%s", content_type, catalog_id, language
        )

        if content_type not in {"movie", "series"}:
            logger.error("Invalid catalog type: %s", content_type)
            return JSONResponse({"metas": []}, status_code=400)

        api_key = config.tmdb_api_key or app_settings.tmdb_api_key
        if not api_key:
            logger.error("Catalog request without a TMDB API key")
            return JSONResponse({"metas": []}, status_code=400)

        query = dict(request.query_params)
        cache_duration = query.pop("cacheDuration", app_settings.catalog_cache_duration)
        extra: dict[str, str] = {**query, **parse_extra(raw_extra)}
        if config.language:
            extra["language"] = config.language
        if config.hide_no_poster:
            extra["hideNoPoster"] = "true"

        media_type = media_type_for(content_type)
        if extra.get("genre"):
            genre_id = await services.genres.genre_id(media_type, extra["genre"])
            if genre_id is not None:
                extra["with_genres"] = str(genre_id)
            else:
                logger.warning("Genre %s not found for %s", extra["genre"], media_type)
        logger.debug("Extra parameters after processing: %s", extra)

        catalog_request = CatalogRequest(
            content_type=content_type,
            catalog_id=catalog_id,
            extra=extra,
            cache_duration=cache_duration,
            credentials=Credentials(
                tmdb_api_key=api_key,
                rpdb_api_key=config.rpdb_api_key,
                fanart_api_key=config.fanart_api_key,
            ),
            language=language,
        )
        try:
            result = await services.pipeline.fetch_catalog(catalog_request)
        except ConfigurationError as exc:
            logger.error("Rejected catalog request: %s", exc)
            return JSONResponse({"metas": []}, status_code=400)
        except UpstreamUnavailable as exc:
            logger.error("Error fetching catalog data: %s", exc)
            return JSONResponse({"metas": []}, status_code=502)
        except PersistenceFailure as exc:
            logger.error("Catalog storage failure: %s", exc)
            return JSONResponse({"metas": []}, status_code=500)

        metas = [item.to_meta() for item in result.items]
        if extra.get("hideNoPoster") == "true":
            metas = [meta for meta in metas if meta.get("poster")]
        return JSONResponse({"metas": metas})

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/manifest.json")
    async def manifest() -> dict[str, Any]:
        return await _manifest_endpoint()

    @fastapi_app.get("/{config}/manifest.json")
    async def manifest_with_config(config: str) -> dict[str, Any]:
        return await _manifest_endpoint(config)

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}.json")
    async def catalog(request: Request, content_type: str, catalog_id: str) -> JSONResponse:
        return await _catalog_endpoint(request, content_type, catalog_id)

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_extra(
        request: Request, content_type: str, catalog_id: str, extra: str
    ) -> JSONResponse:
        return await _catalog_endpoint(request, content_type, catalog_id, raw_extra=extra)

    @fastapi_app.get("/{config}/catalog/{content_type}/{catalog_id}.json")
    async def catalog_with_config(
        request: Request, config: str, content_type: str, catalog_id: str
    ) -> JSONResponse:
        return await _catalog_endpoint(
            request, content_type, catalog_id, raw_config=config
        )

    @fastapi_app.get("/{config}/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_config_and_extra(
        request: Request, config: str, content_type: str, catalog_id: str, extra: str
    ) -> JSONResponse:
        return await _catalog_endpoint(
            request, content_type, catalog_id, raw_config=config, raw_extra=extra
        )

    @fastapi_app.get("/poster/{filename}")
    async def poster(filename: str) -> FileResponse:
        services = get_services(fastapi_app)
        path = services.poster_cache.path_for(filename)
        if path is None or not path.is_file():
            raise HTTPException(status_code=404, detail="Poster not found")
        return FileResponse(path, media_type="image/jpeg")


app = create_app()
