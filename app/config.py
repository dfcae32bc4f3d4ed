"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .utils import cache_duration_to_seconds


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="TMDB Dice", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=7000, alias="PORT")
    base_url: str = Field(default="http://localhost:7000", alias="BASE_URL")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./db/cache.db", alias="DATABASE_URL"
    )
    poster_cache_dir: str = Field(default="./db/rpdbPosters", alias="POSTER_CACHE_DIR")

    catalog_cache_duration: str = Field(
        default="3d", alias="CATALOG_CONTENT_CACHE_DURATION"
    )
    poster_cache_duration: str = Field(
        default="3d", alias="RPDB_POSTER_CACHE_DURATION"
    )

    scheduler_concurrency: int = Field(
        default=45, alias="SCHEDULER_CONCURRENCY", ge=1, le=500
    )
    tmdb_max_pages: int = Field(default=500, alias="TMDB_MAX_PAGES", ge=1, le=500)

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_url: HttpUrl = Field(
        default="https://image.tmdb.org/t/p", alias="TMDB_IMAGE_URL"
    )
    rpdb_api_url: HttpUrl = Field(
        default="https://api.ratingposterdb.com", alias="RPDB_API_URL"
    )
    fanart_api_url: HttpUrl = Field(
        default="https://webservice.fanart.tv/v3", alias="FANART_API_URL"
    )
    default_language: str = Field(default="en-US", alias="DEFAULT_LANGUAGE")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("catalog_cache_duration", "poster_cache_duration")
    @classmethod
    def _validate_duration(cls, value: str) -> str:
        """Reject cache durations that are not ``<number>d`` or ``<number>h``."""

        try:
            cache_duration_to_seconds(value)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def catalog_cache_seconds(self) -> int:
        return cache_duration_to_seconds(self.catalog_cache_duration)

    @property
    def poster_cache_seconds(self) -> int:
        return cache_duration_to_seconds(self.poster_cache_duration)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
