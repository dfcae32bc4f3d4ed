"""Models describing catalog requests, filter signatures and enriched items."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import (
    format_range,
    parse_rating_range,
    parse_year_range,
    stable_dumps,
)

ContentType = Literal["movie", "series"]
MediaType = Literal["movie", "tv"]

# Extras that shape the response but not the upstream query.
PRESENTATION_KEYS = frozenset({"skip", "language", "hideNoPoster"})
SIGNATURE_KEYS = frozenset({"genre", "year", "rating"})


def media_type_for(content_type: str) -> MediaType:
    """Map a Stremio content type onto the TMDB media type."""

    return "tv" if content_type in {"series", "tv"} else "movie"


def content_type_for(media_type: str) -> ContentType:
    return "series" if media_type == "tv" else "movie"


@dataclass(frozen=True, slots=True)
class FilterSignature:
    """Normalized identity of a catalog query."""

    media_type: MediaType
    genre: str | None = None
    year: tuple[int, int] | None = None
    rating: tuple[float, float] | None = None
    passthrough: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def from_extra(
        cls, media_type: str, extra: Mapping[str, Any]
    ) -> "FilterSignature":
        genre = str(extra.get("genre") or "").strip() or None
        passthrough = tuple(
            sorted(
                (str(key), str(value))
                for key, value in extra.items()
                if value is not None
                and key not in PRESENTATION_KEYS
                and key not in SIGNATURE_KEYS
            )
        )
        return cls(
            media_type=media_type_for(media_type),
            genre=genre,
            year=parse_year_range(extra.get("year")),
            rating=parse_rating_range(extra.get("rating")),
            passthrough=passthrough,
        )

    @property
    def year_key(self) -> str:
        return format_range(self.year) or ""

    @property
    def rating_key(self) -> str:
        return format_range(self.rating) or ""

    def partition_key(self) -> tuple[str, str, str, str]:
        """Return the (genre, year, rating, media type) page partition."""

        return (self.genre or "", self.year_key, self.rating_key, self.media_type)

    def cache_fragment(self) -> str:
        """Deterministic textual form used inside catalog cache keys."""

        return (
            f"genre_{self.genre}_year_{self.year_key or None}"
            f"_rating_{self.rating_key or None}"
            f"_extra_{stable_dumps(dict(self.passthrough))}"
        )


class Credentials(BaseModel):
    """API keys supplied by the add-on configuration."""

    model_config = ConfigDict(frozen=True)

    tmdb_api_key: str
    rpdb_api_key: str | None = None
    fanart_api_key: str | None = None


class CatalogRequest(BaseModel):
    """Normalized request handed from the routing layer to the pipeline."""

    content_type: ContentType
    catalog_id: str
    extra: dict[str, str] = Field(default_factory=dict)
    cache_duration: str = "3d"
    credentials: Credentials
    language: str = "en-US"

    @property
    def media_type(self) -> MediaType:
        return media_type_for(self.content_type)

    @property
    def skip(self) -> int:
        try:
            return int(self.extra.get("skip") or 0)
        except ValueError:
            return 0

    def signature(self) -> FilterSignature:
        return FilterSignature.from_extra(self.media_type, self.extra)

    def cache_key(self) -> str:
        """Return the full catalog cache key for this request."""

        return (
            f"catalog_{self.media_type}_{self.catalog_id}_{stable_dumps(self.extra)}"
            f"_lang_{self.language}_{self.signature().cache_fragment()}"
        )


class EnrichedItem(BaseModel):
    """A TMDB discover result augmented with artwork and genre names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    tmdb_id: int
    name: str
    type: ContentType
    poster: str | None = None
    banner: str | None = None
    logo: str | None = None
    description: str | None = None
    release_info: str | None = Field(
        default=None,
        validation_alias=AliasChoices("release_info", "releaseInfo"),
        serialization_alias="releaseInfo",
    )
    imdb_rating: str | None = Field(
        default=None,
        validation_alias=AliasChoices("imdb_rating", "imdbRating"),
        serialization_alias="imdbRating",
    )
    genres: list[str] = Field(default_factory=list)

    def to_meta(self) -> dict[str, object]:
        """Return a Stremio-compatible meta preview object."""

        meta: dict[str, object] = {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "poster": self.poster,
            "genres": list(self.genres),
        }
        if self.banner:
            meta["background"] = self.banner
            meta["banner"] = self.banner
        if self.logo:
            meta["logo"] = self.logo
        if self.description:
            meta["description"] = self.description
        if self.release_info:
            meta["releaseInfo"] = self.release_info
        if self.imdb_rating:
            meta["imdbRating"] = self.imdb_rating
        return meta


@dataclass(slots=True)
class CachedCatalog:
    """A catalog cache hit together with the page metadata it was built from."""

    items: list[EnrichedItem]
    page: int
    skip: int
    genre: str | None
    year: str | None
    rating: str | None
    media_type: str
    written_at: datetime


@dataclass(slots=True)
class CatalogResult:
    """Outcome of a pipeline run."""

    items: list[EnrichedItem]
    page: int | None = None
    exhausted: bool = False
    from_cache: bool = False


class AddonConfig(BaseModel):
    """User configuration embedded in add-on URLs as encoded JSON."""

    language: str | None = None
    hide_no_poster: bool = Field(
        default=False,
        validation_alias=AliasChoices("hideNoPoster", "hide_no_poster"),
    )
    tmdb_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("tmdbApiKey", "tmdb_api_key"),
    )
    rpdb_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("rpdbApiKey", "rpdbkey", "rpdb_api_key"),
    )
    fanart_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("fanartApiKey", "fanart_api_key"),
    )

    @field_validator("language", "tmdb_api_key", "rpdb_api_key", "fanart_api_key")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @classmethod
    def from_path(cls, raw: str | None) -> "AddonConfig":
        """Parse the decoded JSON configuration path segment."""

        if not raw:
            return cls()
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError("Add-on configuration must be a JSON object") from exc
        if not isinstance(payload, dict):
            raise ValueError("Add-on configuration must be a JSON object")
        return cls.model_validate(payload)
