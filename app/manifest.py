"""Stremio manifest generation."""

from __future__ import annotations

from datetime import date
from typing import Any, Sequence

ADDON_ID = "community.stremiotmdbdice"
ADDON_VERSION = "1.0.0"
ADDON_LOGO = (
    "https://www.themoviedb.org/assets/2/v4/logos/v2/"
    "blue_square_2-d537fb228cf3ded904ef09b136fe3fec72548ebc1fea3fbbd1ad9e36364db38b.svg"
)
RATING_OPTIONS = ("8-10", "6-8", "4-6", "2-4", "0-2")
NO_GENRES_OPTION = "No genres available"


def generate_year_intervals(
    start_year: int = 1880, end_year: int | None = None, interval: int = 4
) -> list[str]:
    """Return ``start-end`` year buckets, newest first."""

    if end_year is None:
        end_year = date.today().year
    end_year = max(end_year, start_year)

    intervals: list[str] = []
    year = end_year
    while year >= start_year:
        intervals.append(f"{max(year - interval + 1, start_year)}-{year}")
        year -= interval
    return intervals or [f"{start_year}-{end_year}"]


def _catalog_entry(
    content_type: str, catalog_id: str, name: str, genres: Sequence[str], years: list[str]
) -> dict[str, Any]:
    return {
        "type": content_type,
        "id": catalog_id,
        "name": name,
        "extra": [
            {
                "name": "genre",
                "options": list(genres) if genres else [NO_GENRES_OPTION],
                "isRequired": False,
            },
            {"name": "rating", "options": list(RATING_OPTIONS), "isRequired": False},
            {"name": "year", "options": years, "isRequired": False},
            {"name": "skip", "isRequired": False},
        ],
    }


def build_manifest(
    movie_genres: Sequence[str],
    series_genres: Sequence[str],
    *,
    name: str = "TMDB Dice",
) -> dict[str, Any]:
    """Return the add-on manifest advertising the random movie and series catalogs."""

    years = generate_year_intervals()
    return {
        "id": ADDON_ID,
        "version": ADDON_VERSION,
        "logo": ADDON_LOGO,
        "name": name,
        "description": (
            "A catalog featuring content from TMDB with filters that allow "
            "for generating random content recommendations."
        ),
        "types": ["movie", "series"],
        "idPrefixes": ["tmdb:"],
        "resources": ["catalog"],
        "catalogs": [
            _catalog_entry("movie", "random_movies", "Random Movies", movie_genres, years),
            _catalog_entry("series", "random_series", "Random Series", series_genres, years),
        ],
        "behaviorHints": {"configurable": True, "configurationRequired": False},
    }
