"""Utility helpers for the TMDB Dice service."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Mapping

from .errors import ConfigurationError


CACHE_DURATION_RE = re.compile(r"^(\d+)([dh])$")
UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9_-]")

_UNIT_SECONDS = {"d": 86_400, "h": 3_600}


def cache_duration_to_seconds(duration: str) -> int:
    """Convert a duration such as ``3d`` or ``12h`` into seconds."""

    match = CACHE_DURATION_RE.match((duration or "").strip())
    if not match:
        raise ConfigurationError(f"Invalid cache duration format: {duration!r}")
    value, unit = match.groups()
    return int(value) * _UNIT_SECONDS[unit]


def sanitize_identity(identity: str) -> str:
    """Return a filesystem-safe name for a cache identity."""

    return UNSAFE_FILENAME_RE.sub("_", identity)


def stable_dumps(value: Mapping[str, Any]) -> str:
    """Serialize a mapping so that key order never changes the output."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def utcnow() -> datetime:
    """Naive UTC timestamp matching the database column type."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_year_range(value: str | None) -> tuple[int, int] | None:
    """Parse ``2000-2004`` into a pair of years."""

    if not value:
        return None
    start, _, end = str(value).partition("-")
    try:
        return int(start.strip()), int(end.strip())
    except ValueError:
        return None


def parse_rating_range(value: str | None) -> tuple[float, float] | None:
    """Parse ``6-8`` into a pair of floats."""

    if not value:
        return None
    low, _, high = str(value).partition("-")
    try:
        return float(low.strip()), float(high.strip())
    except ValueError:
        return None


def format_range(value: tuple[Any, Any] | None) -> str | None:
    if value is None:
        return None
    low, high = value
    return f"{_format_number(low)}-{_format_number(high)}"


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
