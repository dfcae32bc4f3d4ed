"""Exception types shared across the catalog services."""

from __future__ import annotations


class TMDBDiceError(Exception):
    """Base class for failures raised by the catalog core."""


class UpstreamUnavailable(TMDBDiceError):
    """Raised when TMDB or an image service cannot be reached."""


class PersistenceFailure(TMDBDiceError):
    """Raised when a persistent store read or write fails."""


class ConfigurationError(TMDBDiceError, ValueError):
    """Raised for malformed configuration such as a bad cache duration."""
