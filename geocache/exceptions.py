"""Exception hierarchy for the geocode cache service."""

from __future__ import annotations


class GeoCacheError(Exception):
    """Base exception for all geocache errors."""


class CacheBackendUnavailable(GeoCacheError):
    """Raised by backend primitives when the key-value store cannot be reached.

    Never escapes the public ``CacheStore`` surface; the store converts it
    into a miss or a no-op.
    """


class MalformedCacheEntry(GeoCacheError):
    """Raised when a stored value cannot be decoded as a JSON document."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Malformed cache entry at {key!r}: {reason}")


class InvalidLookupRequest(GeoCacheError, ValueError):
    """Raised when a lookup request has missing or unnormalizable fields."""


class CacheWriteFailure(GeoCacheError):
    """Raised internally when a write after a successful computation fails."""


class PatternMigrationUnsupported(GeoCacheError):
    """Raised when a caller asks for pattern-based bulk migration."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        super().__init__(
            f"Pattern-based migration ({pattern!r}) is not supported: the cache "
            "backend cannot enumerate keys. Pass an explicit list of keys."
        )


class GeocodingProviderError(GeoCacheError):
    """Raised when the upstream geocoding provider errors out."""

    def __init__(self, status: str, detail: str = "") -> None:
        self.status = status
        self.detail = detail
        message = f"Geocoding provider error: {status}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
