"""Read-only views of cache state for operational endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from geocache.models import TtlStatus
from geocache.services.store import CacheStore


class KeyDescription(BaseModel):
    key: str
    exists: bool
    ttl_remaining: int | TtlStatus
    is_perpetual: bool
    stored_metadata: dict[str, Any] | None = None


async def describe(store: CacheStore, key: str) -> KeyDescription | None:
    """Existence, remaining TTL and stored provenance of *key*, or ``None`` if absent.

    An entry whose value no longer decodes still exists; it is reported
    with ``stored_metadata=None``.
    """
    document = await store.get(key)
    ttl = await store.ttl_remaining(key)
    if document is None and ttl is TtlStatus.ABSENT:
        return None

    metadata = None
    if isinstance(document, dict) and isinstance(document.get("cacheMetadata"), dict):
        metadata = document["cacheMetadata"]

    return KeyDescription(
        key=key,
        exists=True,
        ttl_remaining=ttl,
        is_perpetual=ttl is TtlStatus.NO_EXPIRATION,
        stored_metadata=metadata,
    )


async def cache_status(store: CacheStore) -> dict[str, Any]:
    """Availability summary: configured, reachable, and what that means for callers."""
    if not store.is_available():
        return {
            "backend": store.backend_name,
            "available": False,
            "connected": False,
            "status": "disabled",
            "message": "Cache backend is not available; lookups go straight to the provider",
        }

    connected = await store.ping()
    return {
        "backend": store.backend_name,
        "available": True,
        "connected": connected,
        "status": "healthy" if connected else "unhealthy",
        "message": (
            "Cache backend is connected and responsive"
            if connected
            else "Cache backend is not responding; lookups fall back to the provider"
        ),
    }
