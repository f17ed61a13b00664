"""Round-trip checks against the live store and single-key repair."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from pydantic import BaseModel, Field

from geocache.exceptions import CacheBackendUnavailable, MalformedCacheEntry
from geocache.models import utcnow
from geocache.services.store import CacheStore

logger = logging.getLogger("geocache.cache.diagnostics")

DIAGNOSTIC_KEY_PREFIX = "diagnostic"
DIAGNOSTIC_TTL_SECONDS = 60


class RoundTripReport(BaseModel):
    backend: str
    available: bool = False
    ping: bool = False
    write: bool = False
    read: bool = False
    integrity: bool = False
    cleanup: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(
            (self.available, self.ping, self.write, self.read, self.integrity, self.cleanup)
        )


class KeyInspection(BaseModel):
    key: str
    exists: bool = False
    raw: str | None = None
    raw_type: str | None = None
    decoded_type: str | None = None
    valid: bool = False
    error: str | None = None


def _sample_document() -> dict[str, Any]:
    return {
        "test": "data",
        "timestamp": utcnow().isoformat(),
        "number": 12345,
        "float": 40.71,
        "boolean": True,
        "null": None,
        "text": "São Paulo, SP, Brasil",
        "nested": {"value": "nested test", "list": [1, 2, 3]},
    }


class CacheDiagnostics:
    def __init__(self, store: CacheStore) -> None:
        self.store = store

    async def run_round_trip_check(self) -> RoundTripReport:
        """Write, read back, compare and delete a synthetic entry.

        The synthetic key is deleted on every exit path; ``cleanup`` records
        whether it is really gone afterwards.
        """
        store = self.store
        report = RoundTripReport(backend=store.backend_name, available=store.is_available())
        if not report.available:
            report.errors.append("Cache backend is not available - check configuration")
            logger.warning("Cache diagnostic skipped: backend %s unavailable", store.backend_name)
            return report

        report.ping = await store.ping()
        if not report.ping:
            report.errors.append("Ping failed - check connection")

        key = f"{DIAGNOSTIC_KEY_PREFIX}:{uuid.uuid4().hex}"
        sample = _sample_document()
        try:
            report.write = await store.set(key, sample, DIAGNOSTIC_TTL_SECONDS)
            if not report.write:
                report.errors.append("Failed to write test entry")
            else:
                retrieved = await store.get(key)
                report.read = retrieved is not None
                if not report.read:
                    report.errors.append("Failed to read test entry back")
                else:
                    report.integrity = store.encode(retrieved) == store.encode(sample)
                    if not report.integrity:
                        report.errors.append(
                            "Data integrity check failed - retrieved entry does not match"
                        )
                        logger.debug("Stored %r, retrieved %r", sample, retrieved)
        except Exception as exc:
            report.errors.append(f"Diagnostic error: {exc}")
            logger.exception("Cache diagnostic error")
        finally:
            await store.delete(key)
            try:
                report.cleanup = await store.fetch_raw(key) is None
            except CacheBackendUnavailable as exc:
                report.cleanup = False
                report.errors.append(f"Could not confirm removal of test entry {key}: {exc}")
            else:
                if not report.cleanup:
                    report.errors.append(f"Test entry {key} could not be removed")

        logger.info(
            "Cache diagnostic completed: %s",
            "pass" if report.passed else "fail",
            extra={"errors": len(report.errors)},
        )
        return report

    async def inspect_key(self, key: str) -> KeyInspection:
        """Raw value, its type and any decode error for *key*; never mutates it."""
        result = KeyInspection(key=key)
        try:
            raw = await self.store.fetch_raw(key)
        except CacheBackendUnavailable as exc:
            result.error = str(exc)
            return result

        result.exists = raw is not None
        if raw is None:
            return result

        result.raw_type = type(raw).__name__
        if isinstance(raw, bytes):
            result.raw = raw.decode("utf-8", errors="replace")
        elif isinstance(raw, str):
            result.raw = raw
        else:
            result.raw = repr(raw)

        try:
            decoded = self.store.decode(key, raw)
        except MalformedCacheEntry as exc:
            result.error = f"Parse error: {exc.reason}"
            return result

        result.valid = True
        result.decoded_type = type(decoded).__name__
        return result

    async def repair_key(self, key: str) -> bool:
        """Delete *key* outright. Destructive: the entry is discarded, not fixed."""
        deleted = await self.store.delete(key)
        if deleted:
            logger.info("Removed suspect cache key %s", key)
        else:
            logger.warning("Cache key not found or already deleted: %s", key)
        return deleted
