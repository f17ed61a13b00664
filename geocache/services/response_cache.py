"""Read-through cache around an expensive lookup.

Per call: check the store; on a hit return the stored payload with cache
metadata merged around it; on a miss run the computation once and, if it
reports success, write the result back in a background task so the caller
never waits on the store.

There is no single-flight: concurrent misses for one key each run the
computation and each write the same key (last write wins). Callers wrapping
a non-idempotent computation must coordinate themselves.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from geocache.exceptions import CacheWriteFailure
from geocache.models import (
    NO_EXPIRATION,
    CacheEntry,
    CacheMetadata,
    LookupResult,
    OperationKind,
    utcnow,
)
from geocache.services.metrics import metrics
from geocache.services.store import CacheStore

logger = logging.getLogger("geocache.cache.response")

# Fields a served response may carry that must never be persisted.
CACHE_RESPONSE_FIELDS = ("cached", "cacheTimestamp", "cacheMetadata")

Compute = Callable[[], Awaitable[LookupResult]]


@dataclass
class CacheOutcome:
    """Result of one ``with_cache`` call.

    ``status`` is ``hit``, ``miss`` or ``bypass`` (store unavailable).
    """

    result: LookupResult
    status: str
    hit_metadata: dict[str, Any] | None = None
    served_at: datetime | None = None

    @property
    def cached(self) -> bool:
        return self.status == "hit"

    def as_document(self) -> dict[str, Any]:
        """The payload as sent to the caller; hits gain ``cached`` and ``cacheMetadata``."""
        payload = self.result.payload
        body = dict(payload) if isinstance(payload, Mapping) else {"payload": payload}
        if self.cached:
            body["cached"] = True
            body["cacheTimestamp"] = self.served_at.isoformat() if self.served_at else None
            body["cacheMetadata"] = dict(self.hit_metadata or {})
        return body


def strip_cache_fields(payload: Any) -> Any:
    if isinstance(payload, Mapping):
        return {k: v for k, v in payload.items() if k not in CACHE_RESPONSE_FIELDS}
    return payload


class ResponseCache:
    """Wraps computations with store lookups and deferred write-back."""

    def __init__(
        self,
        store: CacheStore,
        default_ttl: int = NO_EXPIRATION,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.default_ttl = default_ttl
        self._clock = clock
        self._pending: set[asyncio.Task] = set()

    async def with_cache(
        self,
        key: str,
        compute: Compute,
        *,
        operation_kind: OperationKind | str,
        ttl_seconds: int | None = None,
    ) -> CacheOutcome:
        """Serve *key* from the store or run *compute* and capture its result.

        *ttl_seconds* of 0 stores the entry perpetually; ``None`` uses the
        configured default. Exceptions from *compute* propagate unchanged;
        cache failures never do.
        """
        kind = operation_kind.value if isinstance(operation_kind, OperationKind) else operation_kind
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds

        if not self.store.is_available():
            metrics.inc_cache("bypass")
            return CacheOutcome(result=await compute(), status="bypass")

        document = await self.store.get(key)
        if document is not None:
            hit = self._serve_hit(key, kind, document)
            if hit is not None:
                metrics.inc_cache("hit")
                return hit

        metrics.inc_cache("miss")
        result = await compute()
        if result.success:
            self._schedule_write(key, kind, result.payload, ttl)
        else:
            logger.debug("Not caching unsuccessful %s lookup: %s", kind, result.failure_reason)
        return CacheOutcome(result=result, status="miss")

    def _serve_hit(self, key: str, kind: str, document: Any) -> CacheOutcome | None:
        try:
            entry = CacheEntry.model_validate(document)
        except ValidationError:
            logger.warning("Cache entry %s has no valid metadata, treating as miss", key)
            return None

        now = self._clock()
        cached_at = entry.metadata.cached_at
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        age = max(int((now - cached_at).total_seconds()), 0)
        hit_metadata = {
            **entry.metadata.model_dump(mode="json", by_alias=True),
            "isPerpetual": entry.metadata.perpetual,
            "cacheAge": age,
            "servedAt": now.isoformat(),
        }
        logger.info(
            "Cache hit (%s)",
            kind,
            extra={"cache_key": key, "cache_age": age, "perpetual": entry.metadata.perpetual},
        )
        return CacheOutcome(
            result=LookupResult(success=True, payload=entry.payload),
            status="hit",
            hit_metadata=hit_metadata,
            served_at=now,
        )

    def build_entry(self, kind: str, payload: Any, ttl: int) -> CacheEntry:
        return CacheEntry(
            payload=strip_cache_fields(payload),
            metadata=CacheMetadata(
                cached_at=self._clock(),
                perpetual=ttl == NO_EXPIRATION,
                operation_kind=kind,
                declared_ttl_seconds=ttl,
            ),
        )

    def _schedule_write(self, key: str, kind: str, payload: Any, ttl: int) -> None:
        try:
            document = self.build_entry(kind, payload, ttl).to_document()
        except (PydanticSerializationError, TypeError) as exc:
            metrics.inc_cache_write(False)
            logger.error(
                "Failed to cache %s response: payload is not serializable (%s)",
                kind,
                exc,
                extra={"cache_key": key},
            )
            return
        task = asyncio.create_task(self._write(key, kind, document, ttl))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, key: str, kind: str, document: dict, ttl: int) -> None:
        try:
            if not await self.store.set(key, document, ttl):
                raise CacheWriteFailure(f"store did not accept {key}")
        except CacheWriteFailure as exc:
            metrics.inc_cache_write(False)
            logger.error("Failed to cache %s response: %s", kind, exc, extra={"cache_key": key})
            return
        except Exception:
            metrics.inc_cache_write(False)
            logger.exception("Unexpected error caching %s response", kind, extra={"cache_key": key})
            return

        metrics.inc_cache_write(True)
        policy = "PERPETUAL" if ttl == NO_EXPIRATION else f"{ttl}s TTL"
        logger.info("Response cached for %s (%s)", kind, policy, extra={"cache_key": key})

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight write-backs (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
