"""Key-value store abstraction used by the response cache.

Every public method is non-throwing: a backend that is down, slow or
returning garbage degrades to "cache unavailable" (a miss for reads, a
failed no-op for writes). Concrete backends only implement the underscore
primitives and raise ``CacheBackendUnavailable`` when they cannot talk to
the server.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from geocache.exceptions import CacheBackendUnavailable, MalformedCacheEntry
from geocache.models import NO_EXPIRATION, TtlRemaining, TtlStatus

if TYPE_CHECKING:
    from geocache.config import Settings

logger = logging.getLogger("geocache.cache")

T = TypeVar("T")

# Redis TTL command replies
_TTL_NO_EXPIRY = -1
_TTL_MISSING = -2

_FAILED: Any = object()


class CacheStore(ABC):
    """Uniform async get/set/delete/ttl/persist over one flat keyspace.

    Lifecycle is explicit: ``init()`` connects and pings once. If that fails
    the store stays disabled until ``init()`` is called again. Failures after
    a successful init are treated as transient and only affect the call that
    hit them.
    """

    backend_name: str = "abstract"

    def __init__(self, timeout: float = 2.0) -> None:
        self._timeout = timeout
        self._enabled = False
        self._degraded = False

    # -- Backend primitives ------------------------------------------------

    @abstractmethod
    async def _connect(self) -> None: ...

    @abstractmethod
    async def _disconnect(self) -> None: ...

    @abstractmethod
    async def _ping(self) -> bool: ...

    @abstractmethod
    async def _get_raw(self, key: str) -> str | bytes | None: ...

    @abstractmethod
    async def _set_raw(self, key: str, data: str, ttl_seconds: int | None) -> None:
        """Store *data*; ``ttl_seconds=None`` means no expiration."""

    @abstractmethod
    async def _delete(self, key: str) -> int: ...

    @abstractmethod
    async def _ttl(self, key: str) -> int:
        """Redis ``TTL`` semantics: seconds, -1 for no expiry, -2 for missing."""

    @abstractmethod
    async def _persist(self, key: str) -> bool: ...

    # -- Lifecycle ---------------------------------------------------------

    async def init(self) -> bool:
        """Connect and verify liveness. Returns the resulting availability."""
        try:
            await asyncio.wait_for(self._connect(), self._timeout)
            alive = await asyncio.wait_for(self._ping(), self._timeout)
        except Exception as exc:
            alive = False
            reason = str(exc) or type(exc).__name__
        else:
            reason = "ping failed"

        if not alive:
            self._enabled = False
            logger.warning(
                "Cache backend %s unavailable, caching disabled: %s",
                self.backend_name,
                reason,
            )
            return False

        self._enabled = True
        self._degraded = False
        logger.info("Cache backend %s initialized", self.backend_name)
        return True

    async def close(self) -> None:
        self._enabled = False
        try:
            await self._disconnect()
        except Exception:
            logger.debug("Error closing cache backend %s", self.backend_name, exc_info=True)

    # -- Availability ------------------------------------------------------

    def is_available(self) -> bool:
        return self._enabled

    async def ping(self) -> bool:
        result = await self._guard("ping", None, self._ping)
        return result is not _FAILED and bool(result)

    def _note_failure(self, op: str, key: str | None, exc: BaseException) -> None:
        if not self._degraded:
            self._degraded = True
            logger.warning(
                "Cache backend %s degraded (%s %s): %s",
                self.backend_name,
                op,
                key or "",
                str(exc) or type(exc).__name__,
            )
        else:
            logger.debug("Cache %s failed for %s: %r", op, key, exc)

    def _note_success(self) -> None:
        if self._degraded:
            self._degraded = False
            logger.info("Cache backend %s recovered", self.backend_name)

    async def _guard(
        self, op: str, key: str | None, call: Callable[[], Awaitable[T]]
    ) -> T:
        """Run one backend call under the timeout; ``_FAILED`` on any error."""
        if not self._enabled:
            return _FAILED
        try:
            result = await asyncio.wait_for(call(), self._timeout)
        except Exception as exc:
            self._note_failure(op, key, exc)
            return _FAILED
        self._note_success()
        return result

    # -- Serialization -----------------------------------------------------

    @staticmethod
    def encode(value: Any) -> str:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)

    @staticmethod
    def decode(key: str, raw: Any) -> Any:
        """Turn a raw backend value into a JSON document or raise ``MalformedCacheEntry``."""
        if isinstance(raw, (dict, list)):
            return raw
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MalformedCacheEntry(key, f"not UTF-8: {exc}") from exc
        if not isinstance(raw, str):
            raise MalformedCacheEntry(key, f"unexpected type {type(raw).__name__}")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedCacheEntry(key, f"invalid JSON: {exc}") from exc

    # -- Public surface ----------------------------------------------------

    async def get(self, key: str) -> Any | None:
        raw = await self._guard("get", key, lambda: self._get_raw(key))
        if raw is _FAILED or raw is None:
            return None
        try:
            return self.decode(key, raw)
        except MalformedCacheEntry as exc:
            logger.warning("Ignoring malformed cache entry: %s", exc)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int = NO_EXPIRATION) -> bool:
        """Store *value* under *key*, replacing any existing entry.

        ``ttl_seconds == NO_EXPIRATION`` (0) stores it with no deadline.
        """
        if ttl_seconds < 0:
            logger.error("Refusing cache write for %s: negative TTL %d", key, ttl_seconds)
            return False
        try:
            data = self.encode(value)
        except (TypeError, ValueError) as exc:
            logger.error("Refusing cache write for %s: not JSON-serializable (%s)", key, exc)
            return False

        ttl = None if ttl_seconds == NO_EXPIRATION else ttl_seconds
        result = await self._guard("set", key, lambda: self._set_raw(key, data, ttl))
        if result is _FAILED:
            return False
        logger.debug("Cache set for %s (ttl=%s)", key, ttl if ttl else "none")
        return True

    async def delete(self, key: str) -> bool:
        removed = await self._guard("delete", key, lambda: self._delete(key))
        return removed is not _FAILED and removed > 0

    async def ttl_remaining(self, key: str) -> TtlRemaining:
        ttl = await self._guard("ttl", key, lambda: self._ttl(key))
        if ttl is _FAILED or ttl == _TTL_MISSING:
            return TtlStatus.ABSENT
        if ttl == _TTL_NO_EXPIRY:
            return TtlStatus.NO_EXPIRATION
        return int(ttl)

    async def remove_expiration(self, key: str) -> bool:
        """Make an existing TTL-bound entry perpetual in place."""
        persisted = await self._guard("persist", key, lambda: self._persist(key))
        return persisted is not _FAILED and bool(persisted)

    async def fetch_raw(self, key: str) -> str | bytes | None:
        """Undecoded backend value, for diagnostics only.

        Unlike the rest of the surface this raises ``CacheBackendUnavailable``
        so tooling can report why a read failed.
        """
        if not self._enabled:
            raise CacheBackendUnavailable(f"Cache backend {self.backend_name} is not available")
        try:
            return await asyncio.wait_for(self._get_raw(key), self._timeout)
        except CacheBackendUnavailable:
            raise
        except Exception as exc:
            raise CacheBackendUnavailable(str(exc) or type(exc).__name__) from exc


class DisabledStore(CacheStore):
    """Placeholder backend when caching is switched off; never initializes."""

    backend_name = "disabled"

    async def _connect(self) -> None:
        raise CacheBackendUnavailable("caching disabled by configuration")

    async def _disconnect(self) -> None:
        return None

    async def _ping(self) -> bool:
        return False

    async def _get_raw(self, key: str) -> None:
        return None

    async def _set_raw(self, key: str, data: str, ttl_seconds: int | None) -> None:
        raise CacheBackendUnavailable("caching disabled by configuration")

    async def _delete(self, key: str) -> int:
        return 0

    async def _ttl(self, key: str) -> int:
        return _TTL_MISSING

    async def _persist(self, key: str) -> bool:
        return False


def build_store(config: Settings) -> CacheStore:
    """Pick the backend named by ``config.cache_backend``.

    The returned store is not connected yet; call ``init()``.
    """
    backend = config.cache_backend.strip().lower()
    if backend == "redis":
        from geocache.services.redis_store import RedisStore

        return RedisStore(config.redis_url, timeout=config.cache_timeout)
    if backend == "upstash":
        from geocache.services.upstash_store import UpstashRestStore

        return UpstashRestStore(
            config.upstash_redis_rest_url,
            config.upstash_redis_rest_token,
            timeout=config.cache_timeout,
        )
    if backend == "memory":
        from geocache.services.memory_store import MemoryStore

        return MemoryStore(timeout=config.cache_timeout)
    if backend in ("", "none", "disabled"):
        return DisabledStore(timeout=config.cache_timeout)
    raise ValueError(f"Unknown cache backend: {config.cache_backend!r}")
