"""Socket-based Redis backend (``redis.asyncio``)."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import redis.asyncio as redis
from redis.exceptions import RedisError

from geocache.exceptions import CacheBackendUnavailable
from geocache.services.store import CacheStore

logger = logging.getLogger("geocache.cache.redis")


@contextmanager
def _unavailable_on_error() -> Iterator[None]:
    try:
        yield
    except (RedisError, OSError) as exc:
        raise CacheBackendUnavailable(str(exc) or type(exc).__name__) from exc


class RedisStore(CacheStore):
    """Talks to Redis over its wire protocol.

    Socket connect and read timeouts are set to the store timeout so an
    unreachable server cannot hang a request. Replies stay as bytes; values
    are decoded by ``CacheStore.decode`` so a non-UTF-8 entry surfaces as
    malformed rather than as a connection failure.
    """

    backend_name = "redis"

    def __init__(
        self,
        url: str,
        timeout: float = 2.0,
        client: redis.Redis | None = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self._url = url
        self._client = client

    async def _connect(self) -> None:
        if self._client is not None:
            return
        if not self._url:
            raise CacheBackendUnavailable("REDIS_URL is not configured")
        self._client = redis.Redis.from_url(
            self._url,
            socket_timeout=self._timeout,
            socket_connect_timeout=self._timeout,
        )
        logger.debug("Redis client created for %s", self._url.rsplit("@", 1)[-1])

    async def _disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> redis.Redis:
        if self._client is None:
            raise CacheBackendUnavailable("Redis client not initialized")
        return self._client

    async def _ping(self) -> bool:
        with _unavailable_on_error():
            return bool(await self._require_client().ping())

    async def _get_raw(self, key: str) -> bytes | None:
        with _unavailable_on_error():
            return await self._require_client().get(key)

    async def _set_raw(self, key: str, data: str, ttl_seconds: int | None) -> None:
        with _unavailable_on_error():
            # A plain SET clears any previous TTL on the key
            if ttl_seconds:
                await self._require_client().set(key, data, ex=ttl_seconds)
            else:
                await self._require_client().set(key, data)

    async def _delete(self, key: str) -> int:
        with _unavailable_on_error():
            return int(await self._require_client().delete(key))

    async def _ttl(self, key: str) -> int:
        with _unavailable_on_error():
            return int(await self._require_client().ttl(key))

    async def _persist(self, key: str) -> bool:
        with _unavailable_on_error():
            return bool(await self._require_client().persist(key))
