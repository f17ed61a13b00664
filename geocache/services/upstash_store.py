"""Upstash Redis backend over its REST API (``httpx``).

Each command is a POST of a JSON array (``["SET", key, value, "EX", 60]``)
to the database URL; replies are ``{"result": ...}`` or ``{"error": ...}``.
The REST API offers no usable key enumeration, which is why bulk
maintenance takes explicit key lists.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from geocache.exceptions import CacheBackendUnavailable
from geocache.services.store import CacheStore

logger = logging.getLogger("geocache.cache.upstash")


class UpstashRestStore(CacheStore):
    backend_name = "upstash"

    def __init__(
        self,
        url: str,
        token: str,
        timeout: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self._url = url.rstrip("/")
        self._token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _connect(self) -> None:
        if self._client is not None:
            return
        if not self._url or not self._token:
            raise CacheBackendUnavailable(
                "Upstash Redis credentials not found (UPSTASH_REDIS_REST_URL / "
                "UPSTASH_REDIS_REST_TOKEN)"
            )
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _command(self, *args: Any) -> Any:
        if self._client is None:
            raise CacheBackendUnavailable("Upstash client not initialized")
        try:
            resp = await self._client.post(self._url, json=[str(a) for a in args])
        except httpx.HTTPError as exc:
            raise CacheBackendUnavailable(f"{args[0]} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise CacheBackendUnavailable(
                f"{args[0]} returned non-JSON reply (HTTP {resp.status_code})"
            ) from exc

        if isinstance(body, dict) and body.get("error"):
            raise CacheBackendUnavailable(f"{args[0]} rejected: {body['error']}")
        if resp.status_code >= 400 or not isinstance(body, dict):
            raise CacheBackendUnavailable(f"{args[0]} failed with HTTP {resp.status_code}")
        return body.get("result")

    async def _ping(self) -> bool:
        return await self._command("PING") == "PONG"

    async def _get_raw(self, key: str) -> Any:
        return await self._command("GET", key)

    async def _set_raw(self, key: str, data: str, ttl_seconds: int | None) -> None:
        if ttl_seconds:
            await self._command("SET", key, data, "EX", ttl_seconds)
        else:
            await self._command("SET", key, data)

    async def _delete(self, key: str) -> int:
        return int(await self._command("DEL", key) or 0)

    async def _ttl(self, key: str) -> int:
        return int(await self._command("TTL", key))

    async def _persist(self, key: str) -> bool:
        return bool(await self._command("PERSIST", key))
