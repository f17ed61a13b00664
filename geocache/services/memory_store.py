"""In-process store with per-entry deadlines, for development and tests."""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from geocache.services.store import CacheStore


class MemoryStore(CacheStore):
    """Thread-safe dict of ``key -> (data, expires_at | None)``.

    Expired entries are dropped lazily when touched. There is no size bound
    and no eviction. *clock* defaults to ``time.monotonic`` and can be
    swapped to step time forward in tests.
    """

    backend_name = "memory"

    def __init__(
        self,
        timeout: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(timeout=timeout)
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> tuple[str, float | None] | None:
        """Return the entry for *key* if present and unexpired; caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return entry

    async def _connect(self) -> None:
        return None

    async def _disconnect(self) -> None:
        return None

    async def _ping(self) -> bool:
        return True

    async def _get_raw(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    async def _set_raw(self, key: str, data: str, ttl_seconds: int | None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._data[key] = (data, expires_at)

    async def _delete(self, key: str) -> int:
        with self._lock:
            if self._live(key) is None:
                return 0
            del self._data[key]
            return 1

    async def _ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return -2
            expires_at = entry[1]
            if expires_at is None:
                return -1
            return max(math.ceil(expires_at - self._clock()), 0)

    async def _persist(self, key: str) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return False
            self._data[key] = (entry[0], None)
            return True

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._data)
