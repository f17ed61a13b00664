"""In-memory sliding-window rate limiter."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable

from geocache.config import settings


class SlidingWindowRateLimiter:
    """Thread-safe per-caller sliding-window rate limiter.

    Each bucket holds the monotonic timestamps of the requests admitted in
    the last ``window_seconds``. Rejected requests are not recorded, so a
    caller that keeps hammering does not push its own reset further out.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._buckets: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def is_allowed(self, key: str) -> tuple[bool, dict[str, str]]:
        """Check whether *key* may proceed.

        Returns ``(allowed, headers)`` where *headers* is a dict of
        ``X-RateLimit-*`` headers to attach to the response.
        """
        now = self._clock()
        window_start = now - self._window

        with self._lock:
            dq = self._buckets.setdefault(key, deque())

            while dq and dq[0] <= window_start:
                dq.popleft()

            allowed = len(dq) < self._max_requests
            if allowed:
                dq.append(now)

            remaining = max(self._max_requests - len(dq), 0)
            reset = int(self._window - (now - dq[0])) if dq else self._window

            headers = {
                "X-RateLimit-Limit": str(self._max_requests),
                "X-RateLimit-Remaining": str(remaining),
                "X-RateLimit-Reset": str(reset),
            }
            if not allowed:
                headers["Retry-After"] = str(max(reset, 1))
            return allowed, headers

    @property
    def active_keys(self) -> int:
        """Buckets that still hold a request inside the window."""
        window_start = self._clock() - self._window
        with self._lock:
            return sum(1 for dq in self._buckets.values() if dq and dq[-1] > window_start)

    def clear(self) -> None:
        """Remove all tracked state (useful in tests)."""
        with self._lock:
            self._buckets.clear()


# Module-level singleton initialized from config
rate_limiter = SlidingWindowRateLimiter(
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window,
)
