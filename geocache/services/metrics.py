"""In-memory counters for requests, cache traffic and provider calls."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


@dataclass
class MetricsCollector:
    """Process-local metrics, guarded by one ``threading.Lock``.

    Latency samples are capped at ``_MAX_LATENCY_SAMPLES``; on overflow the
    oldest half is dropped.
    """

    _MAX_LATENCY_SAMPLES: int = field(default=10_000, repr=False)

    total_requests: int = field(default=0, init=False)
    status_codes: dict[int, int] = field(default_factory=dict, init=False)
    cache_hits: int = field(default=0, init=False)
    cache_misses: int = field(default=0, init=False)
    cache_bypasses: int = field(default=0, init=False)
    cache_writes: int = field(default=0, init=False)
    cache_write_failures: int = field(default=0, init=False)
    provider_ok: int = field(default=0, init=False)
    provider_no_result: int = field(default=0, init=False)
    provider_failures: int = field(default=0, init=False)
    rate_limited: int = field(default=0, init=False)

    _latencies: list[float] = field(default_factory=list, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _start_time: float = field(default_factory=time.monotonic, init=False, repr=False)

    # -- Counters ----------------------------------------------------------

    def inc_request(self, status_code: int) -> None:
        with self._lock:
            self.total_requests += 1
            self.status_codes[status_code] = self.status_codes.get(status_code, 0) + 1

    def inc_cache(self, outcome: str) -> None:
        """Count a cache lookup: ``hit``, ``miss`` or ``bypass``."""
        with self._lock:
            if outcome == "hit":
                self.cache_hits += 1
            elif outcome == "miss":
                self.cache_misses += 1
            else:
                self.cache_bypasses += 1

    def inc_cache_write(self, success: bool) -> None:
        with self._lock:
            if success:
                self.cache_writes += 1
            else:
                self.cache_write_failures += 1

    def inc_provider(self, outcome: str) -> None:
        """Count a provider call: ``ok``, ``no_result`` or ``failure``."""
        with self._lock:
            if outcome == "ok":
                self.provider_ok += 1
            elif outcome == "no_result":
                self.provider_no_result += 1
            else:
                self.provider_failures += 1

    def inc_rate_limited(self) -> None:
        with self._lock:
            self.rate_limited += 1

    # -- Latency -----------------------------------------------------------

    def record_latency(self, ms: float) -> None:
        with self._lock:
            self._latencies.append(ms)
            if len(self._latencies) > self._MAX_LATENCY_SAMPLES:
                self._latencies = self._latencies[-(self._MAX_LATENCY_SAMPLES // 2):]

    def _percentiles_unlocked(self) -> dict[str, float]:
        if not self._latencies:
            return {"p50": 0.0, "p95": 0.0, "p99": 0.0}
        s = sorted(self._latencies)
        n = len(s)
        return {
            name: round(s[int(min(n * q, n - 1))], 2)
            for name, q in (("p50", 0.50), ("p95", 0.95), ("p99", 0.99))
        }

    # -- Snapshot / reset --------------------------------------------------

    def hit_rate(self) -> float:
        with self._lock:
            return self._hit_rate_unlocked()

    def _hit_rate_unlocked(self) -> float:
        total = self.cache_hits + self.cache_misses
        return round(self.cache_hits / total, 4) if total else 0.0

    def uptime_seconds(self) -> float:
        return round(time.monotonic() - self._start_time, 2)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "uptime_seconds": round(time.monotonic() - self._start_time, 2),
                "total_requests": self.total_requests,
                "status_codes": dict(self.status_codes),
                "cache": {
                    "hits": self.cache_hits,
                    "misses": self.cache_misses,
                    "bypasses": self.cache_bypasses,
                    "writes": self.cache_writes,
                    "write_failures": self.cache_write_failures,
                    "hit_rate": self._hit_rate_unlocked(),
                },
                "provider": {
                    "ok": self.provider_ok,
                    "no_result": self.provider_no_result,
                    "failures": self.provider_failures,
                },
                "rate_limited": self.rate_limited,
                "latency_ms": self._percentiles_unlocked(),
            }

    def reset(self) -> None:
        with self._lock:
            self.total_requests = 0
            self.status_codes.clear()
            self.cache_hits = 0
            self.cache_misses = 0
            self.cache_bypasses = 0
            self.cache_writes = 0
            self.cache_write_failures = 0
            self.provider_ok = 0
            self.provider_no_result = 0
            self.provider_failures = 0
            self.rate_limited = 0
            self._latencies.clear()
            self._start_time = time.monotonic()


metrics = MetricsCollector()
