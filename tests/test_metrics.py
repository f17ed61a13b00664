"""Tests for the MetricsCollector."""

from __future__ import annotations

import threading

from geocache.services.metrics import MetricsCollector


def _fresh() -> MetricsCollector:
    return MetricsCollector()


def test_inc_request():
    m = _fresh()
    m.inc_request(200)
    m.inc_request(200)
    m.inc_request(404)
    assert m.total_requests == 3
    assert m.status_codes == {200: 2, 404: 1}


def test_inc_cache_outcomes():
    m = _fresh()
    m.inc_cache("hit")
    m.inc_cache("hit")
    m.inc_cache("miss")
    m.inc_cache("bypass")
    assert m.cache_hits == 2
    assert m.cache_misses == 1
    assert m.cache_bypasses == 1


def test_hit_rate_ignores_bypasses():
    m = _fresh()
    assert m.hit_rate() == 0.0
    m.inc_cache("hit")
    m.inc_cache("miss")
    m.inc_cache("miss")
    m.inc_cache("miss")
    m.inc_cache("bypass")
    assert m.hit_rate() == 0.25


def test_inc_cache_write():
    m = _fresh()
    m.inc_cache_write(True)
    m.inc_cache_write(False)
    m.inc_cache_write(False)
    assert m.cache_writes == 1
    assert m.cache_write_failures == 2


def test_inc_provider():
    m = _fresh()
    m.inc_provider("ok")
    m.inc_provider("no_result")
    m.inc_provider("failure")
    assert (m.provider_ok, m.provider_no_result, m.provider_failures) == (1, 1, 1)


def test_latency_percentiles():
    m = _fresh()
    for ms in range(1, 101):
        m.record_latency(float(ms))
    lat = m.snapshot()["latency_ms"]
    assert lat["p50"] == 51.0
    assert lat["p95"] == 96.0
    assert lat["p99"] == 100.0


def test_latency_samples_capped():
    m = MetricsCollector(_MAX_LATENCY_SAMPLES=10)
    for ms in range(11):
        m.record_latency(float(ms))
    assert len(m._latencies) == 5


def test_snapshot_shape():
    m = _fresh()
    m.inc_cache("hit")
    snap = m.snapshot()
    assert set(snap) == {
        "uptime_seconds",
        "total_requests",
        "status_codes",
        "cache",
        "provider",
        "rate_limited",
        "latency_ms",
    }
    assert snap["cache"]["hits"] == 1
    assert snap["cache"]["hit_rate"] == 1.0


def test_reset():
    m = _fresh()
    m.inc_request(200)
    m.inc_cache("miss")
    m.record_latency(5.0)
    m.reset()
    snap = m.snapshot()
    assert snap["total_requests"] == 0
    assert snap["cache"]["misses"] == 0
    assert snap["latency_ms"]["p50"] == 0.0


def test_thread_safety():
    m = _fresh()

    def worker():
        for _ in range(1000):
            m.inc_cache("hit")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert m.cache_hits == 8000
