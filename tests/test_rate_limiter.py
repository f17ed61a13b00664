"""Tests for the sliding-window rate limiter and its HTTP wiring."""

from __future__ import annotations

import hashlib
from unittest.mock import patch

import pytest

from geocache.services.metrics import metrics
from geocache.services.rate_limiter import SlidingWindowRateLimiter, rate_limiter


class TestSlidingWindow:
    def test_allows_up_to_limit(self, clock):
        rl = SlidingWindowRateLimiter(max_requests=3, window_seconds=60, clock=clock)
        results = [rl.is_allowed("key-a")[0] for _ in range(4)]
        assert results == [True, True, True, False]

    def test_remaining_counts_down(self, clock):
        rl = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)
        _, first = rl.is_allowed("key-a")
        _, second = rl.is_allowed("key-a")
        _, third = rl.is_allowed("key-a")
        assert first["X-RateLimit-Remaining"] == "1"
        assert second["X-RateLimit-Remaining"] == "0"
        assert third["X-RateLimit-Remaining"] == "0"
        assert first["X-RateLimit-Limit"] == "2"
        assert "Retry-After" not in second
        assert third["Retry-After"] == third["X-RateLimit-Reset"]

    def test_different_keys_independent(self, clock):
        rl = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
        assert rl.is_allowed("key-a")[0] is True
        assert rl.is_allowed("key-b")[0] is True

    def test_window_slides(self, clock):
        rl = SlidingWindowRateLimiter(max_requests=2, window_seconds=900, clock=clock)
        rl.is_allowed("key-a")
        clock.advance(600)
        rl.is_allowed("key-a")
        assert rl.is_allowed("key-a")[0] is False

        # the first request ages out, the second is still inside the window
        clock.advance(300)
        allowed, headers = rl.is_allowed("key-a")
        assert allowed is True
        assert headers["X-RateLimit-Reset"] == "600"
        assert rl.is_allowed("key-a")[0] is False

    def test_rejections_do_not_extend_the_window(self, clock):
        rl = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
        rl.is_allowed("key-a")
        for _ in range(5):
            clock.advance(10)
            assert rl.is_allowed("key-a")[0] is False
        clock.advance(10)
        assert rl.is_allowed("key-a")[0] is True

    def test_active_keys_ignores_expired_buckets(self, clock):
        rl = SlidingWindowRateLimiter(max_requests=5, window_seconds=60, clock=clock)
        rl.is_allowed("key-a")
        clock.advance(30)
        rl.is_allowed("key-b")
        assert rl.active_keys == 2
        clock.advance(31)
        assert rl.active_keys == 1

    def test_clear_resets_state(self, clock):
        rl = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
        rl.is_allowed("key-a")
        assert rl.is_allowed("key-a")[0] is False
        rl.clear()
        assert rl.is_allowed("key-a")[0] is True


# ---------------------------------------------------------------------------
# Integration: 429 with headers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rate_limit_returns_429(client):
    rate_limiter._max_requests = 2
    try:
        for _ in range(2):
            resp = await client.post("/v1/geocoding/forward", json={"address": "Paris"})
            assert resp.status_code == 200
            assert resp.headers["X-RateLimit-Limit"] == "2"

        resp = await client.post("/v1/geocoding/forward", json={"address": "Paris"})
        assert resp.status_code == 429
        assert resp.headers["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in resp.headers
        assert "Retry-After" in resp.headers
        body = resp.json()
        assert body["error"] is True
        assert body["detail"] == "Too many requests, please try again later."
        assert metrics.rate_limited == 1
    finally:
        rate_limiter._max_requests = 100


@pytest.mark.asyncio
async def test_cache_routes_share_the_limit(client):
    rate_limiter._max_requests = 1
    try:
        first = await client.get("/v1/cache/stats")
        second = await client.post("/v1/geocoding/forward", json={"address": "Paris"})
    finally:
        rate_limiter._max_requests = 100
    assert first.status_code == 200
    assert second.status_code == 429


@pytest.mark.asyncio
async def test_health_and_metrics_are_exempt(client):
    rate_limiter._max_requests = 1
    try:
        await client.post("/v1/geocoding/forward", json={"address": "Paris"})
        for _ in range(3):
            assert (await client.get("/health")).status_code == 200
            resp = await client.get("/metrics")
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers
    finally:
        rate_limiter._max_requests = 100


@pytest.mark.asyncio
async def test_buckets_are_per_api_key(client):
    rate_limiter._max_requests = 1
    try:
        with patch("geocache.config.settings.auth_enabled", True), \
             patch("geocache.config.settings.api_keys", "key-one,key-two"):
            one = await client.post(
                "/v1/geocoding/forward", json={"address": "Paris"}, headers={"X-API-Key": "key-one"}
            )
            two = await client.post(
                "/v1/geocoding/forward", json={"address": "Paris"}, headers={"X-API-Key": "key-two"}
            )
            again = await client.post(
                "/v1/geocoding/forward", json={"address": "Paris"}, headers={"X-API-Key": "key-one"}
            )
    finally:
        rate_limiter._max_requests = 100

    assert one.status_code == 200
    assert two.status_code == 200
    assert again.status_code == 429
    assert hashlib.sha256(b"key-one").hexdigest() in rate_limiter._buckets


@pytest.mark.asyncio
async def test_metrics_reports_rate_limiter(client):
    await client.post("/v1/geocoding/forward", json={"address": "Paris"})
    body = (await client.get("/metrics")).json()
    assert body["rate_limiter"] == {"active_keys": 1}
    assert body["rate_limited"] == 0
