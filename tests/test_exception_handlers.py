"""Tests for global exception handlers."""

from __future__ import annotations

import pytest

from geocache.exceptions import InvalidLookupRequest


@pytest.mark.asyncio
async def test_404_returns_structured_json(client):
    """GET /nonexistent -> structured JSON 404, not HTML."""
    resp = await client.get("/nonexistent")
    assert resp.status_code == 404
    body = resp.json()
    assert body["error"] is True
    assert body["status_code"] == 404
    assert "detail" in body


@pytest.mark.asyncio
async def test_422_returns_structured_json(client):
    """Missing body fields -> structured JSON error, JSON-safe."""
    resp = await client.post("/v1/geocoding/forward", json={"address": "   "})
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] is True
    assert body["status_code"] == 422
    assert all("ctx" not in err for err in body["detail"])


@pytest.mark.asyncio
async def test_invalid_lookup_is_400(client, geocoder):
    geocoder.geocode.side_effect = InvalidLookupRequest("Address is required")
    resp = await client.post("/v1/geocoding/forward", json={"address": "Paris"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Address is required"


@pytest.mark.asyncio
async def test_405_keeps_structure(client):
    resp = await client.get("/v1/geocoding/reverse")
    assert resp.status_code == 405
    assert resp.json()["status_code"] == 405
