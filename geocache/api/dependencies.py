"""Request-scoped access to the handles built in ``main.lifespan``."""

from __future__ import annotations

from fastapi import Request

from geocache.services.geocoder import GoogleGeocoder
from geocache.services.response_cache import ResponseCache
from geocache.services.store import CacheStore


def get_store(request: Request) -> CacheStore:
    return request.app.state.cache_store


def get_response_cache(request: Request) -> ResponseCache:
    return request.app.state.response_cache


def get_geocoder(request: Request) -> GoogleGeocoder:
    return request.app.state.geocoder
