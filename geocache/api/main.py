from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from geocache import __version__
from geocache.api.dependencies import get_store
from geocache.api.exception_handlers import (
    http_exception_handler,
    invalid_request_handler,
    provider_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from geocache.api.middleware import RequestLoggingMiddleware
from geocache.api.routes.cache_admin import router as cache_router
from geocache.api.routes.geocoding import router as geocoding_router
from geocache.api.schemas import HealthResponse
from geocache.config import settings
from geocache.exceptions import (
    GeocodingProviderError,
    InvalidLookupRequest,
    PatternMigrationUnsupported,
)
from geocache.logging_config import setup_logging
from geocache.services.geocoder import GoogleGeocoder
from geocache.services.introspection import cache_status
from geocache.services.metrics import metrics
from geocache.services.rate_limiter import rate_limiter
from geocache.services.response_cache import ResponseCache
from geocache.services.store import CacheStore, build_store

logger = logging.getLogger("geocache")

_DESCRIPTION = """\
Caching proxy in front of the Google Maps Geocoding API.

Reverse lookups are keyed on coordinates rounded to a fixed number of
decimals, so nearby points share one paid provider call. By default entries
never expire. When the cache backend is down every request goes straight to
the provider; responses are the same, only slower.

Responses served from the cache carry `cached: true` and a `cacheMetadata`
block (`cachedAt`, `isPerpetual`, `cacheAge`, `servedAt`).

Geocoding and cache routes are rate limited per API key (per client IP when
authentication is off); `/health` and `/metrics` are exempt. Limited responses
carry `X-RateLimit-*` headers; a rejected request gets 429.
"""

_OPENAPI_TAGS = [
    {"name": "system", "description": "Health checks and metrics."},
    {"name": "geocoding", "description": "Forward and reverse lookups, served through the cache."},
    {
        "name": "cache",
        "description": "Operational tooling: key inspection, repair, diagnostics, "
        "warmup forecasting and perpetual migration.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_format)

    store = build_store(settings)
    await store.init()
    app.state.cache_store = store
    app.state.response_cache = ResponseCache(store, default_ttl=settings.cache_default_ttl)
    app.state.geocoder = GoogleGeocoder(
        settings.google_maps_api_key,
        url=settings.google_geocode_url,
        timeout=settings.geocoder_timeout,
        precision=settings.cache_coordinate_precision,
    )
    if not settings.google_maps_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY is not set; cache misses will fail")

    yield

    await app.state.response_cache.drain()
    await store.close()


app = FastAPI(
    title="Geocode Cache API",
    version=__version__,
    summary="Perpetual cache for paid geocoding lookups",
    description=_DESCRIPTION,
    openapi_tags=_OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(InvalidLookupRequest, invalid_request_handler)
app.add_exception_handler(PatternMigrationUnsupported, invalid_request_handler)
app.add_exception_handler(GeocodingProviderError, provider_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

origins = [o.strip() for o in settings.cors_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(geocoding_router)
app.include_router(cache_router)


@app.get(
    "/health",
    tags=["system"],
    summary="Health check",
    description="Always 200 while the process serves requests; `status` is "
    "'degraded' when the cache backend is unreachable.",
    response_model=HealthResponse,
)
async def health(store: CacheStore = Depends(get_store)):
    cache = await cache_status(store)
    return {
        "status": "ok" if cache["connected"] else "degraded",
        "cache": {**cache, "hit_rate": metrics.hit_rate()},
        "uptime_seconds": metrics.uptime_seconds(),
    }


@app.get(
    "/metrics",
    tags=["system"],
    summary="Application metrics",
    description="Request counters, latency percentiles, cache, provider and rate limiter counters.",
)
async def get_metrics():
    snap = metrics.snapshot()
    snap["rate_limiter"] = {"active_keys": rate_limiter.active_keys}
    return snap
