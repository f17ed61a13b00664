from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from geocache.api.dependencies import get_geocoder, get_response_cache, get_store
from geocache.api.main import app
from geocache.models import LookupResult
from geocache.services.geocoder import GoogleGeocoder
from geocache.services.memory_store import MemoryStore
from geocache.services.metrics import metrics
from geocache.services.rate_limiter import rate_limiter
from geocache.services.response_cache import ResponseCache

NYC_REVERSE = {
    "coordinates": {"latitude": 40.71, "longitude": -74.01},
    "formatted_address": "New York, NY, USA",
    "place_id": "ChIJOwg_06VPwokRYv534QaPC8g",
    "address_components": {
        "locality": "New York",
        "administrative_area_level_1": "New York",
        "country": "United States",
        "country_code": "US",
    },
    "geometry": {"location": {"lat": 40.7127753, "lng": -74.0059728}},
    "types": ["locality", "political"],
}

MOUNTAIN_VIEW_FORWARD = {
    "address": "1600 Amphitheatre Pkwy, Mountain View, CA",
    "formatted_address": "1600 Amphitheatre Pkwy, Mountain View, CA 94043, USA",
    "place_id": "ChIJF4Yf2Ry7j4AR__1AkytDyAE",
    "geometry": {"location": {"lat": 37.4224857, "lng": -122.0855846}},
    "types": ["street_address"],
}


class ManualClock:
    """Monotonic stand-in that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    rate_limiter.clear()
    yield
    rate_limiter.clear()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
async def store(clock):
    s = MemoryStore(clock=clock)
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def response_cache(store):
    return ResponseCache(store)


@pytest.fixture
def geocoder():
    g = MagicMock(spec=GoogleGeocoder)
    g.reverse_geocode = AsyncMock(return_value=LookupResult(success=True, payload=NYC_REVERSE))
    g.geocode = AsyncMock(
        return_value=LookupResult(success=True, payload=MOUNTAIN_VIEW_FORWARD)
    )
    return g


@pytest.fixture
async def client(store, response_cache, geocoder):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_response_cache] = lambda: response_cache
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
