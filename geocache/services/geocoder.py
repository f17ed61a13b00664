from __future__ import annotations

import logging
from typing import Any

import httpx

from geocache.exceptions import GeocodingProviderError
from geocache.models import LookupResult
from geocache.services.cache_keys import DEFAULT_PRECISION, quantize_coordinates
from geocache.services.metrics import metrics

logger = logging.getLogger(__name__)

REVERSE_RESULT_TYPES = (
    "street_address",
    "route",
    "locality",
    "administrative_area_level_1",
    "country",
    "postal_code",
)

_COMPONENT_FIELDS = (
    "street_number",
    "route",
    "locality",
    "administrative_area_level_1",
    "administrative_area_level_2",
    "country",
    "postal_code",
    "sublocality",
    "neighborhood",
)


def parse_address_components(components: list[dict[str, Any]]) -> dict[str, str | None]:
    """Flatten Google's typed component list into one field per component type."""
    by_type: dict[str, dict[str, Any]] = {}
    for component in components or []:
        for component_type in component.get("types", []):
            by_type[component_type] = component

    parsed = {name: by_type.get(name, {}).get("long_name") for name in _COMPONENT_FIELDS}
    parsed["country_code"] = by_type.get("country", {}).get("short_name")
    return parsed


def _result_data(result: dict[str, Any]) -> dict[str, Any]:
    geometry = result.get("geometry", {})
    return {
        "formatted_address": result.get("formatted_address"),
        "place_id": result.get("place_id"),
        "address_components": parse_address_components(result.get("address_components", [])),
        "geometry": {
            "location": geometry.get("location"),
            "location_type": geometry.get("location_type"),
            "bounds": geometry.get("bounds"),
            "viewport": geometry.get("viewport"),
        },
        "types": result.get("types", []),
    }


class GoogleGeocoder:
    """Google Maps Geocoding API client.

    ``ZERO_RESULTS`` comes back as an unsuccessful ``LookupResult``; every
    other non-``OK`` status, and any transport error, raises
    ``GeocodingProviderError``.
    """

    def __init__(
        self,
        api_key: str,
        url: str = "https://maps.googleapis.com/maps/api/geocode/json",
        timeout: float = 15.0,
        precision: int = DEFAULT_PRECISION,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._timeout = timeout
        self._precision = precision

    async def reverse_geocode(self, latitude: float, longitude: float) -> LookupResult[dict]:
        lat, lng = quantize_coordinates(latitude, longitude, self._precision)
        logger.debug("Reverse geocoding rounded coordinates %s,%s", lat, lng)

        results = await self._request(
            {"latlng": f"{lat},{lng}", "result_type": "|".join(REVERSE_RESULT_TYPES)}
        )
        coordinates = {"latitude": lat, "longitude": lng}
        if not results:
            metrics.inc_provider("no_result")
            return LookupResult(
                success=False,
                failure_reason="No address found for the provided coordinates",
                payload={"coordinates": coordinates},
            )

        metrics.inc_provider("ok")
        return LookupResult(
            success=True, payload={"coordinates": coordinates, **_result_data(results[0])}
        )

    async def geocode(self, address: str) -> LookupResult[dict]:
        results = await self._request({"address": address})
        if not results:
            metrics.inc_provider("no_result")
            return LookupResult(
                success=False,
                failure_reason="No coordinates found for the provided address",
                payload={"address": address},
            )

        metrics.inc_provider("ok")
        return LookupResult(success=True, payload={"address": address, **_result_data(results[0])})

    async def _request(self, params: dict[str, str]) -> list[dict[str, Any]]:
        if not self._api_key:
            metrics.inc_provider("failure")
            raise GeocodingProviderError("REQUEST_DENIED", "GOOGLE_MAPS_API_KEY is not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(self._url, params={**params, "key": self._api_key})
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            metrics.inc_provider("failure")
            logger.error("Google Maps request failed: %s", exc)
            raise GeocodingProviderError("HTTP_ERROR", str(exc)) from exc

        try:
            data = resp.json()
        except ValueError as exc:
            metrics.inc_provider("failure")
            logger.error("Google Maps returned a non-JSON response (HTTP %s)", resp.status_code)
            raise GeocodingProviderError("INVALID_RESPONSE", "response body is not JSON") from exc

        status = data.get("status", "UNKNOWN_ERROR")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            metrics.inc_provider("failure")
            logger.error("Google Maps API error: %s", status)
            raise GeocodingProviderError(status, data.get("error_message", ""))
        return data.get("results", [])
