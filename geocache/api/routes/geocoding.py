from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from geocache.api.auth import enforce_rate_limit, get_user_scope
from geocache.api.dependencies import get_geocoder, get_response_cache
from geocache.api.schemas import (
    ErrorResponse,
    ForwardGeocodeRequest,
    GeocodeResponse,
    ReverseGeocodeRequest,
)
from geocache.config import settings
from geocache.models import LookupRequest, LookupResult, OperationKind, utcnow
from geocache.services.cache_keys import key_for_request
from geocache.services.geocoder import GoogleGeocoder
from geocache.services.introspection import cache_status
from geocache.services.response_cache import CacheOutcome, ResponseCache

logger = logging.getLogger("geocache.routes.geocoding")

router = APIRouter(
    prefix="/v1/geocoding",
    tags=["geocoding"],
    dependencies=[Depends(enforce_rate_limit)],
)

_NOT_FOUND = {404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}


def _envelope(result: LookupResult, message: str) -> LookupResult:
    """Wrap a successful provider result in the response body that gets cached."""
    if not result.success:
        return result
    return LookupResult(
        success=True, payload={"success": True, "message": message, "data": result.payload}
    )


def _finish(outcome: CacheOutcome, response: Response) -> dict:
    cache_header = outcome.status.upper()
    if not outcome.result.success:
        raise HTTPException(
            status_code=404,
            detail=outcome.result.failure_reason,
            headers={"X-Cache": cache_header},
        )
    response.headers["X-Cache"] = cache_header
    return outcome.as_document()


@router.post(
    "/reverse",
    summary="Coordinates to address",
    response_model=GeocodeResponse,
    response_model_exclude_none=True,
    responses=_NOT_FOUND,
)
async def reverse_geocode(
    body: ReverseGeocodeRequest,
    response: Response,
    user_scope: str | None = Depends(get_user_scope),
    cache: ResponseCache = Depends(get_response_cache),
    geocoder: GoogleGeocoder = Depends(get_geocoder),
):
    """Reverse-geocode a point; near-identical points share one cached answer."""
    lookup = LookupRequest(
        operation_kind=OperationKind.REVERSE,
        latitude=body.latitude,
        longitude=body.longitude,
        user_scope=user_scope,
    )
    key = key_for_request(lookup, settings.cache_coordinate_precision)

    async def compute() -> LookupResult:
        result = await geocoder.reverse_geocode(body.latitude, body.longitude)
        return _envelope(result, "Address retrieved successfully")

    outcome = await cache.with_cache(key, compute, operation_kind=OperationKind.REVERSE)
    logger.info(
        "Reverse geocode %s",
        outcome.status,
        extra={
            "cache_key": key,
            "platform": body.platform or "N/A",
            "app_version": body.appVersion or "N/A",
        },
    )
    return _finish(outcome, response)


@router.post(
    "/forward",
    summary="Address to coordinates",
    response_model=GeocodeResponse,
    response_model_exclude_none=True,
    responses=_NOT_FOUND,
)
async def forward_geocode(
    body: ForwardGeocodeRequest,
    response: Response,
    user_scope: str | None = Depends(get_user_scope),
    cache: ResponseCache = Depends(get_response_cache),
    geocoder: GoogleGeocoder = Depends(get_geocoder),
):
    """Geocode a free-text address; addresses are cached verbatim after trimming."""
    lookup = LookupRequest(
        operation_kind=OperationKind.FORWARD, address=body.address, user_scope=user_scope
    )
    key = key_for_request(lookup, settings.cache_coordinate_precision)

    async def compute() -> LookupResult:
        result = await geocoder.geocode(body.address)
        return _envelope(result, "Coordinates retrieved successfully")

    outcome = await cache.with_cache(key, compute, operation_kind=OperationKind.FORWARD)
    logger.info("Forward geocode %s", outcome.status, extra={"cache_key": key})
    return _finish(outcome, response)


@router.get("/status", summary="Geocoding service status")
async def geocoding_status(cache: ResponseCache = Depends(get_response_cache)):
    return {
        "success": True,
        "message": "Geocoding service is operational",
        "timestamp": utcnow().isoformat(),
        "services": {
            "geocoder": "configured" if settings.google_maps_api_key else "missing api key",
            "cache": await cache_status(cache.store),
        },
    }
