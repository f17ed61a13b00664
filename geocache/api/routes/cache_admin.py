"""Operational endpoints: cache stats, key inspection, repair and batch maintenance."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from geocache.api.auth import enforce_rate_limit, get_user_scope
from geocache.api.dependencies import get_store
from geocache.api.schemas import DeleteKeyResponse, MigrateRequest, WarmupRequest
from geocache.config import settings
from geocache.services.diagnostics import CacheDiagnostics, KeyInspection
from geocache.services.introspection import KeyDescription, cache_status, describe
from geocache.services.maintenance import (
    MigrationReport,
    WarmupEstimate,
    estimate_warmup,
    migrate_expiring_to_perpetual,
)
from geocache.services.metrics import metrics
from geocache.services.store import CacheStore

router = APIRouter(
    prefix="/v1/cache",
    tags=["cache"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("/stats", summary="Cache backend status and hit counters")
async def cache_stats(store: CacheStore = Depends(get_store)):
    return {
        **await cache_status(store),
        "perpetual": settings.cache_perpetual,
        "default_ttl_seconds": settings.cache_default_ttl,
        "coordinate_precision": settings.cache_coordinate_precision,
        "counters": metrics.snapshot()["cache"],
    }


@router.get("/keys/{key}", response_model=KeyDescription, summary="Describe one cache key")
async def describe_key(key: str, store: CacheStore = Depends(get_store)):
    description = await describe(store, key)
    if description is None:
        raise HTTPException(status_code=404, detail=f"Cache key not found: {key}")
    return description


@router.get(
    "/keys/{key}/inspect",
    response_model=KeyInspection,
    summary="Raw value and decode status of one cache key",
)
async def inspect_key(key: str, store: CacheStore = Depends(get_store)):
    return await CacheDiagnostics(store).inspect_key(key)


@router.delete(
    "/keys/{key}",
    response_model=DeleteKeyResponse,
    summary="Delete a suspect cache key (destructive)",
)
async def repair_key(key: str, store: CacheStore = Depends(get_store)):
    return {"key": key, "deleted": await CacheDiagnostics(store).repair_key(key)}


@router.post("/diagnostics", summary="Write/read/delete round trip against the backend")
async def run_diagnostics(store: CacheStore = Depends(get_store)):
    report = await CacheDiagnostics(store).run_round_trip_check()
    return {**report.model_dump(), "passed": report.passed}


@router.post("/warmup", response_model=WarmupEstimate, summary="Forecast cache hits for candidates")
async def warmup(
    body: WarmupRequest,
    store: CacheStore = Depends(get_store),
    user_scope: str | None = Depends(get_user_scope),
):
    return await estimate_warmup(
        store,
        body.locations,
        precision=settings.cache_coordinate_precision,
        user_scope=user_scope,
    )


@router.post("/migrate", response_model=MigrationReport, summary="Make listed keys perpetual")
async def migrate(body: MigrateRequest, store: CacheStore = Depends(get_store)):
    if body.pattern is not None:
        # Raises PatternMigrationUnsupported, rendered as 400
        return await migrate_expiring_to_perpetual(store, body.pattern)
    if not body.keys:
        raise HTTPException(status_code=400, detail="Provide a non-empty 'keys' list.")
    return await migrate_expiring_to_perpetual(store, body.keys)
