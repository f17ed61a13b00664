"""Batch maintenance: warmup forecasting and TTL-to-perpetual migration.

Neither operation ever calls the geocoding provider.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from geocache.exceptions import InvalidLookupRequest, PatternMigrationUnsupported
from geocache.models import LookupRequest, TtlStatus
from geocache.services.cache_keys import DEFAULT_PRECISION, key_for_request
from geocache.services.store import CacheStore

logger = logging.getLogger("geocache.cache.maintenance")


class WarmupEstimate(BaseModel):
    total: int = 0
    already_cached: int = 0
    needs_resolution: int = 0
    errors: list[str] = Field(default_factory=list)


class MigrationReport(BaseModel):
    total: int = 0
    converted: int = 0
    already_perpetual: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.converted + self.already_perpetual


async def estimate_warmup(
    store: CacheStore,
    requests: Iterable[LookupRequest | Mapping[str, Any]],
    precision: int = DEFAULT_PRECISION,
    user_scope: str | None = None,
) -> WarmupEstimate:
    """Count how many candidate lookups are already cached.

    Only key existence is checked. Malformed candidates are reported per
    item and excluded from both counts. With the store unavailable every
    valid candidate counts as needing resolution.
    """
    estimate = WarmupEstimate()
    for index, candidate in enumerate(requests):
        estimate.total += 1
        try:
            request = (
                candidate
                if isinstance(candidate, LookupRequest)
                else LookupRequest.from_location(candidate, user_scope=user_scope)
            )
            key = key_for_request(request, precision)
        except (InvalidLookupRequest, PydanticValidationError) as exc:
            estimate.errors.append(f"#{index}: {exc}")
            continue

        if await store.ttl_remaining(key) is TtlStatus.ABSENT:
            estimate.needs_resolution += 1
            logger.debug("Location needs geocoding: %s", key)
        else:
            estimate.already_cached += 1
            logger.debug("Location already cached: %s", key)

    logger.info(
        "Cache warmup analysis completed",
        extra={
            "total": estimate.total,
            "already_cached": estimate.already_cached,
            "needs_resolution": estimate.needs_resolution,
            "invalid": len(estimate.errors),
        },
    )
    return estimate


async def migrate_expiring_to_perpetual(
    store: CacheStore, keys: Iterable[str] | str
) -> MigrationReport:
    """Remove the expiration from each listed key.

    The backend cannot enumerate keys, so a single string (a pattern such as
    ``"reverse:*"``) is rejected with ``PatternMigrationUnsupported``.
    """
    if isinstance(keys, str):
        raise PatternMigrationUnsupported(keys)

    report = MigrationReport()
    for key in keys:
        report.total += 1
        if any(ch in key for ch in "*?["):
            report.failed += 1
            report.errors.append(f"{key}: glob patterns are not supported, list keys explicitly")
            continue

        ttl = await store.ttl_remaining(key)
        if ttl is TtlStatus.NO_EXPIRATION:
            report.already_perpetual += 1
        elif ttl is TtlStatus.ABSENT:
            report.failed += 1
            report.errors.append(f"{key}: not found or cache unavailable")
        elif await store.remove_expiration(key):
            report.converted += 1
        else:
            report.failed += 1
            report.errors.append(f"{key}: failed to remove expiration")

    logger.info(
        "Perpetual migration finished",
        extra={
            "total": report.total,
            "converted": report.converted,
            "already_perpetual": report.already_perpetual,
            "failed": report.failed,
        },
    )
    return report
