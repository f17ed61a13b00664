"""Core value types shared by the cache subsystem."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from geocache.exceptions import InvalidLookupRequest

# TTL passed to ``CacheStore.set`` to store an entry with no deadline.
NO_EXPIRATION = 0

PayloadT = TypeVar("PayloadT")


class OperationKind(str, Enum):
    """Cache namespace; also the key prefix."""

    REVERSE = "reverse"
    FORWARD = "forward"


class TtlStatus(str, Enum):
    """Non-numeric answers from ``CacheStore.ttl_remaining``."""

    NO_EXPIRATION = "no-expiration"
    ABSENT = "absent"


TtlRemaining = int | TtlStatus


class LookupRequest(BaseModel):
    """One logical geocoding lookup, before normalization."""

    operation_kind: OperationKind
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    user_scope: str | None = None

    @classmethod
    def from_location(
        cls, location: Mapping[str, Any], user_scope: str | None = None
    ) -> LookupRequest:
        """Build a request from a loose ``{latitude, longitude}`` / ``{address}`` dict.

        ``lat``/``lng`` are accepted as aliases. Raises ``InvalidLookupRequest``
        when neither shape is present.
        """
        if not isinstance(location, Mapping):
            raise InvalidLookupRequest(f"Invalid location format: {location!r}")
        lat = location.get("latitude", location.get("lat"))
        lng = location.get("longitude", location.get("lng"))
        if lat is not None and lng is not None:
            return cls(
                operation_kind=OperationKind.REVERSE,
                latitude=lat,
                longitude=lng,
                user_scope=user_scope,
            )
        if location.get("address"):
            return cls(
                operation_kind=OperationKind.FORWARD,
                address=location["address"],
                user_scope=user_scope,
            )
        raise InvalidLookupRequest(f"Invalid location format: {dict(location)!r}")


class LookupResult(BaseModel, Generic[PayloadT]):
    """What the wrapped computation reports back.

    Only ``success=True`` results are cacheable.
    """

    success: bool
    payload: PayloadT | None = None
    failure_reason: str | None = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheMetadata(BaseModel):
    """Provenance stamped on every stored entry."""

    model_config = ConfigDict(populate_by_name=True)

    cached_at: datetime = Field(alias="cachedAt")
    perpetual: bool
    operation_kind: str = Field(alias="operationKind")
    declared_ttl_seconds: int = Field(alias="declaredTtlSeconds")


class CacheEntry(BaseModel):
    """A stored document: opaque payload plus embedded metadata.

    Persisted as ``{"payload": ..., "cacheMetadata": {...}}`` so any reader
    of the raw store can recover provenance.
    """

    model_config = ConfigDict(populate_by_name=True)

    payload: Any
    metadata: CacheMetadata = Field(alias="cacheMetadata")

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
