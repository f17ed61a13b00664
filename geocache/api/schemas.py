"""Pydantic request and response models for the HTTP API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Structured error returned by all non-2xx responses."""

    error: bool = Field(True, description="Always true for error responses")
    status_code: int = Field(..., description="HTTP status code")
    detail: Any = Field(..., description="Human-readable error message")


# ---------------------------------------------------------------------------
# /health
# ---------------------------------------------------------------------------


class CacheHealth(BaseModel):
    backend: str = Field(..., description="Configured backend: redis, upstash, memory, disabled")
    available: bool = Field(..., description="Backend initialized successfully")
    connected: bool = Field(..., description="Backend answered a ping just now")
    status: str = Field(..., description="healthy, unhealthy or disabled")
    message: str
    hit_rate: float = Field(0.0, description="Cache hit rate since start (0.0-1.0)")


class HealthResponse(BaseModel):
    status: str = Field(..., description="'ok', or 'degraded' when the cache is unreachable")
    cache: CacheHealth
    uptime_seconds: float


# ---------------------------------------------------------------------------
# /v1/geocoding
# ---------------------------------------------------------------------------


class ReverseGeocodeRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")
    appVersion: str | None = Field(None, description="Client app version, logged only")
    buildNumber: str | None = Field(None, description="Client build number, logged only")
    platform: str | None = Field(None, description="Client platform, logged only")


class ForwardGeocodeRequest(BaseModel):
    address: str = Field(..., description="Free-text address, 1-500 characters")

    @field_validator("address")
    @classmethod
    def _trim(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Address cannot be empty")
        if len(value) > 500:
            raise ValueError("Address is too long (maximum 500 characters)")
        return value


class GeocodeResponse(BaseModel):
    """Provider result, plus cache fields when served from the cache."""

    success: bool
    message: str
    data: dict[str, Any]
    cached: bool | None = None
    cacheTimestamp: str | None = None
    cacheMetadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# /v1/cache
# ---------------------------------------------------------------------------


class WarmupRequest(BaseModel):
    locations: list[Any] = Field(
        ..., description="Objects with latitude/longitude or address"
    )


class MigrateRequest(BaseModel):
    keys: list[str] | None = Field(None, description="Exact cache keys to make perpetual")
    pattern: str | None = Field(
        None, description="Not supported; present so the request can be rejected explicitly"
    )


class DeleteKeyResponse(BaseModel):
    key: str
    deleted: bool
