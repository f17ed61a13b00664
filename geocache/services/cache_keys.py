"""Cache key derivation with coordinate quantization.

Coordinates are rounded before hashing so near-duplicate lookups share one
entry. At 2 decimal places that is roughly 1.1 km of latitude: two distinct
points that close collapse onto one cache entry and one provider response.
Addresses are only trimmed; there is no safe normalization without
geocoding them.
"""

from __future__ import annotations

import hashlib
import json
import math
from typing import Any, Mapping

from geocache.exceptions import InvalidLookupRequest
from geocache.models import LookupRequest, OperationKind

DEFAULT_PRECISION = 2


def quantize_coordinate(value: Any, precision: int = DEFAULT_PRECISION) -> float:
    """Round one coordinate to *precision* decimal places."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidLookupRequest(f"Coordinate must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidLookupRequest(f"Coordinate must be finite, got {value!r}")
    # + 0.0 folds -0.0 into 0.0 so both serialize (and hash) the same
    return round(float(value), precision) + 0.0


def quantize_coordinates(
    latitude: Any, longitude: Any, precision: int = DEFAULT_PRECISION
) -> tuple[float, float]:
    return (
        quantize_coordinate(latitude, precision),
        quantize_coordinate(longitude, precision),
    )


def normalize_request(
    request: LookupRequest, precision: int = DEFAULT_PRECISION
) -> dict[str, Any]:
    """Reduce *request* to the fields that identify its cache entry."""
    if request.operation_kind is OperationKind.REVERSE:
        if request.latitude is None or request.longitude is None:
            raise InvalidLookupRequest("Both latitude and longitude are required")
        lat, lng = quantize_coordinates(request.latitude, request.longitude, precision)
        return {"latitude": lat, "longitude": lng}

    address = (request.address or "").strip()
    if not address:
        raise InvalidLookupRequest("Address is required")
    return {"address": address}


def canonical_json(data: Mapping[str, Any]) -> str:
    """Stable serialization: sorted keys, no insignificant whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def derive_key(
    operation_kind: OperationKind | str,
    normalized_inputs: Mapping[str, Any],
    user_scope: str | None = None,
) -> str:
    """Return ``<op>[:user:<scope>]:<sha256>`` for already-normalized inputs.

    Pure function: no I/O, same output across calls and processes.
    """
    prefix = (
        operation_kind.value
        if isinstance(operation_kind, OperationKind)
        else str(operation_kind)
    )
    if not prefix:
        raise InvalidLookupRequest("Operation kind is required")

    digest = hashlib.sha256(canonical_json(normalized_inputs).encode("utf-8")).hexdigest()
    if user_scope:
        return f"{prefix}:user:{user_scope}:{digest}"
    return f"{prefix}:{digest}"


def key_for_request(request: LookupRequest, precision: int = DEFAULT_PRECISION) -> str:
    """Normalize *request* and derive its cache key in one step."""
    return derive_key(
        request.operation_kind,
        normalize_request(request, precision),
        request.user_scope,
    )
