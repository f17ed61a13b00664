"""Exception handlers producing ``{"error": true, "status_code", "detail"}`` bodies."""

from __future__ import annotations

import logging
import traceback

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from geocache.exceptions import (
    GeocodingProviderError,
    InvalidLookupRequest,
    PatternMigrationUnsupported,
)

logger = logging.getLogger("geocache.errors")

_FORWARDED_HEADER_PREFIXES = ("X-RateLimit-", "X-Cache", "Retry-After")


def _error(status_code: int, detail, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": True, "status_code": status_code, "detail": detail},
        headers=headers,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Keeps ``X-RateLimit-*`` and ``X-Cache`` headers from the raised exception."""
    headers = None
    if exc.headers:
        headers = {
            k: v for k, v in exc.headers.items() if k.startswith(_FORWARDED_HEADER_PREFIXES)
        }
    return _error(exc.status_code, exc.detail, headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """422 with pydantic's error list, made JSON-safe."""
    errors = [
        {k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()
    ]
    return _error(422, errors)


async def invalid_request_handler(
    request: Request, exc: InvalidLookupRequest | PatternMigrationUnsupported
) -> JSONResponse:
    return _error(400, str(exc))


async def provider_error_handler(
    request: Request, exc: GeocodingProviderError
) -> JSONResponse:
    """Upstream geocoder failures become 503; the provider's message stays in the log."""
    logger.error("Geocoding provider failure on %s: %s", request.url.path, exc)
    return _error(503, "Geocoding service error")


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Generic 500; the traceback is logged, never returned."""
    logger.error(
        "Unhandled exception on %s %s:\n%s",
        request.method,
        request.url.path,
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )
    return _error(500, "Internal server error")
