"""API key authentication and per-caller cache scoping."""

from __future__ import annotations

import hashlib
import logging

from fastapi import Depends, HTTPException, Request, Response, Security
from fastapi.security import APIKeyHeader

from geocache.config import settings
from geocache.services.metrics import metrics
from geocache.services.rate_limiter import rate_limiter

logger = logging.getLogger("geocache.auth")

ANONYMOUS = "__anonymous__"

_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()


def _valid_key_hashes() -> set[str]:
    """Parse the comma-separated ``API_KEYS`` setting.

    64-character hex entries are taken as already-hashed keys; anything
    else is hashed here.
    """
    hashes = set()
    for k in settings.api_keys.split(","):
        k = k.strip()
        if not k:
            continue
        if len(k) == 64:
            try:
                int(k, 16)
                hashes.add(k.lower())
                continue
            except ValueError:
                pass
        hashes.add(_hash_key(k))
    return hashes


async def require_api_key(
    api_key: str | None = Security(_header),
) -> str:
    """Validate ``X-API-Key`` and return its hash.

    With auth disabled every caller is ``ANONYMOUS``.
    """
    if not settings.auth_enabled:
        return ANONYMOUS

    if api_key is None:
        raise HTTPException(status_code=401, detail="Missing API key")

    hashed = _hash_key(api_key)
    if hashed not in _valid_key_hashes():
        logger.info("Rejected API key with hash prefix %s", hashed[:8])
        raise HTTPException(status_code=403, detail="Invalid API key")

    return hashed


async def get_user_scope(api_key: str = Depends(require_api_key)) -> str | None:
    """Cache partition for the caller, or ``None`` for the shared namespace."""
    if not settings.cache_user_scoped or api_key == ANONYMOUS:
        return None
    return api_key[:16]


async def enforce_rate_limit(
    request: Request,
    response: Response,
    api_key: str = Depends(require_api_key),
) -> None:
    """Sliding-window limit per API key; anonymous callers are bucketed by client IP."""
    if api_key == ANONYMOUS:
        host = request.client.host if request.client else "unknown"
        bucket = f"ip:{host}"
    else:
        bucket = api_key

    allowed, rl_headers = rate_limiter.is_allowed(bucket)
    for hdr, val in rl_headers.items():
        response.headers[hdr] = val
    if not allowed:
        metrics.inc_rate_limited()
        logger.info("Rate limit exceeded for %s on %s", bucket[:16], request.url.path)
        raise HTTPException(
            status_code=429,
            detail="Too many requests, please try again later.",
            headers=rl_headers,
        )
