"""Per-request correlation ID carried through contextvars."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

request_id_var: ContextVar[str] = ContextVar("geocache_request_id", default="")


def new_request_id() -> str:
    return uuid.uuid4().hex


def get_request_id() -> str:
    return request_id_var.get()


@contextmanager
def bound_request_id(incoming: str = "") -> Iterator[str]:
    """Bind *incoming* (or a fresh ID) for the duration of the block.

    Background tasks spawned inside the block inherit the ID, so deferred
    cache writes log under the request that produced them.
    """
    rid = incoming or new_request_id()
    token = request_id_var.set(rid)
    try:
        yield rid
    finally:
        request_id_var.reset(token)
