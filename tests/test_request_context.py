"""Tests for request ID generation and contextvar propagation."""

from __future__ import annotations

import asyncio
import re

from geocache.services.request_context import (
    bound_request_id,
    get_request_id,
    new_request_id,
    request_id_var,
)


def test_new_request_id_is_hex():
    rid = new_request_id()
    assert re.fullmatch(r"[0-9a-f]{32}", rid), f"Not 32 hex chars: {rid}"


def test_new_request_id_unique():
    assert len({new_request_id() for _ in range(100)}) == 100


def test_default_is_empty():
    token = request_id_var.set("")
    try:
        assert get_request_id() == ""
    finally:
        request_id_var.reset(token)


def test_bound_request_id_uses_incoming_and_resets():
    with bound_request_id("client-supplied") as rid:
        assert rid == "client-supplied"
        assert get_request_id() == "client-supplied"
    assert get_request_id() == ""


def test_bound_request_id_generates_when_missing():
    with bound_request_id() as rid:
        assert len(rid) == 32
        assert get_request_id() == rid


async def test_background_task_inherits_request_id():
    async def read_id():
        return get_request_id()

    with bound_request_id("parent-request"):
        task = asyncio.create_task(read_id())
    assert await task == "parent-request"
