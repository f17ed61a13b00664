"""Tests for the maintenance CLI, run against an in-memory store."""

from __future__ import annotations

import json

import pytest

from geocache.cli import build_parser, run
from geocache.models import TtlStatus
from geocache.services.store import DisabledStore


def _args(*argv):
    return build_parser().parse_args(list(argv))


@pytest.mark.asyncio
async def test_status_ok(store, capsys):
    assert await run(_args("status"), store) == 0
    assert json.loads(capsys.readouterr().out)["status"] == "healthy"


@pytest.mark.asyncio
async def test_status_fails_when_disabled(capsys):
    assert await run(_args("status"), DisabledStore()) == 1
    assert json.loads(capsys.readouterr().out)["status"] == "disabled"


@pytest.mark.asyncio
async def test_diagnose_passes(store, capsys):
    assert await run(_args("diagnose"), store) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["passed"] is True


@pytest.mark.asyncio
async def test_diagnose_repair_deletes_malformed_key(store):
    await store._set_raw("reverse:bad", "{oops", None)
    assert await run(_args("diagnose", "--key", "reverse:bad", "--repair"), store) == 1
    assert store.size == 0


@pytest.mark.asyncio
async def test_diagnose_without_repair_keeps_key(store):
    await store._set_raw("reverse:bad", "{oops", None)
    assert await run(_args("diagnose", "--key", "reverse:bad"), store) == 1
    assert store.size == 1


@pytest.mark.asyncio
async def test_describe(store, capsys):
    await store.set("reverse:k", {"payload": 1}, 60)
    assert await run(_args("describe", "reverse:k"), store) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["ttl_remaining"] == 60
    assert out["is_perpetual"] is False


@pytest.mark.asyncio
async def test_describe_missing(store):
    assert await run(_args("describe", "reverse:missing"), store) == 1


@pytest.mark.asyncio
async def test_delete(store):
    await store.set("reverse:k", 1)
    assert await run(_args("delete", "reverse:k"), store) == 0
    assert store.size == 0


@pytest.mark.asyncio
async def test_warmup(store, tmp_path, capsys):
    path = tmp_path / "locations.json"
    path.write_text(json.dumps([{"latitude": 1, "longitude": 2}, {"address": "Paris"}]))
    assert await run(_args("warmup", str(path)), store) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["total"] == 2
    assert out["needs_resolution"] == 2


@pytest.mark.asyncio
async def test_warmup_rejects_non_list(store, tmp_path):
    path = tmp_path / "locations.json"
    path.write_text(json.dumps({"latitude": 1}))
    assert await run(_args("warmup", str(path)), store) == 1


@pytest.mark.asyncio
async def test_migrate(store):
    await store.set("reverse:a", 1, 600)
    assert await run(_args("migrate", "reverse:a"), store) == 0
    # run() closes the store; reopen to check
    await store.init()
    assert await store.ttl_remaining("reverse:a") is TtlStatus.NO_EXPIRATION


@pytest.mark.asyncio
async def test_migrate_pattern_rejected(store):
    assert await run(_args("migrate", "--pattern", "reverse:*"), store) == 1


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
