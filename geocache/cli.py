"""Cache maintenance from the command line.

Usage:
    python -m geocache.cli status
    python -m geocache.cli diagnose
    python -m geocache.cli diagnose --key "reverse:067fba21..." --repair
    python -m geocache.cli describe "reverse:067fba21..."
    python -m geocache.cli delete "reverse:067fba21..."
    python -m geocache.cli warmup locations.json
    python -m geocache.cli migrate KEY [KEY ...]

Exit code is 0 when the command found nothing wrong, 1 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from geocache.config import settings
from geocache.exceptions import PatternMigrationUnsupported
from geocache.logging_config import setup_logging
from geocache.services.diagnostics import CacheDiagnostics
from geocache.services.introspection import cache_status, describe
from geocache.services.maintenance import estimate_warmup, migrate_expiring_to_perpetual
from geocache.services.store import CacheStore, build_store

logger = logging.getLogger("geocache.cli")


def _print(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def _status(store: CacheStore, args: argparse.Namespace) -> int:
    status = await cache_status(store)
    _print(status)
    return 0 if status["connected"] else 1


async def _diagnose(store: CacheStore, args: argparse.Namespace) -> int:
    diagnostics = CacheDiagnostics(store)
    report = await diagnostics.run_round_trip_check()
    _print({**report.model_dump(), "passed": report.passed})
    ok = report.passed

    if args.key:
        inspection = await diagnostics.inspect_key(args.key)
        _print(inspection.model_dump())
        if inspection.exists and not inspection.valid:
            ok = False
            if args.repair:
                repaired = await diagnostics.repair_key(args.key)
                logger.info("Repair of %s: %s", args.key, "deleted" if repaired else "nothing deleted")
    return 0 if ok else 1


async def _describe(store: CacheStore, args: argparse.Namespace) -> int:
    description = await describe(store, args.key)
    if description is None:
        logger.info("Key not found: %s", args.key)
        return 1
    _print(description.model_dump(mode="json"))
    return 0


async def _delete(store: CacheStore, args: argparse.Namespace) -> int:
    deleted = await CacheDiagnostics(store).repair_key(args.key)
    return 0 if deleted else 1


async def _warmup(store: CacheStore, args: argparse.Namespace) -> int:
    locations = json.loads(Path(args.file).read_text(encoding="utf-8"))
    if not isinstance(locations, list):
        logger.error("%s must contain a JSON list of locations", args.file)
        return 1
    estimate = await estimate_warmup(store, locations, precision=settings.cache_coordinate_precision)
    _print(estimate.model_dump())
    return 0 if not estimate.errors else 1


async def _migrate(store: CacheStore, args: argparse.Namespace) -> int:
    try:
        report = await migrate_expiring_to_perpetual(store, args.pattern or args.keys)
    except PatternMigrationUnsupported as exc:
        logger.error("%s", exc)
        return 1
    _print(report.model_dump())
    return 0 if report.failed == 0 else 1


_COMMANDS = {
    "status": _status,
    "diagnose": _diagnose,
    "describe": _describe,
    "delete": _delete,
    "warmup": _warmup,
    "migrate": _migrate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="geocache", description="Geocode cache maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Backend availability and ping")

    diag = sub.add_parser("diagnose", help="Write/read/delete round trip, optional key check")
    diag.add_argument("--key", help="Also inspect this key")
    diag.add_argument(
        "--repair", action="store_true", help="Delete --key if its value does not decode"
    )

    desc = sub.add_parser("describe", help="TTL and stored metadata of one key")
    desc.add_argument("key")

    delete = sub.add_parser("delete", help="Delete one key (destructive)")
    delete.add_argument("key")

    warm = sub.add_parser("warmup", help="Count already-cached entries for a list of locations")
    warm.add_argument("file", help="JSON file: list of {latitude, longitude} or {address}")

    mig = sub.add_parser("migrate", help="Remove expiration from explicit keys")
    mig.add_argument("keys", nargs="*")
    mig.add_argument("--pattern", help="Rejected: the backend cannot enumerate keys")
    return parser


async def run(args: argparse.Namespace, store: CacheStore | None = None) -> int:
    store = store or build_store(settings)
    if not store.is_available():
        await store.init()
    try:
        return await _COMMANDS[args.command](store, args)
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.log_level, settings.log_format)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
