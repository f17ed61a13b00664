"""Log formatting for the service (JSON for aggregators, text for terminals)."""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone

from geocache.services.request_context import get_request_id

# Everything a bare LogRecord carries; anything else came in through ``extra=``.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _extras(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


def _format_exc(record: logging.LogRecord) -> str | None:
    if record.exc_info and record.exc_info[0] is not None:
        return "".join(traceback.format_exception(*record.exc_info))
    return None


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            entry["request_id"] = request_id

        entry.update(_extras(record))

        exc = _format_exc(record)
        if exc:
            entry["exception"] = exc

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``<ts> <LEVEL> [rid] logger - message key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
        request_id = get_request_id()
        rid = f"[{request_id[:12]}] " if request_id else ""

        line = f"{ts} {record.levelname:<8} {rid}{record.name} - {record.getMessage()}"

        extras = _extras(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())

        exc = _format_exc(record)
        if exc:
            line += "\n" + exc

        return line


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Install a single stderr handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())
    root.addHandler(handler)

    # httpx logs every request at INFO, including cache REST calls
    logging.getLogger("httpx").setLevel(logging.WARNING)
