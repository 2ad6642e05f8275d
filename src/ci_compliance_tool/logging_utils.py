from __future__ import annotations
"""Structured logging utilities.

Log calls attach context through `extra={"event": "...", ...}`. The JSON
formatter emits every extra key; the text formatter appends them as
`key=value` pairs. Keys that look like credentials are always redacted.
"""

import json
import logging
import sys
from datetime import datetime, timezone


_STANDARD_RECORD_KEYS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime", "taskName"}

_SECRET_KEY_MARKERS = ("token", "password", "secret", "authorization")
_REDACTED = "***"

SUPPORTED_LOG_FORMATS = ("json", "text")


def _extra_fields(record: logging.LogRecord) -> dict[str, object]:
    fields: dict[str, object] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_RECORD_KEYS or key.startswith("_"):
            continue
        if any(marker in key.lower() for marker in _SECRET_KEY_MARKERS):
            value = _REDACTED
        fields[key] = value
    return fields


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extra_fields(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class TextLogFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _extra_fields(record)
        if fields:
            line = f"{line} " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """Configure the root logger; logs go to stderr so reports can use stdout."""
    normalized = log_format.strip().lower()
    if normalized not in SUPPORTED_LOG_FORMATS:
        raise ValueError(f"LOG_FORMAT must be one of: {', '.join(SUPPORTED_LOG_FORMATS)}")

    root = logging.getLogger()
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonLogFormatter() if normalized == "json" else TextLogFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())
