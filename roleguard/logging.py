from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from roleguard.context import get_log_context


_BASE_RECORD_KEYS = set(logging.makeLogRecord({}).__dict__.keys())
_CONTEXT_KEYS = ("correlation_id", "actor_id")
_KNOWN_FIELDS = {
    "subject_id",
    "role_id",
    "permission_id",
    "target",
    "entry_point",
    "rule",
    "decision",
    "removed",
    "pretend",
    "shortcuts",
    "error",
}
_MAX_FIELD_LENGTH = 500


class LogContextFilter(logging.Filter):
    """Stamps correlation and actor ids from the current context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_log_context().items():
            if not getattr(record, key, None):
                setattr(record, key, value)
        return True


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _CONTEXT_KEYS:
            payload[key] = getattr(record, key, None)

        fields: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _BASE_RECORD_KEYS:
                continue
            if key in _KNOWN_FIELDS:
                fields[key] = value[:_MAX_FIELD_LENGTH] if isinstance(value, str) else value

        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload["fields"] = fields
        return json.dumps(payload, default=str)


def configure_logging(level: str | None = None) -> None:
    """Route every logger through one JSON stdout handler; later calls are no-ops."""

    root_logger = logging.getLogger()
    if getattr(root_logger, "_roleguard_configured", False):
        return

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    resolved = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(LogContextFilter())

    root_logger.handlers.clear()
    root_logger.filters.clear()
    root_logger.setLevel(resolved)
    root_logger.addHandler(handler)
    root_logger._roleguard_configured = True  # type: ignore[attr-defined]
