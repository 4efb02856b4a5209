"""Structured logging helpers.

Modules log through ``logging.getLogger(__name__)``; ``configure_logging``
turns the root handler into single-line JSON so collectors can index the
fields attached to events such as ``trust_check``.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_CORE_KEYS = frozenset({"timestamp", "level", "logger", "service", "message"})


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ``extra_fields`` merged at top level.

    Event fields never shadow the core keys; a clashing field is emitted as
    ``field_<name>`` instead.
    """

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service_name,
            "message": record.getMessage(),
        }
        fields = getattr(record, "extra_fields", None) or {}
        for name, value in fields.items():
            entry[f"field_{name}" if name in _CORE_KEYS else name] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(service_name: str = "trust-guard", log_level: Optional[str] = None) -> None:
    """Emit JSON on stderr at ``log_level`` (``LOG_LEVEL`` env, default INFO).

    Safe to call more than once: existing handlers only get their formatter
    swapped.
    """
    root = logging.getLogger()
    name = (log_level or os.getenv("LOG_LEVEL") or "INFO").upper()
    root.setLevel(logging.getLevelNamesMapping().get(name, logging.INFO))
    formatter = JsonFormatter(service_name)
    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stderr))
    for handler in root.handlers:
        handler.setFormatter(formatter)


def log_event(logger: logging.Logger, event_type: str, message: str, **fields: Any) -> None:
    """Log an INFO event whose fields end up as top-level JSON keys."""
    logger.info(message, extra={"extra_fields": {"event": event_type, **fields}})
