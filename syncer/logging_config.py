"""
Logging Configuration — One stderr handler, text or JSON.

The engine tags its records with ``tick_id``, ``state`` and ``action``
(via ``extra=``); both formats carry those fields so a single
reconciliation can be followed through the log.

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

TICK_FIELDS = ("tick_id", "state", "action")


def _tick_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        name: getattr(record, name)
        for name in TICK_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, tick fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_tick_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """
    Terminal output:

        12:34:56 WARNING [reconcile] T-20260101T000000-ABCDEF Repository metadata is missing...

    The tick id is shown when the record has one.
    """

    def __init__(self) -> None:
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        module = record.name.rsplit(".", 1)[-1]
        tick = getattr(record, "tick_id", None)
        prefix = f"{self.formatTime(record, self.datefmt)} {record.levelname:<7} [{module}]"
        if tick:
            prefix += f" {tick}"
        line = f"{prefix} {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: Optional[str] = None, format_type: Optional[str] = None) -> None:
    """
    Replace the root handlers with a single stderr handler.

    Args:
        level: Log level name. Defaults to $LOG_LEVEL, then INFO.
        format_type: "json" or "text". Defaults to $LOG_FORMAT, then text.
    """
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    format_name = (format_type or os.environ.get("LOG_FORMAT") or "text").lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if format_name == "json" else HumanFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # Request lines from the /health server are noise at INFO
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
