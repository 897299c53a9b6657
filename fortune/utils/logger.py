"""Logging setup.

JSON lines for deployments, a compact text format for local development.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
            entry["exception_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
        return json.dumps(entry, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        base = f"[{timestamp}] [{record.levelname:5}] [{record.name}] {record.getMessage()}"
        if record.exc_info:
            base = f"{base}\n{self.formatException(record.exc_info)}"
        return base


def setup_logging(level: str = "INFO", format_type: str = "text", stream: Any = None) -> None:
    """Configure the `fortune` logger hierarchy.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        format_type: "json" or "text".
        stream: output stream, defaults to sys.stderr.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    if format_type.strip().lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root = logging.getLogger("fortune")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.strip().upper(), logging.INFO))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
