"""
Log formatters for Reaper.

JSON output for log aggregation in clusters, text output for local runs.
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any

CONTEXT_FIELDS = ("policy", "policy_uid", "cycle_id", "operation", "resource")

# Attributes every LogRecord carries; anything else was passed as extra
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "taskName"}


class JSONFormatter(logging.Formatter):
    """
    JSON-structured log formatter for production use.

    Outputs one JSON object per line with:
    - timestamp: ISO 8601 UTC timestamp
    - level, logger, message
    - policy, policy_uid, cycle_id, operation, resource (when present)
    - error_code, duration_ms (when present)
    - exception: type, message and traceback (when present)
    - extra: any additional fields
    """

    STANDARD_FIELDS = {
        "timestamp",
        "level",
        "logger",
        "message",
        "error_code",
        "duration_ms",
        "exception",
        *CONTEXT_FIELDS,
    }

    def __init__(self, include_extra: bool = True) -> None:
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in (*CONTEXT_FIELDS, "error_code", "duration_ms"):
            value = getattr(record, name, None)
            if value is not None:
                log_dict[name] = value

        if record.exc_info:
            log_dict["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if self.include_extra:
            extra = {}
            for key, value in record.__dict__.items():
                if (
                    key not in _RECORD_ATTRS
                    and key not in self.STANDARD_FIELDS
                    and not key.startswith("_")
                ):
                    try:
                        json.dumps(value)
                        extra[key] = value
                    except (TypeError, ValueError):
                        extra[key] = str(value)
            if extra:
                log_dict["extra"] = extra

        return json.dumps(log_dict, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """
    Human-readable text formatter for development use.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as readable text."""
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level = f"{self.COLORS[level]}{level:8}{self.RESET}"
        else:
            level = f"{level:8}"

        context_parts = []
        for name in ("policy", "operation", "resource", "error_code"):
            value = getattr(record, name, None)
            if value is not None:
                context_parts.append(f"{name}={value}")
        context = f" [{', '.join(context_parts)}]" if context_parts else ""

        duration = getattr(record, "duration_ms", None)
        duration_str = f" ({duration:.1f}ms)" if duration is not None else ""

        log_line = f"{timestamp} {level} {record.name}{context}: {record.getMessage()}{duration_str}"

        if record.exc_info:
            log_line += "\n" + self.formatException(record.exc_info)

        return log_line
