"""
Logging configuration for Reaper.

Call configure_logging() once at process start; modules obtain loggers via
get_logger(__name__) and pass structured fields as keyword arguments.
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Any, TextIO

from reaper.logging.context import ContextFilter
from reaper.logging.formatters import JSONFormatter, TextFormatter

ROOT_LOGGER = "reaper"


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    TEXT = "text"


class ReaperLogger:
    """
    Logger wrapper that accepts structured fields as keyword arguments.

    Example:
        logger = get_logger("reaper.deletion.batch")
        logger.info("Deleted resource", resource="default/job-1", reason="ttl_expired")
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool | BaseException | None = None,
        **fields: Any,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, msg, *args, exc_info=exc_info, extra=fields)

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.INFO, msg, *args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.WARNING, msg, *args, **fields)

    def error(
        self,
        msg: str,
        *args: Any,
        exc_info: bool | BaseException | None = None,
        **fields: Any,
    ) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **fields)

    def exception(self, msg: str, *args: Any, **fields: Any) -> None:
        """Log an error with the active exception's traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **fields)

    def is_enabled_for(self, level: int | LogLevel) -> bool:
        if isinstance(level, LogLevel):
            level = getattr(logging, level.value)
        return self._logger.isEnabledFor(level)


def get_logger(name: str) -> ReaperLogger:
    """Get a Reaper logger by name (typically the module's __name__)."""
    return ReaperLogger(name)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    format: LogFormat | str = LogFormat.JSON,
    output: TextIO | None = None,
    include_context: bool = True,
    use_colors: bool = True,
) -> None:
    """
    Configure Reaper logging.

    Replaces any handlers on the "reaper" logger with a single stream handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: json for clusters, text for local runs
        output: Output stream (defaults to stderr)
        include_context: Whether to inject policy/cycle context fields
        use_colors: Whether to use colors in text format (ignored for JSON)

    Example:
        configure_logging(level="DEBUG", format="text")
    """
    if isinstance(level, str):
        level = LogLevel(level.upper())
    if isinstance(format, str):
        format = LogFormat(format.lower())
    if output is None:
        output = sys.stderr

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(getattr(logging, level.value))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(output)
    handler.setLevel(getattr(logging, level.value))
    if format == LogFormat.JSON:
        handler.setFormatter(JSONFormatter(include_extra=True))
    else:
        handler.setFormatter(TextFormatter(use_colors=use_colors))

    if include_context:
        handler.addFilter(ContextFilter())

    root_logger.addHandler(handler)
    root_logger.propagate = False
