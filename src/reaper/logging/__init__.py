"""
Reaper structured logging framework.

Provides JSON and text output, and per-task context injection so every line
emitted during a policy evaluation carries the policy and cycle identity.
"""

from reaper.logging.config import (
    LogFormat,
    LogLevel,
    ReaperLogger,
    configure_logging,
    get_logger,
)
from reaper.logging.context import LogContext, get_log_context, with_log_context
from reaper.logging.formatters import JSONFormatter, TextFormatter

__all__ = [
    # Configuration
    "configure_logging",
    "get_logger",
    "ReaperLogger",
    "LogLevel",
    "LogFormat",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Context
    "LogContext",
    "get_log_context",
    "with_log_context",
]
