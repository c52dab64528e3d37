"""
Logging context management for Reaper.

Context is stored in a ContextVar, so each asyncio task (one per evaluation
worker) carries its own policy/cycle fields.
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from reaper.policy.models import GarbageCollectionPolicy

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "reaper_log_context",
    default=None,
)


@dataclass
class LogContext:
    """
    Structured logging context.

    Contains fields that should be included in all log messages within
    a specific scope (e.g., one policy evaluation cycle).
    """

    policy: str | None = None
    policy_uid: str | None = None
    cycle_id: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_policy(
        cls,
        policy: GarbageCollectionPolicy,
        cycle_id: str | None = None,
    ) -> LogContext:
        """Create a LogContext identifying one policy's cycle."""
        return cls(policy=policy.ref, policy_uid=policy.uid, cycle_id=cycle_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary of non-None values."""
        result = {}
        for name in ("policy", "policy_uid", "cycle_id", "operation"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        result.update(self.extra)
        return result


def get_log_context() -> dict[str, Any]:
    """Get the current log context."""
    ctx = _log_context.get()
    return ctx.copy() if ctx else {}


def clear_log_context() -> None:
    """Clear the current log context."""
    _log_context.set(None)


@contextmanager
def with_log_context(
    context: LogContext | dict[str, Any] | None = None,
    **kwargs: Any,
) -> Iterator[None]:
    """
    Context manager for setting log context within a scope.

    Example:
        with with_log_context(LogContext.from_policy(policy)):
            logger.info("Evaluating policy")  # Includes policy and policy_uid
    """
    previous = _log_context.get()

    if context is not None:
        new_context = (
            context.to_dict() if isinstance(context, LogContext) else context.copy()
        )
    else:
        new_context = previous.copy() if previous else {}

    new_context.update(kwargs)
    token = _log_context.set(new_context)

    try:
        yield
    finally:
        _log_context.reset(token)


class ContextFilter(logging.Filter):
    """
    Logging filter that injects context fields into log records.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to the log record."""
        context = get_log_context()
        for key, value in context.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
