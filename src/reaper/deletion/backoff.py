"""
Retrying a single deletion with exponential backoff.

Only transient API failures (timeouts, throttling, unavailability) are
retried. "Already gone" is success; any other error fails immediately.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from collections.abc import Iterator
from dataclasses import dataclass

from reaper.core.errors import DeletionFailedError, ResourceNotFoundError, TransientAPIError
from reaper.core.interfaces import Deleter
from reaper.core.resource import Resource
from reaper.logging import get_logger
from reaper.policy.models import BehaviorSpec

logger = get_logger(__name__)


@dataclass(frozen=True)
class BackoffConfig:
    """
    Attributes:
        steps: Maximum number of attempts
        initial: First delay in seconds
        factor: Multiplier applied after each retry
        jitter: Random extra fraction added to each delay
        cap: Upper bound for a single delay in seconds
    """

    steps: int = 5
    initial: float = 0.1
    factor: float = 2.0
    jitter: float = 0.1
    cap: float = 30.0

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError("steps must be at least 1")
        if self.initial < 0 or self.cap < 0:
            raise ValueError("delays must not be negative")

    def delays(self) -> Iterator[float]:
        """Delays between consecutive attempts (steps - 1 values)."""
        delay = self.initial
        for _ in range(self.steps - 1):
            jittered = delay + (random.random() * self.jitter * delay if self.jitter else 0.0)
            yield min(jittered, self.cap)
            delay = min(delay * self.factor, self.cap)


DEFAULT_BACKOFF = BackoffConfig()


async def _sleep(delay: float, stop_event: asyncio.Event | None) -> bool:
    """Sleep for delay seconds; return False if the stop event fired."""
    if stop_event is None:
        await asyncio.sleep(delay)
        return True
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    return not stop_event.is_set()


async def delete_with_backoff(
    deleter: Deleter,
    resource: Resource,
    behavior: BehaviorSpec,
    *,
    backoff: BackoffConfig = DEFAULT_BACKOFF,
    stop_event: asyncio.Event | None = None,
) -> bool:
    """
    Delete one resource, retrying transient failures.

    Returns:
        True when the resource is gone, False when interrupted by the stop event

    Raises:
        DeletionFailedError: On a permanent failure or exhausted retries
    """
    delays = backoff.delays()
    last_error: TransientAPIError | None = None

    while True:
        if stop_event is not None and stop_event.is_set():
            return False
        try:
            await deleter.delete(resource, behavior)
            return True
        except ResourceNotFoundError:
            return True
        except TransientAPIError as e:
            last_error = e
        except Exception as e:
            raise DeletionFailedError(resource.ref, cause=e) from e

        delay = next(delays, None)
        if delay is None:
            raise DeletionFailedError(
                resource.ref,
                cause=last_error,
                retry_hints=[f"gave up after {backoff.steps} attempts"],
            ) from last_error
        logger.debug(
            "Retrying deletion after transient error",
            operation="delete_with_backoff",
            resource=resource.ref,
            delay_s=round(delay, 3),
            error=str(last_error),
        )
        if not await _sleep(delay, stop_event):
            return False
