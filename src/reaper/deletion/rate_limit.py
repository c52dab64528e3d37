"""
Per-policy deletion rate limiting.

Each policy gets one token bucket, keyed by policy UID, whose capacity and
refill rate equal the policy's max deletions per second. Buckets persist
across cycles and are removed only when the policy is deleted.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from reaper.config import DEFAULT_MAX_DELETIONS_PER_SECOND
from reaper.logging import get_logger

logger = get_logger(__name__)


class TokenBucket:
    """
    Token bucket with reservation semantics.

    A waiter reserves a token immediately (the balance may go negative) and
    sleeps until the reservation matures, so concurrent waiters are admitted
    at the configured rate in arrival order. A reservation abandoned because
    of a stop signal is refunded.

    Usage:
        bucket = TokenBucket(rate=10)
        if await bucket.wait(stop_event):
            ...  # admitted
    """

    def __init__(
        self,
        rate: float,
        burst: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self._rate = float(rate)
        self._burst = burst if burst is not None else max(1, int(rate))
        self._clock = clock
        self._tokens = float(self._burst)
        self._updated = clock()
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def burst(self) -> int:
        return self._burst

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self._burst), self._tokens + elapsed * self._rate)
        self._updated = now

    def tokens(self) -> float:
        """Current balance (negative while reservations are outstanding)."""
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def set_rate(self, rate: float, burst: int | None = None) -> None:
        """Change rate and burst; accumulated tokens are capped to the new burst."""
        if rate <= 0:
            raise ValueError("rate must be positive")
        with self._lock:
            self._refill(self._clock())
            self._rate = float(rate)
            self._burst = burst if burst is not None else max(1, int(rate))
            self._tokens = min(self._tokens, float(self._burst))

    def try_acquire(self) -> bool:
        """Take a token without waiting."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def reserve(self) -> float:
        """Reserve one token and return the seconds until it may be used."""
        with self._lock:
            self._refill(self._clock())
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self._rate

    def cancel_reservation(self) -> None:
        with self._lock:
            self._refill(self._clock())
            self._tokens = min(float(self._burst), self._tokens + 1.0)

    async def wait(self, stop_event: asyncio.Event | None = None) -> bool:
        """
        Wait for a token.

        Returns:
            True when admitted, False when the stop event fired first
        """
        if stop_event is not None and stop_event.is_set():
            return False
        delay = self.reserve()
        if delay <= 0:
            return True
        if stop_event is None:
            await asyncio.sleep(delay)
            return True
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        if stop_event.is_set():
            self.cancel_reservation()
            return False
        return True


@dataclass
class RateLimiterStats:
    """Snapshot of one registry entry."""

    policy_uid: str
    rate: float
    burst: int
    tokens: float


class RateLimiterRegistry:
    """
    Concurrency-safe map from policy UID to token bucket.

    get_or_create() checks and creates under one lock, so concurrent first
    use by several workers yields exactly one bucket per policy.
    """

    def __init__(self, default_rate: int = DEFAULT_MAX_DELETIONS_PER_SECOND) -> None:
        if default_rate < 1:
            raise ValueError("default_rate must be at least 1")
        self.default_rate = default_rate
        self._limiters: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def _effective_rate(self, rate: int | None) -> int:
        return rate if rate is not None and rate > 0 else self.default_rate

    def get_or_create(self, policy_uid: str, rate: int | None = None) -> TokenBucket:
        """
        Return the policy's bucket, creating it on first use.

        If the bucket exists with a different rate (the policy was edited),
        the rate is updated in place.
        """
        effective = self._effective_rate(rate)
        with self._lock:
            limiter = self._limiters.get(policy_uid)
            if limiter is None:
                limiter = TokenBucket(rate=effective)
                self._limiters[policy_uid] = limiter
                logger.debug(
                    "Created rate limiter for policy",
                    operation="get_or_create_rate_limiter",
                    policy_uid=policy_uid,
                    rate_per_sec=effective,
                    limiter_count=len(self._limiters),
                )
                return limiter

        if limiter.rate != effective:
            limiter.set_rate(effective)
        return limiter

    def get(self, policy_uid: str) -> TokenBucket | None:
        with self._lock:
            return self._limiters.get(policy_uid)

    def remove(self, policy_uid: str) -> bool:
        """Drop a policy's bucket. Returns True if one existed."""
        with self._lock:
            removed = self._limiters.pop(policy_uid, None) is not None
        if removed:
            logger.debug(
                "Removed rate limiter for policy",
                operation="remove_rate_limiter",
                policy_uid=policy_uid,
            )
        return removed

    def clear(self) -> None:
        with self._lock:
            self._limiters.clear()

    def stats(self) -> list[RateLimiterStats]:
        with self._lock:
            items = list(self._limiters.items())
        return [
            RateLimiterStats(
                policy_uid=uid,
                rate=limiter.rate,
                burst=limiter.burst,
                tokens=limiter.tokens(),
            )
            for uid, limiter in items
        ]

    def __contains__(self, policy_uid: object) -> bool:
        with self._lock:
            return policy_uid in self._limiters

    def __len__(self) -> int:
        with self._lock:
            return len(self._limiters)
