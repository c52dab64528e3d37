"""Leadership sources gating the scheduler."""

from __future__ import annotations

import threading

from reaper.core.interfaces import Leadership
from reaper.logging import get_logger

logger = get_logger(__name__)


class StaticLeadership(Leadership):
    """Fixed answer; single-replica deployments run as permanent leader."""

    def __init__(self, is_leader: bool = True) -> None:
        self._is_leader = is_leader

    def is_leader(self) -> bool:
        return self._is_leader


class ManualLeadership(Leadership):
    """
    Leadership flipped by an external election callback.

    Usage:
        leadership = ManualLeadership()
        elector.on_started_leading = leadership.acquire
        elector.on_stopped_leading = leadership.release
    """

    def __init__(self, is_leader: bool = False) -> None:
        self._is_leader = is_leader
        self._lock = threading.Lock()

    def is_leader(self) -> bool:
        with self._lock:
            return self._is_leader

    def acquire(self) -> None:
        with self._lock:
            changed = not self._is_leader
            self._is_leader = True
        if changed:
            logger.info("Acquired leadership", operation="leadership")

    def release(self) -> None:
        with self._lock:
            changed = self._is_leader
            self._is_leader = False
        if changed:
            logger.info("Lost leadership, no new cycles will start", operation="leadership")
