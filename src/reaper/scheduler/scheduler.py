"""
Recurring evaluation of known policies.

Each policy has its own next-due time, measured from the end of its
previous cycle. A scheduler pass evaluates every due policy, either one at a
time or through a bounded pool of workers, and only while this process holds
leadership. Losing leadership stops new cycles from starting; an in-flight
cycle is left to finish or observe the stop event.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from reaper.config import ControllerConfig, SchedulingStrategy
from reaper.core.errors import ReaperError
from reaper.core.interfaces import Leadership, PolicySource
from reaper.logging import get_logger, with_log_context
from reaper.policy.evaluator import EvaluationResult, PolicyEvaluator
from reaper.policy.models import GarbageCollectionPolicy
from reaper.scheduler.leadership import StaticLeadership

logger = get_logger(__name__)


class PolicyEventKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass
class SchedulerPass:
    """What one scheduler pass did."""

    evaluated: list[str] = field(default_factory=list)
    paused: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    results: dict[str, EvaluationResult] = field(default_factory=dict)
    strategy: SchedulingStrategy | None = None


class EvaluationScheduler:
    """
    Drives PolicyEvaluator across all known policies.

    Usage:
        scheduler = EvaluationScheduler(evaluator, policy_source, leadership=leadership)
        stop = asyncio.Event()
        await scheduler.run(stop)
    """

    def __init__(
        self,
        evaluator: PolicyEvaluator,
        policy_source: PolicySource,
        *,
        leadership: Leadership | None = None,
        config: ControllerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.evaluator = evaluator
        self.policy_source = policy_source
        self.leadership = leadership or StaticLeadership()
        self.config = config or evaluator.config
        self.clock = clock
        self._next_due: dict[str, float] = {}
        self._known: dict[str, GarbageCollectionPolicy] = {}
        self._in_flight: set[str] = set()
        # Deleted while a cycle was running; cleaned up again when it ends
        self._forgotten: set[str] = set()

    # === Schedule bookkeeping ===

    def next_due(self, policy_uid: str) -> float | None:
        """Monotonic time the policy is next due, or None if due now."""
        return self._next_due.get(policy_uid)

    def is_due(self, policy: GarbageCollectionPolicy, now: float) -> bool:
        due = self._next_due.get(policy.uid)
        return due is None or due <= now

    def reschedule(self, policy: GarbageCollectionPolicy) -> None:
        interval = self.config.interval_for(policy.spec.behavior.evaluation_interval)
        self._next_due[policy.uid] = self.clock() + interval.total_seconds()

    def forget(self, policy_uid: str) -> None:
        """Drop every per-policy resource: schedule, rate limiter, lister reference."""
        self._next_due.pop(policy_uid, None)
        self._known.pop(policy_uid, None)
        self.evaluator.rate_limiters.remove(policy_uid)
        self.evaluator.listers.release(policy_uid)
        if policy_uid in self._in_flight:
            self._forgotten.add(policy_uid)

    def _sync_known(self, policies: list[GarbageCollectionPolicy]) -> None:
        current = {p.uid: p for p in policies}
        for uid in set(self._known) - set(current):
            logger.info(
                "Policy disappeared, releasing its resources",
                operation="sync_policies",
                policy_uid=uid,
            )
            self.forget(uid)
        self._known = current

    def strategy_for(self, due_count: int) -> SchedulingStrategy:
        strategy = self.config.scheduling_strategy
        if strategy != SchedulingStrategy.AUTO:
            return strategy
        if due_count <= self.config.max_concurrent_evaluations:
            return SchedulingStrategy.SEQUENTIAL
        return SchedulingStrategy.CONCURRENT

    # === Lifecycle notifications ===

    def handle_policy_event(
        self, kind: PolicyEventKind | str, policy: GarbageCollectionPolicy
    ) -> None:
        """
        Apply a created/updated/deleted notification from the policy source.

        Created and updated policies become due immediately so the change
        takes effect on the next pass.
        """
        kind = PolicyEventKind(kind)
        events = self.evaluator.events
        with with_log_context(policy=policy.ref, policy_uid=policy.uid, operation="policy_event"):
            if kind == PolicyEventKind.CREATED:
                self._known[policy.uid] = policy
                self._next_due.pop(policy.uid, None)
                events.policy_created(policy)
                logger.info("Policy created")
            elif kind == PolicyEventKind.UPDATED:
                previous = self._known.get(policy.uid)
                self._known[policy.uid] = policy
                if policy.uid in self.evaluator.rate_limiters:
                    self.evaluator.rate_limiters.get_or_create(
                        policy.uid, policy.spec.behavior.max_deletions_per_second
                    )
                if previous is None or previous.spec != policy.spec:
                    # Re-acquired against the new target on the next cycle
                    self.evaluator.listers.release(policy.uid)
                    self._next_due.pop(policy.uid, None)
                events.policy_updated(policy)
                logger.info("Policy updated")
            else:
                self.forget(policy.uid)
                events.policy_deleted(policy)
                logger.info("Policy deleted")

    # === Passes ===

    def _may_start(self, stop_event: asyncio.Event | None) -> bool:
        if stop_event is not None and stop_event.is_set():
            return False
        return self.leadership.is_leader()

    async def _process(
        self,
        policy: GarbageCollectionPolicy,
        stop_event: asyncio.Event | None,
        summary: SchedulerPass,
    ) -> None:
        self._in_flight.add(policy.uid)
        try:
            if policy.is_paused:
                summary.paused.append(policy.uid)
                logger.debug(
                    "Skipping paused policy",
                    operation="schedule",
                    policy=policy.ref,
                )
                return
            summary.results[policy.uid] = await self.evaluator.evaluate(policy, stop_event)
            summary.evaluated.append(policy.uid)
        except ReaperError as e:
            # Already logged and written to status; retried next interval
            summary.failed.append(policy.uid)
            logger.debug(
                "Policy cycle aborted",
                operation="schedule",
                policy=policy.ref,
                error_code=e.code,
            )
        except Exception:
            summary.failed.append(policy.uid)
            logger.exception(
                "Unexpected error evaluating policy",
                operation="schedule",
                policy=policy.ref,
            )
        finally:
            self._in_flight.discard(policy.uid)
            if policy.uid in self._forgotten:
                # The cycle may have recreated the limiter or lister reference
                self._forgotten.discard(policy.uid)
                self.forget(policy.uid)
            else:
                self.reschedule(policy)

    async def _run_sequential(
        self,
        due: list[GarbageCollectionPolicy],
        stop_event: asyncio.Event | None,
        summary: SchedulerPass,
    ) -> None:
        for policy in due:
            if not self._may_start(stop_event):
                break
            await self._process(policy, stop_event, summary)

    async def _run_concurrent(
        self,
        due: list[GarbageCollectionPolicy],
        stop_event: asyncio.Event | None,
        summary: SchedulerPass,
    ) -> None:
        queue: asyncio.Queue[GarbageCollectionPolicy] = asyncio.Queue()
        for policy in due:
            queue.put_nowait(policy)

        async def worker() -> None:
            while True:
                try:
                    policy = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if not self._may_start(stop_event):
                    return
                await self._process(policy, stop_event, summary)

        workers = min(self.config.max_concurrent_evaluations, len(due))
        await asyncio.gather(*(worker() for _ in range(workers)))

    async def run_once(self, stop_event: asyncio.Event | None = None) -> SchedulerPass:
        """Evaluate every policy that is currently due."""
        summary = SchedulerPass()
        if not self._may_start(stop_event):
            logger.debug("Not starting pass: not leader or stopping", operation="schedule")
            return summary

        policies = await self.policy_source.list_policies()
        self._sync_known(policies)

        now = self.clock()
        due = [p for p in policies if self.is_due(p, now)]
        if not due:
            return summary

        summary.strategy = self.strategy_for(len(due))
        logger.debug(
            "Starting scheduler pass",
            operation="schedule",
            due=len(due),
            strategy=summary.strategy.value,
        )
        if summary.strategy == SchedulingStrategy.SEQUENTIAL:
            await self._run_sequential(due, stop_event, summary)
        else:
            await self._run_concurrent(due, stop_event, summary)
        return summary

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run passes every tick until the stop event fires."""
        tick = self.config.tick_interval.total_seconds()
        logger.info("Scheduler started", operation="schedule", tick_s=tick)
        while not stop_event.is_set():
            try:
                await self.run_once(stop_event)
            except Exception:
                # The next tick retries; a pass failure never ends the loop
                logger.exception("Scheduler pass failed", operation="schedule")
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=tick)
        logger.info("Scheduler stopped", operation="schedule")
