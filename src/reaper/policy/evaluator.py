"""
Policy evaluation.

One call to PolicyEvaluator.evaluate() runs a single cycle for one policy:

1. Resolve the target resource type
2. List candidates through the shared lister for (type, namespace)
3. Classify each candidate: selector -> conditions -> TTL
4. Delete the eligible ones through the batch executor
5. Reconcile and persist status, then record an event

Resolution and listing failures abort the cycle and are raised after the
policy's status has been moved to Error. Everything else is resource-scoped
and accumulated into the result.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from reaper.config import ControllerConfig
from reaper.core.errors import (
    ListFailedError,
    NoTTLConfiguredError,
    ReaperError,
    ResolutionFailedError,
    StatusUpdateFailedError,
    TTLConfigError,
    with_policy,
    with_resource,
)
from reaper.core.interfaces import Deleter, EventRecorder, StatusUpdater
from reaper.core.resource import Resource, utc_now
from reaper.deletion.backoff import DEFAULT_BACKOFF, BackoffConfig
from reaper.deletion.batch import BatchDeleter
from reaper.deletion.rate_limit import RateLimiterRegistry
from reaper.discovery.gvr import GVRResolver
from reaper.discovery.listers import ListerRegistry
from reaper.logging import LogContext, get_logger, with_log_context
from reaper.policy.matching import matches_selectors, meets_conditions
from reaper.policy.models import GarbageCollectionPolicy
from reaper.policy.ttl import evaluate_ttl
from reaper.status.events import PolicyEvents
from reaper.status.reconciler import StatusUpdate, reconcile

logger = get_logger(__name__)

REASON_TTL_EXPIRED = "ttl_expired"
REASON_NOT_EXPIRED = "not_expired"
REASON_CONDITION_NOT_MET = "condition_not_met"
REASON_SELECTOR_MISMATCH = "selector_mismatch"
REASON_NO_TTL = "no_ttl"


@dataclass
class EvaluationResult:
    """
    Aggregate outcome of one evaluation cycle.

    pending is everything matched but not deleted: resources that are not
    yet expired, fail a condition, were only dry-run deleted, failed to
    delete, or were never attempted because the cycle was stopped.
    """

    policy_uid: str
    matched: int = 0
    deleted: int = 0
    dry_run: int = 0
    failed: int = 0
    reasons: dict[str, str] = field(default_factory=dict)
    errors: list[ReaperError] = field(default_factory=list)
    interrupted: bool = False
    status: StatusUpdate | None = None
    duration_ms: float = 0.0

    @property
    def pending(self) -> int:
        return self.matched - self.deleted

    def count(self, reason: str) -> int:
        """Number of resources classified with the given reason."""
        return sum(1 for r in self.reasons.values() if r == reason)


def _ttl_reason(error: TTLConfigError) -> str:
    if isinstance(error, NoTTLConfiguredError):
        return REASON_NO_TTL
    return error.code.lower()


class PolicyEvaluator:
    """
    Runs evaluation cycles.

    Usage:
        evaluator = PolicyEvaluator(
            resolver=GVRResolver(discovery),
            listers=ListerRegistry(lister),
            deleter=deleter,
            status_updater=updater,
            event_recorder=recorder,
        )
        result = await evaluator.evaluate(policy, stop_event)
    """

    def __init__(
        self,
        resolver: GVRResolver,
        listers: ListerRegistry,
        deleter: Deleter,
        *,
        rate_limiters: RateLimiterRegistry | None = None,
        status_updater: StatusUpdater | None = None,
        event_recorder: EventRecorder | None = None,
        config: ControllerConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        backoff: BackoffConfig = DEFAULT_BACKOFF,
    ) -> None:
        self.config = config or ControllerConfig()
        self.resolver = resolver
        self.listers = listers
        self.rate_limiters = rate_limiters or RateLimiterRegistry(
            default_rate=self.config.max_deletions_per_second
        )
        self.status_updater = status_updater
        self.events = PolicyEvents(event_recorder)
        self.clock = clock
        self.batch_deleter = BatchDeleter(
            deleter,
            self.events,
            default_batch_size=self.config.batch_size,
            check_interval=self.config.cancellation_check_interval,
            backoff=backoff,
        )

    def classify(
        self,
        resource: Resource,
        policy: GarbageCollectionPolicy,
        now: datetime,
    ) -> tuple[str, TTLConfigError | None]:
        """
        Decide what happens to one candidate.

        Returns:
            (reason, ttl_error). The reason is ttl_expired only for
            deletion-eligible resources.
        """
        spec = policy.spec
        if not matches_selectors(resource, spec.target_resource):
            return REASON_SELECTOR_MISMATCH, None
        if not meets_conditions(resource, spec.conditions):
            return REASON_CONDITION_NOT_MET, None
        try:
            ttl = evaluate_ttl(resource, spec.ttl, now)
        except TTLConfigError as e:
            return _ttl_reason(e), e
        return (REASON_TTL_EXPIRED if ttl.expired else REASON_NOT_EXPIRED), None

    async def evaluate(
        self,
        policy: GarbageCollectionPolicy,
        stop_event: asyncio.Event | None = None,
    ) -> EvaluationResult:
        """
        Run one cycle for a policy.

        Returns:
            EvaluationResult, possibly partial if the stop event fired

        Raises:
            ResolutionFailedError: If the target type cannot be resolved
            ListFailedError: If candidates cannot be listed
        """
        cycle_id = uuid.uuid4().hex[:12]
        context = LogContext.from_policy(policy, cycle_id=cycle_id)
        with with_log_context(context, operation="evaluate_policy"):
            started = time.perf_counter()
            result = EvaluationResult(policy_uid=policy.uid)
            try:
                await self._run(policy, result, stop_event)
            except (ResolutionFailedError, ListFailedError) as e:
                with_policy(e, policy.namespace, policy.name)
                result.duration_ms = (time.perf_counter() - started) * 1000
                logger.error(
                    "Policy evaluation failed",
                    error_code=e.code,
                    error=str(e),
                    duration_ms=round(result.duration_ms, 2),
                )
                self.events.evaluation_failed(policy, e)
                result.status = await self._write_status(policy, None, e)
                raise

            result.duration_ms = (time.perf_counter() - started) * 1000
            if result.interrupted:
                logger.info(
                    "Policy evaluation stopped early",
                    matched=result.matched,
                    deleted=result.deleted,
                    pending=result.pending,
                    duration_ms=round(result.duration_ms, 2),
                )
                return result

            result.status = await self._write_status(policy, result, None)
            self.events.policy_evaluated(policy, result.matched, result.deleted, result.pending)
            logger.info(
                "Policy evaluation complete",
                matched=result.matched,
                deleted=result.deleted,
                pending=result.pending,
                dry_run=result.dry_run,
                failed=result.failed,
                duration_ms=round(result.duration_ms, 2),
            )
            return result

    async def _run(
        self,
        policy: GarbageCollectionPolicy,
        result: EvaluationResult,
        stop_event: asyncio.Event | None,
    ) -> None:
        target = policy.spec.target_resource
        resource_type = await self.resolver.resolve(target.api_version, target.kind)
        lister = self.listers.acquire(policy.uid, resource_type, target.scope_namespace)
        resources = await lister.list()

        now = self.clock()
        eligible: list[Resource] = []
        check_every = self.config.cancellation_check_interval
        for i, resource in enumerate(resources):
            if i and i % check_every == 0 and stop_event is not None and stop_event.is_set():
                result.interrupted = True
                return

            reason, ttl_error = self.classify(resource, policy, now)
            result.reasons[resource.key] = reason
            if reason != REASON_SELECTOR_MISMATCH:
                result.matched += 1
            if ttl_error is not None:
                with_resource(ttl_error, resource.namespace, resource.name)
                result.errors.append(ttl_error)
            if reason == REASON_TTL_EXPIRED:
                eligible.append(resource)
            logger.debug("Classified resource", resource=resource.ref, reason=reason)

        if not eligible:
            return

        limiter = self.rate_limiters.get_or_create(
            policy.uid, policy.spec.behavior.max_deletions_per_second
        )
        batch = await self.batch_deleter.delete_batch(
            eligible,
            policy,
            limiter,
            result.reasons,
            stop_event=stop_event,
        )
        result.deleted = batch.deleted
        result.dry_run = batch.dry_run
        result.failed = batch.failed
        result.errors.extend(batch.errors)
        result.interrupted = batch.interrupted

    async def _write_status(
        self,
        policy: GarbageCollectionPolicy,
        result: EvaluationResult | None,
        error: BaseException | None,
    ) -> StatusUpdate:
        update = reconcile(
            policy,
            result,
            error,
            now=self.clock(),
            interval=self.config.interval_for(policy.spec.behavior.evaluation_interval),
        )
        if self.status_updater is None:
            return update

        timeout = self.config.status_update_timeout.total_seconds()
        try:
            await asyncio.wait_for(self.status_updater.update(policy, update), timeout=timeout)
        except Exception as e:
            err = StatusUpdateFailedError(policy.ref, cause=e)
            logger.warning("Failed to update policy status", error_code=err.code, error=str(e))
            self.events.status_update_failed(policy, err)
        return update
