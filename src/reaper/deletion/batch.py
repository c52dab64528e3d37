"""
Rate-limited batch deletion with continue-on-error semantics.

A failed deletion is recorded and the executor moves on; it never aborts the
rest of the batch. The stop event is honored at chunk boundaries, at
periodic checkpoints inside long chunks, and while waiting for tokens or
backoff. Stopping returns partial counts; completed deletions are not rolled
back.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from reaper.config import DEFAULT_BATCH_SIZE
from reaper.core.errors import DeletionFailedError, ReaperError, with_policy, with_resource
from reaper.core.interfaces import Deleter
from reaper.core.resource import Resource
from reaper.deletion.backoff import DEFAULT_BACKOFF, BackoffConfig, delete_with_backoff
from reaper.deletion.rate_limit import TokenBucket
from reaper.logging import get_logger
from reaper.policy.models import GarbageCollectionPolicy
from reaper.status.events import PolicyEvents

logger = get_logger(__name__)

DEFAULT_CHECK_INTERVAL = 100


@dataclass
class BatchResult:
    """
    Outcome of deleting a set of resources.

    Attributes:
        deleted: Successful, non-dry-run deletions
        dry_run: Resources that would have been deleted under dry-run
        attempted: Resources for which deletion was attempted
        errors: One error per failed resource
        interrupted: Whether the stop event cut processing short
    """

    deleted: int = 0
    dry_run: int = 0
    attempted: int = 0
    errors: list[ReaperError] = field(default_factory=list)
    deleted_keys: list[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def failed(self) -> int:
        return len(self.errors)

    def merge(self, other: BatchResult) -> None:
        self.deleted += other.deleted
        self.dry_run += other.dry_run
        self.attempted += other.attempted
        self.errors.extend(other.errors)
        self.deleted_keys.extend(other.deleted_keys)
        self.interrupted = self.interrupted or other.interrupted


def chunked(items: Sequence[Resource], size: int) -> list[Sequence[Resource]]:
    """Split items into consecutive chunks of at most size elements."""
    if size < 1:
        raise ValueError("size must be at least 1")
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchDeleter:
    """
    Deletes deletion-eligible resources for one policy.

    Usage:
        executor = BatchDeleter(deleter, events=PolicyEvents(recorder))
        result = await executor.delete_batch(resources, policy, limiter, reasons)
    """

    def __init__(
        self,
        deleter: Deleter,
        events: PolicyEvents | None = None,
        *,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        check_interval: int = DEFAULT_CHECK_INTERVAL,
        backoff: BackoffConfig = DEFAULT_BACKOFF,
    ) -> None:
        if check_interval < 1:
            raise ValueError("check_interval must be at least 1")
        self.deleter = deleter
        self.events = events or PolicyEvents(None)
        self.default_batch_size = default_batch_size
        self.check_interval = check_interval
        self.backoff = backoff

    def batch_size_for(self, policy: GarbageCollectionPolicy) -> int:
        size = policy.spec.behavior.batch_size
        return size if size is not None and size > 0 else self.default_batch_size

    async def delete_batch(
        self,
        resources: Sequence[Resource],
        policy: GarbageCollectionPolicy,
        limiter: TokenBucket,
        reasons: Mapping[str, str],
        *,
        stop_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """
        Delete resources in chunks of the policy's batch size.

        Args:
            resources: Deletion-eligible resources
            policy: Owning policy (behavior drives dry-run, grace period, propagation)
            limiter: The policy's token bucket
            reasons: Resource key -> deletion reason, used for logs and events
            stop_event: Shutdown / leadership-loss signal

        Returns:
            BatchResult with partial counts if stopped early
        """
        total = BatchResult()
        for chunk in chunked(resources, self.batch_size_for(policy)):
            if stop_event is not None and stop_event.is_set():
                total.interrupted = True
                logger.debug(
                    "Stopping batch deletion: stop requested",
                    operation="delete_batch",
                    policy=policy.ref,
                )
                break
            total.merge(await self._delete_chunk(chunk, policy, limiter, reasons, stop_event))
            if total.interrupted:
                break
        return total

    async def _delete_chunk(
        self,
        chunk: Sequence[Resource],
        policy: GarbageCollectionPolicy,
        limiter: TokenBucket,
        reasons: Mapping[str, str],
        stop_event: asyncio.Event | None,
    ) -> BatchResult:
        result = BatchResult()
        behavior = policy.spec.behavior

        for i, resource in enumerate(chunk):
            if i and i % self.check_interval == 0 and stop_event is not None and stop_event.is_set():
                result.interrupted = True
                return result

            if not await limiter.wait(stop_event):
                result.interrupted = True
                return result

            reason = reasons.get(resource.key, "")
            result.attempted += 1

            if behavior.dry_run:
                result.dry_run += 1
                logger.info(
                    "[DRY RUN] Would delete resource",
                    operation="delete_batch",
                    policy=policy.ref,
                    resource=resource.ref,
                    reason=reason,
                )
                continue

            try:
                completed = await delete_with_backoff(
                    self.deleter,
                    resource,
                    behavior,
                    backoff=self.backoff,
                    stop_event=stop_event,
                )
            except DeletionFailedError as e:
                with_resource(with_policy(e, policy.namespace, policy.name), resource.namespace, resource.name)
                result.errors.append(e)
                logger.warning(
                    "Failed to delete resource",
                    operation="delete_batch",
                    policy=policy.ref,
                    resource=resource.ref,
                    error_code=e.code,
                    error=str(e),
                )
                continue

            if not completed:
                result.interrupted = True
                return result

            result.deleted += 1
            result.deleted_keys.append(resource.key)
            self.events.resource_deleted(policy, resource, reason)
            logger.info(
                "Deleted resource",
                operation="delete_batch",
                policy=policy.ref,
                resource=resource.ref,
                reason=reason,
            )
        return result
