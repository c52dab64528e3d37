"""
Event emission for policies.

PolicyEvents wraps any EventRecorder with one method per event the engine
emits, so reasons and message formats stay consistent.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from reaper.core.interfaces import EventRecorder, EventType
from reaper.logging import get_logger

if TYPE_CHECKING:
    from reaper.core.resource import Resource
    from reaper.policy.models import GarbageCollectionPolicy

logger = get_logger(__name__)


class EventReason(str, Enum):
    POLICY_EVALUATED = "PolicyEvaluated"
    RESOURCE_DELETED = "ResourceDeleted"
    EVALUATION_FAILED = "EvaluationFailed"
    STATUS_UPDATE_FAILED = "StatusUpdateFailed"
    POLICY_CREATED = "PolicyCreated"
    POLICY_UPDATED = "PolicyUpdated"
    POLICY_DELETED = "PolicyDeleted"


class LoggingEventRecorder(EventRecorder):
    """Writes events to the log instead of an event sink."""

    def record(
        self,
        subject: GarbageCollectionPolicy,
        reason: str,
        message: str,
        event_type: EventType = EventType.NORMAL,
    ) -> None:
        log = logger.warning if event_type == EventType.WARNING else logger.info
        log(
            message,
            operation="record_event",
            policy=subject.ref,
            event_reason=str(reason),
            event_type=event_type.value,
        )


class PolicyEvents:
    """Typed facade over an EventRecorder. A None recorder drops events."""

    def __init__(self, recorder: EventRecorder | None) -> None:
        self.recorder = recorder

    def _emit(
        self,
        policy: GarbageCollectionPolicy,
        reason: EventReason,
        message: str,
        event_type: EventType = EventType.NORMAL,
    ) -> None:
        if self.recorder is None:
            return
        try:
            self.recorder.record(policy, reason.value, message, event_type)
        except Exception as e:
            # Event sinks are best-effort
            logger.warning(
                "Failed to record event",
                operation="record_event",
                policy=policy.ref,
                event_reason=reason.value,
                error=str(e),
            )

    def policy_evaluated(
        self, policy: GarbageCollectionPolicy, matched: int, deleted: int, pending: int
    ) -> None:
        self._emit(
            policy,
            EventReason.POLICY_EVALUATED,
            f"Evaluated policy: matched={matched}, deleted={deleted}, pending={pending}",
        )

    def resource_deleted(
        self, policy: GarbageCollectionPolicy, resource: Resource, reason: str
    ) -> None:
        self._emit(
            policy,
            EventReason.RESOURCE_DELETED,
            f"Deleted resource {resource.ref} (reason: {reason})",
        )

    def evaluation_failed(self, policy: GarbageCollectionPolicy, error: BaseException) -> None:
        self._emit(
            policy,
            EventReason.EVALUATION_FAILED,
            f"Failed to evaluate policy: {error}",
            EventType.WARNING,
        )

    def status_update_failed(
        self, policy: GarbageCollectionPolicy, error: BaseException
    ) -> None:
        self._emit(
            policy,
            EventReason.STATUS_UPDATE_FAILED,
            f"Failed to update policy status: {error}",
            EventType.WARNING,
        )

    def policy_created(self, policy: GarbageCollectionPolicy) -> None:
        self._emit(policy, EventReason.POLICY_CREATED, "GarbageCollectionPolicy created")

    def policy_updated(self, policy: GarbageCollectionPolicy) -> None:
        self._emit(policy, EventReason.POLICY_UPDATED, "GarbageCollectionPolicy updated")

    def policy_deleted(self, policy: GarbageCollectionPolicy) -> None:
        self._emit(policy, EventReason.POLICY_DELETED, "GarbageCollectionPolicy deleted")
