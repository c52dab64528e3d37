"""
Status reconciliation.

Computes the status a policy should report after a cycle. Pure: the caller
supplies the evaluation result, the error (if any) and the current time.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from reaper.core.errors import ReaperError
from reaper.core.resource import format_timestamp
from reaper.policy.models import GarbageCollectionPolicy, PolicyPhase, PolicyStatus, StatusCondition

CONDITION_READY = "Ready"
CONDITION_ERROR = "Error"

STATUS_TRUE = "True"
STATUS_FALSE = "False"


class EvaluationCounts(Protocol):
    matched: int
    deleted: int
    pending: int


@dataclass(frozen=True)
class StatusUpdate:
    """The status to persist for a policy, plus a JSON-ready rendering."""

    status: PolicyStatus

    @property
    def phase(self) -> str | None:
        return self.status.phase

    def to_wire(self) -> dict[str, Any]:
        """camelCase status document for the status subresource."""
        wire = self.status.model_dump(by_alias=True, exclude_none=True)
        for key in ("lastGCRun", "nextGCRun"):
            if isinstance(wire.get(key), datetime):
                wire[key] = format_timestamp(wire[key])
        conditions = []
        for condition in wire.get("conditions", []):
            if isinstance(condition.get("lastTransitionTime"), datetime):
                condition["lastTransitionTime"] = format_timestamp(condition["lastTransitionTime"])
            conditions.append(condition)
        wire["conditions"] = conditions
        return wire


def set_condition(
    conditions: Sequence[StatusCondition],
    new: StatusCondition,
    now: datetime,
) -> list[StatusCondition]:
    """
    Upsert a condition by type.

    lastTransitionTime is carried over unless the status value flips, so
    re-applying an identical condition changes nothing.
    """
    result: list[StatusCondition] = []
    replaced = False
    for existing in conditions:
        if existing.type != new.type:
            result.append(existing)
            continue
        replaced = True
        if existing.status == new.status and existing.last_transition_time is not None:
            transition = existing.last_transition_time
        else:
            transition = now
        result.append(new.model_copy(update={"last_transition_time": transition}))
    if not replaced:
        result.append(new.model_copy(update={"last_transition_time": now}))
    return result


def _error_reason(error: BaseException) -> str:
    if isinstance(error, ReaperError):
        return "".join(part.capitalize() for part in error.code.split("_"))
    return "EvaluationFailed"


def reconcile(
    policy: GarbageCollectionPolicy,
    result: EvaluationCounts | None,
    eval_error: BaseException | None,
    *,
    now: datetime,
    interval: timedelta,
) -> StatusUpdate:
    """
    Compute a policy's new status.

    Args:
        policy: The policy as read at the start of the cycle
        result: Counters from the cycle; None when it aborted before counting
        eval_error: Resolution/listing failure that aborted the cycle
        now: Cycle completion time
        interval: The policy's evaluation interval

    Returns:
        StatusUpdate with counters, run times, phase and Ready/Error conditions
    """
    previous = policy.status

    if eval_error is not None:
        phase = PolicyPhase.ERROR.value
    elif policy.is_paused:
        phase = PolicyPhase.PAUSED.value
    else:
        phase = PolicyPhase.ACTIVE.value

    if result is not None:
        matched, deleted, pending = result.matched, result.deleted, result.pending
    else:
        matched = previous.resources_matched
        deleted = previous.resources_deleted
        pending = previous.resources_pending

    if eval_error is None:
        ready = StatusCondition(
            type=CONDITION_READY,
            status=STATUS_TRUE,
            reason="EvaluationSucceeded",
            message=f"Evaluated {matched} matching resources",
        )
        error = StatusCondition(
            type=CONDITION_ERROR,
            status=STATUS_FALSE,
            reason="NoError",
            message="",
        )
    else:
        reason = _error_reason(eval_error)
        ready = StatusCondition(
            type=CONDITION_READY,
            status=STATUS_FALSE,
            reason=reason,
            message=str(eval_error),
        )
        error = StatusCondition(
            type=CONDITION_ERROR,
            status=STATUS_TRUE,
            reason=reason,
            message=str(eval_error),
        )

    conditions = set_condition(previous.conditions, ready, now)
    conditions = set_condition(conditions, error, now)

    return StatusUpdate(
        status=PolicyStatus(
            phase=phase,
            resources_matched=matched,
            resources_deleted=deleted,
            resources_pending=pending,
            last_gc_run=now,
            next_gc_run=now + interval,
            conditions=conditions,
        )
    )
