"""Status reconciliation and event emission."""

from reaper.status.events import EventReason, LoggingEventRecorder, PolicyEvents
from reaper.status.reconciler import StatusUpdate, reconcile, set_condition

__all__ = [
    "StatusUpdate",
    "reconcile",
    "set_condition",
    "EventReason",
    "LoggingEventRecorder",
    "PolicyEvents",
]
