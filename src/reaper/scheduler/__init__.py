"""Recurring, leadership-gated policy evaluation."""

from reaper.scheduler.leadership import ManualLeadership, StaticLeadership
from reaper.scheduler.scheduler import EvaluationScheduler, PolicyEventKind, SchedulerPass

__all__ = [
    "EvaluationScheduler",
    "PolicyEventKind",
    "SchedulerPass",
    "StaticLeadership",
    "ManualLeadership",
]
