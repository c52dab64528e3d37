"""
Reaper - declarative garbage collection for cluster resources.

Policies name a target resource type, an expiry rule, optional gating
conditions and deletion behavior. Reaper evaluates them on a schedule and
deletes expired resources at a bounded rate, reporting results on each
policy's status.
"""

__version__ = "0.1.0"

from reaper.config import ControllerConfig
from reaper.core.errors import (
    DeletionFailedError,
    FieldNotFoundError,
    InvalidTimestampError,
    InvalidTTLValueError,
    ListFailedError,
    NoMatchingMappingError,
    NoTTLConfiguredError,
    PolicyValidationError,
    ReaperError,
    ResolutionFailedError,
    StatusUpdateFailedError,
    TTLConfigError,
)
from reaper.policy.evaluator import EvaluationResult, PolicyEvaluator
from reaper.policy.models import GarbageCollectionPolicy
from reaper.scheduler.scheduler import EvaluationScheduler

__all__ = [
    # Version
    "__version__",
    # Engine
    "ControllerConfig",
    "GarbageCollectionPolicy",
    "PolicyEvaluator",
    "EvaluationResult",
    "EvaluationScheduler",
    # Errors
    "ReaperError",
    "ResolutionFailedError",
    "ListFailedError",
    "TTLConfigError",
    "NoTTLConfiguredError",
    "FieldNotFoundError",
    "InvalidTimestampError",
    "InvalidTTLValueError",
    "NoMatchingMappingError",
    "DeletionFailedError",
    "StatusUpdateFailedError",
    "PolicyValidationError",
]
