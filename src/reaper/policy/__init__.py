"""
Reaper Policy Module.

Contains policy models, validation, TTL calculation and matching. The
evaluator lives in reaper.policy.evaluator.
"""

from reaper.policy.models import (
    BehaviorSpec,
    ConditionsSpec,
    GarbageCollectionPolicy,
    PolicyPhase,
    PolicySpec,
    PolicyStatus,
    PropagationPolicy,
    TargetResource,
    TTLSpec,
)
from reaper.policy.matching import matches_selectors, meets_conditions
from reaper.policy.ttl import TTLResult, evaluate_ttl, is_expired
from reaper.policy.validation import ensure_valid, validate_policy

__all__ = [
    # Models
    "GarbageCollectionPolicy",
    "PolicySpec",
    "PolicyStatus",
    "PolicyPhase",
    "TargetResource",
    "TTLSpec",
    "ConditionsSpec",
    "BehaviorSpec",
    "PropagationPolicy",
    # Matching
    "matches_selectors",
    "meets_conditions",
    # TTL
    "TTLResult",
    "evaluate_ttl",
    "is_expired",
    # Validation
    "validate_policy",
    "ensure_valid",
]
