"""
Structural validation of policies.

Intended for admission-time checks and for skipping malformed policies
before they reach the evaluator. Every violation is reported, not only the
first one found.
"""

from __future__ import annotations

from reaper.core.errors import PolicyValidationError
from reaper.discovery.gvr import parse_group_version
from reaper.policy.matching import (
    ANNOTATION_CONDITION_OPERATORS,
    FIELD_CONDITION_OPERATORS,
    LABEL_CONDITION_OPERATORS,
    SELECTOR_OPERATORS,
    normalize_operator,
)
from reaper.policy.models import (
    BehaviorSpec,
    ConditionsSpec,
    GarbageCollectionPolicy,
    PropagationPolicy,
    TargetResource,
    TTLSpec,
)


def _validate_target(target: TargetResource) -> list[str]:
    violations = []
    if not target.kind:
        violations.append("targetResource.kind is required")
    try:
        parse_group_version(target.api_version)
    except ValueError as e:
        violations.append(f"targetResource.apiVersion: {e}")

    if target.label_selector is not None:
        for i, req in enumerate(target.label_selector.match_expressions):
            op = normalize_operator(req.operator)
            where = f"targetResource.labelSelector.matchExpressions[{i}]"
            if op not in SELECTOR_OPERATORS:
                violations.append(f"{where}: unknown operator {req.operator!r}")
            elif op in ("in", "notin") and not req.values:
                violations.append(f"{where}: operator {req.operator} requires values")
            elif op in ("exists", "doesnotexist") and req.values:
                violations.append(f"{where}: operator {req.operator} takes no values")

    if target.field_selector is not None:
        for path in target.field_selector.match_fields:
            if not path or "" in path.split("."):
                violations.append(f"targetResource.fieldSelector: invalid path {path!r}")
    return violations


def _validate_ttl(ttl: TTLSpec) -> list[str]:
    violations = []
    modes = ttl.active_modes()
    if not modes:
        violations.append("ttl: one of secondsAfterCreation, fieldPath or relativeTo is required")
    elif len(modes) > 1:
        violations.append(f"ttl: modes are mutually exclusive, got {', '.join(modes)}")

    if ttl.relative_to and ttl.seconds_after is None:
        violations.append("ttl.relativeTo requires ttl.secondsAfter")
    if ttl.seconds_after is not None and not ttl.relative_to:
        violations.append("ttl.secondsAfter requires ttl.relativeTo")
    if ttl.mappings is not None and not ttl.field_path:
        violations.append("ttl.mappings requires ttl.fieldPath")
    if ttl.default is not None and not ttl.field_path:
        violations.append("ttl.default requires ttl.fieldPath")

    for name, value in (
        ("secondsAfterCreation", ttl.seconds_after_creation),
        ("secondsAfter", ttl.seconds_after),
        ("default", ttl.default),
    ):
        if value is not None and value < 0:
            violations.append(f"ttl.{name} must not be negative")
    for key, value in (ttl.mappings or {}).items():
        if value < 0:
            violations.append(f"ttl.mappings[{key!r}] must not be negative")
    return violations


def _validate_conditions(conditions: ConditionsSpec) -> list[str]:
    violations = []
    for i, cond in enumerate(conditions.has_labels):
        if normalize_operator(cond.operator) not in LABEL_CONDITION_OPERATORS:
            violations.append(f"conditions.hasLabels[{i}]: unknown operator {cond.operator!r}")
    for i, cond in enumerate(conditions.has_annotations):
        if normalize_operator(cond.operator) not in ANNOTATION_CONDITION_OPERATORS:
            violations.append(
                f"conditions.hasAnnotations[{i}]: unknown operator {cond.operator!r}"
            )
    for i, cond in enumerate(conditions.and_):
        op = normalize_operator(cond.operator)
        if not cond.field_path:
            violations.append(f"conditions.and[{i}]: fieldPath is required")
        if op not in FIELD_CONDITION_OPERATORS:
            violations.append(f"conditions.and[{i}]: unknown operator {cond.operator!r}")
        elif op in ("in", "notin") and not cond.values:
            violations.append(f"conditions.and[{i}]: operator {cond.operator} requires values")
    return violations


def _validate_behavior(behavior: BehaviorSpec) -> list[str]:
    violations = []
    if behavior.max_deletions_per_second is not None and behavior.max_deletions_per_second < 0:
        violations.append("behavior.maxDeletionsPerSecond must not be negative")
    if behavior.batch_size is not None and behavior.batch_size < 0:
        violations.append("behavior.batchSize must not be negative")
    if behavior.grace_period_seconds is not None and behavior.grace_period_seconds < 0:
        violations.append("behavior.gracePeriodSeconds must not be negative")
    allowed = {p.value for p in PropagationPolicy}
    if behavior.propagation_policy and behavior.propagation_policy not in allowed:
        violations.append(
            f"behavior.propagationPolicy must be one of {', '.join(sorted(allowed))}"
        )
    return violations


def validate_policy(policy: GarbageCollectionPolicy) -> list[str]:
    """Return every structural violation in a policy (empty when valid)."""
    violations = []
    if not policy.uid:
        violations.append("metadata.uid is required")
    violations.extend(_validate_target(policy.spec.target_resource))
    violations.extend(_validate_ttl(policy.spec.ttl))
    if policy.spec.conditions is not None:
        violations.extend(_validate_conditions(policy.spec.conditions))
    violations.extend(_validate_behavior(policy.spec.behavior))
    return violations


def ensure_valid(policy: GarbageCollectionPolicy) -> GarbageCollectionPolicy:
    """
    Return the policy unchanged if valid.

    Raises:
        PolicyValidationError: Listing every violation
    """
    violations = validate_policy(policy)
    if violations:
        raise PolicyValidationError(policy.ref, violations)
    return policy
