"""
Selector and condition matching.

Both predicates are pure: identical (resource, spec) input always yields the
same answer regardless of call order. Absent data never passes a check, and
an unrecognised operator is a non-match rather than an error.
"""

from __future__ import annotations

from reaper.core.resource import Resource
from reaper.policy.models import (
    WILDCARD_NAMESPACE,
    AnnotationCondition,
    ConditionsSpec,
    FieldCondition,
    FieldSelector,
    LabelCondition,
    LabelSelector,
    LabelSelectorRequirement,
    TargetResource,
)

PHASE_PATH = "status.phase"

SELECTOR_OPERATORS = frozenset({"in", "notin", "exists", "doesnotexist"})
LABEL_CONDITION_OPERATORS = frozenset({"", "equals", "exists", "in", "notin"})
ANNOTATION_CONDITION_OPERATORS = frozenset({"", "equals", "exists"})
FIELD_CONDITION_OPERATORS = frozenset({"equals", "notequals", "in", "notin"})


def normalize_operator(operator: str) -> str:
    return operator.replace("_", "").replace("-", "").lower()


# === Selectors ===


def _matches_requirement(labels: dict[str, str], req: LabelSelectorRequirement) -> bool:
    op = normalize_operator(req.operator)
    present = req.key in labels
    if op == "in":
        return present and labels[req.key] in req.values
    if op == "notin":
        return not present or labels[req.key] not in req.values
    if op == "exists":
        return present
    if op == "doesnotexist":
        return not present
    return False


def matches_label_selector(resource: Resource, selector: LabelSelector) -> bool:
    """Set-based label matching: every equality and every expression must hold."""
    labels = resource.labels()
    for key, value in selector.match_labels.items():
        if labels.get(key) != value:
            return False
    return all(_matches_requirement(labels, req) for req in selector.match_expressions)


def matches_field_selector(resource: Resource, selector: FieldSelector) -> bool:
    """In-memory exact-string equality on dotted field paths."""
    for path, expected in selector.match_fields.items():
        lookup = resource.nested_string(path)
        if not lookup.found or lookup.value != expected:
            return False
    return True


def matches_selectors(resource: Resource, target: TargetResource) -> bool:
    """
    Check namespace scope, label selector and field selector.

    Field selectors are evaluated after listing, so they trade memory/CPU for
    generality; prefer label selectors for large collections.
    """
    namespace = target.scope_namespace
    if namespace != WILDCARD_NAMESPACE and resource.namespace != namespace:
        return False
    if target.label_selector is not None and not matches_label_selector(
        resource, target.label_selector
    ):
        return False
    if target.field_selector is not None and not matches_field_selector(
        resource, target.field_selector
    ):
        return False
    return True


# === Conditions ===


def meets_phase_condition(resource: Resource, phases: list[str]) -> bool:
    if not phases:
        return True
    lookup = resource.nested_string(PHASE_PATH)
    return lookup.found and lookup.value in phases


def _meets_label_condition(labels: dict[str, str], cond: LabelCondition) -> bool:
    op = normalize_operator(cond.operator)
    present = cond.key in labels
    if op == "exists":
        return present
    if op in ("", "equals", "in"):
        return present and labels[cond.key] == cond.value
    if op == "notin":
        return not present or labels[cond.key] != cond.value
    return False


def meets_label_conditions(resource: Resource, conditions: list[LabelCondition]) -> bool:
    labels = resource.labels()
    return all(_meets_label_condition(labels, cond) for cond in conditions)


def _meets_annotation_condition(
    annotations: dict[str, str], cond: AnnotationCondition
) -> bool:
    op = normalize_operator(cond.operator)
    present = cond.key in annotations
    if op == "exists":
        return present
    if op in ("", "equals"):
        return present and annotations[cond.key] == cond.value
    return False


def meets_annotation_conditions(
    resource: Resource, conditions: list[AnnotationCondition]
) -> bool:
    annotations = resource.annotations()
    return all(_meets_annotation_condition(annotations, cond) for cond in conditions)


def matches_field_operator(value: str, cond: FieldCondition) -> bool:
    op = normalize_operator(cond.operator)
    if op == "equals":
        return value == cond.value
    if op == "notequals":
        return value != cond.value
    if op == "in":
        return value in cond.values
    if op == "notin":
        return value not in cond.values
    return False


def meets_field_conditions(resource: Resource, conditions: list[FieldCondition]) -> bool:
    for cond in conditions:
        lookup = resource.nested_string(cond.field_path)
        if not lookup.found:
            return False
        if not matches_field_operator(lookup.value, cond):
            return False
    return True


def meets_conditions(resource: Resource, conditions: ConditionsSpec | None) -> bool:
    """All configured condition groups, AND-combined."""
    if conditions is None:
        return True
    return (
        meets_phase_condition(resource, conditions.phase)
        and meets_label_conditions(resource, conditions.has_labels)
        and meets_annotation_conditions(resource, conditions.has_annotations)
        and meets_field_conditions(resource, conditions.and_)
    )
