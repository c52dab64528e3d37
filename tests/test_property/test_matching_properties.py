"""
Property-based tests for matching and TTL evaluation using Hypothesis.

Matching and expiry are pure functions of their inputs: repeated or
reordered evaluation must never change an answer.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from reaper.core.resource import lookup_path
from reaper.policy.matching import matches_label_selector, meets_conditions
from reaper.policy.models import (
    ConditionsSpec,
    LabelCondition,
    LabelSelector,
    LabelSelectorRequirement,
    TTLSpec,
)
from reaper.policy.ttl import evaluate_ttl
from reaper.utils.testing import make_resource

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

# === Strategy Definitions ===

label_keys = st.sampled_from(["app", "env", "tier", "team"])
label_values = st.sampled_from(["web", "db", "dev", "prod", "test"])
label_maps = st.dictionaries(label_keys, label_values, max_size=4)


@st.composite
def requirement_strategy(draw):
    """Generate label selector requirements with valid value lists."""
    operator = draw(st.sampled_from(["In", "NotIn", "Exists", "DoesNotExist"]))
    values = draw(st.lists(label_values, min_size=1, max_size=3)) if operator in ("In", "NotIn") else []
    return LabelSelectorRequirement(key=draw(label_keys), operator=operator, values=values)


@st.composite
def selector_strategy(draw):
    return LabelSelector(
        match_labels=draw(st.dictionaries(label_keys, label_values, max_size=2)),
        match_expressions=draw(st.lists(requirement_strategy(), max_size=3)),
    )


@st.composite
def label_condition_strategy(draw):
    return LabelCondition(
        key=draw(label_keys),
        value=draw(label_values),
        operator=draw(st.sampled_from(["", "Equals", "Exists", "In", "NotIn"])),
    )


json_leaf = st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=5))
json_tree = st.recursive(
    json_leaf,
    lambda children: st.one_of(
        st.lists(children, max_size=3),
        st.dictionaries(st.sampled_from(["a", "b", "c"]), children, max_size=3),
    ),
    max_leaves=10,
)


class TestMatchingProperties:
    """Referential transparency of selector and condition matching."""

    @given(labels=label_maps, selector=selector_strategy())
    @settings(max_examples=200)
    def test_selector_is_repeatable(self, labels, selector):
        resource = make_resource("r", labels=labels)
        first = matches_label_selector(resource, selector)
        assert all(matches_label_selector(resource, selector) == first for _ in range(3))

    @given(labels=label_maps, selector=selector_strategy())
    def test_expression_order_is_irrelevant(self, labels, selector):
        resource = make_resource("r", labels=labels)
        reversed_selector = selector.model_copy(
            update={"match_expressions": list(reversed(selector.match_expressions))}
        )
        assert matches_label_selector(resource, selector) == matches_label_selector(
            resource, reversed_selector
        )

    @given(labels=label_maps, selector=selector_strategy())
    def test_adding_a_requirement_never_widens(self, labels, selector):
        resource = make_resource("r", labels=labels)
        narrowed = selector.model_copy(
            update={
                "match_expressions": [
                    *selector.match_expressions,
                    LabelSelectorRequirement(key="app", operator="Exists"),
                ]
            }
        )
        if matches_label_selector(resource, narrowed):
            assert matches_label_selector(resource, selector)

    @given(labels=label_maps, conditions=st.lists(label_condition_strategy(), max_size=4))
    def test_conditions_are_order_independent(self, labels, conditions):
        resource = make_resource("r", labels=labels)
        forward = ConditionsSpec(has_labels=conditions)
        backward = ConditionsSpec(has_labels=list(reversed(conditions)))
        assert meets_conditions(resource, forward) == meets_conditions(resource, backward)

    @given(labels=label_maps)
    def test_empty_selector_matches_everything(self, labels):
        assert matches_label_selector(make_resource("r", labels=labels), LabelSelector())


class TestTTLProperties:
    """Determinism and monotonicity of expiry."""

    @given(
        age=st.integers(min_value=0, max_value=10 * 86400),
        ttl=st.integers(min_value=0, max_value=10 * 86400),
    )
    def test_fixed_ttl_boundary(self, age, ttl):
        resource = make_resource("r", created_at=NOW - timedelta(seconds=age))
        result = evaluate_ttl(resource, TTLSpec(seconds_after_creation=ttl), NOW)
        assert result.expired == (age >= ttl)
        assert result == evaluate_ttl(resource, TTLSpec(seconds_after_creation=ttl), NOW)

    @given(
        age=st.integers(min_value=0, max_value=86400),
        ttl=st.integers(min_value=0, max_value=86400),
        later=st.integers(min_value=0, max_value=86400),
    )
    def test_expired_stays_expired(self, age, ttl, later):
        resource = make_resource("r", created_at=NOW - timedelta(seconds=age))
        spec = TTLSpec(seconds_after_creation=ttl)
        if evaluate_ttl(resource, spec, NOW).expired:
            assert evaluate_ttl(resource, spec, NOW + timedelta(seconds=later)).expired


class TestLookupProperties:
    @given(tree=json_tree, path=st.lists(st.sampled_from(["a", "b", "c"]), min_size=1, max_size=4))
    def test_lookup_never_raises(self, tree, path):
        result = lookup_path({"root": tree}, ["root", *path])
        if result.found:
            assert result.value is not None
