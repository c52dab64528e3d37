"""
Garbage-collection policy model definitions.

Policies describe what to target, when a target expires, which extra
conditions gate deletion, and how aggressively to delete. The wire format is
camelCase and externally owned; these models are read once per cycle and are
immutable for its duration.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from reaper.config import parse_duration

WILDCARD_NAMESPACE = "*"


class PolicyPhase(str, Enum):
    """Lifecycle phase reported in a policy's status."""

    ACTIVE = "Active"
    PAUSED = "Paused"
    ERROR = "Error"


class PropagationPolicy(str, Enum):
    """How dependents of a deleted resource are handled."""

    FOREGROUND = "Foreground"
    BACKGROUND = "Background"
    ORPHAN = "Orphan"

    @classmethod
    def coerce(cls, value: str | None) -> PropagationPolicy:
        """Map a wire value to a propagation policy, defaulting to Background."""
        for member in cls:
            if member.value == value:
                return member
        return cls.BACKGROUND


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class LabelSelectorRequirement(_WireModel):
    """One set-based label requirement (key, operator, values)."""

    key: str
    operator: str
    values: list[str] = Field(default_factory=list)


class LabelSelector(_WireModel):
    """Standard label selector: equality map AND expression list."""

    match_labels: dict[str, str] = Field(default_factory=dict)
    match_expressions: list[LabelSelectorRequirement] = Field(default_factory=list)


class FieldSelector(_WireModel):
    """Exact-string matches against dotted field paths, evaluated in memory."""

    match_fields: dict[str, str] = Field(default_factory=dict)


class TargetResource(_WireModel):
    """The class of objects a policy acts on."""

    api_version: str
    kind: str
    namespace: str | None = None
    label_selector: LabelSelector | None = None
    field_selector: FieldSelector | None = None

    @property
    def scope_namespace(self) -> str:
        """Namespace to list from; empty means cluster-wide."""
        return self.namespace or WILDCARD_NAMESPACE


class TTLSpec(_WireModel):
    """
    Expiry rule. Exactly one mode is expected to be active:

    - fixed: ``secondsAfterCreation``
    - field-is-TTL: ``fieldPath`` (optionally ``default``)
    - mapped: ``fieldPath`` + ``mappings`` (optionally ``default``)
    - relative: ``relativeTo`` + ``secondsAfter``
    """

    seconds_after_creation: int | None = None
    field_path: str | None = None
    mappings: dict[str, int] | None = None
    default: int | None = None
    relative_to: str | None = None
    seconds_after: int | None = None

    def active_modes(self) -> list[str]:
        """Names of every configured mode, in evaluation precedence order."""
        modes = []
        if self.relative_to:
            modes.append("relative")
        if self.field_path:
            modes.append("mapped" if self.mappings is not None else "field")
        if self.seconds_after_creation is not None:
            modes.append("fixed")
        return modes


class LabelCondition(_WireModel):
    key: str
    value: str = ""
    operator: str = ""  # Exists, Equals (default), In, NotIn


class AnnotationCondition(_WireModel):
    key: str
    value: str = ""
    operator: str = ""  # Exists, Equals (default)


class FieldCondition(_WireModel):
    field_path: str
    operator: str  # Equals, NotEquals, In, NotIn
    value: str = ""
    values: list[str] = Field(default_factory=list)


class ConditionsSpec(_WireModel):
    """Extra gating predicates, AND-combined across groups."""

    phase: list[str] = Field(default_factory=list)
    has_labels: list[LabelCondition] = Field(default_factory=list)
    has_annotations: list[AnnotationCondition] = Field(default_factory=list)
    and_: list[FieldCondition] = Field(default_factory=list, alias="and")


class BehaviorSpec(_WireModel):
    """Execution behavior for deletions."""

    # Non-positive or unset values fall back to controller defaults
    max_deletions_per_second: int | None = None
    batch_size: int | None = None
    dry_run: bool = False
    finalizer: str | None = None
    propagation_policy: str = PropagationPolicy.BACKGROUND.value
    grace_period_seconds: int | None = None
    evaluation_interval: timedelta | None = None

    @field_validator("evaluation_interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: Any) -> Any:
        if value is None or isinstance(value, timedelta):
            return value
        return parse_duration(value)


class StatusCondition(_WireModel):
    """Standard condition entry (Ready, Error)."""

    type: str
    status: str  # "True" / "False"
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None


class PolicyStatus(_WireModel):
    """Persisted evaluation status of a policy."""

    phase: str | None = None
    resources_matched: int = 0
    resources_deleted: int = 0
    resources_pending: int = 0
    last_gc_run: datetime | None = Field(default=None, alias="lastGCRun")
    next_gc_run: datetime | None = Field(default=None, alias="nextGCRun")
    conditions: list[StatusCondition] = Field(default_factory=list)

    def get_condition(self, condition_type: str) -> StatusCondition | None:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


class PolicySpec(_WireModel):
    target_resource: TargetResource
    ttl: TTLSpec = Field(default_factory=TTLSpec)
    conditions: ConditionsSpec | None = None
    behavior: BehaviorSpec = Field(default_factory=BehaviorSpec)
    paused: bool = False


class GarbageCollectionPolicy(_WireModel):
    """
    A declarative retention rule plus its identity and last status.

    Identity is the UID; namespace/name are used for display and status writes.
    """

    uid: str
    name: str
    namespace: str = ""
    generation: int = 0
    spec: PolicySpec
    status: PolicyStatus = Field(default_factory=PolicyStatus)

    @property
    def ref(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name

    @property
    def is_paused(self) -> bool:
        """Paused by spec flag or by an externally set Paused phase."""
        return self.spec.paused or self.status.phase == PolicyPhase.PAUSED.value

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> GarbageCollectionPolicy:
        """
        Parse a policy document (metadata/spec/status) as stored by the cluster.

        Raises:
            pydantic.ValidationError: If the document does not fit the schema
        """
        metadata = obj.get("metadata") or {}
        return cls.model_validate(
            {
                "uid": metadata.get("uid", ""),
                "name": metadata.get("name", ""),
                "namespace": metadata.get("namespace", "") or "",
                "generation": metadata.get("generation", 0) or 0,
                "spec": obj.get("spec") or {},
                "status": obj.get("status") or {},
            }
        )
