"""
Testing utilities for Reaper.

In-memory collaborators and factories for exercising the evaluation engine
without a cluster.

Usage:
    clock = FrozenClock()
    lister = InMemoryResourceLister([
        make_resource("old-pod", created_at=clock.now - timedelta(hours=2)),
    ])
    deleter = RecordingDeleter(lister=lister)
    evaluator = PolicyEvaluator(
        resolver=GVRResolver(),
        listers=ListerRegistry(lister),
        deleter=deleter,
        clock=clock,
    )
    result = await evaluator.evaluate(make_policy(seconds_after_creation=3600))
    assert deleter.deleted == ["default/old-pod"]
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from reaper.core.errors import ResourceNotFoundError, TransientAPIError
from reaper.core.interfaces import (
    Deleter,
    EventRecorder,
    EventType,
    PolicySource,
    ResourceLister,
    StatusUpdater,
)
from reaper.core.resource import Resource, format_timestamp
from reaper.discovery.gvr import GroupVersionResource, pluralize_kind
from reaper.policy.models import WILDCARD_NAMESPACE, BehaviorSpec, GarbageCollectionPolicy
from reaper.status.reconciler import StatusUpdate

DEFAULT_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """
    Manually advanced clock.

    Calling the clock returns the current datetime; monotonic() returns the
    same instant as float seconds for schedulers.
    """

    def __init__(self, now: datetime = DEFAULT_NOW) -> None:
        self.now = now
        self._origin = now

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return (self.now - self._origin).total_seconds()

    def advance(self, delta: timedelta | float) -> datetime:
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self.now += delta
        return self.now


def make_resource(
    name: str,
    namespace: str = "default",
    *,
    kind: str = "Pod",
    api_version: str = "v1",
    uid: str | None = None,
    labels: Mapping[str, str] | None = None,
    annotations: Mapping[str, str] | None = None,
    created_at: datetime | None = DEFAULT_NOW,
    phase: str | None = None,
    spec: Mapping[str, Any] | None = None,
    status: Mapping[str, Any] | None = None,
) -> Resource:
    """Build a resource document with the fields the engine reads."""
    metadata: dict[str, Any] = {
        "name": name,
        "uid": uid or f"uid-{name}",
    }
    if namespace:
        metadata["namespace"] = namespace
    if labels:
        metadata["labels"] = dict(labels)
    if annotations:
        metadata["annotations"] = dict(annotations)
    if created_at is not None:
        metadata["creationTimestamp"] = format_timestamp(created_at)

    obj: dict[str, Any] = {"apiVersion": api_version, "kind": kind, "metadata": metadata}
    if spec is not None:
        obj["spec"] = dict(spec)
    status_doc = dict(status or {})
    if phase is not None:
        status_doc["phase"] = phase
    if status_doc:
        obj["status"] = status_doc
    return Resource(obj)


def make_policy(
    name: str = "test-policy",
    namespace: str = "default",
    *,
    uid: str | None = None,
    api_version: str = "v1",
    kind: str = "Pod",
    target_namespace: str | None = "default",
    label_selector: Mapping[str, Any] | None = None,
    field_selector: Mapping[str, Any] | None = None,
    seconds_after_creation: int | None = 3600,
    ttl: Mapping[str, Any] | None = None,
    conditions: Mapping[str, Any] | None = None,
    behavior: Mapping[str, Any] | None = None,
    paused: bool = False,
    status: Mapping[str, Any] | None = None,
) -> GarbageCollectionPolicy:
    """
    Build a policy from wire-format fragments.

    ttl overrides seconds_after_creation when given.
    """
    target: dict[str, Any] = {"apiVersion": api_version, "kind": kind}
    if target_namespace is not None:
        target["namespace"] = target_namespace
    if label_selector is not None:
        target["labelSelector"] = dict(label_selector)
    if field_selector is not None:
        target["fieldSelector"] = dict(field_selector)

    spec: dict[str, Any] = {"targetResource": target}
    if ttl is not None:
        spec["ttl"] = dict(ttl)
    elif seconds_after_creation is not None:
        spec["ttl"] = {"secondsAfterCreation": seconds_after_creation}
    if conditions is not None:
        spec["conditions"] = dict(conditions)
    if behavior is not None:
        spec["behavior"] = dict(behavior)
    if paused:
        spec["paused"] = True

    return GarbageCollectionPolicy.from_object(
        {
            "metadata": {
                "name": name,
                "namespace": namespace,
                "uid": uid or f"uid-{name}",
                "generation": 1,
            },
            "spec": spec,
            "status": dict(status or {}),
        }
    )


class InMemoryResourceLister(ResourceLister):
    """
    Serves resources from memory.

    A resource is listed for a resource type when its apiVersion matches and
    its pluralized kind equals the type's resource name.
    """

    def __init__(
        self,
        resources: Iterable[Resource] = (),
        *,
        delay: float = 0.0,
    ) -> None:
        self._resources: dict[str, Resource] = {}
        for resource in resources:
            self.add(resource)
        self.delay = delay
        self.error: Exception | None = None
        self.calls: list[tuple[GroupVersionResource, str]] = []

    def add(self, resource: Resource) -> None:
        self._resources[resource.key] = resource

    def remove(self, resource: Resource) -> None:
        self._resources.pop(resource.key, None)

    def fail_with(self, error: Exception | None) -> None:
        """Make subsequent list calls raise error (None clears it)."""
        self.error = error

    @property
    def resources(self) -> list[Resource]:
        return list(self._resources.values())

    async def list(self, resource_type: GroupVersionResource, namespace: str) -> list[Resource]:
        self.calls.append((resource_type, namespace))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [
            r
            for r in self._resources.values()
            if r.api_version == resource_type.api_version
            and pluralize_kind(r.kind) == resource_type.resource
            and (namespace == WILDCARD_NAMESPACE or r.namespace == namespace)
        ]


class RecordingDeleter(Deleter):
    """
    Records deletions and simulates failures.

    Attributes:
        deleted: Refs of successfully deleted resources, in order
        attempts: Refs of every delete call, including failures
    """

    def __init__(self, *, lister: InMemoryResourceLister | None = None) -> None:
        self.lister = lister
        self.deleted: list[str] = []
        self.attempts: list[str] = []
        self.behaviors: list[BehaviorSpec] = []
        self._failures: dict[str, Exception] = {}
        self._transient: dict[str, int] = {}
        self._gone: set[str] = set()
        self._transient_status = 503

    def fail(self, ref: str, error: Exception | None = None) -> None:
        """Fail every delete of ref permanently."""
        self._failures[ref] = error or RuntimeError(f"simulated failure deleting {ref}")

    def fail_transiently(self, ref: str, times: int, status: int = 503) -> None:
        """Raise TransientAPIError for the next `times` deletes of ref."""
        self._transient[ref] = times
        self._transient_status = status

    def already_gone(self, ref: str) -> None:
        """Raise ResourceNotFoundError when ref is deleted."""
        self._gone.add(ref)

    async def delete(self, resource: Resource, behavior: BehaviorSpec) -> None:
        ref = resource.ref
        self.attempts.append(ref)
        self.behaviors.append(behavior)
        if ref in self._failures:
            raise self._failures[ref]
        remaining = self._transient.get(ref, 0)
        if remaining > 0:
            self._transient[ref] = remaining - 1
            raise TransientAPIError(f"simulated transient error for {ref}", status=self._transient_status)
        if ref in self._gone:
            raise ResourceNotFoundError(f"{ref} not found")
        self.deleted.append(ref)
        if self.lister is not None:
            self.lister.remove(resource)


class InMemoryStatusUpdater(StatusUpdater):
    """Keeps the latest StatusUpdate per policy UID."""

    def __init__(self) -> None:
        self.updates: dict[str, StatusUpdate] = {}
        self.history: list[tuple[str, StatusUpdate]] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def update(self, policy: GarbageCollectionPolicy, update: StatusUpdate) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.updates[policy.uid] = update
        self.history.append((policy.uid, update))

    def latest(self, policy_uid: str) -> StatusUpdate | None:
        return self.updates.get(policy_uid)


@dataclass
class RecordedEvent:
    subject_uid: str
    reason: str
    message: str
    event_type: EventType = EventType.NORMAL


@dataclass
class RecordingEventRecorder(EventRecorder):
    """Collects events in memory."""

    events: list[RecordedEvent] = field(default_factory=list)

    def record(
        self,
        subject: GarbageCollectionPolicy,
        reason: str,
        message: str,
        event_type: EventType = EventType.NORMAL,
    ) -> None:
        self.events.append(RecordedEvent(subject.uid, reason, message, event_type))

    def reasons(self) -> list[str]:
        return [e.reason for e in self.events]


class StaticPolicySource(PolicySource):
    """A mutable, in-memory set of policies."""

    def __init__(self, policies: Iterable[GarbageCollectionPolicy] = ()) -> None:
        self._policies: dict[str, GarbageCollectionPolicy] = {p.uid: p for p in policies}
        self.calls = 0

    def put(self, policy: GarbageCollectionPolicy) -> None:
        self._policies[policy.uid] = policy

    def remove(self, policy_uid: str) -> None:
        self._policies.pop(policy_uid, None)

    async def list_policies(self) -> list[GarbageCollectionPolicy]:
        self.calls += 1
        return list(self._policies.values())
