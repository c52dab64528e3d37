"""
Collaborator contracts consumed by the evaluation engine.

Implementations live outside the core: Kubernetes-backed ones in
reaper.adapters.kubernetes, in-memory ones in reaper.utils.testing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reaper.core.resource import Resource
    from reaper.discovery.gvr import GroupVersionResource
    from reaper.policy.models import BehaviorSpec, GarbageCollectionPolicy
    from reaper.status.reconciler import StatusUpdate


class EventType(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"


class Discovery(ABC):
    """Maps a group/version/kind to its resource name using server discovery."""

    @abstractmethod
    async def resource_for(self, group: str, version: str, kind: str) -> str:
        """
        Return the plural resource name for a kind.

        Raises:
            Exception: Any failure; the resolver falls back to pluralization
        """
        ...


class ResourceLister(ABC):
    """
    Returns a best-effort current snapshot of resources.

    May be backed by a watch cache and therefore eventually consistent.
    """

    @abstractmethod
    async def list(
        self,
        resource_type: GroupVersionResource,
        namespace: str,
    ) -> list[Resource]:
        """
        List resources of a type in a namespace, or all namespaces for "*".
        """
        ...


class Deleter(ABC):
    """
    Deletes one resource honoring dry-run, grace period and propagation.

    Implementations raise ResourceNotFoundError (or return normally) when the
    resource is already gone, and TransientAPIError for retryable failures.
    """

    @abstractmethod
    async def delete(self, resource: Resource, behavior: BehaviorSpec) -> None:
        ...


class StatusUpdater(ABC):
    """Persists a computed status onto the policy object."""

    @abstractmethod
    async def update(self, policy: GarbageCollectionPolicy, update: StatusUpdate) -> None:
        ...


class EventRecorder(ABC):
    """Emits events about a subject (usually a policy)."""

    @abstractmethod
    def record(
        self,
        subject: GarbageCollectionPolicy,
        reason: str,
        message: str,
        event_type: EventType = EventType.NORMAL,
    ) -> None:
        ...


class Leadership(ABC):
    """Single-active-writer signal gating the scheduler."""

    @abstractmethod
    def is_leader(self) -> bool:
        ...


class PolicySource(ABC):
    """Supplies the set of currently known policies."""

    @abstractmethod
    async def list_policies(self) -> list[GarbageCollectionPolicy]:
        ...
