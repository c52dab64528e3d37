"""
Shared, reference-counted resource listers.

Policies targeting the same resource type and namespace share one
SharedLister. The registry tracks which policies reference each key and
tears a key down once no policy references it.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from reaper.core.errors import ListFailedError
from reaper.core.interfaces import ResourceLister
from reaper.core.resource import Resource
from reaper.discovery.gvr import GroupVersionResource
from reaper.logging import get_logger

logger = get_logger(__name__)

ListerKey = tuple[GroupVersionResource, str]


class SharedLister:
    """
    Lists one (resource type, namespace) pair on behalf of many policies.

    Concurrent list() calls share a single upstream request. A completed
    snapshot is reused for at most max_staleness seconds; with the default
    of 0 every call after the in-flight one completes lists fresh.
    """

    def __init__(
        self,
        upstream: ResourceLister,
        resource_type: GroupVersionResource,
        namespace: str,
        *,
        max_staleness: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.upstream = upstream
        self.resource_type = resource_type
        self.namespace = namespace
        self.max_staleness = max_staleness
        self._clock = clock
        self._inflight: asyncio.Future[list[Resource]] | None = None
        self._snapshot: list[Resource] | None = None
        self._snapshot_at = 0.0
        self.upstream_calls = 0

    def _fresh_snapshot(self) -> list[Resource] | None:
        if self._snapshot is None or self.max_staleness <= 0:
            return None
        if self._clock() - self._snapshot_at > self.max_staleness:
            return None
        return self._snapshot

    async def list(self) -> list[Resource]:
        """
        Return the current snapshot.

        Raises:
            ListFailedError: If the upstream lister fails
        """
        cached = self._fresh_snapshot()
        if cached is not None:
            return list(cached)

        if self._inflight is not None:
            return list(await asyncio.shield(self._inflight))

        loop = asyncio.get_running_loop()
        future: asyncio.Future[list[Resource]] = loop.create_future()
        self._inflight = future
        try:
            self.upstream_calls += 1
            items = await self.upstream.list(self.resource_type, self.namespace)
        except ListFailedError as e:
            future.set_exception(e)
            raise
        except Exception as e:
            err = ListFailedError(str(self.resource_type), self.namespace, cause=e)
            future.set_exception(err)
            raise err from e
        except BaseException:
            future.cancel()
            raise
        else:
            self._snapshot = items
            self._snapshot_at = self._clock()
            future.set_result(items)
            return list(items)
        finally:
            self._inflight = None
            # Mark the exception retrieved when nobody else was waiting
            if future.done() and not future.cancelled():
                future.exception()


@dataclass
class _Entry:
    lister: SharedLister
    policies: set[str] = field(default_factory=set)


class ListerRegistry:
    """
    Hands out one SharedLister per (resource type, namespace).

    acquire() and release() never await, so check-then-create is atomic
    with respect to other workers on the same event loop.

    Usage:
        registry = ListerRegistry(upstream)
        lister = registry.acquire(policy.uid, gvr, "default")
        resources = await lister.list()
        ...
        registry.release(policy.uid)  # when the policy is deleted
    """

    def __init__(self, upstream: ResourceLister, *, max_staleness: float = 0.0) -> None:
        self.upstream = upstream
        self.max_staleness = max_staleness
        self._entries: dict[ListerKey, _Entry] = {}
        self._policy_keys: dict[str, ListerKey] = {}

    def acquire(
        self,
        policy_uid: str,
        resource_type: GroupVersionResource,
        namespace: str,
    ) -> SharedLister:
        """
        Return the shared lister for a key and record the policy's reference.

        A policy references one key at a time; acquiring a different key
        (the policy's target changed) releases the old one.
        """
        key: ListerKey = (resource_type, namespace)
        previous = self._policy_keys.get(policy_uid)
        if previous is not None and previous != key:
            self._drop_reference(policy_uid, previous)

        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry(
                lister=SharedLister(
                    self.upstream,
                    resource_type,
                    namespace,
                    max_staleness=self.max_staleness,
                )
            )
            self._entries[key] = entry
            logger.debug(
                "Created shared lister",
                operation="acquire_lister",
                resource_type=str(resource_type),
                namespace=namespace,
            )
        entry.policies.add(policy_uid)
        self._policy_keys[policy_uid] = key
        return entry.lister

    def release(self, policy_uid: str) -> bool:
        """Drop a policy's reference. Returns True if it held one."""
        key = self._policy_keys.pop(policy_uid, None)
        if key is None:
            return False
        self._drop_reference(policy_uid, key)
        return True

    def _drop_reference(self, policy_uid: str, key: ListerKey) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.policies.discard(policy_uid)
        if not entry.policies:
            del self._entries[key]
            logger.debug(
                "Tore down shared lister",
                operation="release_lister",
                resource_type=str(key[0]),
                namespace=key[1],
            )

    def references(self, resource_type: GroupVersionResource, namespace: str) -> set[str]:
        entry = self._entries.get((resource_type, namespace))
        return set(entry.policies) if entry else set()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
