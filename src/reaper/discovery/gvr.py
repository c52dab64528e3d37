"""
Group/version/resource resolution.

Discovery is the primary path because it knows irregular plurals
(e.g. "Endpoints" -> "endpoints"). When discovery is unavailable or fails,
a pluralization heuristic derives the resource name from the kind.
Results are cached per (apiVersion, kind) for the life of the resolver.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from reaper.core.errors import ResolutionFailedError
from reaper.core.interfaces import Discovery
from reaper.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GroupVersionResource:
    """Identifies a resource type for listing and deleting."""

    group: str
    version: str
    resource: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.resource}.{self.version}.{self.group}" if self.group else f"{self.resource}.{self.version}"


def parse_group_version(api_version: str) -> tuple[str, str]:
    """
    Split an apiVersion into (group, version).

    "v1" is the core group; "apps/v1" is grouped.

    Raises:
        ValueError: If the string is malformed
    """
    if not api_version:
        raise ValueError("apiVersion cannot be empty")
    if "/" not in api_version:
        if not api_version.startswith("v"):
            raise ValueError("apiVersion must be 'v1' (core API) or 'group/version'")
        return "", api_version

    parts = api_version.split("/")
    if len(parts) != 2:
        raise ValueError("apiVersion must have exactly one '/' separator")
    group, version = parts
    if not group:
        raise ValueError("apiVersion group cannot be empty")
    if not version:
        raise ValueError("apiVersion version cannot be empty")
    return group, version


def pluralize_kind(kind: str) -> str:
    """Heuristic plural resource name for a kind."""
    lower = kind.lower()
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return lower + "es"
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        return lower[:-1] + "ies"
    return lower + "s"


class GVRResolver:
    """
    Resolves apiVersion/kind pairs to resource types.

    Safe for concurrent use by evaluation workers: each key is resolved once
    under a lock and cached.

    Usage:
        resolver = GVRResolver(discovery=KubernetesDiscovery(client))
        gvr = await resolver.resolve("batch/v1", "Job")  # -> jobs.v1.batch
    """

    def __init__(self, discovery: Discovery | None = None) -> None:
        self.discovery = discovery
        self._cache: dict[tuple[str, str], GroupVersionResource] = {}
        self._lock = asyncio.Lock()

    async def resolve(self, api_version: str, kind: str) -> GroupVersionResource:
        """
        Resolve a resource type.

        Raises:
            ResolutionFailedError: If the apiVersion is malformed or no
                resource name can be derived
        """
        key = (api_version, kind)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            group, version = parse_group_version(api_version)
        except ValueError as e:
            raise ResolutionFailedError(api_version, kind, str(e)) from e
        if not kind:
            raise ResolutionFailedError(api_version, kind, "kind cannot be empty")

        async with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            resource = await self._discover(group, version, kind)
            if not resource:
                resource = pluralize_kind(kind)
            if not resource:
                raise ResolutionFailedError(api_version, kind, "no resource name derivable")

            gvr = GroupVersionResource(group=group, version=version, resource=resource)
            self._cache[key] = gvr
            logger.debug(
                "Resolved resource type",
                operation="resolve_gvr",
                api_version=api_version,
                kind=kind,
                gvr=str(gvr),
            )
            return gvr

    async def _discover(self, group: str, version: str, kind: str) -> str | None:
        if self.discovery is None:
            return None
        try:
            return await self.discovery.resource_for(group, version, kind)
        except Exception as e:
            logger.debug(
                "Discovery failed, falling back to pluralization",
                operation="resolve_gvr",
                kind=kind,
                error=str(e),
            )
            return None

    def invalidate(self, api_version: str | None = None, kind: str | None = None) -> None:
        """Drop cached entries (all, or those matching the given pair)."""
        if api_version is None and kind is None:
            self._cache.clear()
            return
        for key in list(self._cache):
            if (api_version is None or key[0] == api_version) and (
                kind is None or key[1] == kind
            ):
                del self._cache[key]

    def __len__(self) -> int:
        return len(self._cache)
