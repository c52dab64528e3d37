"""
Tests for resource type resolution.
"""

import pytest

from reaper.core.errors import ResolutionFailedError
from reaper.core.interfaces import Discovery
from reaper.discovery.gvr import (
    GroupVersionResource,
    GVRResolver,
    parse_group_version,
    pluralize_kind,
)


class StubDiscovery(Discovery):
    def __init__(self, names=None, error=None):
        self.names = names or {}
        self.error = error
        self.calls = []

    async def resource_for(self, group, version, kind):
        self.calls.append((group, version, kind))
        if self.error is not None:
            raise self.error
        return self.names.get(kind, "")


class TestParseGroupVersion:
    def test_core(self):
        assert parse_group_version("v1") == ("", "v1")

    def test_grouped(self):
        assert parse_group_version("apps/v1") == ("apps", "v1")

    @pytest.mark.parametrize("bad", ["", "apps", "a/b/c", "/v1", "apps/"])
    def test_malformed(self, bad):
        with pytest.raises(ValueError):
            parse_group_version(bad)


class TestPluralizeKind:
    @pytest.mark.parametrize(
        "kind, plural",
        [
            ("Pod", "pods"),
            ("Job", "jobs"),
            ("Ingress", "ingresses"),
            ("Box", "boxes"),
            ("Batch", "batches"),
            ("Mesh", "meshes"),
            ("NetworkPolicy", "networkpolicies"),
            ("Gateway", "gateways"),
            ("ConfigMap", "configmaps"),
        ],
    )
    def test_heuristic(self, kind, plural):
        assert pluralize_kind(kind) == plural


class TestGroupVersionResource:
    def test_api_version_and_str(self):
        core = GroupVersionResource("", "v1", "pods")
        grouped = GroupVersionResource("batch", "v1", "jobs")
        assert core.api_version == "v1"
        assert grouped.api_version == "batch/v1"
        assert str(core) == "pods.v1"
        assert str(grouped) == "jobs.v1.batch"


class TestGVRResolver:
    """Tests for GVRResolver."""

    @pytest.mark.asyncio
    async def test_discovery_wins(self):
        resolver = GVRResolver(StubDiscovery({"Endpoints": "endpoints"}))
        gvr = await resolver.resolve("v1", "Endpoints")
        assert gvr == GroupVersionResource("", "v1", "endpoints")

    @pytest.mark.asyncio
    async def test_falls_back_when_discovery_fails(self):
        resolver = GVRResolver(StubDiscovery(error=RuntimeError("discovery down")))
        gvr = await resolver.resolve("batch/v1", "CronJob")
        assert gvr.resource == "cronjobs"

    @pytest.mark.asyncio
    async def test_falls_back_without_discovery(self):
        gvr = await GVRResolver().resolve("apps/v1", "Deployment")
        assert gvr == GroupVersionResource("apps", "v1", "deployments")

    @pytest.mark.asyncio
    async def test_cached(self):
        discovery = StubDiscovery({"Job": "jobs"})
        resolver = GVRResolver(discovery)
        first = await resolver.resolve("batch/v1", "Job")
        second = await resolver.resolve("batch/v1", "Job")
        assert first is second
        assert len(discovery.calls) == 1
        assert len(resolver) == 1

    @pytest.mark.asyncio
    async def test_invalidate(self):
        discovery = StubDiscovery({"Job": "jobs"})
        resolver = GVRResolver(discovery)
        await resolver.resolve("batch/v1", "Job")
        await resolver.resolve("v1", "Pod")
        resolver.invalidate(kind="Job")
        assert len(resolver) == 1
        resolver.invalidate()
        assert len(resolver) == 0

    @pytest.mark.asyncio
    async def test_malformed_api_version(self):
        with pytest.raises(ResolutionFailedError):
            await GVRResolver().resolve("a/b/c", "Pod")

    @pytest.mark.asyncio
    async def test_empty_kind(self):
        with pytest.raises(ResolutionFailedError):
            await GVRResolver().resolve("v1", "")
