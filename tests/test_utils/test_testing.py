"""Tests for testing utilities."""

from datetime import timedelta

import pytest

from reaper.core.errors import ResourceNotFoundError, TransientAPIError
from reaper.discovery.gvr import GroupVersionResource
from reaper.policy.models import BehaviorSpec
from reaper.status.reconciler import reconcile
from reaper.utils.testing import (
    DEFAULT_NOW,
    FrozenClock,
    InMemoryResourceLister,
    InMemoryStatusUpdater,
    RecordingDeleter,
    RecordingEventRecorder,
    StaticPolicySource,
    make_policy,
    make_resource,
)

PODS = GroupVersionResource("", "v1", "pods")
JOBS = GroupVersionResource("batch", "v1", "jobs")


class TestFrozenClock:
    def test_advance(self):
        clock = FrozenClock()
        assert clock() == DEFAULT_NOW
        clock.advance(timedelta(minutes=1))
        clock.advance(30)
        assert clock() == DEFAULT_NOW + timedelta(seconds=90)
        assert clock.monotonic() == 90.0


class TestFactories:
    def test_make_resource(self):
        resource = make_resource("job-1", "batch", kind="Job", api_version="batch/v1", phase="Succeeded")
        assert resource.ref == "batch/job-1"
        assert resource.nested_string("status.phase").value == "Succeeded"
        assert resource.creation_time() == DEFAULT_NOW

    def test_make_policy(self):
        policy = make_policy("p", seconds_after_creation=60, behavior={"dryRun": True})
        assert policy.uid == "uid-p"
        assert policy.spec.ttl.seconds_after_creation == 60
        assert policy.spec.behavior.dry_run

    def test_make_policy_ttl_overrides(self):
        policy = make_policy(ttl={"fieldPath": "spec.ttl"})
        assert policy.spec.ttl.seconds_after_creation is None
        assert policy.spec.ttl.field_path == "spec.ttl"


class TestInMemoryResourceLister:
    """Tests for InMemoryResourceLister."""

    @pytest.mark.asyncio
    async def test_filters_by_type_and_namespace(self):
        lister = InMemoryResourceLister(
            [
                make_resource("pod-a", "default"),
                make_resource("pod-b", "other"),
                make_resource("job-a", "default", kind="Job", api_version="batch/v1"),
            ]
        )
        assert [r.name for r in await lister.list(PODS, "default")] == ["pod-a"]
        assert len(await lister.list(PODS, "*")) == 2
        assert [r.name for r in await lister.list(JOBS, "*")] == ["job-a"]
        assert lister.calls[0] == (PODS, "default")

    @pytest.mark.asyncio
    async def test_fail_with(self):
        lister = InMemoryResourceLister()
        lister.fail_with(ConnectionError("down"))
        with pytest.raises(ConnectionError):
            await lister.list(PODS, "default")


class TestRecordingDeleter:
    """Tests for RecordingDeleter."""

    @pytest.mark.asyncio
    async def test_records_and_removes_from_lister(self):
        resource = make_resource("a")
        lister = InMemoryResourceLister([resource])
        deleter = RecordingDeleter(lister=lister)

        await deleter.delete(resource, BehaviorSpec())

        assert deleter.deleted == ["default/a"]
        assert lister.resources == []

    @pytest.mark.asyncio
    async def test_simulated_failures(self):
        deleter = RecordingDeleter()
        deleter.fail_transiently("default/a", times=1, status=429)
        deleter.already_gone("default/b")
        deleter.fail("default/c")

        with pytest.raises(TransientAPIError) as exc_info:
            await deleter.delete(make_resource("a"), BehaviorSpec())
        assert exc_info.value.status == 429
        await deleter.delete(make_resource("a"), BehaviorSpec())
        with pytest.raises(ResourceNotFoundError):
            await deleter.delete(make_resource("b"), BehaviorSpec())
        with pytest.raises(RuntimeError):
            await deleter.delete(make_resource("c"), BehaviorSpec())

        assert deleter.deleted == ["default/a"]
        assert deleter.attempts == ["default/a", "default/a", "default/b", "default/c"]


class TestCollectors:
    @pytest.mark.asyncio
    async def test_status_updater(self):
        updater = InMemoryStatusUpdater()
        policy = make_policy()
        update = reconcile(policy, None, None, now=DEFAULT_NOW, interval=timedelta(minutes=1))
        await updater.update(policy, update)
        assert updater.latest(policy.uid) is update
        assert updater.latest("missing") is None

    def test_event_recorder(self):
        recorder = RecordingEventRecorder()
        recorder.record(make_policy(), "PolicyCreated", "created")
        assert recorder.reasons() == ["PolicyCreated"]

    @pytest.mark.asyncio
    async def test_policy_source(self):
        source = StaticPolicySource([make_policy("a")])
        source.put(make_policy("b"))
        source.remove("uid-a")
        assert [p.name for p in await source.list_policies()] == ["b"]
        assert source.calls == 1
