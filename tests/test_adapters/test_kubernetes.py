"""
Tests for the Kubernetes adapters against a mocked DynamicClient.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

pytest.importorskip("kubernetes")

from kubernetes.client.exceptions import ApiException  # noqa: E402

from reaper.adapters.kubernetes import (  # noqa: E402
    POLICY_API_VERSION,
    POLICY_KIND,
    KubernetesDeleter,
    KubernetesDiscovery,
    KubernetesEventRecorder,
    KubernetesPolicySource,
    KubernetesResourceLister,
    KubernetesStatusUpdater,
    build_scheduler,
    translate_api_error,
)
from reaper.config import ControllerConfig  # noqa: E402
from reaper.core.errors import ResourceNotFoundError, TransientAPIError  # noqa: E402
from reaper.core.interfaces import EventType  # noqa: E402
from reaper.deletion.backoff import delete_with_backoff  # noqa: E402
from reaper.discovery.gvr import GroupVersionResource  # noqa: E402
from reaper.policy.models import BehaviorSpec  # noqa: E402
from reaper.scheduler import EvaluationScheduler  # noqa: E402
from reaper.status.reconciler import reconcile  # noqa: E402
from reaper.utils.testing import DEFAULT_NOW, make_policy, make_resource  # noqa: E402

PODS = GroupVersionResource("", "v1", "pods")

POLICY_ITEM = {
    "apiVersion": POLICY_API_VERSION,
    "kind": POLICY_KIND,
    "metadata": {"name": "cleanup", "namespace": "gc", "uid": "u-1"},
    "spec": {
        "targetResource": {"apiVersion": "batch/v1", "kind": "Job", "namespace": "*"},
        "ttl": {"secondsAfterCreation": 3600},
    },
}


def dynamic_client(api=None):
    dyn = MagicMock()
    dyn.resources.get.return_value = api or MagicMock()
    return dyn


def resource_api(items=(), namespaced=True, kind="Pod"):
    api = MagicMock()
    api.namespaced = namespaced
    api.kind = kind
    api.get.return_value.to_dict.return_value = {"items": [dict(i) for i in items]}
    return api


class TestTranslateApiError:
    def test_not_found(self):
        assert isinstance(translate_api_error(ApiException(status=404), "x"), ResourceNotFoundError)

    @pytest.mark.parametrize("status", [429, 503, 504])
    def test_transient(self, status):
        error = translate_api_error(ApiException(status=status, reason="busy"), "x")
        assert isinstance(error, TransientAPIError)
        assert error.status == status

    def test_other_errors_pass_through(self):
        original = ApiException(status=403, reason="Forbidden")
        assert translate_api_error(original, "x") is original


class TestKubernetesDiscovery:
    @pytest.mark.asyncio
    async def test_resource_for(self):
        api = MagicMock()
        api.name = "endpoints"
        dyn = dynamic_client(api)

        assert await KubernetesDiscovery(dyn).resource_for("", "v1", "Endpoints") == "endpoints"
        dyn.resources.get.assert_called_once_with(api_version="v1", kind="Endpoints")


class TestKubernetesResourceLister:
    """Tests for KubernetesResourceLister."""

    @pytest.mark.asyncio
    async def test_lists_namespace(self):
        api = resource_api([{"metadata": {"name": "a", "namespace": "default"}}])
        dyn = dynamic_client(api)

        [resource] = await KubernetesResourceLister(dyn).list(PODS, "default")

        api.get.assert_called_once_with(namespace="default")
        dyn.resources.get.assert_called_once_with(api_version="v1", name="pods")
        assert resource.name == "a"
        assert resource.api_version == "v1"
        assert resource.kind == "Pod"

    @pytest.mark.asyncio
    async def test_wildcard_lists_all_namespaces(self):
        api = resource_api()
        await KubernetesResourceLister(dynamic_client(api)).list(PODS, "*")
        api.get.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_transient_error(self):
        api = resource_api()
        api.get.side_effect = ApiException(status=503, reason="Unavailable")
        with pytest.raises(TransientAPIError):
            await KubernetesResourceLister(dynamic_client(api)).list(PODS, "default")


class TestKubernetesDeleter:
    """Tests for KubernetesDeleter."""

    def test_delete_options(self):
        behavior = BehaviorSpec(propagation_policy="Foreground", grace_period_seconds=0, dry_run=True)
        assert KubernetesDeleter.delete_options(behavior) == {
            "apiVersion": "v1",
            "kind": "DeleteOptions",
            "propagationPolicy": "Foreground",
            "gracePeriodSeconds": 0,
            "dryRun": ["All"],
        }

    def test_default_delete_options(self):
        body = KubernetesDeleter.delete_options(BehaviorSpec())
        assert body["propagationPolicy"] == "Background"
        assert "gracePeriodSeconds" not in body
        assert "dryRun" not in body

    def test_unknown_propagation_falls_back_to_background(self):
        body = KubernetesDeleter.delete_options(BehaviorSpec(propagation_policy="Sideways"))
        assert body["propagationPolicy"] == "Background"

    @pytest.mark.asyncio
    async def test_deletes_namespaced(self):
        api = resource_api()
        dyn = dynamic_client(api)

        await KubernetesDeleter(dyn).delete(make_resource("a", "ns"), BehaviorSpec())

        call = api.delete.call_args.kwargs
        assert call["name"] == "a"
        assert call["namespace"] == "ns"
        dyn.resources.get.assert_called_once_with(api_version="v1", kind="Pod")

    @pytest.mark.asyncio
    async def test_cluster_scoped(self):
        api = resource_api(namespaced=False)
        await KubernetesDeleter(dynamic_client(api)).delete(
            make_resource("node-1", "", kind="Node"), BehaviorSpec()
        )
        assert "namespace" not in api.delete.call_args.kwargs

    @pytest.mark.asyncio
    async def test_already_gone_is_success(self):
        api = resource_api()
        api.delete.side_effect = ApiException(status=404, reason="Not Found")
        deleter = KubernetesDeleter(dynamic_client(api))

        assert await delete_with_backoff(deleter, make_resource("a"), BehaviorSpec())


class TestKubernetesStatusUpdater:
    @pytest.mark.asyncio
    async def test_merge_patches_status(self):
        api = MagicMock()
        policy = make_policy("cleanup", "gc")
        update = reconcile(policy, None, None, now=DEFAULT_NOW, interval=ControllerConfig().gc_interval)

        await KubernetesStatusUpdater(dynamic_client(api)).update(policy, update)

        call = api.status.patch.call_args.kwargs
        assert call["name"] == "cleanup"
        assert call["namespace"] == "gc"
        assert call["content_type"] == "application/merge-patch+json"
        assert call["body"]["status"]["phase"] == "Active"
        assert call["body"]["status"]["lastGCRun"] == "2024-01-01T12:00:00Z"


class TestKubernetesEventRecorder:
    """Tests for KubernetesEventRecorder."""

    def test_build_event(self):
        recorder = KubernetesEventRecorder(MagicMock())
        policy = make_policy("cleanup", "gc")
        event = recorder.build_event(policy, "PolicyEvaluated", "done", EventType.NORMAL)
        assert event.metadata.namespace == "gc"
        assert event.involved_object.uid == policy.uid
        assert event.involved_object.kind == POLICY_KIND
        assert event.type == "Normal"

    def test_record_without_loop(self):
        core = MagicMock()
        KubernetesEventRecorder(core).record(make_policy(), "PolicyCreated", "created")
        namespace, event = core.create_namespaced_event.call_args.args
        assert namespace == "default"
        assert event.reason == "PolicyCreated"

    @pytest.mark.asyncio
    async def test_record_inside_loop(self):
        core = MagicMock()
        recorder = KubernetesEventRecorder(core)
        recorder.record(make_policy(), "PolicyCreated", "created")
        for _ in range(100):
            if core.create_namespaced_event.called:
                break
            await asyncio.sleep(0.01)
        assert core.create_namespaced_event.called

    def test_api_failure_is_logged(self):
        core = MagicMock()
        core.create_namespaced_event.side_effect = ApiException(status=403)
        KubernetesEventRecorder(core).record(make_policy(), "PolicyCreated", "created")


class TestKubernetesPolicySource:
    @pytest.mark.asyncio
    async def test_skips_invalid_policies(self):
        invalid_ttl = {**POLICY_ITEM, "metadata": {"name": "bad", "namespace": "gc", "uid": "u-2"}}
        invalid_ttl["spec"] = {**POLICY_ITEM["spec"], "ttl": {}}
        malformed = {"metadata": {"name": "worse", "uid": "u-3"}, "spec": {}}
        api = resource_api([POLICY_ITEM, invalid_ttl, malformed])

        policies = await KubernetesPolicySource(dynamic_client(api)).list_policies()

        assert [p.uid for p in policies] == ["u-1"]
        assert policies[0].spec.target_resource.kind == "Job"


class TestBuildScheduler:
    def test_wires_engine(self):
        config = ControllerConfig(batch_size=7)
        scheduler = build_scheduler(dynamic_client(), config=config)
        assert isinstance(scheduler, EvaluationScheduler)
        assert scheduler.config is config
        assert scheduler.evaluator.batch_deleter.default_batch_size == 7
