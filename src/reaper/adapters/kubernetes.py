"""
Kubernetes-backed collaborators.

Every adapter wraps the official client's DynamicClient. The client is
blocking, so calls run in a worker thread through asyncio.to_thread.

Requires the ``kubernetes`` extra: pip install reaper[kubernetes]
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient

from reaper.config import ControllerConfig
from reaper.core.errors import (
    PolicyValidationError,
    ResourceNotFoundError,
    TransientAPIError,
)
from reaper.core.interfaces import (
    Deleter,
    Discovery,
    EventRecorder,
    EventType,
    Leadership,
    PolicySource,
    ResourceLister,
    StatusUpdater,
)
from reaper.core.resource import Resource
from reaper.discovery.gvr import GroupVersionResource, GVRResolver
from reaper.discovery.listers import ListerRegistry
from reaper.logging import get_logger
from reaper.policy.evaluator import PolicyEvaluator
from reaper.policy.models import (
    WILDCARD_NAMESPACE,
    BehaviorSpec,
    GarbageCollectionPolicy,
    PropagationPolicy,
)
from reaper.policy.validation import ensure_valid
from reaper.scheduler.scheduler import EvaluationScheduler
from reaper.status.reconciler import StatusUpdate

logger = get_logger(__name__)

POLICY_API_VERSION = "gc.k8s.io/v1alpha1"
POLICY_KIND = "GarbageCollectionPolicy"
EVENT_SOURCE = "reaper"

TRANSIENT_STATUSES = frozenset({429, 503, 504})


def load_dynamic_client() -> DynamicClient:
    """Build a DynamicClient from in-cluster config, falling back to kubeconfig."""
    try:
        kube_config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kube_config.ConfigException:
        kube_config.load_kube_config()
        logger.info("Loaded local Kubernetes config")
    return DynamicClient(client.ApiClient())


def translate_api_error(error: ApiException, what: str) -> Exception:
    """Map an API failure onto the collaborator error contract."""
    if error.status == 404:
        return ResourceNotFoundError(f"{what} not found")
    if error.status in TRANSIENT_STATUSES:
        return TransientAPIError(f"{what}: {error.reason}", status=error.status)
    return error


class KubernetesDiscovery(Discovery):
    """Kind -> plural resource name through API discovery."""

    def __init__(self, dynamic_client: DynamicClient) -> None:
        self.client = dynamic_client

    async def resource_for(self, group: str, version: str, kind: str) -> str:
        api_version = f"{group}/{version}" if group else version
        resource = await asyncio.to_thread(
            self.client.resources.get, api_version=api_version, kind=kind
        )
        return resource.name


class KubernetesResourceLister(ResourceLister):
    """Lists resources straight from the API server."""

    def __init__(self, dynamic_client: DynamicClient) -> None:
        self.client = dynamic_client

    def _list(self, resource_type: GroupVersionResource, namespace: str) -> list[Resource]:
        api = self.client.resources.get(
            api_version=resource_type.api_version, name=resource_type.resource
        )
        if api.namespaced and namespace != WILDCARD_NAMESPACE:
            response = api.get(namespace=namespace)
        else:
            response = api.get()
        items = []
        for item in response.to_dict().get("items", []):
            # List responses omit per-item type information
            item.setdefault("apiVersion", resource_type.api_version)
            item.setdefault("kind", api.kind)
            items.append(Resource(item))
        return items

    async def list(self, resource_type: GroupVersionResource, namespace: str) -> list[Resource]:
        try:
            return await asyncio.to_thread(self._list, resource_type, namespace)
        except ApiException as e:
            raise translate_api_error(e, f"list {resource_type}") from e


class KubernetesDeleter(Deleter):
    """Deletes with the policy's propagation, grace period and dry-run settings."""

    def __init__(self, dynamic_client: DynamicClient) -> None:
        self.client = dynamic_client

    @staticmethod
    def delete_options(behavior: BehaviorSpec) -> dict[str, Any]:
        body: dict[str, Any] = {
            "apiVersion": "v1",
            "kind": "DeleteOptions",
            "propagationPolicy": PropagationPolicy.coerce(behavior.propagation_policy).value,
        }
        if behavior.grace_period_seconds is not None:
            body["gracePeriodSeconds"] = behavior.grace_period_seconds
        if behavior.dry_run:
            body["dryRun"] = ["All"]
        return body

    def _delete(self, resource: Resource, behavior: BehaviorSpec) -> None:
        api = self.client.resources.get(api_version=resource.api_version, kind=resource.kind)
        kwargs: dict[str, Any] = {"name": resource.name, "body": self.delete_options(behavior)}
        if api.namespaced:
            kwargs["namespace"] = resource.namespace
        api.delete(**kwargs)

    async def delete(self, resource: Resource, behavior: BehaviorSpec) -> None:
        try:
            await asyncio.to_thread(self._delete, resource, behavior)
        except ApiException as e:
            raise translate_api_error(e, f"delete {resource.ref}") from e


class KubernetesStatusUpdater(StatusUpdater):
    """Merge-patches the policy's status subresource."""

    def __init__(self, dynamic_client: DynamicClient) -> None:
        self.client = dynamic_client

    def _patch(self, policy: GarbageCollectionPolicy, body: dict[str, Any]) -> None:
        api = self.client.resources.get(api_version=POLICY_API_VERSION, kind=POLICY_KIND)
        api.status.patch(
            body=body,
            name=policy.name,
            namespace=policy.namespace or None,
            content_type="application/merge-patch+json",
        )

    async def update(self, policy: GarbageCollectionPolicy, update: StatusUpdate) -> None:
        body = {"status": update.to_wire()}
        try:
            await asyncio.to_thread(self._patch, policy, body)
        except ApiException as e:
            raise translate_api_error(e, f"status of {policy.ref}") from e


class KubernetesEventRecorder(EventRecorder):
    """
    Creates core/v1 Events on the policy object.

    record() is synchronous; when called inside a running loop the API call
    is handed to a worker thread and not awaited.
    """

    def __init__(self, core_api: client.CoreV1Api | None = None) -> None:
        self.core_api = core_api or client.CoreV1Api()
        self._pending: set[asyncio.Task[None]] = set()

    def build_event(
        self,
        subject: GarbageCollectionPolicy,
        reason: str,
        message: str,
        event_type: EventType,
    ) -> client.CoreV1Event:
        now = datetime.now(timezone.utc)
        return client.CoreV1Event(
            metadata=client.V1ObjectMeta(
                generate_name=f"{subject.name}.",
                namespace=subject.namespace or "default",
            ),
            involved_object=client.V1ObjectReference(
                api_version=POLICY_API_VERSION,
                kind=POLICY_KIND,
                name=subject.name,
                namespace=subject.namespace or None,
                uid=subject.uid,
            ),
            reason=reason,
            message=message,
            type=event_type.value,
            source=client.V1EventSource(component=EVENT_SOURCE),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )

    def _create(self, event: client.CoreV1Event) -> None:
        try:
            self.core_api.create_namespaced_event(event.metadata.namespace, event)
        except ApiException as e:
            logger.warning(
                "Failed to create event",
                operation="record_event",
                event_reason=event.reason,
                error=str(e),
            )

    def record(
        self,
        subject: GarbageCollectionPolicy,
        reason: str,
        message: str,
        event_type: EventType = EventType.NORMAL,
    ) -> None:
        event = self.build_event(subject, reason, message, event_type)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._create(event)
            return
        task = loop.create_task(asyncio.to_thread(self._create, event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


class KubernetesPolicySource(PolicySource):
    """Lists GarbageCollectionPolicy objects; invalid ones are skipped."""

    def __init__(self, dynamic_client: DynamicClient) -> None:
        self.client = dynamic_client

    def _list(self) -> list[dict[str, Any]]:
        api = self.client.resources.get(api_version=POLICY_API_VERSION, kind=POLICY_KIND)
        return api.get().to_dict().get("items", [])

    async def list_policies(self) -> list[GarbageCollectionPolicy]:
        try:
            items = await asyncio.to_thread(self._list)
        except ApiException as e:
            raise translate_api_error(e, "list policies") from e

        policies = []
        for item in items:
            metadata = item.get("metadata") or {}
            ref = f"{metadata.get('namespace', '')}/{metadata.get('name', '')}"
            try:
                policy = GarbageCollectionPolicy.from_object(item)
                ensure_valid(policy)
            except (ValueError, PolicyValidationError) as e:
                # pydantic.ValidationError subclasses ValueError
                logger.warning(
                    "Skipping invalid policy",
                    operation="list_policies",
                    policy=ref,
                    error=str(e),
                )
                continue
            policies.append(policy)
        return policies


def build_scheduler(
    dynamic_client: DynamicClient,
    *,
    config: ControllerConfig | None = None,
    leadership: Leadership | None = None,
) -> EvaluationScheduler:
    """Wire the evaluation engine against a cluster."""
    config = config or ControllerConfig.from_env()
    evaluator = PolicyEvaluator(
        resolver=GVRResolver(KubernetesDiscovery(dynamic_client)),
        listers=ListerRegistry(KubernetesResourceLister(dynamic_client)),
        deleter=KubernetesDeleter(dynamic_client),
        status_updater=KubernetesStatusUpdater(dynamic_client),
        event_recorder=KubernetesEventRecorder(client.CoreV1Api(dynamic_client.client)),
        config=config,
    )
    return EvaluationScheduler(
        evaluator,
        KubernetesPolicySource(dynamic_client),
        leadership=leadership,
        config=config,
    )
