"""
Pytest fixtures shared by the provider, service and API tests.
"""

import copy

import pytest

from app.providers.registry import ProviderRegistry
from app.services.deployment_service import DeploymentService
from app.services.errors import ClusterApiError
from app.state import register_default_providers


class FakeClusterClient:
    """In-memory cluster implementing the ClusterClient primitives."""

    def __init__(self):
        self.objects = {}
        self.installed = set()
        self.pods = {}
        self.logs = {}
        self.failures = {}
        self.calls = []

    def install_crd(self, crd):
        self.installed.add((crd.api_group, crd.api_version, crd.plural))

    def add_object(self, crd, namespace, obj):
        self.install_crd(crd)
        key = (crd.api_group, crd.api_version, crd.plural, namespace)
        self.objects.setdefault(key, {})[obj["metadata"]["name"]] = copy.deepcopy(obj)

    def fail_namespace(self, namespace, error):
        self.failures[namespace] = error

    def _check(self, group, version, plural, namespace):
        if namespace in self.failures:
            raise self.failures[namespace]
        if (group, version, plural) not in self.installed:
            raise ClusterApiError(
                404,
                f'the server doesn\'t have a resource type "{plural}"',
                reason="NotFound",
            )

    async def create_namespaced_custom_object(self, group, version, namespace, plural, body):
        self.calls.append(("create", group, version, namespace, plural))
        self._check(group, version, plural, namespace)
        store = self.objects.setdefault((group, version, plural, namespace), {})
        name = body["metadata"]["name"]
        if name in store:
            raise ClusterApiError(409, f'{plural} "{name}" already exists', reason="AlreadyExists")
        store[name] = copy.deepcopy(body)
        return store[name]

    async def list_namespaced_custom_object(self, group, version, namespace, plural):
        self.calls.append(("list", group, version, namespace, plural))
        self._check(group, version, plural, namespace)
        store = self.objects.get((group, version, plural, namespace), {})
        return {"items": [copy.deepcopy(obj) for obj in store.values()]}

    async def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        self.calls.append(("get", group, version, namespace, plural, name))
        self._check(group, version, plural, namespace)
        store = self.objects.get((group, version, plural, namespace), {})
        if name not in store:
            raise ClusterApiError(404, f'{plural} "{name}" not found', reason="NotFound")
        return copy.deepcopy(store[name])

    async def delete_namespaced_custom_object(self, group, version, namespace, plural, name):
        self.calls.append(("delete", group, version, namespace, plural, name))
        self._check(group, version, plural, namespace)
        store = self.objects.get((group, version, plural, namespace), {})
        if name not in store:
            raise ClusterApiError(404, f'{plural} "{name}" not found', reason="NotFound")
        del store[name]

    async def list_namespaced_pod(self, namespace, label_selector=None):
        if namespace in self.failures:
            raise self.failures[namespace]
        pods = self.pods.get(namespace, [])
        if label_selector:
            key, value = label_selector.split("=", 1)
            pods = [p for p in pods if p["metadata"].get("labels", {}).get(key) == value]
        return copy.deepcopy(pods)

    async def read_namespaced_pod_log(self, name, namespace, tail_lines=None):
        return self.logs.get((namespace, name), "")


def make_pod(name, labels, phase="Running", ready=True, restarts=0, node="node-1"):
    return {
        "metadata": {"name": name, "labels": labels},
        "spec": {"nodeName": node},
        "status": {
            "phase": phase,
            "startTime": "2025-01-01T00:00:00Z",
            "containerStatuses": [{"name": "main", "ready": ready, "restartCount": restarts}],
        },
    }


@pytest.fixture
def registry():
    return register_default_providers(ProviderRegistry())


@pytest.fixture
def cluster(registry):
    client = FakeClusterClient()
    for provider in registry.list_providers():
        client.install_crd(provider.get_crd_config())
    return client


@pytest.fixture
def service(registry, cluster):
    return DeploymentService(registry, cluster)


@pytest.fixture
def dynamo_config():
    """The aggregated vLLM config used throughout the console docs."""
    return {
        "name": "qwen-test",
        "namespace": "dynamo-system",
        "modelId": "Qwen/Qwen3-0.6B",
        "provider": "dynamo",
        "engine": "vllm",
        "mode": "aggregated",
        "replicas": 2,
        "resources": {"gpu": 1},
        "hfTokenSecret": "hf-token-secret",
        "enforceEager": True,
    }


@pytest.fixture
def disaggregated_config():
    return {
        "name": "qwen-pd",
        "namespace": "dynamo-system",
        "modelId": "Qwen/Qwen3-8B",
        "provider": "dynamo",
        "engine": "vllm",
        "mode": "disaggregated",
        "routerMode": "none",
        "prefillReplicas": 2,
        "decodeReplicas": 3,
        "prefillGpus": 1,
        "decodeGpus": 2,
        "hfTokenSecret": "hf-token-secret",
    }


@pytest.fixture
def pod_factory():
    return make_pod
