import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.services.errors import ClusterApiError
from app.state import get_deployment_service, get_provider_registry
from main import app


@pytest_asyncio.fixture
async def client(service, registry):
    app.dependency_overrides[get_deployment_service] = lambda: service
    app.dependency_overrides[get_provider_registry] = lambda: registry
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def test_health(client):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "providers": ["dynamo", "kuberay", "llamacpp"]}


async def test_create_and_fetch_deployment(client, cluster, dynamo_config, pod_factory):
    response = await client.post("/api/deployments", json=dynamo_config)

    assert response.status_code == 201
    assert response.json() == {
        "message": "Deployment created successfully",
        "name": "qwen-test",
        "namespace": "dynamo-system",
        "provider": "dynamo",
    }

    cluster.pods["dynamo-system"] = [
        pod_factory("qwen-test-worker-0", {"app.kubernetes.io/instance": "qwen-test"})
    ]
    response = await client.get("/api/deployments/qwen-test", params={"namespace": "dynamo-system"})

    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "dynamo"
    assert body["modelId"] == "Qwen/Qwen3-0.6B"
    assert body["frontendService"] == "qwen-test-frontend"
    assert body["replicas"]["desired"] == 2
    assert body["pods"][0]["name"] == "qwen-test-worker-0"
    assert "prefillReplicas" not in body


async def test_create_without_provider(client, dynamo_config):
    del dynamo_config["provider"]

    response = await client.post("/api/deployments", json=dynamo_config)

    assert response.status_code == 400
    assert "provider" in response.json()["detail"]


async def test_create_with_unknown_provider(client, dynamo_config):
    dynamo_config["provider"] = "kserve"

    response = await client.post("/api/deployments", json=dynamo_config)

    assert response.status_code == 404
    assert response.json() == {"detail": "Provider 'kserve' not found"}


async def test_create_with_invalid_config(client, dynamo_config):
    dynamo_config["replicas"] = 0

    response = await client.post("/api/deployments", json=dynamo_config)

    assert response.status_code == 400
    assert response.json()["errors"][0].startswith("replicas:")


async def test_create_duplicate_keeps_cluster_status(client, dynamo_config):
    await client.post("/api/deployments", json=dynamo_config)

    response = await client.post("/api/deployments", json=dynamo_config)

    assert response.status_code == 409
    assert "already exists" in response.json()["detail"]


async def test_list_deployments_paginated(client, dynamo_config):
    for index in range(3):
        dynamo_config["name"] = f"qwen-{index}"
        await client.post("/api/deployments", json=dynamo_config)

    response = await client.get("/api/deployments", params={"limit": 2, "offset": 0})

    assert response.status_code == 200
    body = response.json()
    assert len(body["deployments"]) == 2
    assert body["pagination"] == {"total": 3, "limit": 2, "offset": 0, "hasMore": True}


async def test_list_rejects_out_of_range_limit(client):
    response = await client.get("/api/deployments", params={"limit": 0})

    assert response.status_code == 422


async def test_list_surfaces_cluster_errors_for_single_namespace(client, cluster):
    cluster.fail_namespace("team-a", ClusterApiError(403, "", reason="Forbidden"))

    response = await client.get("/api/deployments", params={"namespace": "team-a"})

    assert response.status_code == 403
    assert response.json()["detail"].startswith("Permission denied")


async def test_get_missing_deployment(client):
    response = await client.get("/api/deployments/ghost")

    assert response.status_code == 404


async def test_invalid_name_is_rejected(client):
    response = await client.get("/api/deployments/Not_Valid")

    assert response.status_code == 422


async def test_delete_deployment(client, dynamo_config):
    await client.post("/api/deployments", json=dynamo_config)

    response = await client.delete("/api/deployments/qwen-test", params={"namespace": "dynamo-system"})

    assert response.status_code == 200
    assert response.json() == {"message": "Deployment deleted successfully", "provider": "dynamo"}

    response = await client.delete("/api/deployments/qwen-test", params={"namespace": "dynamo-system"})
    assert response.status_code == 404


async def test_pods_and_logs(client, cluster, pod_factory):
    cluster.pods["team-a"] = [pod_factory("a-0", {"app.kubernetes.io/instance": "a"}, node=None)]
    cluster.logs[("team-a", "a-0")] = "hello\n"

    response = await client.get("/api/deployments/a/pods", params={"namespace": "team-a"})

    assert response.status_code == 200
    (pod,) = response.json()["pods"]
    assert pod["name"] == "a-0"
    assert pod["startTime"] == "2025-01-01T00:00:00Z"

    response = await client.get("/api/deployments/a/logs", params={"namespace": "team-a"})
    assert response.json() == {"logs": {"a-0": "hello\n"}}

    response = await client.get("/api/deployments/a/logs", params={"namespace": "team-a", "pod": "zz"})
    assert response.status_code == 404


async def test_providers(client):
    response = await client.get("/api/providers")

    providers = response.json()["providers"]
    assert [p["id"] for p in providers] == ["dynamo", "kuberay", "llamacpp"]
    assert providers[0]["defaultNamespace"] == "dynamo-system"


async def test_provider_details(client):
    response = await client.get("/api/providers/kuberay")

    assert response.status_code == 200
    body = response.json()
    assert body["crdConfig"]["apiGroup"] == "ray.io"
    assert body["helmCharts"][0]["chart"] == "kuberay/kuberay-operator"
    assert body["installationSteps"]

    response = await client.get("/api/providers/kserve")
    assert response.status_code == 404


async def test_runtimes_status(client):
    response = await client.get("/api/runtimes/status")

    runtimes = response.json()["runtimes"]
    assert [r["id"] for r in runtimes] == ["dynamo", "kuberay", "llamacpp"]
    assert runtimes[0]["crdFound"] is True
    assert runtimes[0]["operatorRunning"] is False


@pytest.mark.parametrize("provider", [["dynamo"], {"id": "dynamo"}, 42])
async def test_create_with_non_string_provider(client, cluster, dynamo_config, provider):
    dynamo_config["provider"] = provider

    response = await client.post("/api/deployments", json=dynamo_config)

    assert response.status_code == 400
    assert "must be a string" in response.json()["detail"]
    assert cluster.calls == []
