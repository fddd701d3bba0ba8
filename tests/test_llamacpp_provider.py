import pytest

from app.providers.llamacpp import CPU_IMAGE, CUDA_IMAGE, LlamaCppProvider, render_flags


@pytest.fixture
def provider():
    return LlamaCppProvider()


@pytest.fixture
def workspace_config():
    return {
        "name": "gemma",
        "namespace": "kaito-workspace",
        "modelId": "ggml-org/gemma-3-1b-it-GGUF",
        "provider": "llamacpp",
        "resources": {"gpu": 0, "memory": "4Gi"},
        "contextLength": 4096,
    }


def validated(provider, raw):
    result = provider.validate_config(raw)
    assert result.valid, result.errors
    return result.data


def container_of(manifest):
    return manifest["inference"]["template"]["spec"]["containers"][0]


def test_render_flags():
    flags = {"hf-repo": "org/model", "jinja": True, "no-mmap": False, "threads": 4, "temp": None}

    assert render_flags(flags) == ["--hf-repo", "org/model", "--jinja", "--threads", "4"]


def test_cpu_manifest(provider, workspace_config):
    manifest = provider.generate_manifest(validated(provider, workspace_config))

    assert manifest["apiVersion"] == "kaito.sh/v1beta1"
    assert manifest["kind"] == "Workspace"
    assert manifest["resource"] == {
        "count": 1,
        "labelSelector": {"matchLabels": {"apps": "gemma"}},
    }
    container = container_of(manifest)
    assert container["image"] == CPU_IMAGE
    assert container["args"] == [
        "--hf-repo", "ggml-org/gemma-3-1b-it-GGUF",
        "--alias", "ggml-org/gemma-3-1b-it-GGUF",
        "--host", "0.0.0.0",
        "--port", "8080",
        "--ctx-size", "4096",
    ]
    assert container["resources"] == {"limits": {"memory": "4Gi"}}
    assert "envFrom" not in container


def test_gpu_manifest_offloads_layers(provider, workspace_config):
    workspace_config["resources"] = {"gpu": 1}
    workspace_config["hfTokenSecret"] = "hf-token"
    workspace_config["engineArgs"] = {"n-gpu-layers": 20, "flash-attn": True}

    container = container_of(provider.generate_manifest(validated(provider, workspace_config)))

    assert container["image"] == CUDA_IMAGE
    assert container["resources"] == {"limits": {"nvidia.com/gpu": 1}}
    assert container["envFrom"] == [{"secretRef": {"name": "hf-token"}}]
    args = container["args"]
    assert args[args.index("--n-gpu-layers") + 1] == "20"
    assert args[-1] == "--flash-attn"


def test_round_trip(provider, workspace_config):
    workspace_config["replicas"] = 2
    manifest = provider.generate_manifest(validated(provider, workspace_config))

    status = provider.parse_status(manifest)

    assert status.name == "gemma"
    assert status.model_id == "ggml-org/gemma-3-1b-it-GGUF"
    assert status.engine == "llamacpp"
    assert status.replicas.desired == 2
    assert status.replicas.ready == 0


def test_parse_status_ready_workspace(provider):
    raw = {
        "metadata": {"name": "gemma", "namespace": "kaito-workspace"},
        "resource": {"count": 2},
        "status": {
            "conditions": [
                {"type": "InferenceReady", "status": "True"},
                {"type": "WorkspaceSucceeded", "status": "True"},
            ]
        },
    }

    status = provider.parse_status(raw)

    assert status.phase == "Running"
    assert (status.replicas.desired, status.replicas.ready, status.replicas.available) == (2, 2, 2)


def test_parse_status_failed_workspace(provider):
    raw = {
        "status": {
            "conditions": [
                {"type": "ResourceReady", "status": "False", "reason": "NodeClaimFailed"},
            ]
        }
    }

    status = provider.parse_status(raw)

    assert status.phase == "Failed"
    assert status.replicas.desired == 1


def test_parse_status_empty(provider):
    status = provider.parse_status({})

    assert status.phase == "Pending"
    assert status.model_id == ""
    assert status.prefill_replicas is None
