from typing import Any, Dict, List, Literal

from pydantic import Field

from app.models.deployment import (
    DeploymentConfig,
    DeploymentStatus,
    EngineArgValue,
    ReplicaStatus,
    ValidationResult,
)
from app.models.provider import (
    CRDConfig,
    HelmChart,
    HelmRepo,
    InstallationStatus,
    InstallationStep,
)
from app.providers.common import (
    as_dict,
    as_int,
    as_list,
    as_str,
    check_crd_and_operator,
    hf_token_env_from,
    manifest_metadata,
    now_iso,
    parse_conditions,
    standard_labels,
    validate_with,
)

CPU_IMAGE = "ghcr.io/ggml-org/llama.cpp:server"
CUDA_IMAGE = "ghcr.io/ggml-org/llama.cpp:server-cuda"
SERVER_PORT = 8080


class LlamaCppDeploymentConfig(DeploymentConfig):
    engine: Literal["llamacpp"] = Field("llamacpp", description="Inference engine")
    mode: Literal["aggregated"] = Field("aggregated", description="Serving topology")


def render_flags(flags: Dict[str, EngineArgValue]) -> List[str]:
    """Render an ordered flag mapping as llama-server CLI arguments"""
    args = []
    for key, value in flags.items():
        if value is True:
            args.append(f"--{key}")
        elif value is False or value is None:
            continue
        else:
            args.extend([f"--{key}", str(value)])
    return args


class LlamaCppProvider:
    """llama.cpp server in a KAITO workspace; runs on CPU nodes when no GPU is requested"""

    id = "llamacpp"
    name = "KAITO llama.cpp"
    description = (
        "KAITO workspaces running the llama.cpp server. Serves GGUF models on CPU-only "
        "nodes, or offloads layers to GPUs when they are requested."
    )
    default_namespace = "kaito-workspace"

    API_GROUP = "kaito.sh"
    API_VERSION = "v1beta1"
    CRD_PLURAL = "workspaces"
    CRD_KIND = "Workspace"
    OPERATOR_SELECTOR = "app.kubernetes.io/name=workspace"

    def get_crd_config(self) -> CRDConfig:
        return CRDConfig(
            api_group=self.API_GROUP,
            api_version=self.API_VERSION,
            plural=self.CRD_PLURAL,
            kind=self.CRD_KIND,
        )

    def validate_config(self, raw: Any) -> ValidationResult:
        return validate_with(LlamaCppDeploymentConfig, raw, self.id)

    def generate_manifest(self, config: DeploymentConfig) -> Dict[str, Any]:
        gpus = config.resources.gpu if config.resources and config.resources.gpu else 0

        flags: Dict[str, EngineArgValue] = {
            "hf-repo": config.model_id,
            "alias": config.effective_served_model_name,
            "host": "0.0.0.0",
            "port": SERVER_PORT,
        }
        if config.context_length:
            flags["ctx-size"] = config.context_length
        if gpus:
            flags["n-gpu-layers"] = 999
        for key, value in config.engine_args.items():
            flags[key] = value

        limits: Dict[str, Any] = {}
        if gpus:
            limits["nvidia.com/gpu"] = gpus
        if config.resources and config.resources.memory:
            limits["memory"] = config.resources.memory

        container: Dict[str, Any] = {
            "name": "llama-server",
            "image": CUDA_IMAGE if gpus else CPU_IMAGE,
            "args": render_flags(flags),
            "ports": [{"containerPort": SERVER_PORT, "name": "http"}],
        }
        if limits:
            container["resources"] = {"limits": limits}
        env_from = hf_token_env_from(config)
        if env_from:
            container["envFrom"] = env_from

        return {
            "apiVersion": f"{self.API_GROUP}/{self.API_VERSION}",
            "kind": self.CRD_KIND,
            "metadata": manifest_metadata(config),
            "resource": {
                "count": config.replicas,
                "labelSelector": {"matchLabels": {"apps": config.name}},
            },
            "inference": {
                "template": {
                    "metadata": {"labels": standard_labels(config.name)},
                    "spec": {"containers": [container]},
                }
            },
        }

    def parse_status(self, raw: Any) -> DeploymentStatus:
        obj = as_dict(raw)
        metadata = as_dict(obj.get("metadata"))
        status = as_dict(obj.get("status"))
        desired = as_int(as_dict(obj.get("resource")).get("count")) or 1

        conditions = parse_conditions(status.get("conditions"))
        by_type = {c.type: c for c in conditions}

        inference_ready = "InferenceReady" in by_type and by_type["InferenceReady"].status == "True"
        ready = desired if inference_ready else 0

        name = as_str(metadata.get("name"), "unknown")
        return DeploymentStatus(
            name=name,
            namespace=as_str(metadata.get("namespace"), "default"),
            model_id=self._model_id(obj),
            engine="llamacpp",
            mode="aggregated",
            phase=self._phase(by_type),
            replicas=ReplicaStatus(desired=desired, ready=ready, available=ready),
            conditions=conditions,
            pods=[],
            created_at=as_str(metadata.get("creationTimestamp")) or now_iso(),
            frontend_service=f"{name}-frontend",
        )

    @staticmethod
    def _phase(by_type) -> str:
        succeeded = by_type.get("WorkspaceSucceeded")
        if succeeded is not None and succeeded.status == "True":
            return "Running"
        for condition in by_type.values():
            if condition.status == "False" and "Fail" in (condition.reason or ""):
                return "Failed"
        return "Pending"

    @staticmethod
    def _model_id(obj: Dict[str, Any]) -> str:
        template = as_dict(as_dict(obj.get("inference")).get("template"))
        for container in as_list(as_dict(template.get("spec")).get("containers")):
            args = as_list(as_dict(container).get("args"))
            for index, arg in enumerate(args[:-1]):
                if arg == "--hf-repo":
                    return as_str(args[index + 1])
        return ""

    async def check_installation(self, client) -> InstallationStatus:
        return await check_crd_and_operator(
            client,
            self.get_crd_config(),
            self.default_namespace,
            self.OPERATOR_SELECTOR,
            "KAITO",
        )

    def get_helm_repos(self) -> List[HelmRepo]:
        return [HelmRepo(name="kaito", url="https://kaito-project.github.io/kaito/charts/kaito")]

    def get_helm_charts(self) -> List[HelmChart]:
        return [
            HelmChart(
                name="kaito-workspace",
                chart="kaito/workspace",
                namespace=self.default_namespace,
                create_namespace=True,
            )
        ]

    def get_installation_steps(self) -> List[InstallationStep]:
        return [
            InstallationStep(
                title="Add KAITO Helm Repository",
                command="helm repo add kaito https://kaito-project.github.io/kaito/charts/kaito",
                description="Add the KAITO Helm repository.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Install KAITO Workspace Controller",
                command=(
                    "helm install kaito-workspace kaito/workspace "
                    f"-n {self.default_namespace} --create-namespace"
                ),
                description="Install the controller that reconciles Workspace resources.",
            ),
        ]
