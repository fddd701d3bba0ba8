from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from app.models.deployment import (
    DeploymentConfig,
    DeploymentStatus,
    ReplicaStatus,
    RoleReplicaStatus,
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
    as_str,
    check_crd_and_operator,
    hf_token_env_from,
    manifest_metadata,
    now_iso,
    parse_conditions,
    validate_with,
)

# Worker keys inside spec, per engine. Unknown engines fall back to vLLM.
AGGREGATED_WORKER_KEYS = {
    "vllm": "VllmWorker",
    "sglang": "SglangWorker",
    "trtllm": "TrtllmWorker",
}
DISAGGREGATED_WORKER_KEYS = {
    "vllm": ("VllmPrefillWorker", "VllmDecodeWorker"),
    "sglang": ("SglangPrefillWorker", "SglangDecodeWorker"),
    "trtllm": ("TrtllmPrefillWorker", "TrtllmDecodeWorker"),
}
# Engines that signal the worker role with `disaggregation-mode`;
# the rest mark only the prefill worker with `is-prefill-worker`
MODE_FLAG_ENGINES = ("sglang", "trtllm")


class DynamoDeploymentConfig(DeploymentConfig):
    engine: Literal["vllm", "sglang", "trtllm"] = Field("vllm", description="Inference engine")


class DynamoProvider:
    """NVIDIA Dynamo: KV-aware routing and disaggregated prefill/decode serving"""

    id = "dynamo"
    name = "NVIDIA Dynamo"
    description = (
        "NVIDIA Dynamo is a high-performance inference serving platform for LLMs "
        "with support for KV cache routing and disaggregated serving."
    )
    default_namespace = "dynamo-system"

    API_GROUP = "dynamo.nvidia.com"
    API_VERSION = "v1alpha1"
    CRD_PLURAL = "dynamographdeployments"
    CRD_KIND = "DynamoGraphDeployment"
    OPERATOR_SELECTOR = "app.kubernetes.io/name=dynamo-operator"

    def get_crd_config(self) -> CRDConfig:
        return CRDConfig(
            api_group=self.API_GROUP,
            api_version=self.API_VERSION,
            plural=self.CRD_PLURAL,
            kind=self.CRD_KIND,
        )

    def validate_config(self, raw: Any) -> ValidationResult:
        return validate_with(DynamoDeploymentConfig, raw, self.id)

    def generate_manifest(self, config: DeploymentConfig) -> Dict[str, Any]:
        spec: Dict[str, Any] = {"Frontend": self._frontend_spec(config)}

        if config.mode == "disaggregated":
            prefill_key, decode_key = DISAGGREGATED_WORKER_KEYS.get(
                config.engine, DISAGGREGATED_WORKER_KEYS["vllm"]
            )
            spec[prefill_key] = self._worker_spec(config, role="prefill")
            spec[decode_key] = self._worker_spec(config, role="decode")
        else:
            worker_key = AGGREGATED_WORKER_KEYS.get(config.engine, "VllmWorker")
            spec[worker_key] = self._worker_spec(config)

        return {
            "apiVersion": f"{self.API_GROUP}/{self.API_VERSION}",
            "kind": self.CRD_KIND,
            "metadata": manifest_metadata(config),
            "spec": spec,
        }

    def _frontend_spec(self, config: DeploymentConfig) -> Dict[str, Any]:
        spec: Dict[str, Any] = {"replicas": 1, "http-port": 8000}

        router_mode = config.router_mode
        # Disaggregated serving cannot work without a router
        if config.mode == "disaggregated" and router_mode == "none":
            router_mode = "round-robin"

        if router_mode != "none":
            spec["router-mode"] = router_mode
        return spec

    def _worker_spec(self, config: DeploymentConfig, role: Optional[str] = None) -> Dict[str, Any]:
        if role is None:
            replicas = config.replicas
            gpus = config.resources.gpu if config.resources else None
        elif role == "prefill":
            replicas = config.prefill_replicas or 1
            gpus = config.prefill_gpus or 1
        else:
            replicas = config.decode_replicas or 1
            gpus = config.decode_gpus or 1

        spec: Dict[str, Any] = {
            "model-path": config.model_id,
            "served-model-name": config.effective_served_model_name,
            "replicas": replicas,
        }

        env_from = hf_token_env_from(config)
        if env_from:
            spec["envFrom"] = env_from

        limits: Dict[str, Any] = {}
        if gpus is not None:
            limits["nvidia.com/gpu"] = gpus
        if config.resources and config.resources.memory:
            limits["memory"] = config.resources.memory
        if limits:
            spec["resources"] = {"limits": limits}

        if config.enforce_eager:
            spec["enforce-eager"] = True
        if config.enable_prefix_caching:
            spec["enable-prefix-caching"] = True
        if config.trust_remote_code:
            spec["trust-remote-code"] = True
        if config.context_length:
            spec["max-model-len"] = config.context_length

        if role is not None:
            if config.engine in MODE_FLAG_ENGINES:
                spec["disaggregation-mode"] = role
            elif role == "prefill":
                spec["is-prefill-worker"] = True

        for key, value in config.engine_args.items():
            spec[key] = value

        return spec

    def parse_status(self, raw: Any) -> DeploymentStatus:
        obj = as_dict(raw)
        metadata = as_dict(obj.get("metadata"))
        spec = as_dict(obj.get("spec"))
        status = as_dict(obj.get("status"))

        engine = "vllm"
        mode = "aggregated"
        model_id = ""
        desired = 1
        prefill_desired = 0
        decode_desired = 0

        detected = False
        for candidate, (prefill_key, decode_key) in DISAGGREGATED_WORKER_KEYS.items():
            if prefill_key in spec or decode_key in spec:
                prefill = as_dict(spec.get(prefill_key))
                decode = as_dict(spec.get(decode_key))
                engine = candidate
                mode = "disaggregated"
                model_id = as_str(prefill.get("model-path")) or as_str(decode.get("model-path"))
                prefill_desired = as_int(prefill.get("replicas"))
                decode_desired = as_int(decode.get("replicas"))
                desired = prefill_desired + decode_desired
                detected = True
                break

        if not detected:
            for candidate, worker_key in AGGREGATED_WORKER_KEYS.items():
                if worker_key in spec:
                    worker = as_dict(spec.get(worker_key))
                    engine = candidate
                    model_id = as_str(worker.get("model-path"))
                    desired = as_int(worker.get("replicas")) or 1
                    break

        name = as_str(metadata.get("name"), "unknown")
        replica_status = as_dict(status.get("replicas"))

        result = DeploymentStatus(
            name=name,
            namespace=as_str(metadata.get("namespace"), "default"),
            model_id=model_id,
            engine=engine,
            mode=mode,
            phase=as_str(status.get("phase")) or "Pending",
            replicas=ReplicaStatus(
                desired=as_int(replica_status.get("desired")) or desired,
                ready=as_int(replica_status.get("ready")),
                available=as_int(replica_status.get("available")),
            ),
            conditions=parse_conditions(status.get("conditions")),
            pods=[],
            created_at=as_str(metadata.get("creationTimestamp")) or now_iso(),
            frontend_service=f"{name}-frontend",
        )

        if mode == "disaggregated":
            prefill_status = as_dict(status.get("prefillReplicas"))
            decode_status = as_dict(status.get("decodeReplicas"))
            result.prefill_replicas = RoleReplicaStatus(
                desired=as_int(prefill_status.get("desired")) or prefill_desired,
                ready=as_int(prefill_status.get("ready")),
            )
            result.decode_replicas = RoleReplicaStatus(
                desired=as_int(decode_status.get("desired")) or decode_desired,
                ready=as_int(decode_status.get("ready")),
            )

        return result

    async def check_installation(self, client) -> InstallationStatus:
        return await check_crd_and_operator(
            client,
            self.get_crd_config(),
            self.default_namespace,
            self.OPERATOR_SELECTOR,
            "Dynamo",
        )

    def get_helm_repos(self) -> List[HelmRepo]:
        return [HelmRepo(name="nvidia", url="https://helm.ngc.nvidia.com/nvidia")]

    def get_helm_charts(self) -> List[HelmChart]:
        return [
            HelmChart(
                name="dynamo-operator",
                chart="nvidia/dynamo-operator",
                namespace=self.default_namespace,
                create_namespace=True,
            )
        ]

    def get_installation_steps(self) -> List[InstallationStep]:
        return [
            InstallationStep(
                title="Add NVIDIA Helm Repository",
                command="helm repo add nvidia https://helm.ngc.nvidia.com/nvidia",
                description="Add the NVIDIA NGC Helm repository to access Dynamo charts.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Create Namespace",
                command=f"kubectl create namespace {self.default_namespace}",
                description="Create the namespace for Dynamo components.",
            ),
            InstallationStep(
                title="Install Dynamo Operator",
                command=f"helm install dynamo-operator nvidia/dynamo-operator -n {self.default_namespace}",
                description="Install the Dynamo operator which manages inference deployments.",
            ),
        ]
