from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import Field

from app.models.deployment import (
    DeploymentConfig,
    DeploymentStatus,
    ReplicaStatus,
    ResourceSpec,
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

RAY_VERSION = "2.46.0"
RAY_IMAGE = f"rayproject/ray-llm:{RAY_VERSION}-py311-cu124"

AGGREGATED_GROUP = "gpu-workers"
PREFILL_GROUP = "prefill"
DECODE_GROUP = "decode"

SERVE_PORT = 8000


class KubeRayResourceSpec(ResourceSpec):
    gpu: Optional[int] = Field(None, ge=1, description="GPU count per worker replica")


class KubeRayDeploymentConfig(DeploymentConfig):
    engine: Literal["vllm"] = Field("vllm", description="Ray Serve LLM runs vLLM")
    resources: Optional[KubeRayResourceSpec] = Field(None, description="Per-replica resources")


class KubeRayProvider:
    """KubeRay: Ray Serve LLM applications deployed as RayService resources"""

    id = "kuberay"
    name = "KubeRay"
    description = (
        "KubeRay runs Ray Serve LLM applications on Ray clusters, using vLLM for "
        "distributed model serving with optional prefill/decode disaggregation."
    )
    default_namespace = "kuberay-system"

    API_GROUP = "ray.io"
    API_VERSION = "v1"
    CRD_PLURAL = "rayservices"
    CRD_KIND = "RayService"
    OPERATOR_SELECTOR = "app.kubernetes.io/name=kuberay-operator"

    def get_crd_config(self) -> CRDConfig:
        return CRDConfig(
            api_group=self.API_GROUP,
            api_version=self.API_VERSION,
            plural=self.CRD_PLURAL,
            kind=self.CRD_KIND,
        )

    def validate_config(self, raw: Any) -> ValidationResult:
        return validate_with(KubeRayDeploymentConfig, raw, self.id)

    def generate_manifest(self, config: DeploymentConfig) -> Dict[str, Any]:
        if config.mode == "disaggregated":
            application = {
                "name": "llm",
                "route_prefix": "/",
                "import_path": "ray.serve.llm:build_pd_openai_app",
                "args": {
                    "prefill_config": self._llm_config(
                        config, config.prefill_replicas or 1, config.prefill_gpus or 1, pd=True
                    ),
                    "decode_config": self._llm_config(
                        config, config.decode_replicas or 1, config.decode_gpus or 1, pd=True
                    ),
                },
            }
            worker_groups = [
                self._worker_group(
                    config, PREFILL_GROUP, config.prefill_replicas or 1, config.prefill_gpus or 1
                ),
                self._worker_group(
                    config, DECODE_GROUP, config.decode_replicas or 1, config.decode_gpus or 1
                ),
            ]
        else:
            gpus = config.resources.gpu if config.resources and config.resources.gpu is not None else 1
            application = {
                "name": "llm",
                "route_prefix": "/",
                "import_path": "ray.serve.llm:build_openai_app",
                "args": {"llm_configs": [self._llm_config(config, config.replicas, gpus)]},
            }
            worker_groups = [
                self._worker_group(config, AGGREGATED_GROUP, config.replicas, gpus)
            ]

        serve_config = yaml.safe_dump(
            {"applications": [application]}, sort_keys=False, default_flow_style=False
        )

        return {
            "apiVersion": f"{self.API_GROUP}/{self.API_VERSION}",
            "kind": self.CRD_KIND,
            "metadata": manifest_metadata(config),
            "spec": {
                "serveConfigV2": serve_config,
                "rayClusterConfig": {
                    "rayVersion": RAY_VERSION,
                    "headGroupSpec": self._head_group(config),
                    "workerGroupSpecs": worker_groups,
                },
            },
        }

    def _llm_config(
        self, config: DeploymentConfig, replicas: int, gpus: int, pd: bool = False
    ) -> Dict[str, Any]:
        engine_kwargs: Dict[str, Any] = {"tensor_parallel_size": gpus}
        if config.enforce_eager:
            engine_kwargs["enforce_eager"] = True
        if config.enable_prefix_caching:
            engine_kwargs["enable_prefix_caching"] = True
        if config.trust_remote_code:
            engine_kwargs["trust_remote_code"] = True
        if config.context_length:
            engine_kwargs["max_model_len"] = config.context_length
        if pd:
            engine_kwargs["kv_transfer_config"] = {
                "kv_connector": "NixlConnector",
                "kv_role": "kv_both",
            }
        for key, value in config.engine_args.items():
            engine_kwargs[key] = value

        return {
            "model_loading_config": {
                "model_id": config.effective_served_model_name,
                "model_source": config.model_id,
            },
            "engine_kwargs": engine_kwargs,
            "deployment_config": {
                "autoscaling_config": {"min_replicas": replicas, "max_replicas": replicas}
            },
        }

    def _head_group(self, config: DeploymentConfig) -> Dict[str, Any]:
        return {
            "rayStartParams": {"dashboard-host": "0.0.0.0", "num-gpus": "0"},
            "template": {
                "metadata": {"labels": standard_labels(config.name)},
                "spec": {
                    "containers": [
                        self._container(
                            config,
                            "ray-head",
                            {"cpu": "2", "memory": "8Gi"},
                            ports=[
                                {"containerPort": 6379, "name": "gcs"},
                                {"containerPort": 8265, "name": "dashboard"},
                                {"containerPort": SERVE_PORT, "name": "serve"},
                            ],
                        )
                    ]
                },
            },
        }

    def _worker_group(
        self, config: DeploymentConfig, group: str, replicas: int, gpus: int
    ) -> Dict[str, Any]:
        limits: Dict[str, Any] = {"nvidia.com/gpu": gpus}
        if config.resources and config.resources.memory:
            limits["memory"] = config.resources.memory

        return {
            "groupName": group,
            "replicas": replicas,
            "minReplicas": replicas,
            "maxReplicas": replicas,
            "rayStartParams": {"num-gpus": str(gpus)},
            "template": {
                "metadata": {"labels": standard_labels(config.name)},
                "spec": {"containers": [self._container(config, "ray-worker", limits)]},
            },
        }

    def _container(
        self,
        config: DeploymentConfig,
        name: str,
        limits: Dict[str, Any],
        ports: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        container: Dict[str, Any] = {
            "name": name,
            "image": RAY_IMAGE,
            "resources": {"limits": limits},
        }
        if ports:
            container["ports"] = ports
        env_from = hf_token_env_from(config)
        if env_from:
            container["envFrom"] = env_from
        return container

    def parse_status(self, raw: Any) -> DeploymentStatus:
        obj = as_dict(raw)
        metadata = as_dict(obj.get("metadata"))
        spec = as_dict(obj.get("spec"))
        status = as_dict(obj.get("status"))
        cluster_config = as_dict(spec.get("rayClusterConfig"))

        group_replicas: Dict[str, int] = {}
        for group in as_list(cluster_config.get("workerGroupSpecs")):
            group = as_dict(group)
            group_name = as_str(group.get("groupName"))
            group_replicas[group_name] = group_replicas.get(group_name, 0) + as_int(
                group.get("replicas"), 1
            )

        disaggregated = PREFILL_GROUP in group_replicas or DECODE_GROUP in group_replicas
        mode = "disaggregated" if disaggregated else "aggregated"
        prefill_desired = group_replicas.get(PREFILL_GROUP, 0)
        decode_desired = group_replicas.get(DECODE_GROUP, 0)
        if disaggregated:
            desired = prefill_desired + decode_desired
        else:
            desired = sum(group_replicas.values()) or 1

        cluster_status = as_dict(
            as_dict(status.get("activeServiceStatus")).get("rayClusterStatus")
        )
        ready = as_int(cluster_status.get("readyWorkerReplicas"))
        available = as_int(cluster_status.get("availableWorkerReplicas"))

        conditions = parse_conditions(status.get("conditions"))
        name = as_str(metadata.get("name"), "unknown")

        result = DeploymentStatus(
            name=name,
            namespace=as_str(metadata.get("namespace"), "default"),
            model_id=self._model_id(spec.get("serveConfigV2")),
            engine="vllm",
            mode=mode,
            phase=self._phase(as_str(status.get("serviceStatus")), conditions),
            replicas=ReplicaStatus(
                desired=as_int(cluster_status.get("desiredWorkerReplicas")) or desired,
                ready=ready,
                available=available,
            ),
            conditions=conditions,
            pods=[],
            created_at=as_str(metadata.get("creationTimestamp")) or now_iso(),
            frontend_service=f"{name}-frontend",
        )

        if disaggregated:
            # Ray reports readiness for the whole cluster, not per worker group
            all_ready = desired > 0 and ready >= desired
            result.prefill_replicas = RoleReplicaStatus(
                desired=prefill_desired, ready=prefill_desired if all_ready else 0
            )
            result.decode_replicas = RoleReplicaStatus(
                desired=decode_desired, ready=decode_desired if all_ready else 0
            )

        return result

    @staticmethod
    def _phase(service_status: str, conditions) -> str:
        if service_status == "Running":
            return "Running"
        if any(c.type == "Ready" and c.status == "True" for c in conditions):
            return "Running"
        if "Fail" in service_status:
            return "Failed"
        return "Pending"

    @staticmethod
    def _model_id(serve_config: Any) -> str:
        if not isinstance(serve_config, str):
            return ""
        try:
            document = yaml.safe_load(serve_config)
        except yaml.YAMLError:
            return ""

        for application in as_list(as_dict(document).get("applications")):
            args = as_dict(as_dict(application).get("args"))
            llm_configs = as_list(args.get("llm_configs")) or [
                args.get("prefill_config"),
                args.get("decode_config"),
            ]
            for llm_config in llm_configs:
                loading = as_dict(as_dict(llm_config).get("model_loading_config"))
                model_id = as_str(loading.get("model_source")) or as_str(loading.get("model_id"))
                if model_id:
                    return model_id
        return ""

    async def check_installation(self, client) -> InstallationStatus:
        return await check_crd_and_operator(
            client,
            self.get_crd_config(),
            self.default_namespace,
            self.OPERATOR_SELECTOR,
            "KubeRay",
        )

    def get_helm_repos(self) -> List[HelmRepo]:
        return [HelmRepo(name="kuberay", url="https://ray-project.github.io/kuberay-helm/")]

    def get_helm_charts(self) -> List[HelmChart]:
        return [
            HelmChart(
                name="kuberay-operator",
                chart="kuberay/kuberay-operator",
                namespace=self.default_namespace,
                create_namespace=True,
                version="1.3.0",
            )
        ]

    def get_installation_steps(self) -> List[InstallationStep]:
        return [
            InstallationStep(
                title="Add KubeRay Helm Repository",
                command="helm repo add kuberay https://ray-project.github.io/kuberay-helm/",
                description="Add the KubeRay Helm repository.",
            ),
            InstallationStep(
                title="Update Helm Repositories",
                command="helm repo update",
                description="Update local Helm repository cache.",
            ),
            InstallationStep(
                title="Install KubeRay Operator",
                command=(
                    "helm install kuberay-operator kuberay/kuberay-operator "
                    f"--version 1.3.0 -n {self.default_namespace} --create-namespace"
                ),
                description="Install the KubeRay operator which manages RayService resources.",
            ),
        ]
