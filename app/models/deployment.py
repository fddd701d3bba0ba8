from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic.alias_generators import to_camel
from typing import Dict, List, Literal, Optional, Union

DNS_LABEL_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"

Engine = Literal["vllm", "sglang", "trtllm", "llamacpp"]
DeploymentMode = Literal["aggregated", "disaggregated"]
RouterMode = Literal["none", "kv", "round-robin"]
ConditionState = Literal["True", "False", "Unknown"]
EngineArgValue = Union[StrictBool, int, float, str]


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire; either spelling accepted on input"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResourceSpec(CamelModel):
    gpu: Optional[int] = Field(None, ge=0, description="GPU count per replica")
    memory: Optional[str] = Field(None, description="Memory limit, e.g. 16Gi")


class DeploymentConfig(CamelModel):
    name: str = Field(
        ..., min_length=1, max_length=63, pattern=DNS_LABEL_PATTERN,
        description="Deployment name (DNS-1123 label)",
    )
    namespace: str = Field(
        ..., min_length=1, max_length=63, pattern=DNS_LABEL_PATTERN,
        description="Kubernetes namespace",
    )
    model_id: str = Field(..., min_length=1, description="Model path or Hugging Face model ID")
    served_model_name: Optional[str] = Field(None, description="Alias the model is served under")
    provider: str = Field(..., min_length=1, description="Id of the runtime provider")
    engine: Engine = Field("vllm", description="Inference engine")
    mode: DeploymentMode = Field("aggregated", description="Serving topology")
    router_mode: RouterMode = Field("none", description="Frontend routing strategy")
    replicas: int = Field(1, ge=1, description="Worker replicas (aggregated mode)")
    prefill_replicas: Optional[int] = Field(None, ge=1, description="Prefill worker replicas")
    decode_replicas: Optional[int] = Field(None, ge=1, description="Decode worker replicas")
    prefill_gpus: Optional[int] = Field(None, ge=1, description="GPUs per prefill worker")
    decode_gpus: Optional[int] = Field(None, ge=1, description="GPUs per decode worker")
    resources: Optional[ResourceSpec] = Field(None, description="Per-replica resources")
    hf_token_secret: Optional[str] = Field(None, description="Secret holding the Hugging Face token")
    enforce_eager: bool = Field(False, description="Disable CUDA graphs")
    enable_prefix_caching: bool = Field(False, description="Enable prefix caching")
    trust_remote_code: bool = Field(False, description="Trust remote model code")
    context_length: Optional[int] = Field(None, ge=1, description="Maximum model context length")
    engine_args: Dict[str, EngineArgValue] = Field(
        default_factory=dict, description="Extra engine arguments, applied last"
    )

    @property
    def effective_served_model_name(self) -> str:
        return self.served_model_name or self.model_id


def topology_errors(config: DeploymentConfig) -> List[str]:
    """Cross-field rules that depend on the serving mode"""
    errors = []
    if config.mode == "disaggregated":
        for field in ("prefill_replicas", "decode_replicas", "prefill_gpus", "decode_gpus"):
            if getattr(config, field) is None:
                errors.append(f"{to_camel(field)}: Required in disaggregated mode")
    else:
        if config.resources is None or config.resources.gpu is None:
            errors.append("resources.gpu: Required in aggregated mode")
    return errors


class ValidationResult(CamelModel):
    valid: bool
    errors: List[str] = []
    data: Optional[DeploymentConfig] = None


class ReplicaStatus(CamelModel):
    desired: int = 0
    ready: int = 0
    available: int = 0


class RoleReplicaStatus(CamelModel):
    desired: int = 0
    ready: int = 0


class Condition(CamelModel):
    type: str = ""
    status: ConditionState = "Unknown"
    reason: Optional[str] = None
    message: Optional[str] = None
    last_transition_time: Optional[str] = None


class PodStatus(CamelModel):
    name: str
    phase: str = "Unknown"
    ready: bool = False
    restarts: int = 0
    node: Optional[str] = None
    start_time: Optional[str] = None


class DeploymentStatus(CamelModel):
    name: str
    namespace: str
    model_id: str = ""
    engine: str = "vllm"
    mode: str = "aggregated"
    provider: Optional[str] = None
    phase: str = "Pending"
    replicas: ReplicaStatus = Field(default_factory=ReplicaStatus)
    prefill_replicas: Optional[RoleReplicaStatus] = None
    decode_replicas: Optional[RoleReplicaStatus] = None
    conditions: List[Condition] = []
    pods: List[PodStatus] = []
    created_at: str
    frontend_service: str


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class DeploymentPage(CamelModel):
    deployments: List[DeploymentStatus]
    pagination: Pagination


class DeploymentResponse(CamelModel):
    message: str
    name: str
    namespace: str
    provider: str
