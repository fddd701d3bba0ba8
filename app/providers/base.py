from typing import Any, Dict, List, Protocol

from app.models.deployment import DeploymentConfig, DeploymentStatus, ValidationResult
from app.models.provider import (
    CRDConfig,
    HelmChart,
    HelmRepo,
    InstallationStatus,
    InstallationStep,
)


class Provider(Protocol):
    """Protocol every serving runtime implements.

    Callers only deal with DeploymentConfig and DeploymentStatus; manifest
    shape, engine flag dialects and status layout stay inside the provider.

    Example usage:
        provider = provider_registry.get_provider("dynamo")
        result = provider.validate_config(body)
        manifest = provider.generate_manifest(result.data)
        status = provider.parse_status(custom_object)
    """

    id: str
    name: str
    description: str
    default_namespace: str

    def get_crd_config(self) -> CRDConfig:
        ...

    def validate_config(self, raw: Any) -> ValidationResult:
        """Validate raw input; never raises, errors are 'path: message' strings"""
        ...

    def generate_manifest(self, config: DeploymentConfig) -> Dict[str, Any]:
        """Build the custom resource for a validated config. Pure and deterministic."""
        ...

    def parse_status(self, raw: Any) -> DeploymentStatus:
        """Project a live custom resource onto DeploymentStatus. Never raises."""
        ...

    async def check_installation(self, client) -> InstallationStatus:
        ...

    def get_helm_repos(self) -> List[HelmRepo]:
        ...

    def get_helm_charts(self) -> List[HelmChart]:
        ...

    def get_installation_steps(self) -> List[InstallationStep]:
        ...
