from app.providers.dynamo import DynamoProvider
from app.providers.kuberay import KubeRayProvider
from app.providers.llamacpp import LlamaCppProvider
from app.providers.registry import ProviderRegistry

provider_registry = ProviderRegistry()


def register_default_providers(registry: ProviderRegistry = provider_registry) -> ProviderRegistry:
    """Register the built-in runtimes. Called once from application startup."""
    registry.register(DynamoProvider())
    registry.register(KubeRayProvider())
    registry.register(LlamaCppProvider())
    return registry


# Built at startup once the cluster client is known
deployment_service = None


def get_provider_registry() -> ProviderRegistry:
    return provider_registry


def get_deployment_service():
    if deployment_service is None:
        raise RuntimeError("Deployment service is not initialised")
    return deployment_service
