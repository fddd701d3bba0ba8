from fastapi import APIRouter, Depends
from typing import Dict, List
import logging

from app.models.provider import ProviderDetails, ProviderInfo, RuntimeStatus
from app.providers.registry import ProviderRegistry
from app.services.deployment_service import DeploymentService
from app.state import get_deployment_service, get_provider_registry

router = APIRouter()

logger = logging.getLogger("kubefoundry-api")


@router.get("/providers")
async def list_providers(
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> Dict[str, List[ProviderInfo]]:
    return {
        "providers": [
            ProviderInfo(
                id=provider.id,
                name=provider.name,
                description=provider.description,
                default_namespace=provider.default_namespace,
            )
            for provider in registry.list_providers()
        ]
    }


@router.get("/providers/{provider_id}", response_model=ProviderDetails)
async def get_provider(
    provider_id: str,
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    provider = registry.get_provider(provider_id)
    return ProviderDetails(
        id=provider.id,
        name=provider.name,
        description=provider.description,
        default_namespace=provider.default_namespace,
        crd_config=provider.get_crd_config(),
        helm_repos=provider.get_helm_repos(),
        helm_charts=provider.get_helm_charts(),
        installation_steps=provider.get_installation_steps(),
    )


@router.get("/runtimes/status")
async def get_runtimes_status(
    service: DeploymentService = Depends(get_deployment_service),
) -> Dict[str, List[RuntimeStatus]]:
    logger.debug("Fetching runtimes status")
    return {"runtimes": await service.get_runtimes_status()}
