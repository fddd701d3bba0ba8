from fastapi import APIRouter, Depends

from app.providers.registry import ProviderRegistry
from app.state import get_provider_registry

router = APIRouter()


@router.get("/health")
async def health_check(registry: ProviderRegistry = Depends(get_provider_registry)):
    """API health check; also reports which runtimes are registered"""
    return {"status": "healthy", "providers": registry.list_provider_ids()}
