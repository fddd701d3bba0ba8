from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query
from typing import Any, Dict, List, Optional

from app import config
from app.models.deployment import (
    DNS_LABEL_PATTERN,
    DeploymentPage,
    DeploymentResponse,
    DeploymentStatus,
    PodStatus,
)
from app.services.deployment_service import DeploymentService
from app.state import get_deployment_service

router = APIRouter()

NamespaceQuery = Query(None, pattern=DNS_LABEL_PATTERN, max_length=63, description="Kubernetes namespace")
NamePath = Path(..., pattern=DNS_LABEL_PATTERN, max_length=63, description="Deployment name")


@router.get("/deployments", response_model=DeploymentPage, response_model_exclude_none=True)
async def list_deployments(
    namespace: Optional[str] = NamespaceQuery,
    limit: Optional[int] = Query(None, ge=1, le=100, description="Page size"),
    offset: Optional[int] = Query(None, ge=0, description="Items to skip"),
    service: DeploymentService = Depends(get_deployment_service),
):
    """List deployments; without a namespace every provider namespace is searched"""
    return await service.list_deployment_page(namespace, limit, offset)


@router.post("/deployments", response_model=DeploymentResponse, status_code=201)
async def create_deployment(
    body: Dict[str, Any] = Body(...),
    service: DeploymentService = Depends(get_deployment_service),
):
    provider_id = body.get("provider")
    if not provider_id:
        raise HTTPException(
            status_code=400,
            detail='The "provider" field is required. Please specify the runtime (e.g. dynamo, kuberay, llamacpp).',
        )
    if not isinstance(provider_id, str):
        raise HTTPException(status_code=400, detail='The "provider" field must be a string.')

    deployment = await service.create_deployment(body, provider_id)
    return DeploymentResponse(
        message="Deployment created successfully",
        name=deployment.name,
        namespace=deployment.namespace,
        provider=provider_id,
    )


@router.get(
    "/deployments/{name}", response_model=DeploymentStatus, response_model_exclude_none=True
)
async def get_deployment(
    name: str = NamePath,
    namespace: Optional[str] = NamespaceQuery,
    service: DeploymentService = Depends(get_deployment_service),
):
    resolved_namespace = namespace or config.DEFAULT_NAMESPACE
    deployment = await service.get_deployment(name, resolved_namespace)
    if deployment is None:
        raise HTTPException(status_code=404, detail="Deployment not found")
    return deployment


@router.delete("/deployments/{name}")
async def delete_deployment(
    name: str = NamePath,
    namespace: Optional[str] = NamespaceQuery,
    service: DeploymentService = Depends(get_deployment_service),
):
    resolved_namespace = namespace or config.DEFAULT_NAMESPACE
    provider_id = await service.delete_deployment(name, resolved_namespace)
    return {"message": "Deployment deleted successfully", "provider": provider_id}


@router.get("/deployments/{name}/pods", response_model_exclude_none=True)
async def get_deployment_pods(
    name: str = NamePath,
    namespace: Optional[str] = NamespaceQuery,
    service: DeploymentService = Depends(get_deployment_service),
) -> Dict[str, List[PodStatus]]:
    resolved_namespace = namespace or config.DEFAULT_NAMESPACE
    return {"pods": await service.get_deployment_pods(name, resolved_namespace)}


@router.get("/deployments/{name}/logs")
async def get_deployment_logs(
    name: str = NamePath,
    namespace: Optional[str] = NamespaceQuery,
    pod: Optional[str] = Query(None, description="Restrict to one pod"),
    tail: int = Query(100, ge=1, le=5000, description="Number of lines to return"),
    service: DeploymentService = Depends(get_deployment_service),
):
    resolved_namespace = namespace or config.DEFAULT_NAMESPACE
    return {"logs": await service.get_deployment_logs(name, resolved_namespace, pod, tail)}
