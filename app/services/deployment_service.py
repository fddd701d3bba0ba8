import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from app import config as app_config
from app.models.deployment import (
    DeploymentConfig,
    DeploymentPage,
    DeploymentStatus,
    Pagination,
    PodStatus,
)
from app.models.provider import RuntimeStatus
from app.providers.base import Provider
from app.providers.common import as_dict, as_int, as_list, as_str
from app.providers.registry import ProviderRegistry
from app.services.errors import (
    ClusterApiError,
    ConfigValidationError,
    DeploymentNotFoundError,
    PodNotFoundError,
)

logger = logging.getLogger("kubefoundry-api")

EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def created_at_key(status: DeploymentStatus) -> datetime:
    """Sort key for createdAt; unparseable timestamps sort last"""
    value = status.created_at or ""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_pod(raw: Any) -> PodStatus:
    pod = as_dict(raw)
    metadata = as_dict(pod.get("metadata"))
    spec = as_dict(pod.get("spec"))
    status = as_dict(pod.get("status"))
    container_statuses = [as_dict(c) for c in as_list(status.get("containerStatuses"))]

    return PodStatus(
        name=as_str(metadata.get("name"), "unknown"),
        phase=as_str(status.get("phase")) or "Unknown",
        ready=bool(container_statuses) and all(c.get("ready") is True for c in container_statuses),
        restarts=sum(as_int(c.get("restartCount")) for c in container_statuses),
        node=spec.get("nodeName") if isinstance(spec.get("nodeName"), str) else None,
        start_time=status.get("startTime") if isinstance(status.get("startTime"), str) else None,
    )


class DeploymentService:
    """Create, list, inspect and delete deployments across every registered provider"""

    def __init__(self, registry: ProviderRegistry, client):
        self.registry = registry
        self.client = client

    async def create_deployment(self, config: Any, provider_id: str) -> DeploymentConfig:
        provider = self.registry.get_provider(provider_id)

        raw = config.model_dump(by_alias=True) if isinstance(config, BaseModel) else config
        result = provider.validate_config(raw)
        if not result.valid:
            raise ConfigValidationError(result.errors)

        validated = result.data
        manifest = provider.generate_manifest(validated)
        crd = provider.get_crd_config()

        logger.info(
            f"Creating {crd.kind} {validated.namespace}/{validated.name} "
            f"(provider={provider_id}, engine={validated.engine}, mode={validated.mode})"
        )
        await self.client.create_namespaced_custom_object(
            crd.api_group, crd.api_version, validated.namespace, crd.plural, manifest
        )
        return validated

    async def list_deployments(self, namespace: str) -> List[DeploymentStatus]:
        """Deployments of every provider in one namespace. Cluster errors propagate."""
        return await self._list_namespace(namespace, strict=True)

    async def list_all_deployments(self) -> List[DeploymentStatus]:
        """Deployments in every provider's default namespace, newest first.

        A namespace or provider that fails is logged and contributes nothing.
        """
        namespaces = self.registry.default_namespaces()
        results = await asyncio.gather(
            *(self._list_namespace(namespace, strict=False) for namespace in namespaces),
            return_exceptions=True,
        )

        deployments: List[DeploymentStatus] = []
        for namespace, result in zip(namespaces, results):
            if isinstance(result, BaseException):
                logger.error(f"Skipping namespace {namespace}: {str(result)}")
                continue
            deployments.extend(result)

        deployments.sort(key=created_at_key, reverse=True)
        return deployments

    async def list_deployment_page(
        self,
        namespace: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> DeploymentPage:
        if namespace:
            deployments = await self.list_deployments(namespace)
        else:
            deployments = await self.list_all_deployments()

        total = len(deployments)
        start = offset or 0
        end = start + limit if limit else None
        page = deployments[start:end]

        return DeploymentPage(
            deployments=page,
            pagination=Pagination(
                total=total,
                limit=limit or total,
                offset=start,
                has_more=start + len(page) < total,
            ),
        )

    async def _list_namespace(self, namespace: str, strict: bool) -> List[DeploymentStatus]:
        deployments = []
        for provider in self.registry.list_providers():
            crd = provider.get_crd_config()
            try:
                data = await self.client.list_namespaced_custom_object(
                    crd.api_group, crd.api_version, namespace, crd.plural
                )
            except ClusterApiError as e:
                if e.is_not_found:
                    logger.debug(f"No {crd.plural} resource type in {namespace}, skipping")
                    continue
                if strict:
                    raise
                logger.error(f"Failed to list {crd.plural} in {namespace}: {e.message}")
                continue

            for item in as_list(as_dict(data).get("items")):
                status = provider.parse_status(item)
                status.provider = provider.id
                deployments.append(status)
        return deployments

    async def _find(self, name: str, namespace: str) -> Optional[Tuple[Provider, Dict[str, Any]]]:
        """Locate a deployment by trying each provider's resource type"""
        for provider in self.registry.list_providers():
            crd = provider.get_crd_config()
            try:
                raw = await self.client.get_namespaced_custom_object(
                    crd.api_group, crd.api_version, namespace, crd.plural, name
                )
            except ClusterApiError as e:
                if e.is_not_found:
                    continue
                raise
            return provider, raw
        return None

    async def get_deployment(self, name: str, namespace: str) -> Optional[DeploymentStatus]:
        found = await self._find(name, namespace)
        if found is None:
            return None

        provider, raw = found
        status = provider.parse_status(raw)
        status.provider = provider.id
        status.pods = await self.get_deployment_pods(name, namespace)
        return status

    async def get_deployment_pods(self, name: str, namespace: str) -> List[PodStatus]:
        pods = await self.client.list_namespaced_pod(
            namespace, label_selector=f"{app_config.POD_INSTANCE_LABEL}={name}"
        )
        return [parse_pod(pod) for pod in pods]

    async def delete_deployment(self, name: str, namespace: str) -> str:
        """Delete a deployment and return the id of the provider that owned it"""
        found = await self._find(name, namespace)
        if found is None:
            raise DeploymentNotFoundError(name, namespace)

        provider, _ = found
        crd = provider.get_crd_config()
        logger.info(f"Deleting {crd.kind} {namespace}/{name} (provider={provider.id})")
        await self.client.delete_namespaced_custom_object(
            crd.api_group, crd.api_version, namespace, crd.plural, name
        )
        return provider.id

    async def get_deployment_logs(
        self, name: str, namespace: str, pod: Optional[str] = None, tail: int = 100
    ) -> Dict[str, str]:
        pods = await self.get_deployment_pods(name, namespace)
        if pod:
            pods = [p for p in pods if p.name == pod]
            if not pods:
                raise PodNotFoundError(pod, namespace)

        logs = {}
        for item in pods:
            logs[item.name] = await self.client.read_namespaced_pod_log(
                item.name, namespace, tail_lines=tail
            )
        return logs

    async def get_runtimes_status(self) -> List[RuntimeStatus]:
        providers = self.registry.list_providers()
        results = await asyncio.gather(
            *(provider.check_installation(self.client) for provider in providers)
        )
        return [
            RuntimeStatus(
                id=provider.id,
                name=provider.name,
                installed=result.installed,
                crd_found=result.crd_found,
                operator_running=result.operator_running,
                message=result.message,
            )
            for provider, result in zip(providers, results)
        ]
