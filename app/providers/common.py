"""
Helpers shared by the provider implementations.

Every reader here treats a missing or malformed value as its default so
status parsing never raises on a half-populated custom resource.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Type

from pydantic import ValidationError

from app import config as app_config
from app.models.deployment import (
    Condition,
    DeploymentConfig,
    ValidationResult,
    topology_errors,
)
from app.models.provider import CRDConfig, InstallationStatus
from app.services.errors import ClusterApiError

logger = logging.getLogger("kubefoundry-api")

CONDITION_STATES = ("True", "False", "Unknown")


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def standard_labels(name: str) -> Dict[str, str]:
    return {
        "app.kubernetes.io/name": app_config.MANAGED_BY,
        "app.kubernetes.io/instance": name,
        "app.kubernetes.io/managed-by": app_config.MANAGED_BY,
    }


def manifest_metadata(config: DeploymentConfig) -> Dict[str, Any]:
    return {
        "name": config.name,
        "namespace": config.namespace,
        "labels": standard_labels(config.name),
    }


def hf_token_env_from(config: DeploymentConfig) -> List[Dict[str, Any]]:
    if not config.hf_token_secret:
        return []
    return [{"secretRef": {"name": config.hf_token_secret}}]


def parse_conditions(raw: Any) -> List[Condition]:
    conditions = []
    for item in as_list(raw):
        if not isinstance(item, dict):
            continue
        state = item.get("status")
        conditions.append(
            Condition(
                type=as_str(item.get("type")),
                status=state if state in CONDITION_STATES else "Unknown",
                reason=item.get("reason") if isinstance(item.get("reason"), str) else None,
                message=item.get("message") if isinstance(item.get("message"), str) else None,
                last_transition_time=(
                    item.get("lastTransitionTime")
                    if isinstance(item.get("lastTransitionTime"), str)
                    else None
                ),
            )
        )
    return conditions


def format_validation_errors(error: ValidationError) -> List[str]:
    messages = []
    for err in error.errors():
        path = ".".join(str(part) for part in err.get("loc", ())) or "config"
        messages.append(f"{path}: {err.get('msg')}")
    return messages


def validate_with(
    model: Type[DeploymentConfig], raw: Any, provider_id: str
) -> ValidationResult:
    """Parse raw input with a provider's config model, collecting every error"""
    try:
        parsed = model.model_validate(raw)
    except ValidationError as e:
        return ValidationResult(valid=False, errors=format_validation_errors(e))

    errors = topology_errors(parsed)
    if parsed.provider != provider_id:
        errors.insert(0, f"provider: Expected '{provider_id}', got '{parsed.provider}'")
    if errors:
        return ValidationResult(valid=False, errors=errors)
    return ValidationResult(valid=True, errors=[], data=parsed)


async def check_crd_and_operator(
    client,
    crd: CRDConfig,
    namespace: str,
    operator_selector: str,
    display_name: str,
) -> InstallationStatus:
    """Check the CRD with a scoped list and look for a running operator pod"""
    crd_found = False
    try:
        await client.list_namespaced_custom_object(
            crd.api_group, crd.api_version, namespace, crd.plural
        )
        crd_found = True
    except ClusterApiError as e:
        if not e.is_not_found:
            logger.warning(f"Could not verify {crd.kind} CRD: {e.message}")
    except Exception as e:
        logger.warning(f"Could not verify {crd.kind} CRD: {str(e)}")

    operator_running = False
    try:
        pods = await client.list_namespaced_pod(namespace, label_selector=operator_selector)
        operator_running = any(
            as_dict(pod.get("status")).get("phase") == "Running"
            for pod in pods
            if isinstance(pod, dict)
        )
    except Exception as e:
        logger.info(f"Operator pods not found in {namespace}: {str(e)}")

    installed = crd_found and operator_running
    if installed:
        message = f"{display_name} is installed and running"
    elif not crd_found:
        message = f"{display_name} CRD not found. Please install the {display_name} operator."
    else:
        message = f"{display_name} operator is not running"

    return InstallationStatus(
        installed=installed,
        crd_found=crd_found,
        operator_running=operator_running,
        message=message,
    )
