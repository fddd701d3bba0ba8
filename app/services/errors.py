import json
from typing import Any, Dict, List, Optional


class NotFoundError(Exception):
    """Base class for anything the caller asked for that does not exist"""


class ProviderNotFoundError(NotFoundError):
    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider '{provider_id}' not found")


class DeploymentNotFoundError(NotFoundError):
    def __init__(self, name: str, namespace: str):
        self.name = name
        self.namespace = namespace
        super().__init__(f"Deployment '{name}' not found in namespace '{namespace}'")


class PodNotFoundError(NotFoundError):
    def __init__(self, name: str, namespace: str):
        self.name = name
        self.namespace = namespace
        super().__init__(f"Pod '{name}' not found in namespace '{namespace}'")


class ConfigValidationError(Exception):
    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Validation error: {', '.join(errors)}")


class ClusterApiError(Exception):
    """
    Failure reported by the cluster client.

    Carries the HTTP status code and Kubernetes reason so the API boundary
    can answer with the same status instead of a generic 500.
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        reason: Optional[str] = None,
        body: Any = None,
    ):
        self.status_code = status_code
        self.reason = reason
        self.message = message
        self.body = body
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


# Kubernetes Status reasons and the HTTP codes the API server uses for them
REASON_STATUS_CODES = {
    "BadRequest": 400,
    "Unauthorized": 401,
    "Forbidden": 403,
    "NotFound": 404,
    "MethodNotAllowed": 405,
    "AlreadyExists": 409,
    "Conflict": 409,
    "Gone": 410,
    "Invalid": 422,
    "TooManyRequests": 429,
    "InternalError": 500,
    "ServiceUnavailable": 503,
    "Timeout": 504,
}

REASON_MESSAGES = {
    "Forbidden": "Permission denied. Check if the user has the required RBAC permissions.",
    "NotFound": "Resource not found. The CRD or namespace may not exist.",
    "AlreadyExists": "A deployment with this name already exists.",
    "Invalid": "Invalid configuration. Check the deployment parameters.",
    "Conflict": "Resource conflict. The resource was modified by another process.",
    "Unauthorized": "Unauthorized. Check your cluster credentials.",
    "ServiceUnavailable": "Kubernetes API server is unavailable. Try again later.",
    "InternalError": "Kubernetes API server internal error. Try again later.",
}


def status_code_message(status_code: int) -> str:
    """Human-readable message for an HTTP status code"""
    if status_code == 400:
        return "Invalid request. Check the deployment configuration."
    if status_code == 401:
        return "Authentication failed. Check your cluster credentials."
    if status_code == 403:
        return "Permission denied. Check if you have the required RBAC permissions to create deployments."
    if status_code == 404:
        return "Resource not found. The CRD or namespace may not exist. Check if the runtime is installed."
    if status_code == 409:
        return "A deployment with this name already exists."
    if status_code == 422:
        return "Invalid deployment configuration. Check the parameters and try again."
    if status_code == 500:
        return "Kubernetes API server error. Try again later."
    if status_code in (502, 503, 504):
        return "Kubernetes API server is temporarily unavailable. Try again later."
    return f"Request failed with status {status_code}"


def _parse_body(body: Any) -> Optional[Dict[str, Any]]:
    if isinstance(body, dict):
        return body
    if isinstance(body, str) and body.strip():
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def extract_error_message(error: Exception) -> str:
    """Build a user-facing message from a cluster error"""
    if not isinstance(error, ClusterApiError):
        return str(error) or "Unknown error occurred"

    body = _parse_body(error.body)
    if body:
        parts = []
        if body.get("message"):
            parts.append(body["message"])

        causes = (body.get("details") or {}).get("causes") or []
        cause_messages = []
        for cause in causes:
            if cause.get("field") and cause.get("message"):
                cause_messages.append(f"{cause['field']}: {cause['message']}")
            elif cause.get("message") or cause.get("reason"):
                cause_messages.append(cause.get("message") or cause.get("reason"))
        if cause_messages:
            parts.append(f"Details: {'; '.join(cause_messages)}")

        if parts:
            return " ".join(parts)

        if body.get("reason") in REASON_MESSAGES:
            return REASON_MESSAGES[body["reason"]]

    if error.message:
        return error.message
    if error.reason in REASON_MESSAGES:
        return REASON_MESSAGES[error.reason]
    return status_code_message(error.status_code)
