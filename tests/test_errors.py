import json

import pytest

from app.services.errors import (
    ClusterApiError,
    ConfigValidationError,
    DeploymentNotFoundError,
    NotFoundError,
    ProviderNotFoundError,
    extract_error_message,
    status_code_message,
)


def test_body_message_with_field_causes():
    body = {
        "kind": "Status",
        "message": 'RayService.ray.io "x" is invalid',
        "reason": "Invalid",
        "details": {
            "causes": [
                {"field": "spec.replicas", "message": "must be positive"},
                {"reason": "FieldValueRequired"},
            ]
        },
    }
    error = ClusterApiError(422, "raw", reason="Invalid", body=json.dumps(body))

    assert extract_error_message(error) == (
        'RayService.ray.io "x" is invalid '
        "Details: spec.replicas: must be positive; FieldValueRequired"
    )


def test_body_reason_fallback():
    error = ClusterApiError(403, "", body={"reason": "Forbidden"})

    assert extract_error_message(error) == (
        "Permission denied. Check if the user has the required RBAC permissions."
    )


def test_plain_message_wins_over_status_text():
    error = ClusterApiError(409, 'workspaces.kaito.sh "w" already exists', body="not json")

    assert extract_error_message(error) == 'workspaces.kaito.sh "w" already exists'


def test_reason_then_status_code_fallbacks():
    assert extract_error_message(ClusterApiError(401, "", reason="Unauthorized")) == (
        "Unauthorized. Check your cluster credentials."
    )
    assert extract_error_message(ClusterApiError(503, "")) == status_code_message(503)


@pytest.mark.parametrize("code", [400, 401, 403, 404, 409, 422, 500, 502, 503, 504])
def test_known_status_codes_have_messages(code):
    assert not status_code_message(code).startswith("Request failed")


def test_unknown_status_code_message():
    assert status_code_message(418) == "Request failed with status 418"


def test_non_cluster_errors():
    assert extract_error_message(RuntimeError("boom")) == "boom"
    assert extract_error_message(RuntimeError()) == "Unknown error occurred"


def test_not_found_hierarchy():
    assert issubclass(ProviderNotFoundError, NotFoundError)
    assert str(ProviderNotFoundError("nope")) == "Provider 'nope' not found"
    assert str(DeploymentNotFoundError("a", "b")) == "Deployment 'a' not found in namespace 'b'"


def test_config_validation_error_keeps_messages():
    error = ConfigValidationError(["name: bad", "replicas: bad"])

    assert error.errors == ["name: bad", "replicas: bad"]
    assert str(error) == "Validation error: name: bad, replicas: bad"
