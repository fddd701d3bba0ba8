import asyncio
import json
import logging
import os
import re
import subprocess
import tempfile
from typing import Any, Dict, List, Optional, Protocol

import yaml

from app import config
from app.services.errors import REASON_STATUS_CODES, ClusterApiError
from app.utils.command import run_command

logger = logging.getLogger("kubefoundry-api")

SERVER_ERROR_PATTERN = re.compile(r"Error from server \((\w+)\)(?::\s*(.*))?", re.DOTALL)


class ClusterClient(Protocol):
    """The cluster primitives the deployment layer relies on.

    Failures are raised as ClusterApiError so callers can inspect the status code.
    """

    async def create_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        ...

    async def list_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str
    ) -> Dict[str, Any]:
        ...

    async def get_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str
    ) -> Dict[str, Any]:
        ...

    async def delete_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str
    ) -> None:
        ...

    async def list_namespaced_pod(
        self, namespace: str, label_selector: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        ...

    async def read_namespaced_pod_log(
        self, name: str, namespace: str, tail_lines: Optional[int] = None
    ) -> str:
        ...


def classify_kubectl_error(stderr: str) -> ClusterApiError:
    """Turn kubectl stderr into a ClusterApiError with the API server's status code"""
    stderr = (stderr or "").strip()

    match = SERVER_ERROR_PATTERN.search(stderr)
    if match:
        reason = match.group(1)
        message = (match.group(2) or stderr).strip()
        return ClusterApiError(
            REASON_STATUS_CODES.get(reason, 500), message, reason=reason, body=stderr
        )

    # CRD not installed
    if "doesn't have a resource type" in stderr:
        return ClusterApiError(404, stderr, reason="NotFound", body=stderr)

    if "Unable to connect to the server" in stderr or "connection refused" in stderr:
        return ClusterApiError(503, stderr, reason="ServiceUnavailable", body=stderr)

    return ClusterApiError(500, stderr or "kubectl failed", reason="InternalError", body=stderr)


class KubectlClient:
    """ClusterClient backed by the kubectl binary"""

    def __init__(
        self,
        kubectl: str = config.KUBECTL_BIN,
        context: Optional[str] = config.KUBECONFIG_CONTEXT,
        timeout: int = config.KUBECTL_TIMEOUT,
    ):
        self.kubectl = kubectl
        self.context = context
        self.timeout = timeout

    def _command(self, args: List[str]) -> List[str]:
        command = [self.kubectl]
        if self.context:
            command += ["--context", self.context]
        return command + args

    async def _run(self, args: List[str]) -> str:
        command = self._command(args)
        try:
            result = await asyncio.to_thread(run_command, command, False, self.timeout)
        except subprocess.TimeoutExpired:
            raise ClusterApiError(
                504, f"kubectl timed out after {self.timeout}s", reason="Timeout"
            )
        except FileNotFoundError:
            raise ClusterApiError(
                503, f"{self.kubectl} executable not found", reason="ServiceUnavailable"
            )

        if result.returncode != 0:
            error = classify_kubectl_error(result.stderr)
            if error.is_not_found:
                logger.debug(f"kubectl {args[0]} returned not found: {error.message}")
            else:
                logger.warning(f"kubectl {args[0]} failed ({error.status_code}): {error.message}")
            raise error
        return result.stdout

    async def _run_json(self, args: List[str]) -> Dict[str, Any]:
        stdout = await self._run(args)
        if not stdout.strip():
            return {}
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ClusterApiError(500, f"Could not parse kubectl output: {str(e)}")

    @staticmethod
    def _resource(group: str, version: str, plural: str) -> str:
        return f"{plural}.{version}.{group}"

    async def create_namespaced_custom_object(self, group, version, namespace, plural, body):
        fd, path = tempfile.mkstemp(suffix=".yaml")
        with os.fdopen(fd, "w") as tmp:
            yaml.safe_dump(body, tmp, sort_keys=False)
        logger.info(f"Creating {body.get('kind')} {namespace}/{body.get('metadata', {}).get('name')}")
        try:
            return await self._run_json(["create", "-n", namespace, "-f", path, "-o", "json"])
        finally:
            os.unlink(path)

    async def list_namespaced_custom_object(self, group, version, namespace, plural):
        return await self._run_json(
            ["get", self._resource(group, version, plural), "-n", namespace, "-o", "json"]
        )

    async def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        return await self._run_json(
            ["get", self._resource(group, version, plural), name, "-n", namespace, "-o", "json"]
        )

    async def delete_namespaced_custom_object(self, group, version, namespace, plural, name):
        await self._run(
            ["delete", self._resource(group, version, plural), name, "-n", namespace]
        )

    async def list_namespaced_pod(self, namespace, label_selector=None):
        args = ["get", "pods", "-n", namespace, "-o", "json"]
        if label_selector:
            args += ["-l", label_selector]
        data = await self._run_json(args)
        return data.get("items", [])

    async def read_namespaced_pod_log(self, name, namespace, tail_lines=None):
        args = ["logs", name, "-n", namespace, "--all-containers=true"]
        if tail_lines:
            args.append(f"--tail={tail_lines}")
        return await self._run(args)
