"""Cluster gateway backed by the kubectl (or oc) CLI."""

from __future__ import annotations

import base64
import json
import subprocess
from typing import Any

import structlog

from terminal_access.config import GatewayConfig, GatewayMode
from terminal_access.errors import (
    FatalError,
    KubectlNotInstalledError,
    KubectlTimeoutError,
    NotFoundError,
    TransientClusterError,
)
from terminal_access.gateway.base import Manifest

logger = structlog.get_logger()


class KubectlGateway:
    """Talks to a cluster by shelling out to kubectl with JSON output.

    Constructed once from an explicit GatewayConfig and passed to the
    components that need it.
    """

    def __init__(self, config: GatewayConfig | None = None) -> None:
        """Initialize the gateway.

        Args:
            config: Gateway configuration. Defaults to GatewayConfig().
        """
        self._config = config or GatewayConfig()

    def _base_command(self) -> list[str]:
        cmd = [self._config.binary]

        if (
            self._config.mode is GatewayMode.KUBECONFIG
            and self._config.kubeconfig_path is not None
        ):
            cmd.extend(["--kubeconfig", str(self._config.kubeconfig_path)])

        if self._config.context:
            cmd.extend(["--context", self._config.context])

        return cmd

    def _run_kubectl(
        self,
        *args: str,
        input_data: str | None = None,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a kubectl command.

        Args:
            *args: Command arguments (without 'kubectl').
            input_data: Optional input to pass to stdin.
            timeout: Timeout in seconds (default from config).
                     Use None to inherit the config default, 0 for no timeout.

        Returns:
            CompletedProcess result with returncode 0.

        Raises:
            KubectlNotInstalledError: If the CLI is not installed.
            KubectlTimeoutError: If the command times out.
            NotFoundError: If the addressed object does not exist.
            FatalError: If the credentials are rejected.
            TransientClusterError: For any other failure.
        """
        cmd = self._base_command()
        cmd.extend(args)

        if timeout is None:
            timeout = self._config.timeout
        timeout_value: float | None = timeout if timeout > 0 else None

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                input=input_data,
                timeout=timeout_value,
            )
        except subprocess.TimeoutExpired:
            cmd_str = " ".join(cmd)
            raise KubectlTimeoutError(
                f"{self._config.binary} command timed out after "
                f"{timeout_value}s: {cmd_str}"
            ) from None
        except FileNotFoundError as e:
            raise KubectlNotInstalledError(
                f"{self._config.binary} CLI not found on PATH"
            ) from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if "(NotFound)" in stderr or "not found" in stderr.lower():
                raise NotFoundError(stderr)
            if "(Forbidden)" in stderr or "Unauthorized" in stderr:
                raise FatalError(f"cluster rejected credentials: {stderr}")
            logger.warning(
                "kubectl_command_failed",
                args=list(args),
                returncode=result.returncode,
                stderr=stderr,
            )
            raise TransientClusterError(
                f"{self._config.binary} command failed: {stderr}"
            )

        return result

    def _get_json(self, *args: str) -> Any:
        result = self._run_kubectl(*args, "-o", "json")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise TransientClusterError(
                f"invalid JSON from {self._config.binary}: {e}"
            ) from e

    def _create(self, namespace: str | None, manifest: Manifest) -> Manifest:
        args = ["create", "-f", "-", "-o", "json"]
        if namespace:
            args.extend(["-n", namespace])
        result = self._run_kubectl(*args, input_data=json.dumps(manifest))
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError:
            # Creation succeeded; echo back what was sent.
            return manifest

    def _delete(self, kind: str, name: str, namespace: str | None = None) -> None:
        args = ["delete", kind, name, "--wait=false"]
        if namespace:
            args.extend(["-n", namespace])
        self._run_kubectl(*args)

    # -------------------------------------------------------------------------
    # Namespaces
    # -------------------------------------------------------------------------

    def get_namespace(self, name: str) -> Manifest:
        return self._get_json("get", "namespace", name)

    def create_namespace(self, name: str) -> Manifest:
        logger.info("namespace_create", namespace=name)
        return self._create(None, {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {"name": name},
        })

    def delete_namespace(self, name: str) -> None:
        self._delete("namespace", name)

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def get_job(self, namespace: str, name: str) -> Manifest:
        return self._get_json("get", "job", name, "-n", namespace)

    def create_job(self, namespace: str, manifest: Manifest) -> Manifest:
        logger.info(
            "job_create",
            namespace=namespace,
            job=(manifest.get("metadata") or {}).get("name"),
        )
        return self._create(namespace, manifest)

    def delete_job(self, namespace: str, name: str) -> None:
        logger.info("job_delete", namespace=namespace, job=name)
        self._delete("job", name, namespace)

    # -------------------------------------------------------------------------
    # Pods
    # -------------------------------------------------------------------------

    def get_pod(self, namespace: str, name: str) -> Manifest:
        return self._get_json("get", "pod", name, "-n", namespace)

    def list_pods(self, namespace: str, label_selector: str) -> list[Manifest]:
        pod_list = self._get_json("get", "pods", "-n", namespace, "-l", label_selector)
        return list(pod_list.get("items", []))

    def delete_pod(self, namespace: str, name: str) -> None:
        logger.info("pod_delete", namespace=namespace, pod=name)
        self._delete("pod", name, namespace)

    # -------------------------------------------------------------------------
    # ConfigMaps and Secrets
    # -------------------------------------------------------------------------

    def get_config_map(self, namespace: str, name: str) -> Manifest:
        return self._get_json("get", "configmap", name, "-n", namespace)

    def create_config_map(
        self, namespace: str, name: str, data: dict[str, str]
    ) -> Manifest:
        return self._create(namespace, {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": name, "namespace": namespace},
            "data": data,
        })

    def get_secret(self, namespace: str, name: str) -> Manifest:
        return self._get_json("get", "secret", name, "-n", namespace)

    def create_secret(
        self,
        namespace: str,
        name: str,
        data: dict[str, bytes],
        secret_type: str | None = None,
    ) -> Manifest:
        secret_spec: Manifest = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": name, "namespace": namespace},
            "data": {k: base64.b64encode(v).decode() for k, v in data.items()},
        }
        if secret_type:
            secret_spec["type"] = secret_type
        return self._create(namespace, secret_spec)
