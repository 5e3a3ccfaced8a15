"""Cluster gateway protocol."""

from __future__ import annotations

from typing import Any, Protocol

Manifest = dict[str, Any]


class ClusterGateway(Protocol):
    """Capability interface over a remote Kubernetes cluster.

    Objects are plain manifests as returned by the API server. Every method
    raises NotFoundError when the addressed object does not exist and
    TransientClusterError for any other failure to reach the cluster.
    """

    def get_namespace(self, name: str) -> Manifest:
        ...

    def create_namespace(self, name: str) -> Manifest:
        ...

    def delete_namespace(self, name: str) -> None:
        ...

    def get_job(self, namespace: str, name: str) -> Manifest:
        """Get a Job by name."""
        ...

    def create_job(self, namespace: str, manifest: Manifest) -> Manifest:
        """Create a Job from a full batch/v1 manifest."""
        ...

    def delete_job(self, namespace: str, name: str) -> None:
        """Request deletion of a Job. Returns before the Job is gone."""
        ...

    def get_pod(self, namespace: str, name: str) -> Manifest:
        ...

    def list_pods(self, namespace: str, label_selector: str) -> list[Manifest]:
        """List pods matching a label selector (empty list if none)."""
        ...

    def delete_pod(self, namespace: str, name: str) -> None:
        ...

    def get_config_map(self, namespace: str, name: str) -> Manifest:
        ...

    def create_config_map(
        self, namespace: str, name: str, data: dict[str, str]
    ) -> Manifest:
        ...

    def get_secret(self, namespace: str, name: str) -> Manifest:
        ...

    def create_secret(
        self,
        namespace: str,
        name: str,
        data: dict[str, bytes],
        secret_type: str | None = None,
    ) -> Manifest:
        ...
