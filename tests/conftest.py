"""Shared fixtures: an in-memory cluster gateway and a fake clock."""

from __future__ import annotations

import copy
import threading
from typing import Any

import pytest

from terminal_access.config import TerminalSessionConfig
from terminal_access.errors import NotFoundError, TransientClusterError
from terminal_access.manager import SessionLifecycleManager
from terminal_access.models import TerminalSessionRequest
from terminal_access.reconciler import StatusReconciler
from terminal_access.registry import SessionRegistry


class FakeClock:
    """Clock that records sleeps instead of sleeping."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        self.sleeps.append(seconds)
        self.now += seconds
        return cancel is not None and cancel.is_set()


class FakeGateway:
    """In-memory cluster.

    Deleted Jobs linger for ``job_deletion_delay`` get_job calls before
    disappearing; names in ``sticky_jobs`` never disappear.
    """

    def __init__(self) -> None:
        self.namespaces: set[str] = {"default"}
        self.jobs: dict[tuple[str, str], dict[str, Any]] = {}
        self.pods: dict[tuple[str, str], dict[str, Any]] = {}
        self.config_maps: dict[tuple[str, str], dict[str, Any]] = {}
        self.secrets: dict[tuple[str, str], dict[str, Any]] = {}
        self.job_deletion_delay = 0
        self.sticky_jobs: set[str] = set()
        self.list_pods_errors: list[Exception] = []
        self.calls: list[tuple[str, ...]] = []
        self._deleting: dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    # Namespaces

    def get_namespace(self, name: str) -> dict[str, Any]:
        self.calls.append(("get_namespace", name))
        if name not in self.namespaces:
            raise NotFoundError(f'namespaces "{name}" not found')
        return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}

    def create_namespace(self, name: str) -> dict[str, Any]:
        self.calls.append(("create_namespace", name))
        self.namespaces.add(name)
        return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}

    def delete_namespace(self, name: str) -> None:
        self.calls.append(("delete_namespace", name))
        if name not in self.namespaces:
            raise NotFoundError(f'namespaces "{name}" not found')
        self.namespaces.discard(name)

    # Jobs

    def add_job(self, namespace: str, name: str, **status: Any) -> dict[str, Any]:
        job = {
            "apiVersion": "batch/v1",
            "kind": "Job",
            "metadata": {"name": name, "namespace": namespace},
            "spec": {"template": {"spec": {"containers": [{"name": "terminal"}]}}},
            "status": dict(status),
        }
        self.jobs[(namespace, name)] = job
        return job

    def get_job(self, namespace: str, name: str) -> dict[str, Any]:
        self.calls.append(("get_job", namespace, name))
        key = (namespace, name)
        with self._lock:
            if key in self._deleting and name not in self.sticky_jobs:
                if self._deleting[key] <= 0:
                    del self._deleting[key]
                    self.jobs.pop(key, None)
                else:
                    self._deleting[key] -= 1
            if key not in self.jobs:
                raise NotFoundError(f'jobs.batch "{name}" not found')
            return copy.deepcopy(self.jobs[key])

    def create_job(self, namespace: str, manifest: dict[str, Any]) -> dict[str, Any]:
        name = manifest["metadata"]["name"]
        self.calls.append(("create_job", namespace, name))
        with self._lock:
            if (namespace, name) in self.jobs:
                raise TransientClusterError(f'jobs.batch "{name}" already exists')
            self.jobs[(namespace, name)] = copy.deepcopy(manifest)
        return manifest

    def delete_job(self, namespace: str, name: str) -> None:
        self.calls.append(("delete_job", namespace, name))
        with self._lock:
            if (namespace, name) not in self.jobs:
                raise NotFoundError(f'jobs.batch "{name}" not found')
            self._deleting[(namespace, name)] = self.job_deletion_delay

    def live_jobs(self) -> list[str]:
        """Names of Jobs not pending deletion."""
        return sorted(
            name for (ns, name) in self.jobs if (ns, name) not in self._deleting
        )

    # Pods

    def add_pod(
        self,
        namespace: str,
        name: str,
        job_name: str,
        phase: str = "Pending",
        ready: list[bool] | None = None,
        exit_codes: list[int | None] | None = None,
        created: str = "2024-01-15T10:00:00Z",
    ) -> dict[str, Any]:
        ready = ready if ready is not None else [False]
        exit_codes = exit_codes or [None] * len(ready)
        statuses = []
        for i, (is_ready, code) in enumerate(zip(ready, exit_codes, strict=True)):
            state: dict[str, Any] = {"running": {}}
            if code is not None:
                state = {"terminated": {"exitCode": code}}
            statuses.append({
                "name": f"c{i}",
                "ready": is_ready,
                "restartCount": 0,
                "state": state,
            })
        pod = {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {
                "name": name,
                "namespace": namespace,
                "labels": {"job-name": job_name},
                "creationTimestamp": created,
            },
            "spec": {"containers": [{"name": f"c{i}"} for i in range(len(ready))]},
            "status": {"phase": phase, "containerStatuses": statuses},
        }
        self.pods[(namespace, name)] = pod
        return pod

    def get_pod(self, namespace: str, name: str) -> dict[str, Any]:
        self.calls.append(("get_pod", namespace, name))
        if (namespace, name) not in self.pods:
            raise NotFoundError(f'pods "{name}" not found')
        return copy.deepcopy(self.pods[(namespace, name)])

    def list_pods(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        self.calls.append(("list_pods", namespace, label_selector))
        if self.list_pods_errors:
            raise self.list_pods_errors.pop(0)
        key, _, value = label_selector.partition("=")
        return [
            copy.deepcopy(pod)
            for (ns, _name), pod in sorted(self.pods.items())
            if ns == namespace and pod["metadata"]["labels"].get(key) == value
        ]

    def delete_pod(self, namespace: str, name: str) -> None:
        self.calls.append(("delete_pod", namespace, name))
        if self.pods.pop((namespace, name), None) is None:
            raise NotFoundError(f'pods "{name}" not found')

    # ConfigMaps and Secrets

    def get_config_map(self, namespace: str, name: str) -> dict[str, Any]:
        if (namespace, name) not in self.config_maps:
            raise NotFoundError(f'configmaps "{name}" not found')
        return self.config_maps[(namespace, name)]

    def create_config_map(
        self, namespace: str, name: str, data: dict[str, str]
    ) -> dict[str, Any]:
        cm = {"kind": "ConfigMap", "metadata": {"name": name}, "data": data}
        self.config_maps[(namespace, name)] = cm
        return cm

    def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        if (namespace, name) not in self.secrets:
            raise NotFoundError(f'secrets "{name}" not found')
        return self.secrets[(namespace, name)]

    def create_secret(
        self,
        namespace: str,
        name: str,
        data: dict[str, bytes],
        secret_type: str | None = None,
    ) -> dict[str, Any]:
        secret = {"kind": "Secret", "metadata": {"name": name}, "type": secret_type}
        self.secrets[(namespace, name)] = secret
        return secret


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> TerminalSessionConfig:
    return TerminalSessionConfig(
        max_session_per_user=2,
        deletion_wait_attempts=3,
        deletion_wait_interval_secs=1.0,
        terminated_session_retention_secs=60,
    )


@pytest.fixture
def registry(config: TerminalSessionConfig) -> SessionRegistry:
    return SessionRegistry(config.max_session_per_user)


@pytest.fixture
def manager(
    gateway: FakeGateway,
    registry: SessionRegistry,
    config: TerminalSessionConfig,
    clock: FakeClock,
) -> SessionLifecycleManager:
    return SessionLifecycleManager(gateway, registry, config=config, clock=clock)


@pytest.fixture
def reconciler(
    gateway: FakeGateway,
    registry: SessionRegistry,
    config: TerminalSessionConfig,
) -> StatusReconciler:
    return StatusReconciler(gateway, registry, config)


def _make_request(
    user_id: int = 42,
    cluster_id: int = 7,
    node_name: str = "node-1",
) -> TerminalSessionRequest:
    """Helper to create a TerminalSessionRequest for tests."""
    return TerminalSessionRequest(
        user_id=user_id,
        cluster_id=cluster_id,
        node_name=node_name,
        base_image="busybox:latest",
        shell_name="sh",
    )


@pytest.fixture
def make_request() -> Any:
    return _make_request
