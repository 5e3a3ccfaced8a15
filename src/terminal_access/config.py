"""Configuration for the terminal session manager and cluster gateway."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from terminal_access.errors import FatalError
from terminal_access.naming import TERMINAL_ACCESS_POD_NAME_TEMPLATE


class GatewayMode(str, Enum):
    """How the gateway authenticates against the cluster."""

    IN_CLUSTER = "in_cluster"
    KUBECONFIG = "kubeconfig"


@dataclass
class GatewayConfig:
    """Configuration for the kubectl-backed cluster gateway.

    Attributes:
        mode: In-cluster service account or local kubeconfig.
        kubeconfig_path: Kubeconfig file (kubeconfig mode only; None for the
            kubectl default, usually ~/.kube/config).
        context: Kubeconfig context to use (None for current context).
        binary: CLI to run ("kubectl" or "oc").
        timeout: Default timeout in seconds for each call (0 for none).
    """

    mode: GatewayMode = GatewayMode.KUBECONFIG
    kubeconfig_path: Path | None = None
    context: str | None = None
    binary: str = "kubectl"
    timeout: int = 30

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> GatewayConfig:
        """Build the gateway config from environment variables.

        ``LOCAL_DEV_MODE=true`` selects the kubeconfig mode, otherwise the
        in-cluster service account is used.
        """
        env = os.environ if env is None else env
        local_dev = env.get("LOCAL_DEV_MODE", "false").lower() in ("1", "true", "yes")
        kubeconfig = env.get("KUBECONFIG")
        return cls(
            mode=GatewayMode.KUBECONFIG if local_dev else GatewayMode.IN_CLUSTER,
            kubeconfig_path=Path(kubeconfig) if kubeconfig and local_dev else None,
            context=env.get("KUBE_CONTEXT") or None,
            binary=env.get("TERMINAL_ACCESS_KUBECTL", "kubectl"),
        )


@dataclass
class TerminalSessionConfig:
    """Configuration for session lifecycle and status reconciliation.

    Attributes:
        max_session_per_user: Cap on concurrently active sessions per user.
        terminal_pod_status_sync_time_in_secs: Reconcile period.
        namespace: Default namespace for terminal Jobs.
        pod_name_template: Template used to name session Jobs.
        deletion_wait_attempts: Re-checks after deleting a stale Job.
        deletion_wait_interval_secs: First delay between re-checks.
        deletion_wait_backoff: Multiplier applied to the delay per attempt.
        max_transient_failures: Consecutive poll failures before Error.
        terminated_session_retention_secs: How long terminal sessions stay
            in the registry for inspection.
        labels: Extra labels applied to every terminal Job and pod.
    """

    max_session_per_user: int = 5
    terminal_pod_status_sync_time_in_secs: int = 5
    namespace: str = "default"
    pod_name_template: str = TERMINAL_ACCESS_POD_NAME_TEMPLATE
    deletion_wait_attempts: int = 5
    deletion_wait_interval_secs: float = 1.0
    deletion_wait_backoff: float = 1.5
    max_transient_failures: int = 3
    terminated_session_retention_secs: int = 300
    labels: dict[str, str] = field(default_factory=lambda: {
        "app": "terminal-access",
    })

    def __post_init__(self) -> None:
        if self.max_session_per_user < 1:
            raise FatalError("max_session_per_user must be at least 1")
        if self.terminal_pod_status_sync_time_in_secs < 1:
            raise FatalError("terminal_pod_status_sync_time_in_secs must be positive")
        if self.deletion_wait_attempts < 1:
            raise FatalError("deletion_wait_attempts must be at least 1")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> TerminalSessionConfig:
        """Build the config from environment variables.

        Args:
            env: Environment mapping (defaults to os.environ).

        Returns:
            Config with defaults for unset variables.

        Raises:
            FatalError: If a variable is set but not a valid integer.
        """
        env = os.environ if env is None else env
        return cls(
            max_session_per_user=_env_int(env, "MAX_SESSION_PER_USER", 5),
            terminal_pod_status_sync_time_in_secs=_env_int(
                env, "TERMINAL_POD_STATUS_SYNC_In_SECS", 5
            ),
            namespace=env.get("TERMINAL_ACCESS_NAMESPACE", "default"),
            pod_name_template=env.get(
                "TERMINAL_ACCESS_POD_NAME_TEMPLATE", TERMINAL_ACCESS_POD_NAME_TEMPLATE
            ),
            terminated_session_retention_secs=_env_int(
                env, "TERMINAL_SESSION_RETENTION_SECS", 300
            ),
        )


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise FatalError(f"{name} must be an integer, got '{raw}'") from None
