"""Session data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class TerminalPodStatus(str, Enum):
    """Status of the workload backing a terminal session."""

    STARTING = "Starting"
    RUNNING = "Running"
    TERMINATED = "Terminated"
    ERROR = "Error"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Terminal states are absorbing."""
        return self in (TerminalPodStatus.TERMINATED, TerminalPodStatus.ERROR)

    @property
    def is_active(self) -> bool:
        """Active sessions count against the per-user limit."""
        return not self.is_terminal


@dataclass(frozen=True)
class TerminalSessionRequest:
    """Request to start a terminal session.

    Attributes:
        user_id: Requesting user.
        cluster_id: Target cluster.
        node_name: Node the pod is scheduled on.
        base_image: Container image for the terminal.
        shell_name: Shell to launch (e.g. "bash", "sh").
        namespace: Target namespace (None for the configured default).
    """

    user_id: int
    cluster_id: int
    node_name: str
    base_image: str
    shell_name: str
    namespace: str | None = None


@dataclass
class TerminalSession:
    """A user's ephemeral terminal workload.

    Attributes:
        session_id: Opaque identifier, never reused.
        user_id: Owning user.
        cluster_id: Cluster the workload runs on.
        terminal_access_id: Resolved Kubernetes name of the Job.
        namespace: Namespace of the Job.
        node_name: Node the pod is pinned to.
        base_image: Container image.
        shell_name: Shell running in the container.
        status: Current reconciled status.
        created_at: Creation time (UTC).
        last_status_check_at: Time of the last reconcile (UTC).
        terminated_at: Time a terminal status was first recorded.
        seen_workload: Whether a pod has ever been observed.
        consecutive_failures: Transient fetch failures in a row.
        last_error: Most recent recorded failure.
        pending_removal: Deleted explicitly; dropped after one reconcile cycle.
    """

    session_id: int
    user_id: int
    cluster_id: int
    terminal_access_id: str
    namespace: str
    node_name: str
    base_image: str
    shell_name: str
    status: TerminalPodStatus = TerminalPodStatus.STARTING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_status_check_at: datetime | None = None
    terminated_at: datetime | None = None
    seen_workload: bool = False
    consecutive_failures: int = 0
    last_error: str | None = None
    pending_removal: bool = False

    @property
    def job_label_selector(self) -> str:
        """Label selector matching pods created by this session's Job."""
        return f"job-name={self.terminal_access_id}"

    def to_response(self) -> dict[str, Any]:
        """Caller-facing view of the session."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "terminal_access_id": self.terminal_access_id,
            "shell_name": self.shell_name,
            "status": self.status.value,
        }
