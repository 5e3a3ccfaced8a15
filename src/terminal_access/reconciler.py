"""Periodic reconciliation of session status against the cluster."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from terminal_access.config import TerminalSessionConfig
from terminal_access.errors import NotFoundError, TerminalAccessError
from terminal_access.gateway.base import ClusterGateway, Manifest
from terminal_access.gateway.resources import (
    JOB_COMPLETE,
    JOB_FAILED,
    POD_FAILED,
    POD_RUNNING,
    POD_SUCCEEDED,
    container_exit_codes,
    count_ready_containers,
    job_condition,
    pod_phase,
)
from terminal_access.models import TerminalPodStatus, TerminalSession
from terminal_access.registry import SessionRegistry

logger = structlog.get_logger()


@dataclass(frozen=True)
class StatusTransition:
    """A status change observed during a reconcile cycle."""

    session_id: int
    old: TerminalPodStatus
    new: TerminalPodStatus


Listener = Callable[[TerminalSession, TerminalPodStatus, TerminalPodStatus], None]


def map_pod_status(pod: Manifest) -> TerminalPodStatus:
    """Map a pod's observed state to a session status.

    Args:
        pod: Pod manifest.

    Returns:
        Running only when the pod is Running with every container ready;
        Error for a Failed pod or any non-zero container exit; Terminated for
        a Succeeded pod; Starting otherwise.
    """
    phase = pod_phase(pod)
    if phase == POD_RUNNING:
        ready, total = count_ready_containers(pod)
        if total > 0 and ready == total:
            return TerminalPodStatus.RUNNING
        if any(code != 0 for code in container_exit_codes(pod)):
            return TerminalPodStatus.ERROR
        return TerminalPodStatus.STARTING
    if phase == POD_FAILED:
        return TerminalPodStatus.ERROR
    if phase == POD_SUCCEEDED:
        if any(code != 0 for code in container_exit_codes(pod)):
            return TerminalPodStatus.ERROR
        return TerminalPodStatus.TERMINATED
    return TerminalPodStatus.STARTING


def _newest_pod(pods: list[Manifest]) -> Manifest:
    return max(
        pods,
        key=lambda p: str(
            (p.get("metadata") or {}).get("creationTimestamp") or ""
        ),
    )


def observe_workload(
    gateway: ClusterGateway,
    namespace: str,
    name: str,
    seen_before: bool = False,
) -> tuple[TerminalPodStatus, bool]:
    """Read the pods and Job named ``name`` and derive a session status.

    Args:
        gateway: Cluster gateway.
        namespace: Namespace of the Job.
        name: Job name (terminal access id).
        seen_before: Whether a pod was observed on an earlier check.

    Returns:
        Tuple of (status, whether a pod was found now).

    Raises:
        TerminalAccessError: For any failure other than not-found.
    """
    try:
        pods = gateway.list_pods(namespace, f"job-name={name}")
    except NotFoundError:
        pods = []

    if pods:
        return map_pod_status(_newest_pod(pods)), True

    # No pod: either not scheduled yet, finished and cleaned up, or gone.
    try:
        job = gateway.get_job(namespace, name)
    except NotFoundError:
        if seen_before:
            return TerminalPodStatus.ERROR, False
        return TerminalPodStatus.STARTING, False

    condition = job_condition(job)
    if condition == JOB_COMPLETE:
        return TerminalPodStatus.TERMINATED, False
    if condition == JOB_FAILED or seen_before:
        return TerminalPodStatus.ERROR, False
    return TerminalPodStatus.STARTING, False


class StatusReconciler:
    """Polls the cluster for every active session and records transitions.

    Runs on its own daemon thread every
    ``terminal_pod_status_sync_time_in_secs`` seconds. ``reconcile_once``
    performs a single cycle and can be called directly.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        registry: SessionRegistry,
        config: TerminalSessionConfig | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._gateway = gateway
        self._registry = registry
        self._config = config or TerminalSessionConfig()
        self._now = now or (lambda: datetime.now(UTC))
        self._listeners: list[Listener] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked as ``listener(session, old, new)``."""
        self._listeners.append(listener)

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="terminal-status-reconciler", daemon=True
        )
        self._thread.start()
        logger.info(
            "reconciler_started",
            interval=self._config.terminal_pod_status_sync_time_in_secs,
        )

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("reconciler_stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        interval = self._config.terminal_pod_status_sync_time_in_secs
        while not self._stop.is_set():
            try:
                self.reconcile_once()
            except Exception:  # noqa: BLE001 - keep the loop alive
                logger.exception("reconcile_cycle_failed")
            if self._stop.wait(interval):
                break

    # -------------------------------------------------------------------------
    # One cycle
    # -------------------------------------------------------------------------

    def reconcile_once(self) -> list[StatusTransition]:
        """Reconcile every active session once.

        Sessions deleted before this cycle began are dropped at its end, and
        terminal sessions older than the retention period are purged.

        Returns:
            Transitions recorded during this cycle.
        """
        now = self._now()
        deleted = [s.session_id for s in self._registry.list_all() if s.pending_removal]

        transitions = []
        for session in self._registry.list_active():
            try:
                transition = self._reconcile_session(session, now)
            except NotFoundError:
                # Removed from the registry after list_active().
                logger.debug(
                    "session_removed_during_reconcile",
                    session_id=session.session_id,
                )
                continue
            if transition is not None:
                transitions.append(transition)

        for session_id in deleted:
            self._registry.remove(session_id)
        self._purge_expired(now)

        return transitions

    def _reconcile_session(
        self, session: TerminalSession, now: datetime
    ) -> StatusTransition | None:
        log = logger.bind(
            session_id=session.session_id,
            terminal_access_id=session.terminal_access_id,
        )
        try:
            observed = self._observe(session)
        except TerminalAccessError as e:
            failures = self._registry.record_failure(session.session_id, str(e), now)
            log.warning("status_check_failed", error=str(e), consecutive=failures)
            if failures < self._config.max_transient_failures:
                return None
            log.error("status_check_giving_up", consecutive=failures)
            observed = TerminalPodStatus.ERROR
        else:
            self._registry.clear_failures(session.session_id)

        old = session.status
        if not self._registry.update_status(session.session_id, observed, now):
            return None

        log.info("session_status_changed", old=old.value, new=observed.value)
        self._publish(session, old, observed)
        return StatusTransition(session.session_id, old, observed)

    def _observe(self, session: TerminalSession) -> TerminalPodStatus:
        status, found = observe_workload(
            self._gateway,
            session.namespace,
            session.terminal_access_id,
            seen_before=session.seen_workload,
        )
        if found:
            self._registry.mark_seen(session.session_id)
        return status

    def _publish(
        self,
        session: TerminalSession,
        old: TerminalPodStatus,
        new: TerminalPodStatus,
    ) -> None:
        for listener in list(self._listeners):
            try:
                listener(session, old, new)
            except Exception as e:  # noqa: BLE001
                logger.warning(
                    "status_listener_failed",
                    session_id=session.session_id,
                    error=str(e),
                )

    def _purge_expired(self, now: datetime) -> None:
        retention = timedelta(seconds=self._config.terminated_session_retention_secs)
        for session in self._registry.list_all():
            if (
                session.status.is_terminal
                and session.terminated_at is not None
                and now - session.terminated_at >= retention
            ):
                self._registry.remove(session.session_id)
                logger.debug("session_purged", session_id=session.session_id)
