"""Lifecycle of terminal sessions: create, replace and delete backing Jobs."""

from __future__ import annotations

import threading
from datetime import UTC, datetime

import structlog

from terminal_access import naming
from terminal_access.config import TerminalSessionConfig
from terminal_access.errors import DeletionTimeoutError, NotFoundError
from terminal_access.gateway.base import ClusterGateway
from terminal_access.gateway.resources import (
    POD_FAILED,
    POD_RUNNING,
    POD_SUCCEEDED,
    pod_phase,
)
from terminal_access.locks import KeyedLock
from terminal_access.models import (
    TerminalPodStatus,
    TerminalSession,
    TerminalSessionRequest,
)
from terminal_access.polling import Backoff, Clock, PollCancelledError, poll_until
from terminal_access.registry import SessionRegistry
from terminal_access.templates import TemplateStore, render_job_manifest

logger = structlog.get_logger()

DELETION_TIMEOUT_MESSAGE = (
    "job deletion takes more time than expected, please try after sometime"
)

# Resolutions tried before a new session takes over a name an active
# session still owns.
NAME_RESOLVE_ATTEMPTS = 3


class SessionLifecycleManager:
    """Creates, replaces and deletes the Job backing each terminal session.

    Operations on the same resource name are serialized; operations on
    different names run concurrently. All cluster calls go through the
    gateway.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        registry: SessionRegistry,
        config: TerminalSessionConfig | None = None,
        templates: TemplateStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            gateway: Cluster gateway used for every cluster call.
            registry: Shared session registry.
            config: Session configuration. Defaults to TerminalSessionConfig().
            templates: Manifest templates. Defaults to the built-in set.
            clock: Time source for the post-delete wait.

        Raises:
            FatalError: If the configured name template is malformed.
        """
        self._gateway = gateway
        self._registry = registry
        self._config = config or TerminalSessionConfig()
        self._templates = templates or TemplateStore()
        self._clock = clock
        self._name_locks = KeyedLock()
        self._shutdown = threading.Event()
        self._deletion_backoff = Backoff(
            max_attempts=self._config.deletion_wait_attempts,
            interval=self._config.deletion_wait_interval_secs,
            factor=self._config.deletion_wait_backoff,
        )
        naming.validate_template(self._config.pod_name_template)

    def shutdown(self) -> None:
        """Abort any in-flight deletion waits."""
        self._shutdown.set()

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def create_session(self, request: TerminalSessionRequest) -> TerminalSession:
        """Start a new terminal session for a user.

        Args:
            request: What to run and where.

        Returns:
            The registered session in Starting state.

        Raises:
            QuotaExceededError: If the user is at the session limit.
            InvalidTemplateError: If the resource name or manifest is invalid.
            DeletionTimeoutError: If a stale Job with the same name would not
                go away in time.
            TransientClusterError: If the cluster could not be reached.
        """
        log = logger.bind(user_id=request.user_id, cluster_id=request.cluster_id)
        try:
            reservation = self._registry.reserve(request.user_id)
        except Exception as e:
            log.warning("session_admission_denied", error=str(e))
            raise

        try:
            name = self._resolve_unused_name(request)
            session = TerminalSession(
                session_id=self._registry.next_session_id(),
                user_id=request.user_id,
                cluster_id=request.cluster_id,
                terminal_access_id=name,
                namespace=request.namespace or self._config.namespace,
                node_name=request.node_name,
                base_image=request.base_image,
                shell_name=request.shell_name,
            )
            log = log.bind(session_id=session.session_id, terminal_access_id=name)

            with self._name_locks.hold(name):
                self._delete_job_if_exists(session.namespace, name)
                self._supersede_owner(name)
                self._ensure_namespace(session.namespace)
                manifest = render_job_manifest(
                    self._templates.get(naming.TERMINAL_ACCESS_POD_TEMPLATE_NAME),
                    session,
                    labels=self._config.labels,
                )
                self._gateway.create_job(session.namespace, manifest)
                self._registry.put(session, reservation)
        except Exception as e:
            log.error("session_create_failed", error=str(e))
            raise
        finally:
            # No-op once put() has consumed the reservation.
            self._registry.release(reservation)

        log.info("session_created", namespace=session.namespace)
        return session

    def delete_session(self, session_id: int) -> None:
        """Tear down a session's Job and pods and mark it Terminated.

        The registry entry is kept until the next reconcile cycle.

        Raises:
            NotFoundError: If the session id is unknown.
            TransientClusterError: If the cluster could not be reached.
        """
        session = self._registry.get(session_id)
        log = logger.bind(
            session_id=session_id, terminal_access_id=session.terminal_access_id
        )

        with self._name_locks.hold(session.terminal_access_id):
            if self._owns_name(session):
                self._delete_workload(session.namespace, session.terminal_access_id)
            else:
                log.info("session_name_taken_over")
            self._registry.update_status(
                session_id, TerminalPodStatus.TERMINATED, datetime.now(UTC)
            )
            self._registry.mark_for_removal(session_id)

        log.info("session_deleted")

    def delete_workload(self, namespace: str, name: str) -> None:
        """Delete a terminal Job and its unfinished pods by resource name.

        Works for Jobs that have no registered session.
        """
        with self._name_locks.hold(name):
            self._delete_workload(namespace, name)

    def recreate_session(self, session_id: int) -> TerminalSession:
        """Replace a session with a fresh one built from the same request.

        The old session is deleted first; the new one gets a new id.
        """
        old = self._registry.get(session_id)
        request = TerminalSessionRequest(
            user_id=old.user_id,
            cluster_id=old.cluster_id,
            node_name=old.node_name,
            base_image=old.base_image,
            shell_name=old.shell_name,
            namespace=old.namespace,
        )
        self.delete_session(session_id)
        return self.create_session(request)

    def get_session(self, session_id: int) -> TerminalSession:
        return self._registry.get(session_id)

    def get_session_status(self, session_id: int) -> TerminalPodStatus:
        """Current status of a session.

        Raises:
            NotFoundError: If the session id is unknown.
        """
        return self._registry.get(session_id).status

    def list_sessions(self, user_id: int | None = None) -> list[TerminalSession]:
        return sorted(
            self._registry.list_all(user_id), key=lambda s: s.session_id
        )

    # -------------------------------------------------------------------------
    # Name ownership
    # -------------------------------------------------------------------------

    def _resolve_unused_name(self, request: TerminalSessionRequest) -> str:
        """Resolve a name, preferring one no active session owns."""
        for _ in range(NAME_RESOLVE_ATTEMPTS):
            name = naming.resolve(
                self._config.pod_name_template, request.cluster_id, request.user_id
            )
            owner = self._registry.get_by_name(name)
            if owner is None or not owner.status.is_active:
                return name
        return name

    def _owns_name(self, session: TerminalSession) -> bool:
        owner = self._registry.get_by_name(session.terminal_access_id)
        return owner is not None and owner.session_id == session.session_id

    def _supersede_owner(self, name: str) -> None:
        """Terminate an active session whose Job was just replaced.

        Must be called with the name lock held, after the old Job is gone.
        """
        owner = self._registry.get_by_name(name)
        if owner is None or not owner.status.is_active:
            return
        self._registry.update_status(
            owner.session_id, TerminalPodStatus.TERMINATED, datetime.now(UTC)
        )
        self._registry.mark_for_removal(owner.session_id)
        logger.warning(
            "session_superseded", session_id=owner.session_id, terminal_access_id=name
        )

    # -------------------------------------------------------------------------
    # Cluster helpers
    # -------------------------------------------------------------------------

    def _job_exists(self, namespace: str, name: str) -> bool:
        try:
            self._gateway.get_job(namespace, name)
        except NotFoundError:
            return False
        return True

    def _delete_job_if_exists(self, namespace: str, name: str) -> None:
        """Delete a stale Job and wait until the cluster confirms it is gone.

        Raises:
            DeletionTimeoutError: If the Job is still present after the wait.
        """
        if not self._job_exists(namespace, name):
            return

        logger.info("stale_job_found", namespace=namespace, job=name)
        try:
            self._gateway.delete_job(namespace, name)
        except NotFoundError:
            return

        # Pods that are not Running will never get there; a Running pod
        # goes away with its Job.
        self._delete_pods(namespace, f"job-name={name}", keep_phases=(POD_RUNNING,))

        try:
            gone = poll_until(
                lambda: not self._job_exists(namespace, name),
                self._deletion_backoff,
                clock=self._clock,
                cancel=self._shutdown,
            )
        except PollCancelledError as e:
            raise DeletionTimeoutError(
                f"{DELETION_TIMEOUT_MESSAGE} (wait cancelled)"
            ) from e

        if not gone:
            logger.error("stale_job_deletion_timeout", namespace=namespace, job=name)
            raise DeletionTimeoutError(DELETION_TIMEOUT_MESSAGE)

    def _delete_workload(self, namespace: str, name: str) -> None:
        try:
            self._gateway.delete_job(namespace, name)
        except NotFoundError:
            logger.debug("job_already_gone", namespace=namespace, job=name)
        self._delete_pods(
            namespace, f"job-name={name}", keep_phases=(POD_SUCCEEDED, POD_FAILED)
        )

    def _delete_pods(
        self,
        namespace: str,
        label_selector: str,
        keep_phases: tuple[str, ...],
    ) -> None:
        try:
            pods = self._gateway.list_pods(namespace, label_selector)
        except NotFoundError:
            return

        for pod in pods:
            if pod_phase(pod) in keep_phases:
                continue
            pod_name = (pod.get("metadata") or {}).get("name")
            if not pod_name:
                continue
            try:
                self._gateway.delete_pod(namespace, pod_name)
            except NotFoundError:
                pass

    def _ensure_namespace(self, namespace: str) -> None:
        try:
            self._gateway.get_namespace(namespace)
        except NotFoundError:
            logger.info("namespace_missing", namespace=namespace)
            self._gateway.create_namespace(namespace)
