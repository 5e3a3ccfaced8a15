"""In-memory record of terminal sessions."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from datetime import datetime

from terminal_access.errors import NotFoundError, QuotaExceededError
from terminal_access.models import TerminalPodStatus, TerminalSession


@dataclass(frozen=True)
class Reservation:
    """A held admission slot for one user, consumed by put()."""

    token: int
    user_id: int


class SessionRegistry:
    """Sessions keyed by id, with indexes by (user, cluster) and resource name.

    All methods are safe to call from multiple threads. The per-user count
    includes sessions that are still being created (reservations), so two
    concurrent creates cannot both pass admission and exceed the limit.
    """

    def __init__(self, max_session_per_user: int = 5) -> None:
        self._max_session_per_user = max_session_per_user
        self._lock = threading.RLock()
        self._sessions: dict[int, TerminalSession] = {}
        self._by_user_cluster: dict[tuple[int, int], set[int]] = {}
        self._by_name: dict[str, int] = {}
        self._reservations: dict[int, Reservation] = {}
        self._session_ids = itertools.count(1)
        self._reservation_ids = itertools.count(1)

    @property
    def max_session_per_user(self) -> int:
        return self._max_session_per_user

    def _active_count(self, user_id: int) -> int:
        active = sum(
            1 for s in self._sessions.values()
            if s.user_id == user_id and s.status.is_active
        )
        held = sum(1 for r in self._reservations.values() if r.user_id == user_id)
        return active + held

    def admit(self, user_id: int) -> tuple[bool, int]:
        """Check whether a user may start another session.

        Returns:
            Tuple of (allowed, current active count).
        """
        with self._lock:
            count = self._active_count(user_id)
            return count < self._max_session_per_user, count

    def reserve(self, user_id: int) -> Reservation:
        """Admit a user and hold the slot until put() or release().

        Raises:
            QuotaExceededError: If the user is at the limit.
        """
        with self._lock:
            allowed, count = self.admit(user_id)
            if not allowed:
                raise QuotaExceededError(user_id, count, self._max_session_per_user)
            reservation = Reservation(next(self._reservation_ids), user_id)
            self._reservations[reservation.token] = reservation
            return reservation

    def release(self, reservation: Reservation) -> None:
        with self._lock:
            self._reservations.pop(reservation.token, None)

    def next_session_id(self) -> int:
        with self._lock:
            return next(self._session_ids)

    def put(
        self, session: TerminalSession, reservation: Reservation | None = None
    ) -> None:
        """Store a session, consuming its reservation if given."""
        with self._lock:
            if reservation is not None:
                self._reservations.pop(reservation.token, None)
            previous = self._sessions.get(session.session_id)
            if previous is not None:
                self._unindex(previous)
            self._sessions[session.session_id] = session
            key = (session.user_id, session.cluster_id)
            self._by_user_cluster.setdefault(key, set()).add(session.session_id)
            self._by_name[session.terminal_access_id] = session.session_id

    def get(self, session_id: int) -> TerminalSession:
        """Get a session by id.

        Raises:
            NotFoundError: If no such session is registered.
        """
        with self._lock:
            try:
                return self._sessions[session_id]
            except KeyError:
                raise NotFoundError(f"session {session_id} not found") from None

    def get_by_name(self, terminal_access_id: str) -> TerminalSession | None:
        with self._lock:
            session_id = self._by_name.get(terminal_access_id)
            return self._sessions.get(session_id) if session_id is not None else None

    def find(self, user_id: int, cluster_id: int) -> list[TerminalSession]:
        """Sessions for a user on a cluster, oldest first."""
        with self._lock:
            ids = sorted(self._by_user_cluster.get((user_id, cluster_id), ()))
            return [self._sessions[i] for i in ids]

    def list_active(self) -> list[TerminalSession]:
        with self._lock:
            return [s for s in self._sessions.values() if s.status.is_active]

    def list_all(self, user_id: int | None = None) -> list[TerminalSession]:
        with self._lock:
            return [
                s for s in self._sessions.values()
                if user_id is None or s.user_id == user_id
            ]

    def update_status(
        self,
        session_id: int,
        status: TerminalPodStatus,
        checked_at: datetime,
    ) -> bool:
        """Record a reconciled status.

        A session in a terminal state keeps it; only the check time moves.

        Returns:
            True if the status actually changed.
        """
        with self._lock:
            session = self.get(session_id)
            session.last_status_check_at = checked_at
            if session.status.is_terminal or session.status == status:
                return False
            session.status = status
            if status.is_terminal:
                session.terminated_at = checked_at
            return True

    def record_failure(self, session_id: int, error: str, checked_at: datetime) -> int:
        """Record a failed status check.

        Returns:
            Number of consecutive failures, including this one.
        """
        with self._lock:
            session = self.get(session_id)
            session.last_status_check_at = checked_at
            session.last_error = error
            session.consecutive_failures += 1
            return session.consecutive_failures

    def clear_failures(self, session_id: int) -> None:
        with self._lock:
            self.get(session_id).consecutive_failures = 0

    def mark_seen(self, session_id: int) -> None:
        """Note that the session's pod has been observed at least once."""
        with self._lock:
            self.get(session_id).seen_workload = True

    def mark_for_removal(self, session_id: int) -> None:
        with self._lock:
            self.get(session_id).pending_removal = True

    def remove(self, session_id: int) -> TerminalSession | None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is not None:
                self._unindex(session)
            return session

    def _unindex(self, session: TerminalSession) -> None:
        key = (session.user_id, session.cluster_id)
        ids = self._by_user_cluster.get(key)
        if ids is not None:
            ids.discard(session.session_id)
            if not ids:
                del self._by_user_cluster[key]
        if self._by_name.get(session.terminal_access_id) == session.session_id:
            del self._by_name[session.terminal_access_id]
