"""Exceptions raised by the terminal session lifecycle manager."""

from __future__ import annotations


class TerminalAccessError(Exception):
    """Base exception for terminal access errors."""

    pass


class QuotaExceededError(TerminalAccessError):
    """User already has the maximum number of active sessions."""

    def __init__(self, user_id: int, current: int, limit: int) -> None:
        self.user_id = user_id
        self.current = current
        self.limit = limit
        super().__init__(
            f"session limit reached for user {user_id}: "
            f"{current} active sessions (max {limit})"
        )


class InvalidTemplateError(TerminalAccessError):
    """Name template produced an invalid Kubernetes resource name."""

    pass


class DeletionTimeoutError(TerminalAccessError):
    """A stale Job did not go away within the deletion wait window."""

    pass


class NotFoundError(TerminalAccessError):
    """Session or remote object does not exist."""

    pass


class TransientClusterError(TerminalAccessError):
    """Retryable failure talking to the cluster."""

    pass


class KubectlNotInstalledError(TransientClusterError):
    """The kubectl (or oc) CLI is not installed."""

    pass


class KubectlTimeoutError(TransientClusterError):
    """A kubectl command timed out."""

    pass


class FatalError(TerminalAccessError):
    """Programming or configuration error, e.g. a malformed template."""

    pass


def is_quota_error(exc: BaseException) -> bool:
    """Return True if the error means the user hit the session limit."""
    return isinstance(exc, QuotaExceededError)


def is_infrastructure_error(exc: BaseException) -> bool:
    """Return True if the error is caused by the cluster, not the caller."""
    return isinstance(exc, TransientClusterError | DeletionTimeoutError)
