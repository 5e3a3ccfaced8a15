"""Ephemeral terminal sessions backed by Kubernetes Jobs."""

from terminal_access.errors import (
    DeletionTimeoutError,
    FatalError,
    InvalidTemplateError,
    NotFoundError,
    QuotaExceededError,
    TerminalAccessError,
    TransientClusterError,
)
from terminal_access.models import (
    TerminalPodStatus,
    TerminalSession,
    TerminalSessionRequest,
)

__version__ = "0.1.0"

__all__ = [
    "DeletionTimeoutError",
    "FatalError",
    "InvalidTemplateError",
    "NotFoundError",
    "QuotaExceededError",
    "TerminalAccessError",
    "TerminalPodStatus",
    "TerminalSession",
    "TerminalSessionRequest",
    "TransientClusterError",
    "__version__",
]
