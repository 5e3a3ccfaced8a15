"""Wiring of gateway, registry, manager and reconciler."""

from __future__ import annotations

from types import TracebackType

from terminal_access.config import GatewayConfig, TerminalSessionConfig
from terminal_access.gateway.base import ClusterGateway
from terminal_access.gateway.kubectl import KubectlGateway
from terminal_access.manager import SessionLifecycleManager
from terminal_access.polling import Clock
from terminal_access.reconciler import StatusReconciler
from terminal_access.registry import SessionRegistry
from terminal_access.templates import TemplateStore


class TerminalAccessService:
    """Owns one gateway, registry, lifecycle manager and status reconciler.

    Use as a context manager to run the reconciler in the background::

        with TerminalAccessService(config) as service:
            session = service.manager.create_session(request)
    """

    def __init__(
        self,
        config: TerminalSessionConfig | None = None,
        gateway: ClusterGateway | None = None,
        gateway_config: GatewayConfig | None = None,
        templates: TemplateStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or TerminalSessionConfig()
        self.gateway: ClusterGateway = gateway or KubectlGateway(gateway_config)
        self.registry = SessionRegistry(self.config.max_session_per_user)
        self.manager = SessionLifecycleManager(
            self.gateway,
            self.registry,
            config=self.config,
            templates=templates,
            clock=clock,
        )
        self.reconciler = StatusReconciler(self.gateway, self.registry, self.config)

    @classmethod
    def from_env(cls) -> TerminalAccessService:
        return cls(
            config=TerminalSessionConfig.from_env(),
            gateway_config=GatewayConfig.from_env(),
        )

    def start(self) -> None:
        self.reconciler.start()

    def stop(self) -> None:
        self.manager.shutdown()
        self.reconciler.stop(timeout=self.config.terminal_pod_status_sync_time_in_secs)

    def __enter__(self) -> TerminalAccessService:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
