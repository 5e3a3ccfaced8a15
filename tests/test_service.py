"""Tests for TerminalAccessService wiring."""

from __future__ import annotations

from unittest.mock import patch

from terminal_access.config import GatewayMode, TerminalSessionConfig
from terminal_access.gateway.kubectl import KubectlGateway
from terminal_access.models import TerminalPodStatus
from terminal_access.service import TerminalAccessService


class TestTerminalAccessService:
    """Tests for TerminalAccessService."""

    def test_shares_registry(self, gateway, clock, make_request):
        """Manager and reconciler see the same sessions."""
        service = TerminalAccessService(gateway=gateway, clock=clock)
        session = service.manager.create_session(make_request())
        gateway.add_pod(
            "default", "p1", session.terminal_access_id,
            phase="Running", ready=[True],
        )

        transitions = service.reconciler.reconcile_once()

        assert [t.new for t in transitions] == [TerminalPodStatus.RUNNING]
        assert service.registry.get(session.session_id).status == (
            TerminalPodStatus.RUNNING
        )

    def test_registry_uses_configured_limit(self, gateway):
        """The registry is capped by max_session_per_user."""
        service = TerminalAccessService(
            config=TerminalSessionConfig(max_session_per_user=3), gateway=gateway
        )
        assert service.registry.max_session_per_user == 3

    def test_context_manager_runs_reconciler(self, gateway):
        """The reconciler runs inside the with block only."""
        with TerminalAccessService(gateway=gateway) as service:
            assert service.reconciler.running
        assert not service.reconciler.running

    def test_default_gateway_is_kubectl(self):
        """Without a gateway a KubectlGateway is built."""
        service = TerminalAccessService()
        assert isinstance(service.gateway, KubectlGateway)

    @patch.dict(
        "os.environ",
        {"MAX_SESSION_PER_USER": "4", "LOCAL_DEV_MODE": "true"},
        clear=True,
    )
    def test_from_env(self):
        """from_env reads both session and gateway settings."""
        service = TerminalAccessService.from_env()

        assert service.config.max_session_per_user == 4
        assert isinstance(service.gateway, KubectlGateway)
        assert service.gateway._config.mode == GatewayMode.KUBECONFIG
