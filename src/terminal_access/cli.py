"""Typer CLI for terminal-access."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Annotated, Any

import typer

from terminal_access import __version__

app = typer.Typer(
    name="terminal-access",
    help="Manage ephemeral terminal sessions on Kubernetes.",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version information and exit."""
    if value:
        typer.echo(f"terminal-access {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    kubeconfig: Annotated[
        Path | None,
        typer.Option("--kubeconfig", help="Kubeconfig file to use."),
    ] = None,
    context: Annotated[
        str | None,
        typer.Option("--context", help="Kubeconfig context to use."),
    ] = None,
    in_cluster: Annotated[
        bool,
        typer.Option("--in-cluster", help="Use the pod's service account."),
    ] = False,
    namespace: Annotated[
        str | None,
        typer.Option("--namespace", "-n", help="Namespace for terminal Jobs."),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING)."),
    ] = "WARNING",
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit logs as JSON lines."),
    ] = False,
) -> None:
    """Manage ephemeral terminal sessions on Kubernetes."""
    from terminal_access.logging import configure_logging

    configure_logging(level=log_level, json_output=json_logs)

    ctx.ensure_object(dict)
    ctx.obj["kubeconfig"] = kubeconfig
    ctx.obj["context"] = context
    ctx.obj["in_cluster"] = in_cluster
    ctx.obj["namespace"] = namespace


def _build_service(ctx: typer.Context) -> Any:
    """Create the service from CLI options and environment."""
    from terminal_access.config import (
        GatewayConfig,
        GatewayMode,
        TerminalSessionConfig,
    )
    from terminal_access.errors import FatalError
    from terminal_access.service import TerminalAccessService

    obj = ctx.obj or {}
    try:
        config = TerminalSessionConfig.from_env()
    except FatalError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    if obj.get("namespace"):
        config.namespace = obj["namespace"]

    gateway_config = GatewayConfig(
        mode=GatewayMode.IN_CLUSTER if obj.get("in_cluster") else GatewayMode.KUBECONFIG,
        kubeconfig_path=obj.get("kubeconfig"),
        context=obj.get("context"),
        binary=os.environ.get("TERMINAL_ACCESS_KUBECTL", "kubectl"),
    )
    return TerminalAccessService(config=config, gateway_config=gateway_config)


def _fail(e: Exception) -> typer.Exit:
    """Print an error in the form callers expect and return the exit."""
    from terminal_access.errors import is_infrastructure_error, is_quota_error

    if is_quota_error(e):
        typer.echo(f"Error: session limit reached. {e}", err=True)
    elif is_infrastructure_error(e):
        typer.echo(f"Error: cluster unavailable. {e}", err=True)
    else:
        typer.echo(f"Error: {e}", err=True)
    return typer.Exit(1)


@app.command("create")
def create_command(
    ctx: typer.Context,
    cluster_id: Annotated[int, typer.Option("--cluster-id", help="Target cluster id.")],
    user_id: Annotated[int, typer.Option("--user-id", help="Requesting user id.")],
    node: Annotated[str, typer.Option("--node", help="Node to run the pod on.")],
    image: Annotated[
        str, typer.Option("--image", help="Base container image.")
    ] = "busybox:latest",
    shell: Annotated[str, typer.Option("--shell", help="Shell to run.")] = "sh",
    wait: Annotated[
        bool,
        typer.Option("--wait/--no-wait", help="Wait until the session is Running."),
    ] = False,
    timeout: Annotated[
        int, typer.Option("--timeout", help="Seconds to wait with --wait.")
    ] = 120,
) -> None:
    """Create a terminal session and print it as JSON."""
    from terminal_access.errors import TerminalAccessError
    from terminal_access.models import TerminalPodStatus, TerminalSessionRequest

    service = _build_service(ctx)
    request = TerminalSessionRequest(
        user_id=user_id,
        cluster_id=cluster_id,
        node_name=node,
        base_image=image,
        shell_name=shell,
    )

    try:
        session = service.manager.create_session(request)
    except TerminalAccessError as e:
        raise _fail(e) from None

    typer.echo(f"Created Job/{session.terminal_access_id}", err=True)

    if wait:
        interval = service.config.terminal_pod_status_sync_time_in_secs
        deadline = time.monotonic() + timeout
        while session.status == TerminalPodStatus.STARTING:
            if time.monotonic() >= deadline:
                typer.echo(
                    f"Session not running within {timeout} seconds", err=True
                )
                break
            time.sleep(interval)
            service.reconciler.reconcile_once()

    typer.echo(json.dumps(session.to_response(), indent=2))
    if session.status == TerminalPodStatus.ERROR:
        raise typer.Exit(1)


@app.command("status")
def status_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Terminal access id (Job name).")],
) -> None:
    """Show the status of a terminal Job."""
    from terminal_access.errors import TerminalAccessError
    from terminal_access.reconciler import observe_workload

    service = _build_service(ctx)
    try:
        status, _ = observe_workload(service.gateway, service.config.namespace, name)
    except TerminalAccessError as e:
        raise _fail(e) from None
    typer.echo(status.value)


@app.command("pods")
def pods_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Terminal access id (Job name).")],
) -> None:
    """List the Job and pods backing a terminal session."""
    from terminal_access.errors import NotFoundError, TerminalAccessError
    from terminal_access.gateway.resources import parse_resource

    service = _build_service(ctx)
    ns = service.config.namespace
    rows = []
    try:
        try:
            rows.append(parse_resource(service.gateway.get_job(ns, name)))
        except NotFoundError:
            typer.echo(f"Job/{name} not found in namespace {ns}", err=True)
        for pod in service.gateway.list_pods(ns, f"job-name={name}"):
            rows.append(parse_resource(pod))
    except TerminalAccessError as e:
        raise _fail(e) from None

    if not rows:
        raise typer.Exit(1)
    for row in rows:
        typer.echo("  ".join(f"{k}={v}" for k, v in row.items()))


@app.command("delete")
def delete_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Terminal access id (Job name).")],
) -> None:
    """Delete a terminal Job and its unfinished pods."""
    from terminal_access.errors import TerminalAccessError

    service = _build_service(ctx)
    try:
        service.manager.delete_workload(service.config.namespace, name)
    except TerminalAccessError as e:
        raise _fail(e) from None
    typer.echo(f"Job/{name} deleted.", err=True)


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Terminal access id (Job name).")],
    timeout: Annotated[
        int, typer.Option("--timeout", help="Seconds to watch (0 for no limit).")
    ] = 0,
) -> None:
    """Print status changes of a terminal Job until it finishes."""
    from terminal_access.errors import TerminalAccessError
    from terminal_access.models import TerminalPodStatus
    from terminal_access.reconciler import observe_workload

    service = _build_service(ctx)
    ns = service.config.namespace
    interval = service.config.terminal_pod_status_sync_time_in_secs
    deadline = time.monotonic() + timeout if timeout else None

    last: TerminalPodStatus | None = None
    seen = False
    while True:
        try:
            status, found = observe_workload(
                service.gateway, ns, name, seen_before=seen
            )
        except TerminalAccessError as e:
            raise _fail(e) from None
        seen = seen or found
        if status != last:
            typer.echo(status.value)
            last = status
        if status.is_terminal:
            break
        if deadline is not None and time.monotonic() >= deadline:
            typer.echo(f"Still {status.value} after {timeout} seconds", err=True)
            raise typer.Exit(1)
        time.sleep(interval)

    if last == TerminalPodStatus.ERROR:
        raise typer.Exit(1)
