"""Manifest templates for terminal workloads."""

from __future__ import annotations

import json
import re
import threading
from typing import Any

from terminal_access.errors import FatalError, InvalidTemplateError, NotFoundError
from terminal_access.gateway.base import Manifest
from terminal_access.models import TerminalSession
from terminal_access.naming import (
    CLUSTER_ID_VAR,
    POD_NAME_VAR,
    TERMINAL_ACCESS_POD_TEMPLATE_NAME,
    USER_ID_VAR,
)

NAMESPACE_VAR = "${namespace}"
NODE_NAME_VAR = "${node_name}"
BASE_IMAGE_VAR = "${base_image}"
SHELL_NAME_VAR = "${shell_name}"

_PLACEHOLDER_PATTERN = re.compile(r"\$\{[^}]*\}")

DEFAULT_POD_TEMPLATE = json.dumps({
    "apiVersion": "batch/v1",
    "kind": "Job",
    "metadata": {
        "name": POD_NAME_VAR,
        "namespace": NAMESPACE_VAR,
    },
    "spec": {
        "backoffLimit": 0,
        "ttlSecondsAfterFinished": 60,
        "template": {
            "metadata": {},
            "spec": {
                "nodeName": NODE_NAME_VAR,
                "restartPolicy": "Never",
                "terminationGracePeriodSeconds": 5,
                "containers": [
                    {
                        "name": "terminal",
                        "image": BASE_IMAGE_VAR,
                        "imagePullPolicy": "IfNotPresent",
                        "command": [SHELL_NAME_VAR],
                        "stdin": True,
                        "tty": True,
                        "resources": {
                            "requests": {"cpu": "100m", "memory": "128Mi"},
                            "limits": {"cpu": "500m", "memory": "512Mi"},
                        },
                    },
                ],
            },
        },
    },
}, indent=2)


class TemplateStore:
    """Named manifest templates, keyed like ``terminal-access-pod-template``."""

    def __init__(self) -> None:
        self._templates: dict[str, str] = {}
        self._lock = threading.Lock()
        self.register(TERMINAL_ACCESS_POD_TEMPLATE_NAME, DEFAULT_POD_TEMPLATE)

    def register(self, name: str, template: str) -> None:
        """Register or replace a template.

        Raises:
            FatalError: If the template is not JSON or lacks ${pod_name}.
        """
        if POD_NAME_VAR not in template:
            raise FatalError(f"template '{name}' has no {POD_NAME_VAR} placeholder")
        try:
            json.loads(_PLACEHOLDER_PATTERN.sub("x", template))
        except json.JSONDecodeError as e:
            raise FatalError(f"template '{name}' is not valid JSON: {e}") from e
        with self._lock:
            self._templates[name] = template

    def get(self, name: str) -> str:
        with self._lock:
            try:
                return self._templates[name]
            except KeyError:
                raise NotFoundError(f"template '{name}' not registered") from None


def _json_escape(value: str) -> str:
    return json.dumps(value)[1:-1]


def render_job_manifest(
    template: str,
    session: TerminalSession,
    labels: dict[str, str] | None = None,
) -> Manifest:
    """Render a Job manifest for a session.

    Args:
        template: JSON template with ``${...}`` placeholders.
        session: Session the Job backs.
        labels: Labels applied to the Job and its pod template.

    Returns:
        Manifest ready for ClusterGateway.create_job.

    Raises:
        InvalidTemplateError: If placeholders remain or the result is not a Job.
    """
    values = {
        POD_NAME_VAR: session.terminal_access_id,
        NAMESPACE_VAR: session.namespace,
        NODE_NAME_VAR: session.node_name,
        BASE_IMAGE_VAR: session.base_image,
        SHELL_NAME_VAR: session.shell_name,
        CLUSTER_ID_VAR: str(session.cluster_id),
        USER_ID_VAR: str(session.user_id),
    }
    rendered = template
    for var, value in values.items():
        rendered = rendered.replace(var, _json_escape(value))

    leftover = _PLACEHOLDER_PATTERN.search(rendered)
    if leftover:
        raise InvalidTemplateError(f"unknown placeholder {leftover.group(0)} in template")

    try:
        manifest: dict[str, Any] = json.loads(rendered)
    except json.JSONDecodeError as e:
        raise InvalidTemplateError(f"rendered template is not valid JSON: {e}") from e

    if manifest.get("kind") != "Job":
        raise InvalidTemplateError(
            f"template renders a {manifest.get('kind')!r}, expected a Job"
        )

    session_labels = {
        **(labels or {}),
        "terminal-access/user-id": str(session.user_id),
        "terminal-access/cluster-id": str(session.cluster_id),
    }
    metadata = manifest.setdefault("metadata", {})
    metadata.setdefault("labels", {}).update(session_labels)
    metadata.setdefault("annotations", {})["terminal-access/shell"] = session.shell_name

    pod_template = manifest.setdefault("spec", {}).setdefault("template", {})
    pod_template.setdefault("metadata", {}).setdefault("labels", {}).update(
        session_labels
    )

    return manifest
