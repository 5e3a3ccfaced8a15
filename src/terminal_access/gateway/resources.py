"""Summaries of Kubernetes objects, dispatched on their kind."""

from __future__ import annotations

from enum import Enum
from typing import Any

from terminal_access.gateway.base import Manifest

POD_RUNNING = "Running"
POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"
POD_PENDING = "Pending"

JOB_COMPLETE = "Complete"
JOB_FAILED = "Failed"


class ResourceKind(Enum):
    """Kinds recognised by parse_resource."""

    POD = "Pod"
    JOB = "Job"
    GENERIC = "generic"


def kind_of(manifest: Manifest) -> ResourceKind:
    """Classify a manifest by apiVersion and kind."""
    api_version = manifest.get("apiVersion", "")
    kind = manifest.get("kind", "")
    if kind == "Pod" and api_version == "v1":
        return ResourceKind.POD
    if kind == "Job" and api_version == "batch/v1":
        return ResourceKind.JOB
    return ResourceKind.GENERIC


def _section(obj: Manifest, key: str) -> dict[str, Any]:
    value = obj.get(key)
    return value if isinstance(value, dict) else {}


def _metadata(manifest: Manifest) -> dict[str, Any]:
    return _section(manifest, "metadata")


def pod_phase(pod: Manifest) -> str:
    """Return the pod phase ("" if unknown)."""
    return str(_section(pod, "status").get("phase") or "")


def count_ready_containers(pod: Manifest) -> tuple[int, int]:
    """Count ready containers against containers in the pod spec.

    Returns:
        Tuple of (ready, total).
    """
    total = len(_section(pod, "spec").get("containers") or [])
    ready = 0
    for status in _section(pod, "status").get("containerStatuses", []) or []:
        if status.get("ready"):
            ready += 1
    return ready, total


def count_restarts(pod: Manifest) -> int:
    status = _section(pod, "status")
    restarts = 0
    for key in ("initContainerStatuses", "containerStatuses"):
        for container in status.get(key, []) or []:
            restarts += int(container.get("restartCount") or 0)
    return restarts


def container_exit_codes(pod: Manifest) -> list[int]:
    """Exit codes of containers that have terminated."""
    codes = []
    for container in _section(pod, "status").get("containerStatuses", []) or []:
        terminated = _section(container, "state").get("terminated")
        if terminated is not None and "exitCode" in terminated:
            codes.append(int(terminated["exitCode"]))
    return codes


def job_condition(job: Manifest) -> str | None:
    """Return "Complete" or "Failed" once the Job has finished, else None."""
    for condition in _section(job, "status").get("conditions", []) or []:
        if condition.get("status") != "True":
            continue
        if condition.get("type") in (JOB_COMPLETE, JOB_FAILED):
            return condition["type"]
    return None


def parse_resource(manifest: Manifest) -> dict[str, str]:
    """Summarise a manifest as a row of display fields.

    Pods get ready/restart counts, Jobs get their completion state, and
    anything else falls back to common metadata. Missing fields yield empty
    strings rather than errors.

    Args:
        manifest: Object as returned by the API server.

    Returns:
        Mapping with at least name, namespace, age and status keys.
    """
    kind = kind_of(manifest)
    if kind is ResourceKind.POD:
        return _populate_pod_data(manifest)
    if kind is ResourceKind.JOB:
        return _populate_job_data(manifest)
    return _populate_other_resource_data(manifest)


def _common_fields(manifest: Manifest) -> dict[str, str]:
    metadata = _metadata(manifest)
    return {
        "name": str(metadata.get("name") or ""),
        "namespace": str(metadata.get("namespace") or ""),
        "age": str(metadata.get("creationTimestamp") or ""),
    }


def _populate_pod_data(pod: Manifest) -> dict[str, str]:
    data = _common_fields(pod)
    ready, total = count_ready_containers(pod)
    data["status"] = pod_phase(pod)
    data["ready"] = f"{ready}/{total}"
    data["restarts"] = str(count_restarts(pod))
    return data


def _populate_job_data(job: Manifest) -> dict[str, str]:
    data = _common_fields(job)
    status = _section(job, "status")
    condition = job_condition(job)
    if condition is not None:
        data["status"] = condition
    elif status.get("active"):
        data["status"] = "Active"
    else:
        data["status"] = ""
    completions = _section(job, "spec").get("completions") or 1
    succeeded = status.get("succeeded") or 0
    data["completions"] = f"{succeeded}/{completions}"
    return data


def _populate_other_resource_data(manifest: Manifest) -> dict[str, str]:
    data = _common_fields(manifest)
    status = manifest.get("status")
    data["status"] = ""
    if isinstance(status, dict):
        if status.get("phase"):
            data["status"] = str(status["phase"])
        else:
            for condition in status.get("conditions", []) or []:
                if condition.get("status") == "True":
                    data["status"] = str(condition.get("type", ""))
                    break
    return data
