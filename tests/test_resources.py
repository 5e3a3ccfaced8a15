"""Tests for resource summaries."""

from __future__ import annotations

from terminal_access.gateway.resources import (
    ResourceKind,
    container_exit_codes,
    count_ready_containers,
    count_restarts,
    job_condition,
    kind_of,
    parse_resource,
    pod_phase,
)

POD = {
    "apiVersion": "v1",
    "kind": "Pod",
    "metadata": {
        "name": "terminal-access-7-42-ab12cd-x1",
        "namespace": "default",
        "creationTimestamp": "2024-01-15T10:00:00Z",
    },
    "spec": {"containers": [{"name": "a"}, {"name": "b"}]},
    "status": {
        "phase": "Running",
        "initContainerStatuses": [{"ready": True, "restartCount": 1}],
        "containerStatuses": [
            {"ready": True, "restartCount": 2},
            {"ready": True, "restartCount": 0},
        ],
    },
}


class TestKindOf:
    """Tests for kind_of."""

    def test_pod(self) -> None:
        """v1 Pods are recognised."""
        assert kind_of(POD) is ResourceKind.POD

    def test_job(self) -> None:
        """batch/v1 Jobs are recognised."""
        assert kind_of({"apiVersion": "batch/v1", "kind": "Job"}) is ResourceKind.JOB

    def test_generic(self) -> None:
        """Everything else is generic."""
        assert kind_of({"apiVersion": "apps/v1", "kind": "Deployment"}) is (
            ResourceKind.GENERIC
        )
        assert kind_of({}) is ResourceKind.GENERIC


class TestPodData:
    """Tests for pod summaries."""

    def test_counts_ready_containers(self) -> None:
        """Each ready container is counted once."""
        assert count_ready_containers(POD) == (2, 2)

    def test_counts_restarts(self) -> None:
        """Restarts include init containers."""
        assert count_restarts(POD) == 3

    def test_parse_pod(self) -> None:
        """parse_resource summarises pods."""
        assert parse_resource(POD) == {
            "name": "terminal-access-7-42-ab12cd-x1",
            "namespace": "default",
            "age": "2024-01-15T10:00:00Z",
            "status": "Running",
            "ready": "2/2",
            "restarts": "3",
        }


class TestJobData:
    """Tests for job summaries."""

    def test_complete(self) -> None:
        """A completed Job reports Complete."""
        job = {
            "apiVersion": "batch/v1",
            "kind": "Job",
            "metadata": {"name": "j", "namespace": "default"},
            "spec": {"completions": 1},
            "status": {
                "succeeded": 1,
                "conditions": [{"type": "Complete", "status": "True"}],
            },
        }
        assert job_condition(job) == "Complete"
        summary = parse_resource(job)
        assert summary["status"] == "Complete"
        assert summary["completions"] == "1/1"

    def test_active(self) -> None:
        """A running Job reports Active."""
        job = {"apiVersion": "batch/v1", "kind": "Job", "status": {"active": 1}}
        assert job_condition(job) is None
        assert parse_resource(job)["status"] == "Active"

    def test_false_condition_ignored(self) -> None:
        """Conditions with status False do not count."""
        job = {"status": {"conditions": [{"type": "Failed", "status": "False"}]}}
        assert job_condition(job) is None


class TestGenericData:
    """Tests for the generic fallback."""

    def test_missing_metadata_is_soft(self) -> None:
        """Missing fields produce empty strings, not errors."""
        assert parse_resource({"kind": "Thing", "metadata": None}) == {
            "name": "",
            "namespace": "",
            "age": "",
            "status": "",
        }

    def test_uses_phase(self) -> None:
        """A phase is used as status when present."""
        pvc = {"kind": "PersistentVolumeClaim", "status": {"phase": "Bound"}}
        assert parse_resource(pvc)["status"] == "Bound"

    def test_uses_true_condition(self) -> None:
        """The first true condition is used as status otherwise."""
        deployment = {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": "d", "namespace": "ns"},
            "status": {
                "conditions": [
                    {"type": "Progressing", "status": "False"},
                    {"type": "Available", "status": "True"},
                ]
            },
        }
        assert parse_resource(deployment)["status"] == "Available"


class TestNullSections:
    """Tests for manifests whose sections are explicitly null."""

    def test_pod_with_null_status(self) -> None:
        """A pod with status: null has no phase and nothing ready."""
        pod = {"apiVersion": "v1", "kind": "Pod", "metadata": None,
               "spec": None, "status": None}

        assert pod_phase(pod) == ""
        assert count_ready_containers(pod) == (0, 0)
        assert count_restarts(pod) == 0
        assert container_exit_codes(pod) == []
        assert parse_resource(pod) == {
            "name": "",
            "namespace": "",
            "age": "",
            "status": "",
            "ready": "0/0",
            "restarts": "0",
        }

    def test_container_with_null_state(self) -> None:
        """A container status with state: null has no exit code."""
        pod = {"status": {"containerStatuses": [{"ready": False, "state": None,
                                                 "restartCount": None}]}}

        assert container_exit_codes(pod) == []
        assert count_restarts(pod) == 0

    def test_job_with_null_sections(self) -> None:
        """A Job with null spec and status summarises softly."""
        job = {"apiVersion": "batch/v1", "kind": "Job",
               "metadata": {"name": "j"}, "spec": None, "status": None}

        assert job_condition(job) is None
        summary = parse_resource(job)
        assert summary["status"] == ""
        assert summary["completions"] == "0/1"
