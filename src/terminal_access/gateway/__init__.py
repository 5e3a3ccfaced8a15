"""Cluster gateway abstraction for terminal access."""

from terminal_access.gateway.base import ClusterGateway, Manifest
from terminal_access.gateway.kubectl import KubectlGateway
from terminal_access.gateway.resources import ResourceKind, kind_of, parse_resource

__all__ = [
    "ClusterGateway",
    "KubectlGateway",
    "Manifest",
    "ResourceKind",
    "kind_of",
    "parse_resource",
]
