"""The interface for providers of cluster node infrastructure."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from .command import Node


@dataclass
class ProviderInfo:
    """Capabilities of the container runtime behind a provider."""

    rootless: bool = False
    cgroup2: bool = False
    supports_memory_limit: bool = False
    supports_pids_limit: bool = False
    supports_cpu_shares: bool = False


class Provider(ABC):
    """A provider of cluster nodes, backed by a container runtime."""

    @abstractmethod
    def list_clusters(self) -> list[str]:
        """Return the names of clusters that have resources under this provider."""

    @abstractmethod
    def list_nodes(self, cluster: str) -> list[Node]:
        """Return the nodes of the named cluster."""

    @abstractmethod
    def delete_nodes(self, nodes: list[Node]) -> None:
        """Delete the given nodes."""

    @abstractmethod
    def info(self) -> ProviderInfo:
        """Return information about the provider's runtime."""