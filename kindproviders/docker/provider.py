"""A cluster node provider that drives the docker command line."""

from __future__ import annotations

from ..command import Node, RunError, command, output_lines
from ..providers import Provider, ProviderInfo
from . import util
from .network import CLUSTER_LABEL_KEY
from .node import DockerNode

API_SERVER_INTERNAL_PORT = 6443


def _join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class DockerProvider(Provider):
    """Provides cluster nodes as docker containers."""

    def __init__(self) -> None:
        self._info: ProviderInfo | None = None

    def __str__(self) -> str:
        return "docker"

    def list_clusters(self) -> list[str]:
        """Return the sorted, distinct names of clusters with node containers."""
        cmd = command(
            "docker", "ps", "-a",
            "--filter", f"label={CLUSTER_LABEL_KEY}",
            "--format", '{{.Label "%s"}}' % CLUSTER_LABEL_KEY,
        )
        try:
            lines = output_lines(cmd)
        except RunError as err:
            raise RuntimeError(f"failed to list clusters: {err}") from err
        return sorted(set(lines))

    def list_nodes(self, cluster: str) -> list[Node]:
        """Return the node containers of the named cluster, running or not."""
        cmd = command(
            "docker", "ps", "-a",
            "--filter", f"label={CLUSTER_LABEL_KEY}={cluster}",
            "--format", "{{.Names}}",
        )
        try:
            lines = output_lines(cmd)
        except RunError as err:
            raise RuntimeError(f"failed to list nodes: {err}") from err
        return [DockerNode(name) for name in lines]

    def delete_nodes(self, nodes: list[Node]) -> None:
        """Force-remove the node containers and their volumes."""
        if not nodes:
            return
        try:
            command("docker", "rm", "-f", "-v", *(str(n) for n in nodes)).run()
        except RunError as err:
            raise RuntimeError(f"failed to delete nodes: {err}") from err

    def get_api_server_endpoint(self, node: Node) -> str:
        """Return the host endpoint of the API server hosted on node."""
        # a desktop.docker.io port label, when present, is authoritative
        cmd = command(
            "docker", "inspect",
            "--format",
            '{{ index .Config.Labels "desktop.docker.io/ports/%d/tcp" }}'
            % API_SERVER_INTERNAL_PORT,
            str(node),
        )
        try:
            lines = output_lines(cmd)
        except RunError as err:
            raise RuntimeError(f"failed to get api server port: {err}") from err
        if len(lines) == 1 and lines[0]:
            return lines[0]

        cmd = command(
            "docker", "inspect",
            "--format",
            '{{ with (index (index .NetworkSettings.Ports "%d/tcp") 0) }}'
            '{{ printf "%%s\t%%s" .HostIp .HostPort }}{{ end }}'
            % API_SERVER_INTERNAL_PORT,
            str(node),
        )
        try:
            lines = output_lines(cmd)
        except RunError as err:
            raise RuntimeError(f"failed to get api server port: {err}") from err
        if len(lines) != 1:
            raise RuntimeError(
                f"network details should only be one line, got {len(lines)} lines"
            )
        parts = lines[0].split("\t")
        if len(parts) != 2:
            raise RuntimeError(
                f"network details should only be two parts, got {len(parts)}"
            )
        return _join_host_port(parts[0], parts[1])

    def get_api_server_internal_endpoint(self, node: Node) -> str:
        """Return the in-network endpoint of the API server hosted on node."""
        # node hostnames are their container names
        return _join_host_port(str(node), str(API_SERVER_INTERNAL_PORT))

    def info(self) -> ProviderInfo:
        """Return the runtime capabilities, queried once and then cached."""
        if self._info is None:
            self._info = util.info()
        return self._info