"""Building the ``docker run`` arguments for cluster node containers."""

from __future__ import annotations

import ipaddress
import os
import socket
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum

from ..command import RunError, command, output_lines
from . import util
from .network import CLUSTER_LABEL_KEY, NODE_ROLE_LABEL_KEY

NO_PROXY = "NO_PROXY"
CONTROL_PLANE_ROLE = "control-plane"
WORKER_ROLE = "worker"

# in-cluster DNS suffixes that should never go through a proxy
_CLUSTER_DNS_SUFFIXES = (".svc", ".svc.cluster", ".svc.cluster.local")


class IPFamily(str, Enum):
    """The IP family of a cluster."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"
    DUAL_STACK = "dual"


class MountPropagation(str, Enum):
    """How mounts propagate between host and container."""

    NONE = "None"
    HOST_TO_CONTAINER = "HostToContainer"
    BIDIRECTIONAL = "Bidirectional"


class PortProtocol(str, Enum):
    """Transport protocols a port mapping may use."""

    TCP = "TCP"
    UDP = "UDP"
    SCTP = "SCTP"


@dataclass
class Mount:
    """A host path mounted into a node container."""

    container_path: str
    host_path: str
    readonly: bool = False
    selinux_relabel: bool = False
    propagation: MountPropagation | str = MountPropagation.NONE


@dataclass
class PortMapping:
    """A container port published on the host."""

    container_port: int
    host_port: int = 0
    listen_address: str = ""
    protocol: PortProtocol | str = ""


def _join_host_port(host: str, port: object) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def common_args(
    cluster: str,
    network_name: str,
    ipv6: bool,
    proxy_env: Mapping[str, str],
) -> list[str]:
    """Return the arguments shared by every container of the cluster."""
    args = [
        "--detach",
        "--tty",
        "--label", f"{CLUSTER_LABEL_KEY}={cluster}",
        # a user defined network provides embedded DNS
        "--net", network_name,
        # restart on host or daemon reboot, but do not keep retrying failures
        "--restart=on-failure:1",
        # the entrypoint must be PID 1, not an init injected by docker
        "--init=false",
    ]
    if ipv6:
        args += [
            "--sysctl=net.ipv6.conf.all.disable_ipv6=0",
            "--sysctl=net.ipv6.conf.all.forwarding=1",
        ]
    for key, value in proxy_env.items():
        args += ["-e", f"{key}={value}"]
    if util.userns_remap():
        args.append("--userns=host")
    if util.mount_dev_mapper():
        args += ["--volume", "/dev/mapper:/dev/mapper"]
    # rootless docker does not mount /dev/fuse even with --privileged
    if util.mount_fuse():
        args += ["--device", "/dev/fuse"]
    return args


def get_proxy_env(
    envs: Mapping[str, str],
    network_name: str,
    node_names: Iterable[str],
) -> dict[str, str]:
    """Return the proxy environment, extending NO_PROXY when a proxy is set."""
    result = dict(envs)
    if not result:
        return result
    try:
        subnets = get_subnets(network_name)
    except RuntimeError as err:
        raise RuntimeError(f"proxy setup error: {err}") from err
    no_proxy = [
        *subnets,
        result.get(NO_PROXY, ""),
        *node_names,
        *_CLUSTER_DNS_SUFFIXES,
    ]
    joined = ",".join(no_proxy)
    result[NO_PROXY] = joined
    result[NO_PROXY.lower()] = joined
    return result


def get_subnets(network_name: str) -> list[str]:
    """Return the IPAM subnets configured on the docker network."""
    fmt = '{{range (index (index . "IPAM") "Config")}}{{index . "Subnet"}} {{end}}'
    cmd = command("docker", "network", "inspect", "-f", fmt, network_name)
    try:
        lines = output_lines(cmd)
    except RunError as err:
        raise RuntimeError(f"failed to get subnets: {err}") from err
    if not lines:
        raise RuntimeError("failed to get subnets: no output")
    return lines[0].strip().split(" ")


def generate_mount_bindings(*args: Mount) -> list[str]:
    """Convert mounts to ``--volume=<host>:<container>[:options]`` arguments."""
    bindings = []
    for mount in args:
        bind = f"{mount.host_path}:{mount.container_path}"
        attrs = []
        if mount.readonly:
            attrs.append("ro")
        if mount.selinux_relabel:
            attrs.append("Z")
        propagation = mount.propagation
        if propagation == MountPropagation.BIDIRECTIONAL:
            attrs.append("rshared")
        elif propagation == MountPropagation.HOST_TO_CONTAINER:
            attrs.append("rslave")
        # anything else falls back to private, the default
        if attrs:
            bind = f"{bind}:{','.join(attrs)}"
        bindings.append(f"--volume={bind}")
    return bindings


def _default_listen_address(ip_family: IPFamily | str) -> str:
    try:
        family = IPFamily(ip_family)
    except ValueError:
        raise ValueError(f"unknown cluster IP family: {ip_family}") from None
    if family is IPFamily.IPV6:
        return "::"
    return "0.0.0.0"


def _protocol(value: PortProtocol | str) -> PortProtocol:
    if value == "":
        return PortProtocol.TCP
    try:
        return PortProtocol(value)
    except ValueError:
        raise ValueError(f"unknown port mapping protocol: {value}") from None


def generate_port_mappings(
    ip_family: IPFamily | str, *args: PortMapping
) -> list[str]:
    """Convert port mappings to ``--publish=`` arguments."""
    published = []
    for mapping in args:
        listen_address = mapping.listen_address or _default_listen_address(ip_family)
        protocol = _protocol(mapping.protocol)
        try:
            host_port = port_or_get_free_port(mapping.host_port, listen_address)
        except OSError as err:
            raise RuntimeError(
                f"failed to get random host port for port mapping: {err}"
            ) from err
        binding = _join_host_port(listen_address, host_port)
        published.append(
            f"--publish={binding}:{mapping.container_port}/{protocol.value}"
        )
    return published


def port_or_get_free_port(port: int, listen_address: str) -> int:
    """Return port, or a free port on listen_address when port is 0."""
    if port:
        return port
    family = socket.AF_INET
    try:
        if ipaddress.ip_address(listen_address).version == 6:
            family = socket.AF_INET6
    except ValueError:
        pass
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.bind((listen_address, 0))
        return sock.getsockname()[1]


def run_args_for_node(
    role: str,
    image: str,
    mounts: Iterable[Mount],
    port_mappings: Iterable[PortMapping],
    ip_family: IPFamily | str,
    name: str,
    args: Iterable[str],
) -> list[str]:
    """Return the ``docker run`` arguments for a node container."""
    # docker only handles absolute host paths
    mounts = [
        m if os.path.isabs(m.host_path) else replace(m, host_path=os.path.abspath(m.host_path))
        for m in mounts
    ]
    run_args = [
        "--hostname", name,
        "--label", f"{NODE_ROLE_LABEL_KEY}={role}",
        # nested containers need privileges
        "--privileged",
        "--security-opt", "seccomp=unconfined",
        "--security-opt", "apparmor=unconfined",
        "--tmpfs", "/tmp",
        "--tmpfs", "/run",
        # keep pods, logs and the like off the container filesystem
        "--volume", "/var",
        "--volume", "/lib/modules:/lib/modules:ro",
        "-e", "KIND_EXPERIMENTAL_CONTAINERD_SNAPSHOTTER",
        *args,
    ]
    run_args += generate_mount_bindings(*mounts)
    run_args += generate_port_mappings(ip_family, *port_mappings)
    if role == CONTROL_PLANE_ROLE:
        run_args += ["-e", "KUBECONFIG=/etc/kubernetes/admin.conf"]
    run_args.append(image)
    return run_args


def create_container(name: str, args: Iterable[str]) -> None:
    """Start a named container with the given ``docker run`` arguments."""
    command("docker", "run", "--name", name, *args).run()