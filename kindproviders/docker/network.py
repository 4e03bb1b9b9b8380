"""Management of the docker network that cluster nodes attach to."""

from __future__ import annotations

import hashlib
import ipaddress
import json
import re
import struct
from dataclasses import dataclass, field
from typing import Any

from ..command import RunError, command, output, output_lines

# applied to each node container for identification
CLUSTER_LABEL_KEY = "io.x-k8s.kind.cluster"
# applied to each node container for categorization by role
NODE_ROLE_LABEL_KEY = "io.x-k8s.kind.role"

# may be overridden by KIND_EXPERIMENTAL_DOCKER_NETWORK
FIXED_NETWORK_NAME = "kind"

_MAX_ATTEMPTS = 5
_META_CHARS = set("\\.+*?()|[]{}^$")


@dataclass
class NetworkInspectEntry:
    """The parts of ``docker network inspect`` output used for sorting."""

    id: str
    containers: dict[str, dict[str, str]] = field(default_factory=dict)


def _quote_meta(text: str) -> str:
    return "".join("\\" + ch if ch in _META_CHARS else ch for ch in text)


def _run_error(err: BaseException | None) -> RunError | None:
    while err is not None:
        if isinstance(err, RunError):
            return err
        err = err.__cause__
    return None


def ensure_network(name: str) -> None:
    """Make sure exactly one docker network with this name exists."""
    if remove_duplicate_networks(name):
        return

    subnet = generate_ula_subnet_from_name(name, 0)
    mtu = get_default_network_mtu()
    try:
        create_network_no_duplicates(name, subnet, mtu)
        return
    except RunError as err:
        if is_ipv6_unavailable_error(err):
            create_network_no_duplicates(name, "", mtu)
            return
        if not is_pool_overlap_error(err):
            raise
        # another process may have created the network meanwhile
        if check_if_network_exists(name):
            return

    for attempt in range(1, _MAX_ATTEMPTS):
        subnet = generate_ula_subnet_from_name(name, attempt)
        try:
            create_network_no_duplicates(name, subnet, mtu)
            return
        except RunError as err:
            if not is_pool_overlap_error(err):
                raise
            if check_if_network_exists(name):
                return
    raise RuntimeError("exhausted attempts trying to find a non-overlapping subnet")


def create_network_no_duplicates(name: str, ipv6_subnet: str, mtu: int) -> None:
    """Create the network, tolerating a concurrent creation, then deduplicate."""
    try:
        create_network(name, ipv6_subnet, mtu)
    except RunError as err:
        if not is_network_already_exists_error(err):
            raise
    remove_duplicate_networks(name)


def remove_duplicate_networks(name: str) -> bool:
    """Delete all but one network with this name; return whether one exists."""
    networks = sorted_networks_with_name(name)
    if len(networks) > 1:
        try:
            delete_networks(*networks[1:])
        except RunError as err:
            if not is_only_error_no_such_network(err):
                raise
    return bool(networks)


def create_network(name: str, ipv6_subnet: str, mtu: int) -> None:
    args = [
        "network", "create", "-d=bridge",
        "-o", "com.docker.network.bridge.enable_ip_masquerade=true",
    ]
    if mtu > 0:
        args += ["-o", f"com.docker.network.driver.mtu={mtu}"]
    if ipv6_subnet:
        args += ["--ipv6", "--subnet", ipv6_subnet]
    args.append(name)
    command("docker", *args).run()


def get_default_network_mtu() -> int:
    """Return the MTU of docker's default bridge network, or 0 if unknown."""
    cmd = command(
        "docker", "network", "inspect", "bridge",
        "-f", '{{ index .Options "com.docker.network.driver.mtu" }}',
    )
    try:
        lines = output_lines(cmd)
    except RunError:
        return 0
    if len(lines) != 1 or not re.fullmatch(r"[+-]?[0-9]+", lines[0]):
        return 0
    return int(lines[0])


def sorted_networks_with_name(name: str) -> list[str]:
    """Return the IDs of networks with this name, in deterministic order."""
    ids = networks_with_name(name)
    if len(ids) < 2:
        return ids
    networks = inspect_networks(ids)
    sort_network_inspect_entries(networks)
    return [network.id for network in networks]


def sort_network_inspect_entries(networks: list[NetworkInspectEntry]) -> None:
    """Sort in place: networks with more containers first, then by ID."""
    networks.sort(key=lambda n: (-len(n.containers), n.id))


def _entry_from_json(raw: dict[str, Any]) -> NetworkInspectEntry:
    return NetworkInspectEntry(
        id=raw.get("Id") or "",
        containers=dict(raw.get("Containers") or {}),
    )


def inspect_networks(network_ids: list[str]) -> list[NetworkInspectEntry]:
    try:
        out = output(command("docker", "network", "inspect", *network_ids))
    except RunError as err:
        # missing networks are simply absent from the output
        if not is_only_error_no_such_network(err):
            raise
        out = err.stdout
    try:
        raw = json.loads(out)
    except ValueError as exc:
        raise ValueError("failed to decode networks list") from exc
    return [_entry_from_json(item) for item in raw or []]


def networks_with_name(name: str) -> list[str]:
    """Return the IDs of networks whose name is exactly name."""
    out = output(command(
        "docker", "network", "ls",
        f"--filter=name=^{_quote_meta(name)}$",
        "--format={{.ID}}",
    ))
    cleaned = out.decode("utf-8", errors="replace").removesuffix("\n")
    if not cleaned:
        return []
    return cleaned.split("\n")


def check_if_network_exists(name: str) -> bool:
    out = output(command(
        "docker", "network", "ls",
        f"--filter=name=^{_quote_meta(name)}$",
        "--format={{.Name}}",
    ))
    return out.decode("utf-8", errors="replace").startswith(name)


def is_ipv6_unavailable_error(err: BaseException) -> bool:
    rerr = _run_error(err)
    return rerr is not None and rerr.output.startswith(
        b"Error response from daemon: Cannot read IPv6 setup for bridge"
    )


def is_pool_overlap_error(err: BaseException) -> bool:
    rerr = _run_error(err)
    if rerr is None:
        return False
    return rerr.output.startswith(
        b"Error response from daemon: Pool overlaps with other one on this address space"
    ) or b"networks have overlapping" in rerr.output


def is_network_already_exists_error(err: BaseException) -> bool:
    rerr = _run_error(err)
    return (
        rerr is not None
        and rerr.output.startswith(b"Error response from daemon: network with name")
        and b"already exists" in rerr.output
    )


def is_only_error_no_such_network(err: BaseException) -> bool:
    """Return True if every error line of the failed command is "No such network"."""
    rerr = _run_error(err)
    if rerr is None:
        return False
    # only newline-terminated lines are considered
    for line in rerr.output.split(b"\n")[:-1]:
        if line.startswith(b"Error: No such network:"):
            continue
        if line.startswith(b"Error: "):
            return False
    return True


def delete_networks(*args: str) -> None:
    command("docker", "network", "rm", *args).run()


def generate_ula_subnet_from_name(name: str, attempt: int) -> str:
    """Derive a /64 ULA IPv6 subnet from a network name and probe attempt."""
    digest = hashlib.sha1(name.encode() + struct.pack("<i", attempt)).digest()
    address = bytes([0xFC, 0x00]) + digest[2:8] + bytes(8)
    network = ipaddress.IPv6Network((int.from_bytes(address, "big"), 64))
    return str(network)