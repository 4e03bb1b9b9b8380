"""Probes of the host docker installation."""

from __future__ import annotations

import csv
import io
import json

from ..command import RunError, command, output, output_lines
from ..providers import ProviderInfo


def is_available() -> bool:
    """Return whether a docker client is installed and responds."""
    try:
        lines = output_lines(command("docker", "-v"))
    except RunError:
        return False
    return len(lines) == 1 and lines[0].startswith("Docker version")


def userns_remap() -> bool:
    """Return whether user namespace remapping is enabled in dockerd."""
    try:
        lines = output_lines(
            command("docker", "info", "--format", "'{{json .SecurityOptions}}'")
        )
    except RunError:
        return False
    return bool(lines) and "name=userns" in lines[0]


_DEVMAPPER_DRIVERS = {"btrfs", "zfs", "devicemapper"}
_DEVMAPPER_BACKING = {"btrfs", "zfs", "xfs"}


def mount_dev_mapper() -> bool:
    """Return whether /dev/mapper must be mounted for the storage in use."""
    try:
        lines = output_lines(command("docker", "info", "-f", "{{.Driver}}"))
    except RunError:
        return False
    if len(lines) != 1:
        return False
    storage = lines[0].strip().lower()
    if storage in _DEVMAPPER_DRIVERS:
        return True

    try:
        lines = output_lines(command("docker", "info", "-f", "{{json .DriverStatus }}"))
    except RunError:
        return False
    if len(lines) != 1:
        return False
    try:
        status = json.loads(lines[0])
    except ValueError:
        return False
    for item in status or []:
        if isinstance(item, list) and len(item) >= 2 and item[0] == "Backing Filesystem":
            storage = str(item[1]).lower()
            break
    return storage in _DEVMAPPER_BACKING


def mount_fuse() -> bool:
    """Return whether /dev/fuse must be passed in, as for rootless docker."""
    try:
        return info().rootless
    except (RuntimeError, ValueError):
        return False


def info() -> ProviderInfo:
    """Query ``docker info`` and return the provider capabilities."""
    try:
        out = output(command("docker", "info", "--format", "{{json .}}"))
    except RunError as err:
        raise RuntimeError(f"failed to get docker info: {err}") from err
    return parse_info(out)


def parse_info(data: bytes | str) -> ProviderInfo:
    """Build ProviderInfo from the JSON printed by ``docker info``."""
    raw = json.loads(data)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("docker info output is not a JSON object")
    result = ProviderInfo(cgroup2=raw.get("CgroupVersion") == "2")
    # with no cgroup driver the limit flags carry no meaning
    if raw.get("CgroupDriver") != "none":
        result.supports_memory_limit = bool(raw.get("MemoryLimit"))
        result.supports_pids_limit = bool(raw.get("PidsLimit"))
        result.supports_cpu_shares = bool(raw.get("CPUShares"))
    for option in raw.get("SecurityOptions") or []:
        # options look like "name=seccomp,profile=default" or "name=rootless"
        try:
            records = list(csv.reader(io.StringIO(option)))
        except csv.Error as exc:
            raise ValueError(f"invalid security option {option!r}") from exc
        if any(value == "name=rootless" for record in records for value in record):
            result.rootless = True
    return result