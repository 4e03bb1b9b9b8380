import json
import subprocess

import pytest

from kindproviders.docker import util
from kindproviders.providers import ProviderInfo


class FakeRun:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        code, out = self.results.pop(0)
        return subprocess.CompletedProcess(argv, code, stdout=out, stderr=b"")


@pytest.fixture
def fake_run(monkeypatch):
    def install(*results):
        fake = FakeRun(*results)
        monkeypatch.setattr(subprocess, "run", fake)
        return fake

    return install


INFO = {
    "CgroupDriver": "systemd",
    "CgroupVersion": "2",
    "MemoryLimit": True,
    "PidsLimit": True,
    "CPUShares": False,
    "SecurityOptions": ["name=seccomp,profile=default", "name=rootless"],
}


def test_parse_info_full():
    assert util.parse_info(json.dumps(INFO)) == ProviderInfo(
        rootless=True,
        cgroup2=True,
        supports_memory_limit=True,
        supports_pids_limit=True,
        supports_cpu_shares=False,
    )


def test_parse_info_no_cgroup_driver_disables_limits():
    data = dict(INFO, CgroupDriver="none", CgroupVersion="1", SecurityOptions=[])
    assert util.parse_info(json.dumps(data)) == ProviderInfo()


def test_parse_info_invalid_json():
    with pytest.raises(ValueError):
        util.parse_info("not json")


def test_is_available_true(fake_run):
    fake = fake_run((0, b"Docker version 20.10.7, build f0df350\n"))
    assert util.is_available() is True
    assert fake.calls[0] == ["docker", "-v"]


def test_is_available_wrong_output(fake_run):
    fake_run((0, b"podman version 3.0.0\n"))
    assert util.is_available() is False


def test_is_available_command_fails(fake_run):
    fake_run((127, b""))
    assert util.is_available() is False


def test_userns_remap(fake_run):
    fake_run((0, b"'[\"name=seccomp,profile=default\",\"name=userns\"]'\n"))
    assert util.userns_remap() is True


def test_userns_remap_absent(fake_run):
    fake_run((0, b"'[\"name=seccomp,profile=default\"]'\n"))
    assert util.userns_remap() is False


def test_mount_dev_mapper_by_driver(fake_run):
    fake = fake_run((0, b"btrfs\n"))
    assert util.mount_dev_mapper() is True
    assert len(fake.calls) == 1


def test_mount_dev_mapper_by_backing_filesystem(fake_run):
    status = json.dumps([["Backing Filesystem", "xfs"], ["Supports d_type", "true"]])
    fake_run((0, b"overlay2\n"), (0, status.encode() + b"\n"))
    assert util.mount_dev_mapper() is True


def test_mount_dev_mapper_extfs(fake_run):
    status = json.dumps([["Backing Filesystem", "extfs"], ["Native Overlay Diff", "true"]])
    fake_run((0, b"overlay2\n"), (0, status.encode() + b"\n"))
    assert util.mount_dev_mapper() is False


def test_info_queries_docker(fake_run):
    fake = fake_run((0, json.dumps(INFO).encode()))
    assert util.info().rootless is True
    assert fake.calls[0] == ["docker", "info", "--format", "{{json .}}"]


def test_info_failure(fake_run):
    fake_run((1, b""))
    with pytest.raises(RuntimeError, match="failed to get docker info"):
        util.info()


def test_mount_fuse(fake_run):
    fake_run((0, json.dumps(INFO).encode()))
    assert util.mount_fuse() is True


def test_mount_fuse_on_failure(fake_run):
    fake_run((1, b""))
    assert util.mount_fuse() is False