import io
import subprocess

import pytest

from kindproviders.command import RunError
from kindproviders.docker.node import DockerNode, NodeCmd


class FakeRun:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append((list(argv), kwargs))
        code, out, err = self.results.pop(0)
        return subprocess.CompletedProcess(argv, code, stdout=out, stderr=err)


@pytest.fixture
def fake_run(monkeypatch):
    def install(*results):
        fake = FakeRun(*results)
        monkeypatch.setattr(subprocess, "run", fake)
        return fake

    return install


def test_str_is_name():
    assert str(DockerNode("kind-control-plane")) == "kind-control-plane"


def test_command_argv_plain():
    cmd = DockerNode("kind-worker").command("echo", "hi")
    assert cmd.argv == ["docker", "exec", "--privileged", "kind-worker", "echo", "hi"]


def test_command_argv_with_stdin_and_env():
    cmd = DockerNode("kind-worker").command("cat")
    cmd.set_stdin(io.BytesIO(b"data")).set_env("A=B", "C=D")
    assert cmd.argv == [
        "docker", "exec", "--privileged", "-i",
        "-e", "A=B", "-e", "C=D",
        "kind-worker", "cat",
    ]


def test_setters_chain():
    cmd = NodeCmd("n", "true")
    out = io.BytesIO()
    assert cmd.set_stdout(out) is cmd
    assert cmd.set_stderr(out) is cmd
    assert cmd.stdout is out and cmd.stderr is out


def test_run_writes_stdout_and_passes_stdin(fake_run):
    fake = fake_run((0, b"hello\n", b""))
    out = io.BytesIO()
    DockerNode("n1").command("cat").set_stdin(io.BytesIO(b"in")).set_stdout(out).run()
    assert out.getvalue() == b"hello\n"
    argv, kwargs = fake.calls[0]
    assert argv == ["docker", "exec", "--privileged", "-i", "n1", "cat"]
    assert kwargs["input"] == b"in"


def test_run_failure_raises(fake_run):
    fake_run((1, b"", b"boom"))
    with pytest.raises(RunError) as info:
        DockerNode("n1").command("false").run()
    assert info.value.returncode == 1
    assert info.value.output == b"boom"


def test_role(fake_run):
    fake = fake_run((0, b"control-plane\n", b""))
    assert DockerNode("n1").role() == "control-plane"
    argv = fake.calls[0][0]
    assert argv[-1] == "n1"
    assert "io.x-k8s.kind.role" in argv[3]


def test_role_wrong_line_count(fake_run):
    fake_run((0, b"a\nb\n", b""))
    with pytest.raises(RuntimeError, match="output lines 2 != 1"):
        DockerNode("n1").role()


def test_role_command_failure(fake_run):
    fake_run((1, b"", b"Error: No such object"))
    with pytest.raises(RuntimeError, match="failed to get role for node"):
        DockerNode("n1").role()


def test_ip(fake_run):
    fake_run((0, b"172.18.0.2,fc00:f853:ccd:e793::2\n", b""))
    assert DockerNode("n1").ip() == ("172.18.0.2", "fc00:f853:ccd:e793::2")


def test_ip_bad_value_count(fake_run):
    fake_run((0, b"172.18.0.2\n", b""))
    with pytest.raises(RuntimeError, match="should have 2 values, got 1"):
        DockerNode("n1").ip()


def test_serial_logs(fake_run):
    fake = fake_run((0, b"booting\n", b""))
    out = io.BytesIO()
    DockerNode("n1").serial_logs(out)
    assert out.getvalue() == b"booting\n"
    assert fake.calls[0][0] == ["docker", "logs", "n1"]
    assert fake.calls[0][1]["stderr"] == subprocess.STDOUT


def test_nodes_compare_by_name():
    assert DockerNode("a") == DockerNode("a")
    assert len({DockerNode("a"), DockerNode("a"), DockerNode("b")}) == 2