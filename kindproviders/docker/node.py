"""Cluster nodes backed by docker containers."""

from __future__ import annotations

from typing import IO, Any

from ..command import Cmd, Node, RunError, command, output_lines
from .network import NODE_ROLE_LABEL_KEY


class NodeCmd:
    """A command run inside a node container through ``docker exec``."""

    def __init__(
        self,
        name_or_id: str,
        command: str,
        *args: str,
        timeout: float | None = None,
    ) -> None:
        self.name_or_id = name_or_id
        self.command = command
        self.args = list(args)
        self.timeout = timeout
        self.env: list[str] = []
        self.stdin: IO[Any] | None = None
        self.stdout: IO[Any] | None = None
        self.stderr: IO[Any] | None = None

    @property
    def argv(self) -> list[str]:
        """The full host command line that runs this command in the container."""
        # privileged so that commands can remount and the like
        argv = ["docker", "exec", "--privileged"]
        if self.stdin is not None:
            argv.append("-i")
        for entry in self.env:
            argv += ["-e", entry]
        argv += [self.name_or_id, self.command, *self.args]
        return argv

    def set_env(self, *args: str) -> "NodeCmd":
        """Set ``KEY=VALUE`` environment entries for the command in the container."""
        self.env = list(args)
        return self

    def set_stdin(self, stream: IO[Any]) -> "NodeCmd":
        self.stdin = stream
        return self

    def set_stdout(self, stream: IO[Any]) -> "NodeCmd":
        self.stdout = stream
        return self

    def set_stderr(self, stream: IO[Any]) -> "NodeCmd":
        self.stderr = stream
        return self

    def run(self) -> None:
        """Run the command in the container, raising RunError on failure."""
        name, *args = self.argv
        cmd = Cmd(name, *args, timeout=self.timeout)
        if self.stdin is not None:
            cmd.set_stdin(self.stdin)
        if self.stderr is not None:
            cmd.set_stderr(self.stderr)
        if self.stdout is not None:
            cmd.set_stdout(self.stdout)
        cmd.run()

    def __repr__(self) -> str:
        return f"NodeCmd({' '.join(self.argv)!r})"


class DockerNode(Node):
    """A node that is a docker container with the given name."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"DockerNode({self.name!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DockerNode) and other.name == self.name

    def __hash__(self) -> int:
        return hash(self.name)

    def role(self) -> str:
        """Return the role label of the node container."""
        cmd = command(
            "docker", "inspect",
            "--format", '{{ index .Config.Labels "%s"}}' % NODE_ROLE_LABEL_KEY,
            self.name,
        )
        try:
            lines = output_lines(cmd)
        except RunError as err:
            raise RuntimeError(f"failed to get role for node: {err}") from err
        if len(lines) != 1:
            raise RuntimeError(
                f"failed to get role for node: output lines {len(lines)} != 1"
            )
        return lines[0]

    def ip(self) -> tuple[str, str]:
        """Return the IPv4 and IPv6 addresses of the node container."""
        cmd = command(
            "docker", "inspect",
            "-f",
            "{{range .NetworkSettings.Networks}}{{.IPAddress}},{{.GlobalIPv6Address}}{{end}}",
            self.name,
        )
        try:
            lines = output_lines(cmd)
        except RunError as err:
            raise RuntimeError(f"failed to get container details: {err}") from err
        if len(lines) != 1:
            raise RuntimeError(f"file should only be one line, got {len(lines)} lines")
        ips = lines[0].split(",")
        if len(ips) != 2:
            raise RuntimeError(
                f"container addresses should have 2 values, got {len(ips)} values"
            )
        return ips[0], ips[1]

    def command(self, command: str, *args: str) -> NodeCmd:
        """Return a command that runs inside this node."""
        return NodeCmd(self.name, command, *args)

    def serial_logs(self, writer: IO[Any]) -> None:
        """Write the container's logs, stdout and stderr, to writer."""
        cmd = command("docker", "logs", self.name)
        cmd.set_stdout(writer).set_stderr(writer).run()