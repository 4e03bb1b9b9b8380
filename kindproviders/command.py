"""Running host commands, and the interface every cluster node provides."""

from __future__ import annotations

import io
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import IO, Any


class RunError(Exception):
    """A command failed to start, timed out, or exited with a non-zero status."""

    def __init__(
        self,
        command: list[str],
        output: bytes = b"",
        stdout: bytes = b"",
        returncode: int | None = None,
        inner: BaseException | None = None,
    ) -> None:
        self.command = list(command)
        self.output = output
        self.stdout = stdout
        self.returncode = returncode
        self.inner = inner
        reason = inner if inner is not None else f"exit status {returncode}"
        super().__init__(
            f'command "{" ".join(self.command)}" failed with error: {reason}'
        )


def _write(stream: IO[Any], data: bytes) -> None:
    if not data:
        return
    if isinstance(stream, io.TextIOBase):
        stream.write(data.decode("utf-8", errors="replace"))
    else:
        stream.write(data)


def _env_dict(entries: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for entry in entries:
        key, _, value = entry.partition("=")
        env[key] = value
    return env


class Cmd:
    """A command to run on the host, configured with chainable setters."""

    def __init__(self, name: str, *args: str, timeout: float | None = None) -> None:
        self.name = name
        self.args = list(args)
        self.timeout = timeout
        self.env: list[str] | None = None
        self.stdin: IO[Any] | None = None
        self.stdout: IO[Any] | None = None
        self.stderr: IO[Any] | None = None

    @property
    def argv(self) -> list[str]:
        return [self.name, *self.args]

    def set_env(self, *args: str) -> "Cmd":
        """Replace the whole environment with ``KEY=VALUE`` entries."""
        self.env = list(args)
        return self

    def set_stdin(self, stream: IO[Any]) -> "Cmd":
        self.stdin = stream
        return self

    def set_stdout(self, stream: IO[Any]) -> "Cmd":
        self.stdout = stream
        return self

    def set_stderr(self, stream: IO[Any]) -> "Cmd":
        self.stderr = stream
        return self

    def run(self) -> None:
        """Run the command, raising RunError if it does not succeed."""
        argv = self.argv
        env = None
        if self.env is not None:
            env = _env_dict(self.env)
            argv = [shutil.which(self.name) or self.name, *self.args]
        input_data = None
        if self.stdin is not None:
            data = self.stdin.read()
            input_data = data.encode() if isinstance(data, str) else data
        merged = self.stderr is not None and self.stderr is self.stdout
        try:
            proc = subprocess.run(
                argv,
                input=input_data,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merged else subprocess.PIPE,
                env=env,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            out = exc.stdout or b""
            err = exc.stderr or b""
            raise RunError(self.argv, out + err, out, inner=exc) from exc
        except OSError as exc:
            raise RunError(self.argv, inner=exc) from exc

        out = proc.stdout or b""
        err = b"" if merged else (proc.stderr or b"")
        if self.stdout is not None:
            _write(self.stdout, out)
        if self.stderr is not None and not merged:
            _write(self.stderr, err)
        if proc.returncode != 0:
            raise RunError(self.argv, out + err, out, proc.returncode)

    def __repr__(self) -> str:
        return f"Cmd({' '.join(self.argv)!r})"


class Node(ABC):
    """A cluster node: a named container that can run commands."""

    @abstractmethod
    def __str__(self) -> str:
        """Return the node name."""

    @abstractmethod
    def role(self) -> str:
        """Return the node's role label."""

    @abstractmethod
    def ip(self) -> tuple[str, str]:
        """Return the node's IPv4 and IPv6 addresses."""

    @abstractmethod
    def command(self, command: str, *args: str) -> Any:
        """Return a command that runs inside the node."""

    @abstractmethod
    def serial_logs(self, writer: IO[Any]) -> None:
        """Write the node container's logs to writer."""


def command(name: str, *args: str) -> Cmd:
    """Build a host command."""
    return Cmd(name, *args)


def output(cmd: Cmd) -> bytes:
    """Run cmd and return what it wrote to stdout."""
    buffer = io.BytesIO()
    cmd.set_stdout(buffer)
    cmd.run()
    return buffer.getvalue()


def output_lines(cmd: Cmd) -> list[str]:
    """Run cmd and return its stdout split into lines."""
    data = output(cmd)
    if not data:
        return []
    parts = data.split(b"\n")
    if parts[-1] == b"":
        parts.pop()
    return [
        (p[:-1] if p.endswith(b"\r") else p).decode("utf-8", errors="replace")
        for p in parts
    ]