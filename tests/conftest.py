"""Shared fixtures for rtkernel tests."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from rtkernel.runner import Runner

Handler = Callable[[list[str], Path | None], "subprocess.CompletedProcess[str] | None"]


class RecordingRunner(Runner):
    """Runner that records commands instead of executing them.

    Handlers are matched by command prefix; the first match may return a
    CompletedProcess or perform side effects (such as creating files) and
    return None for a successful empty result.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.commands: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self.handlers: list[tuple[list[str], Handler]] = []
        self.spawned: list[list[str]] = []

    def on(self, *prefix: str, handler: Handler | None = None, stdout: str = "", returncode: int = 0) -> None:
        def respond(command: list[str], cwd: Path | None) -> subprocess.CompletedProcess[str]:
            return subprocess.CompletedProcess(command, returncode, stdout, "")

        self.handlers.append((list(prefix), handler or respond))

    def _execute(self, command: Sequence[str], *, cwd: Path | None, capture: bool) -> subprocess.CompletedProcess[str]:
        command = list(command)
        self.commands.append(command)
        self.cwds.append(cwd)
        for prefix, handler in self.handlers:
            if command[: len(prefix)] == prefix:
                result = handler(command, cwd)
                if result is not None:
                    return result
                break
        return subprocess.CompletedProcess(command, 0, "", "")

    def spawn(self, command: Sequence[str]) -> subprocess.Popen:
        self.spawned.append(list(command))
        return FakeProcess()

    def ran(self, *prefix: str) -> bool:
        return any(command[: len(prefix)] == list(prefix) for command in self.commands)


class FakeProcess:
    """Stands in for a background Popen handle."""

    def __init__(self, running: bool = True) -> None:
        self.running = running
        self.waited = False
        self.terminated = False

    def poll(self) -> int | None:
        return None if self.running else 0

    def wait(self) -> int:
        self.waited = True
        self.running = False
        return 0

    def terminate(self) -> None:
        self.terminated = True


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()
