"""Remote host access over ssh and scp."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterable
from pathlib import Path

from .errors import RTKernelError
from .projects import RemoteTarget
from .runner import Runner

logger = logging.getLogger(__name__)


class Remote:
    """Runs commands on and copies files to a remote host.

    Each call opens its own authenticated session; a non-zero exit status
    raises CommandError.
    """

    def __init__(self, target: RemoteTarget, runner: Runner) -> None:
        target.validate_identity()
        self.target = target
        self.runner = runner

    @property
    def host(self) -> str:
        return self.target.host

    def _identity(self) -> list[str]:
        return ["-i", str(self.target.identity)] if self.target.identity else []

    def ssh_command(self, command: str, *, tty: bool = False) -> list[str]:
        args = ["ssh", *self._identity()]
        if self.target.port != 22:
            args += ["-p", str(self.target.port)]
        if tty:
            args.append("-t")
        return [*args, self.target.destination, command]

    def copy(self, files: Iterable[Path], dest: str = "~/") -> None:
        args = ["scp", *self._identity()]
        if self.target.port != 22:
            args += ["-P", str(self.target.port)]
        self.runner.run([*args, *(str(f) for f in files), f"{self.target.destination}:{dest}"])

    def run(
        self,
        command: str,
        *,
        tty: bool = False,
        capture: bool = False,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        return self.runner.run(self.ssh_command(command, tty=tty), capture=capture, check=check)

    def nproc(self) -> int:
        """Return the number of processing units on the remote host."""
        output = self.run("nproc", capture=True).stdout.strip()
        try:
            count = int(output)
        except ValueError:
            raise RTKernelError(f"Unexpected CPU count from {self.host}: {output!r}") from None
        logger.info("Remote system has %d CPU cores", count)
        return count
