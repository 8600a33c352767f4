"""External command execution."""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Sequence
from pathlib import Path

from .errors import CommandError

logger = logging.getLogger(__name__)


class Runner:
    """Run external commands, logging each one before it starts."""

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        capture: bool = False,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run a command to completion.

        Raises CommandError on a non-zero exit status when check is set.
        """
        location = f" (in {cwd})" if cwd else ""
        logger.info("Running%s: %s", location, shlex.join(command))

        if self.dry_run:
            logger.info("[DRY RUN] Skipped")
            return subprocess.CompletedProcess(list(command), 0, "", "")

        try:
            result = self._execute(command, cwd=cwd, capture=capture)
        except FileNotFoundError as exc:
            raise CommandError(command, 127) from exc
        if check and result.returncode != 0:
            raise CommandError(command, result.returncode)
        return result

    def output(self, command: Sequence[str], *, cwd: Path | None = None) -> str:
        """Run a command and return its stripped standard output."""
        return self.run(command, cwd=cwd, capture=True).stdout.strip()

    def spawn(self, command: Sequence[str]) -> subprocess.Popen:
        """Start a command in the background and return its process handle."""
        logger.info("Starting in background: %s", shlex.join(command))
        return subprocess.Popen(list(command))

    def _execute(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None,
        capture: bool,
    ) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            list(command),
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=False,
        )
