"""Error types raised by the build and deploy pipeline."""

from __future__ import annotations

import shlex
from collections.abc import Sequence


class RTKernelError(Exception):
    """Base class for fatal pipeline errors."""

    exit_code = 1


class ConfigurationError(RTKernelError, ValueError):
    """A project file or project selection is invalid."""


class PreconditionError(RTKernelError):
    """A required tool, file or system state is missing."""


class SourceError(RTKernelError):
    """The kernel source could not be downloaded or extracted."""


class ArtifactError(RTKernelError):
    """Expected build artifacts are missing."""


class CommandError(RTKernelError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int) -> None:
        self.command = list(command)
        self.returncode = returncode
        super().__init__(f"Command failed with exit status {returncode}: {shlex.join(self.command)}")

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return self.returncode if self.returncode > 0 else 1
