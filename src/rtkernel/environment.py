"""Environment preparation — make sure the build tools are installed."""

from __future__ import annotations

import logging
import shutil
from typing import Any

from .context import Context
from .errors import CommandError, PreconditionError
from .projects import Project
from .spec import Specification
from .specop import Present

logger = logging.getLogger(__name__)

# Commands whose package name differs from the command name
TOOL_PACKAGES: dict[str, str] = {
    "cc": "gcc",
    "g++": "gcc-c++",
    "rpmbuild": "rpm-build",
    "rpmdev-setuptree": "rpmdevtools",
    "yumdownloader": "yum-utils",
    "cyclictest": "rt-tests",
    "grubby": "grubby",
    "pahole": "dwarves",
}


class Tool(Specification[Any]):
    """An external command that must be available on PATH."""

    def __init__(self, name: str, package: str | None = None) -> None:
        self.name = name
        self.package = package or TOOL_PACKAGES.get(name, name)

    def equals(self, ctx: Context[Any]) -> bool:
        return shutil.which(self.name) is not None

    def apply(self, ctx: Context[Any]) -> None:
        if self.name == "dnf":
            raise PreconditionError(
                "dnf is not installed; it is the package manager this tool relies on. "
                "Please install dnf manually and try again."
            )
        logger.warning("%s is not installed; attempting to install %s", self.name, self.package)
        try:
            ctx.runner.run(["sudo", "dnf", "install", "-y", self.package])
        except CommandError as exc:
            raise PreconditionError(
                f"Failed to install {self.name}. Please install it manually and try again."
            ) from exc

    def remove(self, ctx: Context[Any]) -> None:
        ctx.runner.run(["sudo", "dnf", "remove", "-y", self.package])

    def __repr__(self) -> str:
        return f"Tool({self.name})"


def install_packages(packages: list[str], ctx: Context[Any]) -> None:
    """Install build packages in a single package manager transaction."""
    if not packages:
        return
    logger.info("Installing %d build package(s)", len(packages))
    ctx.runner.run(["sudo", "dnf", "install", "-y", *packages])


def prepare_environment(project: Project, ctx: Context[Any]) -> None:
    """Install the project's packages and ensure each required tool exists.

    Each missing tool gets exactly one install attempt.  A tool that is still
    missing afterwards raises PreconditionError.
    """
    install_packages(project.packages, ctx)

    logger.info("Checking for required commands...")
    for name in project.tools:
        tool = Tool(name)
        Present(tool)(ctx)
        if not tool.exists(ctx):
            raise PreconditionError(
                f"{name} is not installed. Please install it and try again."
            )
        logger.debug("Found %s", name)
