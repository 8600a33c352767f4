"""Build driver — compile the kernel and produce binary packages."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from .errors import ArtifactError
from .projects import Project
from .runner import Runner

logger = logging.getLogger(__name__)


class PackageSet(BaseModel):
    """Packages produced by one build."""

    version: str
    release: str
    built_at: datetime
    files: list[Path] = Field(default_factory=list)

    def __iter__(self) -> Iterator[Path]:  # type: ignore[override]
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)

    def __bool__(self) -> bool:
        return bool(self.files)

    @property
    def names(self) -> list[str]:
        return [path.name for path in self.files]


def resolve_jobs(cores: int | None = None) -> int:
    """Return the parallelism degree: an explicit core count, else the CPU count."""
    if cores is not None:
        if cores < 1:
            raise ValueError(f"cores must be a positive integer, got {cores}")
        logger.info("Using specified %d cores for compilation", cores)
        return cores
    detected = os.cpu_count() or 1
    logger.info("Using detected %d cores for compilation", detected)
    return detected


def kernel_release(source_dir: Path, default: str) -> str:
    """Read the release string the build wrote, e.g. 6.12.32-rt."""
    release_file = source_dir / "include" / "config" / "kernel.release"
    if release_file.is_file():
        return release_file.read_text().strip() or default
    return default


def package_dirs(project: Project, source_dir: Path) -> list[tuple[Path, bool]]:
    """Directories searched for packages, each with whether to search recursively."""
    return [
        (project.build_dir, False),
        (source_dir / "rpmbuild" / "RPMS", True),
        (Path.home() / "rpmbuild" / "RPMS", True),
    ]


def find_packages(
    locations: Iterable[tuple[Path, bool]],
    pattern: str,
    *,
    since: float,
) -> list[Path]:
    """Return files matching pattern that were modified at or after since."""
    found: dict[Path, None] = {}
    for directory, recursive in locations:
        if not directory.is_dir():
            continue
        matches = directory.rglob(pattern) if recursive else directory.glob(pattern)
        for path in sorted(matches):
            if not path.is_file():
                continue
            if path.stat().st_mtime < since:
                logger.debug("Ignoring stale package %s", path)
                continue
            found[path.resolve()] = None
    return list(found)


def latest_packages(project: Project, source_dir: Path) -> list[Path]:
    """Return the packages of the first build location that holds any.

    Locations are searched in build order, so an older package elsewhere
    never joins the set.
    """
    for location in package_dirs(project, source_dir):
        files = find_packages([location], project.package_pattern, since=0)
        if files:
            logger.debug("Found %d package(s) in %s", len(files), location[0])
            return files
    return []


def collect_packages(
    project: Project,
    source_dir: Path,
    *,
    started: datetime,
) -> PackageSet:
    """Gather the packages written by this build.

    Raises ArtifactError when none are found, even if every build command
    reported success.
    """
    files = find_packages(
        package_dirs(project, source_dir),
        project.package_pattern,
        since=started.timestamp(),
    )
    if not files:
        raise ArtifactError(
            f"Failed to create packages: no files matching '{project.package_pattern}' were produced"
        )
    packages = PackageSet(
        version=project.version,
        release=kernel_release(source_dir, project.version),
        built_at=started,
        files=files,
    )
    logger.info("Packages created successfully:")
    for path in packages:
        logger.info("  %s", path)
    return packages


def build_packages(
    project: Project,
    source_dir: Path,
    runner: Runner,
    *,
    jobs: int,
    verbose: bool = False,
) -> PackageSet:
    """Compile the kernel, then package the freshly built tree."""
    # filesystem timestamps may be truncated to whole seconds
    started = datetime.now().replace(microsecond=0)

    logger.info("Building kernel and modules...")
    make = ["make", f"-j{jobs}"]
    if verbose:
        make.append("V=1")
    runner.run(make, cwd=source_dir)

    logger.info("Building binary packages...")
    runner.run(["make", f"-j{jobs}", project.package_target], cwd=source_dir)

    return collect_packages(project, source_dir, started=started)
