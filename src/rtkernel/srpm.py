"""Build an RT kernel from the distribution's kernel source RPM.

Rebuilding the vendor source package keeps every vendor-specific driver
(such as ENA) in the resulting kernel.  The project's directives are applied
to each config file shipped in the package's SOURCES directory.
"""

from __future__ import annotations

import logging
import re
import shutil
from datetime import datetime
from pathlib import Path

from .build import PackageSet, find_packages
from .configure import apply_directives
from .errors import ArtifactError, PreconditionError, SourceError
from .projects import Project
from .runner import Runner

logger = logging.getLogger(__name__)

SOURCE_REPO = "amazonlinux-source"

_DIST_TAG = re.compile(r"^%define dist_tag.*$", re.MULTILINE)
_RT_DIST_TAG = "%define dist_tag %{?dist}.rt"


def package_release(package: str, files: list[Path]) -> str | None:
    """Return the kernel release encoded in the main package file name.

    kernel6.12-6.12.32-1.amzn2023.rt.x86_64.rpm -> 6.12.32-1.amzn2023.rt.x86_64
    """
    prefix = f"{package}-"
    for path in files:
        rest = path.name.removeprefix(prefix)
        if rest != path.name and rest[:1].isdigit() and not rest.endswith(".src.rpm"):
            return rest.removesuffix(".rpm")
    return None


class SourcePackageBuild:
    """Rebuilds a kernel source RPM with the project's directives applied."""

    def __init__(
        self,
        project: Project,
        runner: Runner,
        *,
        topdir: Path | None = None,
        output_dir: Path | None = None,
        verbose: bool = False,
    ) -> None:
        self.project = project
        self.runner = runner
        self.topdir = topdir or Path.home() / "rpmbuild"
        self.output_dir = output_dir or Path.home() / "rt-kernel-rpms"
        self.verbose = verbose

    def enable_source_repo(self) -> None:
        if SOURCE_REPO in self.runner.output(["sudo", "dnf", "repolist"]):
            logger.info("Source repository is already enabled")
            return
        logger.info("Enabling source repository %s...", SOURCE_REPO)
        self.runner.run(["sudo", "dnf", "config-manager", "--set-enabled", SOURCE_REPO])
        if SOURCE_REPO not in self.runner.output(["sudo", "dnf", "repolist"]):
            raise PreconditionError(
                f"Source repository {SOURCE_REPO} could not be enabled; "
                "add it to /etc/yum.repos.d/amazonlinux.repo and try again"
            )

    def find_package(self) -> str:
        """Return the first candidate source package the repositories offer."""
        listing = self.runner.output(["sudo", "dnf", "list", "--available", "--showduplicates", "kernel*"])
        for candidate in self.project.srpm_packages:
            if re.search(rf"^{re.escape(candidate)}\.src\s", listing, re.MULTILINE):
                logger.info("Found %s source package", candidate)
                return candidate
        raise SourceError(
            f"No suitable kernel source package found (tried {', '.join(self.project.srpm_packages)})"
        )

    def download(self, package: str) -> Path:
        srpms = self.topdir / "SRPMS"
        srpms.mkdir(parents=True, exist_ok=True)
        self.runner.run(["sudo", "dnf", "download", "--source", package], cwd=srpms)
        found = sorted(srpms.glob(f"{package}-*.src.rpm"))
        if not found:
            raise SourceError(f"Failed to download {package} source RPM")
        return found[-1]

    def spec_file(self, package: str) -> Path:
        spec = self.topdir / "SPECS" / f"{package}.spec"
        if not spec.is_file():
            raise SourceError(f"{spec.name} not found; check that the correct source RPM was installed")
        return spec

    def patch_spec(self, spec: Path) -> None:
        """Back up the spec file and tag the release with an .rt suffix."""
        backup = spec.with_name(spec.name + ".orig")
        if not backup.exists():
            shutil.copyfile(spec, backup)
        text = spec.read_text()
        patched, count = _DIST_TAG.subn(_RT_DIST_TAG, text)
        if count == 0:
            logger.warning("No dist_tag definition in %s; release will not carry an .rt suffix", spec.name)
        spec.write_text(patched)

    def configure_sources(self) -> None:
        configs = sorted((self.topdir / "SOURCES").glob("config-*"))
        if not configs:
            logger.warning("No config files found in SOURCES; only the spec file was modified")
            return
        for config in configs:
            logger.info("Modifying %s...", config.name)
            apply_directives(self.project, config)

    def build(self, spec: Path) -> None:
        self.runner.run(["sudo", "dnf", "builddep", "-y", str(spec)])
        command = ["rpmbuild", "-ba"]
        if self.verbose:
            command.append("--verbose")
        logger.info("Building the kernel (this may take a while)...")
        self.runner.run([*command, str(spec)], cwd=spec.parent)

    def collect(self, package: str, started: datetime) -> PackageSet:
        files = find_packages(
            [(self.topdir / "RPMS", True)],
            f"{package}-*.rpm",
            since=started.timestamp(),
        )
        if not files:
            raise ArtifactError(f"rpmbuild produced no {package} packages")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        copies = []
        for path in files:
            dest = self.output_dir / path.name
            shutil.copy2(path, dest)
            copies.append(dest)
        logger.info("Built packages copied to %s", self.output_dir)
        return PackageSet(
            version=self.project.version,
            release=package_release(package, copies) or self.project.version,
            built_at=started,
            files=copies,
        )

    def run(self) -> PackageSet:
        started = datetime.now().replace(microsecond=0)
        self.enable_source_repo()
        self.runner.run(["rpmdev-setuptree"])
        package = self.find_package()
        srpm = self.download(package)
        self.runner.run(["rpm", "-ivh", str(srpm)])
        spec = self.spec_file(package)
        self.patch_spec(spec)
        self.configure_sources()
        self.build(spec)
        return self.collect(package, started)
