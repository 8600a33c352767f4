"""Configuration mutation — base config, directives, and a verification pass."""

from __future__ import annotations

import logging
import platform
import shutil
from pathlib import Path

from .kconfig import EXCLUSIVE_GROUPS, KernelConfig
from .projects import Project
from .runner import Runner
from .specop import SpecOp

logger = logging.getLogger(__name__)


def running_config() -> Path:
    return Path("/boot") / f"config-{platform.release()}"


def _copy_base(base: Path, dest: Path, runner: Runner) -> None:
    try:
        shutil.copyfile(base, dest)
    except PermissionError:
        # /boot/config-* is often readable by root only
        logger.debug("%s is not readable; retrying with sudo", base)
        dest.write_text(runner.run(["sudo", "cat", str(base)], capture=True).stdout)


def report_unmet(project: Project, config: KernelConfig) -> list[SpecOp]:
    """Warn about every directive that does not hold in config."""
    unmet = project.unmet(config)
    for op in unmet:
        logger.warning("Option did not take effect: %r", op.spec)
    for group in EXCLUSIVE_GROUPS:
        active = config.active_members(group)
        if len(active) > 1:
            logger.warning("Conflicting options enabled: %s", ", ".join(active))
    return unmet


def apply_directives(project: Project, path: Path, *, dry_run: bool = False) -> list[SpecOp]:
    """Apply the project's directives to a config file and verify the result.

    Returns the directives that did not take effect.  With dry_run the
    changes are only logged and the file is left untouched.
    """
    config = KernelConfig.load(path)
    project.configure(config, dry_run=dry_run)
    if not dry_run:
        config.save(path)
    return report_unmet(project, config)


def configure_source(
    project: Project,
    source_dir: Path,
    runner: Runner,
    *,
    menuconfig: bool = False,
) -> list[SpecOp]:
    """Create .config in a kernel source tree from the base config and directives.

    Returns the directives that did not take effect once the kernel's own
    olddefconfig pass has resolved dependencies.
    """
    dot_config = source_dir / ".config"
    base = project.base_config or running_config()

    if base.is_file():
        logger.info("Using %s as base config", base)
        _copy_base(base, dot_config, runner)
    else:
        logger.warning("Base config %s not found; using default config", base)
        runner.run(["make", "defconfig"], cwd=source_dir)

    runner.run(["make", "olddefconfig"], cwd=source_dir)

    config = KernelConfig.load(dot_config)
    project.configure(config, runner=runner)
    config.save(dot_config)

    if menuconfig:
        logger.info("Running menuconfig for manual configuration...")
        runner.run(["make", "menuconfig"], cwd=source_dir)

    runner.run(["make", "olddefconfig"], cwd=source_dir)
    return report_unmet(project, KernelConfig.load(dot_config))
