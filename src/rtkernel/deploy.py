"""Transfer and install packages on a remote host."""

from __future__ import annotations

import logging
import shlex
from enum import StrEnum
from pathlib import Path

import click

from .build import PackageSet
from .errors import ArtifactError, CommandError
from .remote import Remote

logger = logging.getLogger(__name__)

GRUB_CONFIG = "/boot/grub2/grub.cfg"

# ssh exits with 255 when the rebooting host drops the connection
_SSH_DISCONNECTED = 255


class ConfirmPolicy(StrEnum):
    """How confirmation gates are answered."""

    ASK = "ask"
    YES = "yes"
    NO = "no"


def confirm(policy: ConfirmPolicy, question: str) -> bool:
    """Answer a yes/no question according to policy, prompting only for ASK."""
    if policy is ConfirmPolicy.ASK:
        return click.confirm(question, default=False)
    answer = policy is ConfirmPolicy.YES
    logger.debug("%s -> %s (policy %s)", question, "yes" if answer else "no", policy)
    return answer


def install_packages(
    packages: PackageSet,
    remote: Remote,
    *,
    policy: ConfirmPolicy = ConfirmPolicy.ASK,
    reboot: ConfirmPolicy | None = None,
) -> bool:
    """Copy, install and make the built kernel the default on a remote host.

    Returns False when the operator declines the install.  No step is rolled
    back if a later one fails.
    """
    if not packages:
        raise ArtifactError("No kernel packages to transfer")

    if not confirm(policy, f"Transfer and install {len(packages)} package(s) on {remote.host}?"):
        logger.info("Exiting without transferring packages.")
        logger.info(
            "To install manually, copy %s to %s and run: sudo dnf install -y ~/kernel*.rpm",
            ", ".join(packages.names),
            remote.host,
        )
        return False

    logger.info("Transferring packages to %s...", remote.host)
    remote.copy(packages.files)

    logger.info("Installing kernel on remote host...")
    remote_files = " ".join(f"~/{shlex.quote(name)}" for name in packages.names)
    remote.run(f"sudo dnf install -y {remote_files}")

    image = f"/boot/vmlinuz-{packages.release}"
    try:
        logger.info("Updating GRUB configuration on remote host...")
        remote.run(f"sudo grub2-mkconfig -o {GRUB_CONFIG}")
        logger.info("Setting %s as default on remote host...", image)
        remote.run(f"sudo grubby --set-default {image}")
    except CommandError:
        logger.error(
            "Packages are installed on %s but the bootloader was not updated; the install is not reverted",
            remote.host,
        )
        raise

    logger.info("Kernel installation completed successfully!")
    reboot_remote(remote, reboot_policy(policy, reboot))
    return True


def reboot_policy(policy: ConfirmPolicy, reboot: ConfirmPolicy | None = None) -> ConfirmPolicy:
    """Return the reboot gate: an explicit choice, else ask.

    An install confirmed up front with YES never reboots on its own.
    """
    if reboot is not None:
        return reboot
    return ConfirmPolicy.NO if policy is ConfirmPolicy.YES else ConfirmPolicy.ASK


def reboot_remote(remote: Remote, policy: ConfirmPolicy) -> bool:
    """Reboot the remote host if confirmed."""
    if not confirm(policy, f"Reboot {remote.host} now?"):
        logger.info("Skipping reboot. Remember to reboot the remote host to use the new kernel.")
        logger.info("To reboot, run: %s", shlex.join(remote.ssh_command("sudo reboot")))
        return False

    logger.info("Rebooting remote host...")
    result = remote.run("sudo reboot", check=False)
    if result.returncode not in (0, _SSH_DISCONNECTED):
        raise CommandError(remote.ssh_command("sudo reboot"), result.returncode)
    logger.info("Remote host is rebooting. Wait a few minutes before reconnecting.")
    return True


def run_remote_build(
    remote: Remote,
    project_file: Path,
    *,
    policy: ConfirmPolicy = ConfirmPolicy.ASK,
    project: str | None = None,
    command: str = "rtkernel",
) -> bool:
    """Copy a project file to the remote host and run the build there.

    The remote host must have this tool installed.  The build uses every
    processing unit the remote host reports.
    """
    logger.info("Copying %s to %s...", project_file.name, remote.host)
    remote.copy([project_file])

    remote_args = [command, "-f", f"~/{project_file.name}"]
    if project:
        remote_args += ["-p", project]

    if not confirm(policy, f"Execute the build on {remote.host}?"):
        logger.info("Remote build skipped.")
        manual = " ".join([*remote_args, "build"])
        logger.info("To run it manually: %s", shlex.join(remote.ssh_command(manual, tty=True)))
        return False

    cores = remote.nproc()
    remote_args += ["build", f"--cores={cores}"]
    logger.info("Executing build on %s...", remote.host)
    remote.run(" ".join(remote_args), tty=True)
    logger.info("Build completed on remote host.")
    return True
