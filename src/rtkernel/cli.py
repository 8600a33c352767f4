"""Command line interface."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from .build import PackageSet, build_packages, kernel_release, latest_packages, package_dirs, resolve_jobs
from .configure import apply_directives, configure_source
from .context import Context
from .deploy import ConfirmPolicy, install_packages, run_remote_build
from .environment import prepare_environment
from .errors import ArtifactError, ConfigurationError, RTKernelError
from .projects import Project, RemoteTarget
from .remote import Remote
from .runner import Runner
from .source import acquire_source
from .srpm import SourcePackageBuild
from .verify import LatencyBenchmark, SystemProbe, Verifier
from .workspace import Workspace

logger = logging.getLogger(__name__)

DEFAULT_FILE = Path("rtkernel.hcl")

SRPM_TOOLS = ["dnf", "rpm", "rpmbuild", "rpmdev-setuptree"]

_LEVEL_STYLES = {
    logging.DEBUG: ("DEBUG", "blue"),
    logging.INFO: ("INFO", "green"),
    logging.WARNING: ("WARNING", "yellow"),
    logging.ERROR: ("ERROR", "red"),
    logging.CRITICAL: ("ERROR", "red"),
}


class _LevelFormatter(logging.Formatter):
    """Prefix each record with a coloured [LEVEL] tag."""

    def format(self, record: logging.LogRecord) -> str:
        name, color = _LEVEL_STYLES.get(record.levelno, (record.levelname, "white"))
        return f"{click.style(f'[{name}]', fg=color)} {super().format(record)}"


def setup_logging(debug: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_LevelFormatter("%(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)


@dataclass
class State:
    """Objects shared by all subcommands."""

    workspace: Workspace
    project_name: str | None
    files: list[Path]
    debug: bool

    @property
    def project(self) -> Project:
        return self.workspace.select(self.project_name)

    def runner(self) -> Runner:
        return Runner()


class _Group(click.Group):
    """Turns pipeline errors into a logged message and an exit status."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except (ConfigurationError, ValidationError) as exc:
            logger.error("Configuration error: %s", exc)
            ctx.exit(1)
        except RTKernelError as exc:
            logger.error("%s", exc)
            ctx.exit(exc.exit_code)


def remote_options(func):
    """Options naming the remote host; each falls back to the project's remote block."""
    func = click.option("--identity", envvar="RTKERNEL_SSH_KEY", help="SSH private key file.")(func)
    func = click.option("--user", envvar="RTKERNEL_REMOTE_USER", help="Remote user name.")(func)
    func = click.option("--host", envvar="RTKERNEL_REMOTE_HOST", help="Remote host address.")(func)
    return func


def confirm_options(func):
    func = click.option("-y", "--yes", "assume_yes", is_flag=True, help="Answer yes to every confirmation.")(func)
    func = click.option(
        "--confirm",
        type=click.Choice([p.value for p in ConfirmPolicy]),
        default=ConfirmPolicy.ASK.value,
        envvar="RTKERNEL_CONFIRM",
        show_default=True,
        help="How confirmation prompts are answered.",
    )(func)
    return func


def _policy(confirm: str, assume_yes: bool) -> ConfirmPolicy:
    return ConfirmPolicy.YES if assume_yes else ConfirmPolicy(confirm)


def _reboot_policy(reboot: bool | None) -> ConfirmPolicy | None:
    if reboot is None:
        return None
    return ConfirmPolicy.YES if reboot else ConfirmPolicy.NO


def remote_target(project: Project, host: str | None, user: str | None, identity: str | None) -> RemoteTarget | None:
    """Merge command line remote settings over the project's remote block."""
    settings: dict[str, Any] = project.remote.model_dump() if project.remote else {}
    overrides = {"host": host, "user": user, "identity": identity}
    settings.update({key: value for key, value in overrides.items() if value})
    if not settings.get("host"):
        return None
    return RemoteTarget.model_validate(settings)


def _deploy(
    packages: PackageSet,
    target: RemoteTarget | None,
    runner: Runner,
    policy: ConfirmPolicy,
    reboot: ConfirmPolicy | None,
) -> None:
    if target is None:
        logger.info("No remote host configured; packages are in %s", packages.files[0].parent)
        logger.info("Set --host or RTKERNEL_REMOTE_HOST to install them remotely.")
        return
    install_packages(packages, Remote(target, runner), policy=policy, reboot=reboot)


@click.group(cls=_Group)
@click.option(
    "-f",
    "--file",
    "files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="RTKERNEL_FILE",
    help="Project file to load (repeatable).",
)
@click.option("-p", "--project", "project_name", help="Project to use (default: last one loaded).")
@click.option("--debug", is_flag=True, help="Enable debug logging and verbose build output.")
@click.pass_context
def cli(ctx: click.Context, files: tuple[Path, ...], project_name: str | None, debug: bool) -> None:
    """Build, install and verify PREEMPT_RT kernels."""
    setup_logging(debug)
    paths = list(files)
    if not paths and DEFAULT_FILE.is_file():
        paths.append(DEFAULT_FILE)

    workspace = Workspace.with_defaults()
    for path in paths:
        workspace.load(path)
    ctx.obj = State(workspace=workspace, project_name=project_name, files=paths, debug=debug)


@cli.command()
@click.option("--cores", type=click.IntRange(min=1), help="Parallel compile jobs (default: CPU count).")
@click.option("--menuconfig", is_flag=True, help="Run menuconfig before building.")
@click.option("--reboot/--no-reboot", default=None, help="Reboot the remote host after installing.")
@confirm_options
@remote_options
@click.pass_obj
def build(
    state: State,
    cores: int | None,
    menuconfig: bool,
    reboot: bool | None,
    confirm: str,
    assume_yes: bool,
    host: str | None,
    user: str | None,
    identity: str | None,
) -> None:
    """Download, configure, compile and package the kernel, then install it remotely."""
    project = state.project
    target = remote_target(project, host, user, identity)
    if target is not None:
        target.validate_identity()
    runner = state.runner()

    prepare_environment(project, Context(target=project, runner=runner))
    source_dir = acquire_source(Context(target=project, runner=runner))
    configure_source(project, source_dir, runner, menuconfig=menuconfig)
    jobs = resolve_jobs(cores if cores is not None else project.cores)
    packages = build_packages(project, source_dir, runner, jobs=jobs, verbose=state.debug)
    logger.info("Build process completed successfully!")

    _deploy(packages, target, runner, _policy(confirm, assume_yes), _reboot_policy(reboot))


@cli.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--dry-run", is_flag=True, help="Show changes without writing the file.")
@click.pass_obj
def configure(state: State, config: Path, dry_run: bool) -> None:
    """Apply the project's directives to an existing kernel config file."""
    unmet = apply_directives(state.project, config, dry_run=dry_run)
    if not unmet:
        logger.info("All directives are in effect")


@cli.command()
@click.argument("packages", nargs=-1, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--reboot/--no-reboot", default=None, help="Reboot the remote host after installing.")
@confirm_options
@remote_options
@click.pass_obj
def deploy(
    state: State,
    packages: tuple[Path, ...],
    reboot: bool | None,
    confirm: str,
    assume_yes: bool,
    host: str | None,
    user: str | None,
    identity: str | None,
) -> None:
    """Install already built kernel packages on the remote host."""
    project = state.project
    files = list(packages) or latest_packages(project, project.source_dir)
    if not files:
        searched = ", ".join(str(directory) for directory, _ in package_dirs(project, project.source_dir))
        raise ArtifactError(f"No packages matching '{project.package_pattern}' in {searched}")
    target = remote_target(project, host, user, identity)
    if target is None:
        raise click.UsageError("No remote host configured; use --host or RTKERNEL_REMOTE_HOST")

    package_set = PackageSet(
        version=project.version,
        release=kernel_release(project.source_dir, project.version),
        built_at=datetime.fromtimestamp(max(f.stat().st_mtime for f in files)),
        files=files,
    )
    install_packages(
        package_set,
        Remote(target, state.runner()),
        policy=_policy(confirm, assume_yes),
        reboot=_reboot_policy(reboot),
    )


@cli.command()
@click.option("--latency/--no-latency", default=True, help="Run cyclictest when available.")
@click.option("--expected-hz", type=click.IntRange(min=1), default=1000, show_default=True)
@click.pass_obj
def verify(state: State, latency: bool, expected_hz: int) -> None:
    """Check the running kernel for RT support and print a summary."""
    click.echo("=" * 45)
    click.echo("   RT Kernel Verification and Testing Tool")
    click.echo("=" * 45)
    report = Verifier(SystemProbe(), expected_hz=expected_hz).run()

    if latency:
        benchmark = LatencyBenchmark(state.runner())
        if benchmark.available():
            benchmark.run()
        else:
            logger.warning("rt-tests package not installed. Skipping latency tests.")
            logger.warning("Build it from https://git.kernel.org/pub/scm/utils/rt-tests/rt-tests.git")

    click.echo(report.render())
    if report.warnings:
        logger.warning("%d check(s) did not match the expected value", len(report.warnings))


@cli.command("srpm-build")
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path.home() / "rt-kernel-rpms",
    show_default=True,
    help="Directory receiving the built packages.",
)
@click.option("--reboot/--no-reboot", default=None, help="Reboot the remote host after installing.")
@confirm_options
@remote_options
@click.pass_obj
def srpm_build(
    state: State,
    output: Path,
    reboot: bool | None,
    confirm: str,
    assume_yes: bool,
    host: str | None,
    user: str | None,
    identity: str | None,
) -> None:
    """Rebuild the distribution kernel source RPM with RT enabled."""
    project = state.project
    target = remote_target(project, host, user, identity)
    runner = state.runner()
    tooling = project.model_copy(update={"tools": SRPM_TOOLS, "packages": []})
    prepare_environment(tooling, Context(target=tooling, runner=runner))
    packages = SourcePackageBuild(project, runner, output_dir=output, verbose=state.debug).run()
    logger.info("Kernel build completed successfully!")
    _deploy(packages, target, runner, _policy(confirm, assume_yes), _reboot_policy(reboot))


@cli.command("remote-build")
@confirm_options
@remote_options
@click.pass_obj
def remote_build(
    state: State,
    confirm: str,
    assume_yes: bool,
    host: str | None,
    user: str | None,
    identity: str | None,
) -> None:
    """Run the build on the remote host using its CPU count."""
    if not state.files:
        raise click.UsageError("remote-build needs a project file (-f FILE)")
    target = remote_target(state.project, host, user, identity)
    if target is None:
        raise click.UsageError("No remote host configured; use --host or RTKERNEL_REMOTE_HOST")
    run_remote_build(
        Remote(target, state.runner()),
        state.files[-1],
        policy=_policy(confirm, assume_yes),
        project=state.project_name,
    )


def main() -> None:
    cli()
