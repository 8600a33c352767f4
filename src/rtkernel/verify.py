"""Verification of a running RT kernel.

The RT check is a hard gate: the kernel release string or the active
configuration must show PREEMPT_RT, otherwise verification stops with a
PreconditionError.  Every later check only reports what it observed against
what was expected, and a mismatch produces a warning, never a failure.
"""

from __future__ import annotations

import logging
import platform
import re
import shutil
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .errors import PreconditionError
from .kconfig import KernelConfig
from .runner import Runner

logger = logging.getLogger(__name__)

RULE = "=" * 45

_RT_MARKER = re.compile(r"(?:^|[.\-_+])rt(?:\d+)?(?:[.\-_+]|$)", re.IGNORECASE)

TUNING_ADVICE = """\
For optimal RT performance, consider these tuning options:
1. Update GRUB with these parameters:
   isolcpus=1-3 nohz_full=1-3 rcu_nocbs=1-3 intel_pstate=disable nosoftlockup
2. Set CPU affinity for critical processes:
   taskset -c 1 your_rt_application
3. Set real-time priority for processes:
   chrt -f 99 your_rt_application
4. Disable unnecessary services:
   systemctl disable NetworkManager firewalld tuned"""


def has_rt_marker(release: str) -> bool:
    """True if a kernel release string carries an rt tag, e.g. 6.12.32-rt or 6.12.32-1.amzn2023.rt.x86_64."""
    return _RT_MARKER.search(release) is not None


@dataclass
class SystemProbe:
    """Reads kernel state from a filesystem root."""

    root: Path = Path("/")
    release: str = field(default_factory=platform.release)

    def _read(self, *parts: str) -> str | None:
        path = self.root.joinpath(*parts)
        try:
            return path.read_text()
        except OSError:
            return None

    @property
    def config_path(self) -> Path:
        return self.root / "boot" / f"config-{self.release}"

    def config(self) -> KernelConfig | None:
        text = self._read("boot", f"config-{self.release}")
        return KernelConfig.parse(text) if text is not None else None

    def cmdline(self) -> str:
        return (self._read("proc", "cmdline") or "").strip()

    def realtime(self) -> str | None:
        value = self._read("sys", "kernel", "realtime")
        return value.strip() if value is not None else None

    def sched_features(self) -> str | None:
        value = self._read("sys", "kernel", "debug", "sched_features")
        return value.strip() if value is not None else None

    def modules(self) -> set[str]:
        text = self._read("proc", "modules") or ""
        return {line.split()[0] for line in text.splitlines() if line.strip()}

    def has_module(self, name: str) -> bool:
        """True if a module is loaded or built into the running kernel."""
        return name in self.modules() or (self.root / "sys" / "module" / name).is_dir()


@dataclass
class Check:
    """One observed value compared against its expected value."""

    label: str
    observed: str
    expected: str
    ok: bool
    hint: str = ""

    def line(self) -> str:
        if self.ok:
            return f"{self.label}: YES"
        detail = f"current: {self.observed}" if self.observed else ""
        detail = "; ".join(part for part in (detail, self.hint) if part)
        return f"{self.label}: NO ({detail})" if detail else f"{self.label}: NO"


@dataclass
class Section:
    title: str
    checks: list[Check] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


@dataclass
class Report:
    """Verification results, rendered as a fixed section-by-section summary."""

    release: str
    rt_evidence: str
    sections: list[Section] = field(default_factory=list)

    @property
    def warnings(self) -> list[Check]:
        return [check for section in self.sections for check in section.checks if not check.ok]

    def render(self) -> str:
        lines = [RULE, "   RT Kernel Verification Summary", RULE, ""]
        lines.append(f"Kernel version: {self.release}")
        lines.append(f"RT kernel (by {self.rt_evidence}): YES")
        for section in self.sections:
            lines += ["", f"{section.title}:"]
            lines += section.notes
            lines += [check.line() for check in section.checks]
        lines += ["", TUNING_ADVICE, "", RULE]
        return "\n".join(lines)


def _option(config: KernelConfig | None, name: str) -> str:
    if config is None:
        return "Not found"
    value = config.get(name)
    if value is not None:
        return value
    return "not set" if name in config else "Not found"


def _listing(config: KernelConfig | None, *names: str) -> list[str]:
    return [f"{name}: {_option(config, name)}" for name in names]


class LoadGenerator:
    """Background CPU, IO and memory load, awaited after the measurement.

    Used as a context manager: the load starts on entry and is given time to
    settle before the body runs.  On normal exit it is awaited; if the body
    raises, it is terminated.
    """

    def __init__(
        self,
        runner: Runner,
        *,
        duration: int,
        settle: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.runner = runner
        self.duration = duration
        self.settle = settle
        self.sleep = sleep
        self.process: subprocess.Popen | None = None

    @property
    def command(self) -> list[str]:
        return [
            "sudo", "stress-ng",
            "--cpu", "2", "--io", "1", "--vm", "1", "--vm-bytes", "128M",
            "--timeout", f"{self.duration}s",
        ]  # fmt: skip

    def start(self) -> None:
        self.process = self.runner.spawn(self.command)
        self.sleep(self.settle)

    def wait(self) -> int | None:
        if self.process is None:
            return None
        return self.process.wait()

    def cancel(self) -> None:
        if self.process is not None and self.process.poll() is None:
            logger.warning("Stopping background load")
            self.process.terminate()
            self.process.wait()

    def __enter__(self) -> LoadGenerator:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.wait()
        else:
            self.cancel()


class LatencyBenchmark:
    """cyclictest runs, unloaded and under stress-ng load."""

    def __init__(
        self,
        runner: Runner,
        *,
        short: int = 10,
        long: int = 30,
        threads: int = 4,
        priority: int = 80,
        settle: float = 5.0,
        which: Callable[[str], str | None] = shutil.which,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.runner = runner
        self.short = short
        self.long = long
        self.threads = threads
        self.priority = priority
        self.settle = settle
        self.which = which
        self.sleep = sleep

    def available(self) -> bool:
        return self.which("cyclictest") is not None

    def cyclictest(self, loops: int, duration: int) -> Sequence[str]:
        return [
            "sudo", "cyclictest",
            "-l", str(loops), "-m", "-n",
            "-p", str(self.priority), "-t", str(self.threads),
            "-D", str(duration),
        ]  # fmt: skip

    def run(self) -> None:
        logger.info("Running basic latency test (duration: %d seconds)...", self.short)
        self.runner.run(self.cyclictest(100000, self.short))

        logger.info("Running extended latency test with system load (duration: %d seconds)...", self.long)
        if self.which("stress-ng") is None:
            logger.warning("stress-ng not installed. Running cyclictest without background load.")
            self.runner.run(self.cyclictest(1000000, self.long))
            return

        load = LoadGenerator(
            self.runner,
            duration=self.long + int(self.settle),
            settle=self.settle,
            sleep=self.sleep,
        )
        with load:
            self.runner.run(self.cyclictest(1000000, self.long))


class Verifier:
    """Checks a running kernel and builds the verification report."""

    def __init__(self, probe: SystemProbe, *, expected_hz: int = 1000) -> None:
        self.probe = probe
        self.expected_hz = expected_hz

    def rt_evidence(self, config: KernelConfig | None) -> str:
        """Return what confirms an RT kernel; raise PreconditionError if nothing does."""
        release = self.probe.release
        if has_rt_marker(release):
            logger.info("RT kernel detected by version string: %s", release)
            return "version string"
        if config is not None and config.get("PREEMPT_RT") == "y":
            logger.info("RT kernel detected by config: PREEMPT_RT is enabled")
            return "config"
        if config is None:
            detail = f"Kernel config {self.probe.config_path} not found."
        else:
            detail = "PREEMPT_RT not found in kernel config."
        raise PreconditionError(
            f"RT kernel not detected. Current kernel: {release}. {detail} "
            "Please reboot into the RT kernel before running this check."
        )

    def _expect(self, config: KernelConfig | None, label: str, name: str, hint: str, want: str = "y") -> Check:
        observed = _option(config, name)
        check = Check(label=label, observed=observed, expected=want, ok=observed == want, hint=hint)
        if not check.ok:
            logger.warning("%s: expected %s=%s, found %s", label, name, want, observed)
        return check

    def _module(self, label: str, name: str, hint: str) -> Check:
        loaded = self.probe.has_module(name)
        if not loaded:
            logger.warning("%s: Not loaded - %s", label, hint)
        return Check(label=label, observed="Loaded" if loaded else "Not loaded", expected="Loaded", ok=loaded, hint=hint)

    def run(self) -> Report:
        probe = self.probe
        config = probe.config()
        report = Report(release=probe.release, rt_evidence=self.rt_evidence(config))

        kernel = Section("Kernel")
        kernel.notes.append(f"Kernel command line: {probe.cmdline() or 'unavailable'}")
        realtime = probe.realtime()
        kernel.notes.append(f"/sys/kernel/realtime: {realtime if realtime is not None else 'not present'}")
        if probe.sched_features() is None:
            kernel.notes.append("Scheduler features: unavailable (debugfs not mounted?)")
        kernel.notes += _listing(config, "PREEMPT")

        hz = _option(config, "HZ")
        timer = Check(
            label=f"Timer frequency set to {self.expected_hz} Hz",
            observed=f"{hz} Hz",
            expected=f"{self.expected_hz} Hz",
            ok=hz == str(self.expected_hz),
        )
        if not timer.ok:
            logger.warning("Timer frequency is %s Hz, expected %d Hz", hz, self.expected_hz)
        kernel.checks.append(timer)
        kernel.checks.append(self._expect(config, "PREEMPT_RT enabled", "PREEMPT_RT", "built without full preemption"))
        kernel.checks.append(self._expect(config, "High resolution timers", "HIGH_RES_TIMERS", ""))
        kernel.checks.append(self._expect(config, "Full dynticks", "NO_HZ_FULL", "needed for nohz_full="))
        report.sections.append(kernel)

        aws = Section("AWS EC2 Compatibility")
        aws.notes += _listing(config, "ENA", "BLK_DEV_NVME", "HYPERV_GUEST")
        aws.checks += [
            self._expect(config, "ENA Ethernet support", "ENA_ETHERNET", "may cause network issues"),
            self._expect(config, "NVMe storage support", "BLK_DEV_NVME", "may cause storage issues"),
            self._expect(config, "KVM guest support", "KVM_GUEST", "may cause virtualization issues"),
            self._module("ENA driver loaded", "ena", "network may not function properly"),
            self._module("NVMe driver loaded", "nvme", "this may cause storage issues"),
        ]
        report.sections.append(aws)

        rcu = Section("RCU Configuration for Real-time Performance")
        rcu.notes += _listing(config, "RCU_BOOST_DELAY", "RCU_NOCB_CPU_CB_BOOST")
        rcu.checks += [
            self._expect(config, "RCU priority boosting", "RCU_BOOST", "may cause priority inversion issues"),
            self._expect(config, "RCU callback offloading", "RCU_NOCB_CPU", "may cause latency spikes"),
        ]
        report.sections.append(rcu)
        return report
