"""Tests for rtkernel.configure."""

from __future__ import annotations

import logging
from pathlib import Path

from rtkernel.configure import apply_directives, configure_source
from rtkernel.kconfig import EXCLUSIVE_GROUPS, KernelConfig, OptionState
from rtkernel.workspace import Workspace

BASE = """\
CONFIG_PREEMPT_VOLUNTARY=y
CONFIG_HZ_250=y
CONFIG_HZ=250
CONFIG_ENA_ETHERNET=m
"""


def _project(tmp_path: Path, **kwargs):
    project = Workspace.with_defaults().select()
    return project.model_copy(update={"build_dir": tmp_path, **kwargs})


class TestApplyDirectives:
    def test_rewrites_config(self, tmp_path):
        path = tmp_path / "config-6.12"
        path.write_text(BASE)
        unmet = apply_directives(_project(tmp_path), path)
        assert unmet == []
        config = KernelConfig.load(path)
        assert config.get("PREEMPT_RT") == "y"
        assert config.get("HZ") == "1000"
        assert config.get("ENA_ETHERNET") == "y"

    def test_dry_run_leaves_file(self, tmp_path, caplog):
        path = tmp_path / "config-6.12"
        path.write_text(BASE)
        with caplog.at_level(logging.WARNING):
            unmet = apply_directives(_project(tmp_path), path, dry_run=True)
        assert path.read_text() == BASE
        assert unmet
        assert "Option did not take effect: CONFIG_PREEMPT_RT=y" in caplog.text

    def test_repairs_config_with_two_active_group_members(self, tmp_path):
        path = tmp_path / "config-6.12"
        path.write_text("CONFIG_PREEMPT_RT=y\nCONFIG_PREEMPT_VOLUNTARY=y\nCONFIG_HZ_1000=y\nCONFIG_HZ_250=y\n")
        unmet = apply_directives(_project(tmp_path), path)
        assert unmet == []
        config = KernelConfig.load(path)
        assert config.active_members(EXCLUSIVE_GROUPS[0]) == ["PREEMPT_RT"]
        assert config.active_members(EXCLUSIVE_GROUPS[1]) == ["HZ_1000"]
        assert config.state("PREEMPT_VOLUNTARY") is OptionState.DISABLED


class TestConfigureSource:
    def test_copies_base_and_runs_olddefconfig(self, tmp_path, runner):
        base = tmp_path / "config-base"
        base.write_text(BASE)
        source_dir = tmp_path / "linux-6.12.32"
        source_dir.mkdir()

        unmet = configure_source(_project(tmp_path, base_config=base), source_dir, runner)

        assert unmet == []
        assert runner.commands == [["make", "olddefconfig"], ["make", "olddefconfig"]]
        assert KernelConfig.load(source_dir / ".config").get("PREEMPT_RT") == "y"

    def test_missing_base_uses_defconfig(self, tmp_path, runner):
        source_dir = tmp_path / "linux"
        source_dir.mkdir()
        runner.on("make", "defconfig", handler=lambda cmd, cwd: (cwd / ".config").write_text(BASE) and None)

        configure_source(_project(tmp_path, base_config=tmp_path / "nope"), source_dir, runner)

        assert runner.commands[0] == ["make", "defconfig"]
        assert all(cwd == source_dir for cwd in runner.cwds)

    def test_menuconfig(self, tmp_path, runner):
        base = tmp_path / "config-base"
        base.write_text(BASE)
        source_dir = tmp_path / "linux"
        source_dir.mkdir()
        configure_source(_project(tmp_path, base_config=base), source_dir, runner, menuconfig=True)
        assert runner.commands[1] == ["make", "menuconfig"]

    def test_reports_options_dropped_by_olddefconfig(self, tmp_path, runner, caplog):
        base = tmp_path / "config-base"
        base.write_text(BASE)
        source_dir = tmp_path / "linux"
        source_dir.mkdir()
        calls = []

        def olddefconfig(cmd, cwd):
            # the second pass drops an option whose dependencies are unmet
            calls.append(cmd)
            if len(calls) == 2:
                config = KernelConfig.load(cwd / ".config")
                config.disable("RCU_BOOST")
                config.save(cwd / ".config")

        runner.on("make", "olddefconfig", handler=olddefconfig)
        with caplog.at_level(logging.WARNING):
            unmet = configure_source(_project(tmp_path, base_config=base), source_dir, runner)

        assert [repr(op.spec) for op in unmet] == ["CONFIG_RCU_BOOST=y"]
        assert "Option did not take effect: CONFIG_RCU_BOOST=y" in caplog.text
