"""Tests for rtkernel.build."""

from __future__ import annotations

import os
import time
from datetime import datetime

import pytest

from rtkernel import build
from rtkernel.build import PackageSet, build_packages, collect_packages, find_packages, kernel_release, resolve_jobs
from rtkernel.errors import ArtifactError
from rtkernel.projects import Project


def _project(tmp_path) -> Project:
    return Project(name="rt", version="6.12.32", build_dir=tmp_path)


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


class TestResolveJobs:
    def test_explicit(self):
        assert resolve_jobs(6) == 6

    def test_detected(self, monkeypatch):
        monkeypatch.setattr(build.os, "cpu_count", lambda: 12)
        assert resolve_jobs() == 12

    def test_non_positive(self):
        with pytest.raises(ValueError):
            resolve_jobs(0)


class TestKernelRelease:
    def test_reads_release_file(self, tmp_path):
        (tmp_path / "include" / "config").mkdir(parents=True)
        (tmp_path / "include" / "config" / "kernel.release").write_text("6.12.32-rt\n")
        assert kernel_release(tmp_path, "6.12.32") == "6.12.32-rt"

    def test_default(self, tmp_path):
        assert kernel_release(tmp_path, "6.12.32") == "6.12.32"


class TestFindPackages:
    def test_ignores_stale_files(self, tmp_path):
        stale = tmp_path / "kernel-6.12.31.rpm"
        stale.write_text("old")
        old = time.time() - 3600
        os.utime(stale, (old, old))
        fresh = tmp_path / "kernel-6.12.32.rpm"
        fresh.write_text("new")

        found = find_packages([(tmp_path, False)], "kernel-*.rpm", since=time.time() - 60)
        assert found == [fresh.resolve()]

    def test_recursive_and_deduplicated(self, tmp_path):
        nested = tmp_path / "RPMS" / "x86_64"
        nested.mkdir(parents=True)
        rpm = nested / "kernel-6.12.32.rpm"
        rpm.write_text("pkg")
        locations = [(tmp_path / "RPMS", True), (tmp_path / "RPMS", True), (tmp_path / "missing", True)]
        assert find_packages(locations, "kernel-*.rpm", since=0) == [rpm.resolve()]


class TestLatestPackages:
    def test_finds_packages_in_source_tree(self, tmp_path):
        project = _project(tmp_path)
        rpms = project.source_dir / "rpmbuild" / "RPMS" / "x86_64"
        rpms.mkdir(parents=True)
        rpm = rpms / "kernel-6.12.32-1.x86_64.rpm"
        rpm.write_text("pkg")
        assert build.latest_packages(project, project.source_dir) == [rpm.resolve()]

    def test_first_location_wins(self, tmp_path):
        project = _project(tmp_path)
        top = tmp_path / "kernel-6.12.32.rpm"
        top.write_text("pkg")
        old = tmp_path / "home" / "rpmbuild" / "RPMS" / "x86_64"
        old.mkdir(parents=True)
        (old / "kernel-6.1.0.rpm").write_text("old")
        assert build.latest_packages(project, project.source_dir) == [top.resolve()]

    def test_nothing_built(self, tmp_path):
        project = _project(tmp_path)
        assert build.latest_packages(project, project.source_dir) == []


class TestBuildPackages:
    def test_build_then_package(self, tmp_path, runner):
        project = _project(tmp_path)
        source_dir = tmp_path / "linux-6.12.32"
        source_dir.mkdir()

        def package(cmd, cwd):
            rpms = cwd / "rpmbuild" / "RPMS" / "x86_64"
            rpms.mkdir(parents=True)
            (rpms / "kernel-6.12.32_rt-1.x86_64.rpm").write_text("rpm")
            (rpms / "kernel-headers-6.12.32_rt-1.x86_64.rpm").write_text("rpm")

        runner.on("make", "-j4", "binrpm-pkg", handler=package)
        packages = build_packages(project, source_dir, runner, jobs=4)

        assert runner.commands == [["make", "-j4"], ["make", "-j4", "binrpm-pkg"]]
        assert isinstance(packages, PackageSet)
        assert len(packages) == 2
        assert packages.names == ["kernel-6.12.32_rt-1.x86_64.rpm", "kernel-headers-6.12.32_rt-1.x86_64.rpm"]
        assert packages.release == "6.12.32"

    def test_verbose(self, tmp_path, runner):
        with pytest.raises(ArtifactError):
            build_packages(_project(tmp_path), tmp_path, runner, jobs=2, verbose=True)
        assert runner.commands[0] == ["make", "-j2", "V=1"]

    def test_success_without_artifacts_fails(self, tmp_path, runner):
        with pytest.raises(ArtifactError, match="Failed to create packages"):
            build_packages(_project(tmp_path), tmp_path, runner, jobs=1)

    def test_stale_artifacts_do_not_count(self, tmp_path):
        stale = tmp_path / "kernel-6.12.30.rpm"
        stale.write_text("old")
        old = time.time() - 3600
        os.utime(stale, (old, old))
        with pytest.raises(ArtifactError):
            collect_packages(_project(tmp_path), tmp_path, started=datetime.now().replace(microsecond=0))
