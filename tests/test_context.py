"""Tests for rtkernel.context."""

from __future__ import annotations

from rtkernel.context import Context
from rtkernel.kconfig import KernelConfig
from rtkernel.runner import Runner


class TestContext:
    def test_create_with_target(self):
        config = KernelConfig()
        ctx = Context(target=config)
        assert ctx.target is config

    def test_dry_run_defaults_false(self):
        ctx = Context(target=KernelConfig())
        assert ctx.dry_run is False
        assert ctx.runner.dry_run is False

    def test_dry_run_propagates_to_default_runner(self):
        ctx = Context(target=KernelConfig(), dry_run=True)
        assert ctx.dry_run is True
        assert ctx.runner.dry_run is True

    def test_explicit_runner(self, runner):
        ctx = Context(target=KernelConfig(), runner=runner)
        assert ctx.runner is runner
        assert isinstance(ctx.runner, Runner)
