"""Tests for rtkernel.options."""

from __future__ import annotations

import pytest

from rtkernel.context import Context
from rtkernel.kconfig import EXCLUSIVE_GROUPS, KernelConfig, OptionState
from rtkernel.options import ConfigOption
from rtkernel.spec import _spec_registry
from rtkernel.specop import Absent, Ensure, Present


def _ctx(text: str = "", **kwargs) -> Context[KernelConfig]:
    return Context(target=KernelConfig.parse(text), **kwargs)


class TestConfigOption:
    def test_registered_as_option(self):
        assert _spec_registry["option"] is ConfigOption

    def test_name_is_prefixed(self):
        assert ConfigOption("PREEMPT_RT").name == "CONFIG_PREEMPT_RT"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (True, "y"),
            ("y", "y"),
            ("m", "m"),
            (1000, "1000"),
            ("-rt", '"-rt"'),
            (False, None),
            ("n", None),
        ],
    )
    def test_expected(self, value, expected):
        assert ConfigOption("X", value).expected == expected

    def test_integer_one_is_not_a_boolean(self):
        assert ConfigOption("NR_CPUS", 1).expected == "1"

    def test_repr(self):
        assert repr(ConfigOption("HZ", 1000)) == "CONFIG_HZ=1000"
        assert repr(ConfigOption("DEBUG", False)) == "CONFIG_DEBUG is not set"


class TestOptionStrategies:
    def test_ensure_enables(self):
        ctx = _ctx("# CONFIG_PREEMPT_RT is not set\n")
        Ensure(ConfigOption("PREEMPT_RT"))(ctx)
        assert ctx.target.state("PREEMPT_RT") is OptionState.ENABLED

    def test_ensure_module_upgrades_to_builtin(self):
        ctx = _ctx("CONFIG_ENA_ETHERNET=m\n")
        op = Ensure(ConfigOption("ENA_ETHERNET"))
        assert not op.satisfied(ctx)
        op(ctx)
        assert ctx.target.get("ENA_ETHERNET") == "y"

    def test_present_accepts_module(self):
        ctx = _ctx("CONFIG_ENA_ETHERNET=m\n")
        Present(ConfigOption("ENA_ETHERNET"))(ctx)
        assert ctx.target.get("ENA_ETHERNET") == "m"

    def test_ensure_integer(self):
        ctx = _ctx("CONFIG_HZ=250\n")
        Ensure(ConfigOption("HZ", 1000))(ctx)
        assert ctx.target.get("HZ") == "1000"

    def test_ensure_string(self):
        ctx = _ctx()
        Ensure(ConfigOption("LOCALVERSION", "-rt"))(ctx)
        assert ctx.target.get("LOCALVERSION") == '"-rt"'

    def test_ensure_disabled(self):
        ctx = _ctx("CONFIG_DEBUG_PREEMPT=y\n")
        op = Ensure(ConfigOption("DEBUG_PREEMPT", False))
        op(ctx)
        assert ctx.target.state("DEBUG_PREEMPT") is OptionState.DISABLED
        assert op.satisfied(ctx)

    def test_absent_disables(self):
        ctx = _ctx("CONFIG_DEBUG_PREEMPT=y\n")
        Absent(ConfigOption("DEBUG_PREEMPT"))(ctx)
        assert ctx.target.render() == "# CONFIG_DEBUG_PREEMPT is not set\n"

    def test_absent_leaves_unset_option_alone(self):
        ctx = _ctx()
        Absent(ConfigOption("DEBUG_PREEMPT"))(ctx)
        assert len(ctx.target) == 0

    def test_dry_run_leaves_config_unchanged(self):
        ctx = _ctx("CONFIG_PREEMPT_VOLUNTARY=y\n", dry_run=True)
        Ensure(ConfigOption("PREEMPT_RT"))(ctx)
        assert ctx.target.render() == "CONFIG_PREEMPT_VOLUNTARY=y\n"

    def test_applying_twice_is_idempotent(self):
        ctx = _ctx("CONFIG_PREEMPT_VOLUNTARY=y\n")
        op = Ensure(ConfigOption("PREEMPT_RT"))
        op(ctx)
        first = ctx.target.render()
        op(ctx)
        assert ctx.target.render() == first

    def test_present_disabled_turns_option_off(self):
        ctx = _ctx("CONFIG_DEBUG_PREEMPT=y\n")
        op = Present(ConfigOption("DEBUG_PREEMPT", False))
        assert not op.satisfied(ctx)
        op(ctx)
        assert ctx.target.state("DEBUG_PREEMPT") is OptionState.DISABLED
        assert op.satisfied(ctx)

    def test_present_disabled_skips_unset_option(self):
        ctx = _ctx()
        Present(ConfigOption("DEBUG_PREEMPT", False))(ctx)
        assert len(ctx.target) == 0


CONFLICTING = """\
CONFIG_PREEMPT_RT=y
CONFIG_PREEMPT_VOLUNTARY=y
CONFIG_HZ_1000=y
CONFIG_HZ_250=y
"""


class TestExclusionGroups:
    def test_ensure_clears_other_active_members(self):
        ctx = _ctx(CONFLICTING)
        op = Ensure(ConfigOption("PREEMPT_RT"))
        assert not op.satisfied(ctx)
        op(ctx)
        assert ctx.target.active_members(EXCLUSIVE_GROUPS[0]) == ["PREEMPT_RT"]
        assert ctx.target.state("PREEMPT_VOLUNTARY") is OptionState.DISABLED
        assert op.satisfied(ctx)

    def test_present_clears_other_active_members(self):
        ctx = _ctx(CONFLICTING)
        op = Present(ConfigOption("HZ_1000"))
        assert not op.satisfied(ctx)
        op(ctx)
        assert ctx.target.active_members(EXCLUSIVE_GROUPS[1]) == ["HZ_1000"]
        assert op.satisfied(ctx)

    def test_module_member_counts_as_conflict(self):
        ctx = _ctx("CONFIG_HZ_100=m\nCONFIG_HZ_1000=y\n")
        assert not Ensure(ConfigOption("HZ_1000")).satisfied(ctx)

    def test_absent_removes_conflicting_member(self):
        ctx = _ctx(CONFLICTING)
        op = Absent(ConfigOption("PREEMPT_VOLUNTARY"))
        assert not op.satisfied(ctx)
        op(ctx)
        assert ctx.target.active_members(EXCLUSIVE_GROUPS[0]) == ["PREEMPT_RT"]
        assert op.satisfied(ctx)

    def test_disabled_member_is_not_a_conflict(self):
        ctx = _ctx("CONFIG_PREEMPT_RT=y\n# CONFIG_PREEMPT_VOLUNTARY is not set\n")
        op = Ensure(ConfigOption("PREEMPT_RT"))
        assert op.satisfied(ctx)
        op(ctx)
        assert ctx.target.render() == "CONFIG_PREEMPT_RT=y\n# CONFIG_PREEMPT_VOLUNTARY is not set\n"
