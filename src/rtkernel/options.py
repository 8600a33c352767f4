"""Kernel option directives."""

from __future__ import annotations

from .context import Context
from .kconfig import KernelConfig, OptionState, option_key
from .spec import Specification, spec


def _enables(value: object) -> bool:
    return value is True or value == "y"


def _disables(value: object) -> bool:
    return value is False or value == "n"


@spec("option")
class ConfigOption(Specification[KernelConfig]):
    """Desired value of a single kernel option.

    ``value`` may be ``true``/``"y"`` (built in), ``"m"`` (module),
    ``false``/``"n"`` (disabled), an integer, or any other string, which is
    written quoted.
    """

    def __init__(self, name: str, value: bool | int | str = True) -> None:
        self.name = option_key(name)
        self.value = value

    @property
    def expected(self) -> str | None:
        """Raw value the option should have, or None when it should be disabled."""
        if _disables(self.value):
            return None
        if _enables(self.value):
            return "y"
        if self.value == "m":
            return "m"
        if isinstance(self.value, int):
            return str(self.value)
        escaped = str(self.value).replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'

    def _exclusive(self, config: KernelConfig) -> bool:
        # an enabled group member only counts once the rest of its group is off
        return self.expected not in ("y", "m") or not config.conflicts(self.name)

    def equals(self, ctx: Context[KernelConfig]) -> bool:
        if self.expected is None:
            return not ctx.target.is_active(self.name)
        return ctx.target.get(self.name) == self.expected and self._exclusive(ctx.target)

    def exists(self, ctx: Context[KernelConfig]) -> bool:
        if self.expected is None:
            return self.equals(ctx)
        return self.found(ctx) and self._exclusive(ctx.target)

    def found(self, ctx: Context[KernelConfig]) -> bool:
        return ctx.target.state(self.name) in (OptionState.ENABLED, OptionState.MODULE)

    def apply(self, ctx: Context[KernelConfig]) -> None:
        config = ctx.target
        if _disables(self.value):
            config.disable(self.name)
        elif _enables(self.value):
            config.enable(self.name)
        elif self.value == "m":
            config.module(self.name)
        elif isinstance(self.value, int):
            config.set_int(self.name, self.value)
        else:
            config.set_str(self.name, str(self.value))

    def remove(self, ctx: Context[KernelConfig]) -> None:
        ctx.target.disable(self.name)

    def __repr__(self) -> str:
        expected = self.expected
        return f"{self.name} is not set" if expected is None else f"{self.name}={expected}"
