"""Kernel configuration files — typed access to CONFIG_* lines.

A kernel configuration holds one line per option, either ``CONFIG_KEY=VALUE``
or ``# CONFIG_KEY is not set``.  A disabled option and an absent option are
written differently, so both states are kept distinct here.  Other comments
and blank lines are preserved in place.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from enum import StrEnum
from pathlib import Path

logger = logging.getLogger(__name__)

PREFIX = "CONFIG_"

_SET_PATTERN = re.compile(r"^(CONFIG_[A-Za-z0-9_]+)=(.*)$")
_UNSET_PATTERN = re.compile(r"^# (CONFIG_[A-Za-z0-9_]+) is not set$")

# Groups of options where at most one member may be active.
EXCLUSIVE_GROUPS: tuple[tuple[str, ...], ...] = (
    ("PREEMPT_NONE", "PREEMPT_VOLUNTARY", "PREEMPT", "PREEMPT_LAZY", "PREEMPT_RT"),
    ("HZ_100", "HZ_250", "HZ_300", "HZ_1000"),
)


class OptionState(StrEnum):
    """State of a single option within a configuration."""

    ENABLED = "enabled"
    MODULE = "module"
    DISABLED = "disabled"
    UNSET = "unset"


def option_key(name: str) -> str:
    """Return the canonical CONFIG_-prefixed key for an option name."""
    name = name.strip()
    return name if name.startswith(PREFIX) else f"{PREFIX}{name}"


def exclusive_group(name: str) -> tuple[str, ...]:
    """Return the mutual exclusion group containing an option, if any."""
    bare = option_key(name).removeprefix(PREFIX)
    for group in EXCLUSIVE_GROUPS:
        if bare in group:
            return group
    return ()


class KernelConfig:
    """An ordered kernel configuration with at most one line per option."""

    def __init__(self, lines: list[str] | None = None) -> None:
        self._lines: list[str] = []
        self._index: dict[str, int] = {}
        for line in lines or []:
            self._add_line(line)

    @classmethod
    def parse(cls, text: str) -> KernelConfig:
        return cls(text.splitlines())

    @classmethod
    def load(cls, path: Path) -> KernelConfig:
        logger.debug("Loading kernel config from %s", path)
        return cls.parse(path.read_text())

    def save(self, path: Path) -> None:
        logger.debug("Writing kernel config to %s", path)
        path.write_text(self.render())

    def render(self) -> str:
        return "\n".join(self._lines) + "\n" if self._lines else ""

    def _add_line(self, line: str) -> None:
        line = line.rstrip("\n")
        key = _line_key(line)
        if key is None:
            self._lines.append(line)
        elif key in self._index:
            # a repeated option overrides the earlier line in place
            self._lines[self._index[key]] = line
        else:
            self._index[key] = len(self._lines)
            self._lines.append(line)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and option_key(name) in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def get(self, name: str) -> str | None:
        """Return the raw value of an active option, or None."""
        key = option_key(name)
        if key not in self._index:
            return None
        match = _SET_PATTERN.match(self._lines[self._index[key]])
        return match.group(2) if match else None

    def state(self, name: str) -> OptionState:
        key = option_key(name)
        if key not in self._index:
            return OptionState.UNSET
        value = self.get(key)
        if value is None or value == "n":
            return OptionState.DISABLED
        if value == "m":
            return OptionState.MODULE
        return OptionState.ENABLED

    def is_active(self, name: str) -> bool:
        return self.state(name) in (OptionState.ENABLED, OptionState.MODULE)

    def _write(self, key: str, line: str) -> None:
        if key in self._index:
            self._lines[self._index[key]] = line
        else:
            self._index[key] = len(self._lines)
            self._lines.append(line)

    def _select(self, name: str) -> None:
        """Disable every other active member of the option's exclusion group."""
        bare = option_key(name).removeprefix(PREFIX)
        for member in self.conflicts(bare):
            logger.debug("Disabling %s%s in favor of %s", PREFIX, member, bare)
            self.disable(member)

    def enable(self, name: str) -> None:
        self._select(name)
        self._write(option_key(name), f"{option_key(name)}=y")

    def module(self, name: str) -> None:
        self._select(name)
        self._write(option_key(name), f"{option_key(name)}=m")

    def disable(self, name: str) -> None:
        key = option_key(name)
        self._write(key, f"# {key} is not set")

    def set_int(self, name: str, value: int) -> None:
        key = option_key(name)
        self._write(key, f"{key}={int(value)}")

    def set_str(self, name: str, value: str) -> None:
        key = option_key(name)
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        self._write(key, f'{key}="{escaped}"')

    def undefine(self, name: str) -> None:
        """Remove an option line entirely."""
        key = option_key(name)
        if key not in self._index:
            return
        del self._lines[self._index.pop(key)]
        self._index = {k: i for i, line in enumerate(self._lines) if (k := _line_key(line))}

    def active_members(self, group: tuple[str, ...]) -> list[str]:
        return [member for member in group if self.is_active(member)]

    def conflicts(self, name: str) -> list[str]:
        """Return the other active members of the option's exclusion group."""
        bare = option_key(name).removeprefix(PREFIX)
        return [member for member in self.active_members(exclusive_group(bare)) if member != bare]

    def __repr__(self) -> str:
        return f"KernelConfig(options={len(self)})"


def _line_key(line: str) -> str | None:
    match = _SET_PATTERN.match(line) or _UNSET_PATTERN.match(line)
    return match.group(1) if match else None
