"""Workspace — blueprints and projects collected from project files.

Blocks are stored as parsed and only turned into Blueprint and Project
objects on access, so a project file may use blueprints from files loaded
before or after it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, overload

from . import hcl
from .blueprints import Blueprint
from .errors import ConfigurationError
from .projects import Project
from .spec import Specification, _spec_registry
from .specop import Absent, Ensure, Present, SpecOp

logger = logging.getLogger(__name__)

# strategy keyword -> operation type, in execution order
STRATEGIES: dict[str, type[SpecOp]] = {
    "present": Present,
    "ensure": Ensure,
    "absent": Absent,
}

_BLOCK_KINDS = ("blueprint", "project")
_STRUCTURAL_KEYS = frozenset({"use", "include", *STRATEGIES})


def decode_directive(kind: str, attrs: dict[str, Any]) -> Specification:
    """Instantiate the specification registered under kind."""
    try:
        factory = _spec_registry[kind]
    except KeyError:
        raise ConfigurationError(f"Unknown spec type: '{kind}'") from None
    logger.debug("Decoding '%s' as %s", kind, factory.__name__)
    try:
        return factory(**attrs)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid attributes for '{kind}': {exc}") from exc


def directives(block: dict[str, Any]) -> list[SpecOp]:
    """Collect the strategy blocks of a blueprint or project body.

    python-hcl2 parses ``ensure "option" { ... }`` as
    ``{"ensure": [{"option": {...}}]}``.  File order is kept within each
    strategy.
    """
    ops: list[SpecOp] = []
    for keyword, strategy in STRATEGIES.items():
        for entry in block.get(keyword, []):
            ops.extend(strategy(decode_directive(kind, dict(attrs))) for kind, attrs in entry.items())
    return ops


class BlueprintResolver:
    """Expands blueprint includes, caching each blueprint once built."""

    def __init__(self, bodies: Mapping[str, dict[str, Any]]) -> None:
        self.bodies = bodies
        self.cache: dict[str, Blueprint] = {}

    def resolve(self, name: str, chain: tuple[str, ...] = ()) -> Blueprint:
        if name in self.cache:
            return self.cache[name]
        if name in chain:
            cycle = " -> ".join((*chain, name))
            raise ConfigurationError(f"Circular include detected: {cycle}")
        if name not in self.bodies:
            raise ConfigurationError(f"Unknown blueprint: '{name}'")

        body = self.bodies[name]
        ops: list[SpecOp] = []
        for included in body.get("include", []):
            logger.debug("Blueprint '%s' includes '%s'", name, included)
            ops += self.resolve(included, (*chain, name)).ops
        ops += directives(body)

        blueprint = Blueprint(name=name, description=body.get("description", ""), ops=ops)
        self.cache[name] = blueprint
        return blueprint

    def resolve_all(self) -> dict[str, Blueprint]:
        return {name: self.resolve(name) for name in self.bodies}


def build_project(name: str, body: dict[str, Any], blueprints: Mapping[str, Blueprint]) -> Project:
    """Create a Project from its block; inline directives run after the named blueprints."""
    selected: list[Blueprint] = []
    for bp_name in body.get("use", []):
        if bp_name not in blueprints:
            raise ConfigurationError(f"Project '{name}' references unknown blueprint: '{bp_name}'")
        selected.append(blueprints[bp_name])

    inline = directives(body)
    if inline:
        selected.append(Blueprint(name=f"{name}:inline", ops=inline))

    fields = {key: value for key, value in body.items() if key not in _STRUCTURAL_KEYS}
    logger.debug("Building project '%s' with %d blueprint(s)", name, len(selected))
    return Project(name=name, blueprints=selected, **fields)


class Workspace(Mapping[str, Project]):
    """Accumulates parsed project files and resolves projects on access."""

    def __init__(self) -> None:
        self._blocks: dict[str, dict[str, dict[str, Any]]] = {kind: {} for kind in _BLOCK_KINDS}

    def add(self, data: dict[str, Any]) -> None:
        """Register the blueprint and project blocks of one parsed file.

        Raises ConfigurationError if a blueprint or project name is already loaded.
        """
        for kind in _BLOCK_KINDS:
            known = self._blocks[kind]
            for labelled in data.get(kind, []):
                for label, body in labelled.items():
                    if label in known:
                        raise ConfigurationError(f"Duplicate {kind}: '{label}'")
                    logger.debug("Found %s '%s'", kind, label)
                    known[label] = body

    def load(self, path: str | Path, *, context: dict[str, Any] | None = None) -> None:
        """Parse an HCL file and add its blocks."""
        self.add(hcl.load(Path(path), context=context))

    @classmethod
    def with_defaults(cls) -> Workspace:
        """Return a workspace holding the packaged blueprints and project."""
        ws = cls()
        ws.add(hcl.load_defaults())
        return ws

    @property
    def blueprint_names(self) -> list[str]:
        return list(self._blocks["blueprint"])

    def blueprints(self) -> dict[str, Blueprint]:
        return BlueprintResolver(self._blocks["blueprint"]).resolve_all()

    @property
    def _projects(self) -> dict[str, dict[str, Any]]:
        return self._blocks["project"]

    def __getitem__(self, name: str) -> Project:
        if name not in self._projects:
            raise KeyError(name)
        return build_project(name, self._projects[name], self.blueprints())

    def __contains__(self, name: object) -> bool:
        return name in self._projects

    def __iter__(self) -> Iterator[str]:
        return iter(self._projects)

    def __len__(self) -> int:
        return len(self._projects)

    @overload
    def get(self, name: str) -> Project | None: ...
    @overload
    def get(self, name: str, default: Project) -> Project: ...
    @overload
    def get(self, name: str, default: None) -> Project | None: ...
    def get(self, name: str, default: Any = None) -> Project | None:
        return self[name] if name in self else default

    def select(self, name: str | None = None) -> Project:
        """Return the named project, or the most recently loaded one."""
        if name is None:
            if not self._projects:
                raise ConfigurationError("No project defined")
            name = next(reversed(self._projects))
        elif name not in self:
            raise ConfigurationError(f"Unknown project: '{name}'")
        return self[name]

    def __repr__(self) -> str:
        counts = ", ".join(f"{kind}s={len(self._blocks[kind])}" for kind in _BLOCK_KINDS)
        return f"Workspace({counts})"
