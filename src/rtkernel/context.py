"""Runtime execution context for directives and pipeline steps."""

from __future__ import annotations

from .runner import Runner


class Context[P]:
    """Runtime state passed to every specification."""

    def __init__(self, target: P, *, dry_run: bool = False, runner: Runner | None = None) -> None:
        self.target = target
        self.dry_run = dry_run
        self.runner = runner if runner is not None else Runner(dry_run=dry_run)
