"""SpecOp strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .context import Context
from .spec import Specification

logger = logging.getLogger(__name__)


class SpecOp[P](ABC):
    """Wraps a Specification with conditional execution logic."""

    def __init__(self, spec: Specification[P]) -> None:
        self.spec = spec

    @abstractmethod
    def __call__(self, ctx: Context[P]) -> None: ...

    @abstractmethod
    def satisfied(self, ctx: Context[P]) -> bool:
        """The outcome this operation aims for holds in the current state."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.spec!r})"


class Present[P](SpecOp[P]):
    """Apply only if resource doesn't exist."""

    def __call__(self, ctx: Context[P]) -> None:
        if self.spec.exists(ctx):
            logger.debug("Skipping %r; already exists", self.spec)
        elif ctx.dry_run:
            logger.info("[DRY RUN] Would apply %r", self.spec)
        else:
            logger.info("Applying %r", self.spec)
            self.spec.apply(ctx)

    def satisfied(self, ctx: Context[P]) -> bool:
        return self.spec.exists(ctx)


class Ensure[P](SpecOp[P]):
    """Apply if current state doesn't match."""

    def __call__(self, ctx: Context[P]) -> None:
        if self.spec.equals(ctx):
            logger.debug("Skipping %r; up to date", self.spec)
        elif ctx.dry_run:
            logger.info("[DRY RUN] Would apply %r", self.spec)
        else:
            logger.info("Applying %r", self.spec)
            self.spec.apply(ctx)

    def satisfied(self, ctx: Context[P]) -> bool:
        return self.spec.equals(ctx)


class Absent[P](SpecOp[P]):
    """Remove if resource exists."""

    def __call__(self, ctx: Context[P]) -> None:
        if self.spec.found(ctx):
            if ctx.dry_run:
                logger.info("[DRY RUN] Would remove %r", self.spec)
            else:
                logger.info("Removing %r", self.spec)
                self.spec.remove(ctx)
        else:
            logger.debug("Skipping removal of %r; not present", self.spec)

    def satisfied(self, ctx: Context[P]) -> bool:
        return not self.spec.found(ctx)
