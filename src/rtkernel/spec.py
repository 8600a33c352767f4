"""Specification ABC and the registry of HCL directive kinds."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .context import Context

logger = logging.getLogger(__name__)

# directive kind, as written in project files -> specification class
_spec_registry: dict[str, type[Specification]] = {}


def spec(name: str):
    """Register a Specification subclass under a directive kind.

    ``@spec("option")`` makes ``ensure "option" { ... }`` blocks construct
    that class with the block's attributes as keyword arguments.
    """

    def decorator(cls: type[Specification]) -> type[Specification]:
        if not (isinstance(cls, type) and issubclass(cls, Specification)):
            raise TypeError(f"@spec({name!r}) must decorate a Specification subclass")
        if name in _spec_registry and _spec_registry[name] is not cls:
            logger.debug("Directive kind '%s' now decodes to %s", name, cls.__name__)
        _spec_registry[name] = cls
        return cls

    return decorator


class Specification[P](ABC):
    """A piece of desired state for a target of type P."""

    @abstractmethod
    def equals(self, ctx: Context[P]) -> bool:
        """Current state matches desired state."""

    def exists(self, ctx: Context[P]) -> bool:
        """Resource exists (defaults to equals)."""
        return self.equals(ctx)

    def found(self, ctx: Context[P]) -> bool:
        """Resource is there to remove, even if not as desired (defaults to exists)."""
        return self.exists(ctx)

    @abstractmethod
    def apply(self, ctx: Context[P]) -> None:
        """Create or update resource."""

    @abstractmethod
    def remove(self, ctx: Context[P]) -> None:
        """Delete resource."""

    def __repr__(self) -> str:
        return type(self).__name__
