"""Project model — the parameters of one kernel build."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .blueprints import Blueprint
from .context import Context
from .errors import PreconditionError
from .kconfig import KernelConfig
from .specop import SpecOp

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_URL = "https://cdn.kernel.org/pub/linux/kernel/v{major}.x/linux-{version}.tar.xz"

DEFAULT_TOOLS = ["make", "gcc", "flex", "bison", "bc", "perl", "rpmbuild"]


def _single_block(value: Any) -> Any:
    """Unwrap an HCL nested block, which parses as a one-element list."""
    if isinstance(value, list):
        if len(value) != 1:
            raise ValueError(f"expected a single block, got {len(value)}")
        return value[0]
    return value


class RemoteTarget(BaseModel):
    """Connection parameters for the host that receives the kernel."""

    host: str
    user: str = "ec2-user"
    identity: Path | None = None
    port: int = Field(default=22, ge=1, le=65535)

    @field_validator("identity", mode="before")
    @classmethod
    def _expand_identity(cls, value: Any) -> Any:
        if isinstance(value, str) and not value:
            return None
        return Path(value).expanduser() if value is not None else None

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"

    def validate_identity(self) -> None:
        """Raise PreconditionError if the configured key file is missing."""
        if self.identity is not None and not self.identity.is_file():
            raise PreconditionError(f"SSH key not found: {self.identity}")


class Project(BaseModel):
    """A kernel build: version, locations, directives and deploy target."""

    model_config = {"arbitrary_types_allowed": True}

    name: str
    description: str = ""
    version: str
    build_dir: Path = Path("~/rt-kernel-build")
    base_config: Path | None = None
    source_url: str | None = None
    cores: int | None = Field(default=None, ge=1)
    package_target: str = "binrpm-pkg"
    package_pattern: str = "kernel-*.rpm"
    tools: list[str] = Field(default_factory=lambda: list(DEFAULT_TOOLS))
    packages: list[str] = Field(default_factory=list)
    srpm_packages: list[str] = Field(default_factory=lambda: ["kernel6.12", "kernel"])
    download_timeout: float = Field(default=60.0, gt=0)
    remote: RemoteTarget | None = None
    blueprints: list[Blueprint] = Field(default_factory=list)

    @field_validator("build_dir", "base_config", mode="after")
    @classmethod
    def _expand_path(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None

    @field_validator("remote", mode="before")
    @classmethod
    def _unwrap_remote(cls, value: Any) -> Any:
        return _single_block(value)

    @property
    def major(self) -> str:
        return self.version.split(".", 1)[0]

    @property
    def url(self) -> str:
        template = self.source_url or DEFAULT_SOURCE_URL
        return template.format(version=self.version, major=self.major)

    @property
    def archive_path(self) -> Path:
        return self.build_dir / self.url.rsplit("/", 1)[-1]

    @property
    def source_dir(self) -> Path:
        return self.build_dir / f"linux-{self.version}"

    def configure(self, config: KernelConfig, **kwargs) -> Context[KernelConfig]:
        """Apply all blueprints to a kernel config. kwargs are passed to Context."""
        ctx = Context(target=config, **kwargs)
        logger.info("Applying %d blueprint(s) for project '%s'", len(self.blueprints), self.name)
        for blueprint in self.blueprints:
            blueprint.build(ctx)
        return ctx

    def unmet(self, config: KernelConfig) -> list[SpecOp]:
        """Return the directives that do not hold in a kernel config."""
        ctx = Context(target=config, dry_run=True)
        return [op for blueprint in self.blueprints for op in blueprint.unmet(ctx)]
