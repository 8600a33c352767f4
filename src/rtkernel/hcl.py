"""HCL loading engine — parse project files into plain data.

A project file goes through three passes: Jinja2 rendering with the caller's
context, HCL2 parsing, then expansion of ``${env.NAME}``, ``${CWD}`` and
``${HOME}`` in every string value.
"""

from __future__ import annotations

import logging
import os
import re
from importlib import resources
from pathlib import Path
from typing import Any

import hcl2
import jinja2

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULTS_RESOURCE = "defaults.hcl"

_REFERENCE = re.compile(r"\$\{(env\.)?(\w+)\}")

_jinja = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


def loads(
    text: str,
    *,
    name: str = "<string>",
    context: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Render, parse and expand HCL text; errors become ConfigurationError naming the source."""
    try:
        rendered = _jinja.from_string(text).render(context or {})
    except jinja2.TemplateError as exc:
        raise ConfigurationError(f"{name}: {exc}") from exc
    try:
        data = hcl2.loads(rendered)
    except Exception as exc:
        raise ConfigurationError(f"{name}: invalid HCL: {exc}") from exc
    return expand(data, builtins())


def load(file: Path, *, context: dict[str, Any] | None = None) -> dict[str, Any]:
    logger.debug("Loading %s", file)
    return loads(file.read_text(), name=str(file), context=context)


def load_defaults() -> dict[str, Any]:
    """Parse the blueprints and project shipped with the package."""
    text = resources.files(__package__).joinpath(DEFAULTS_RESOURCE).read_text()
    return loads(text, name=DEFAULTS_RESOURCE)


def builtins() -> dict[str, str]:
    return {"CWD": os.getcwd(), "HOME": str(Path.home())}


def expand(value: Any, variables: dict[str, str]) -> Any:
    """Replace ${...} references in strings nested anywhere in value.

    Unset environment variables expand to an empty string with a warning;
    unknown names are left as written.
    """
    if isinstance(value, dict):
        return {key: expand(item, variables) for key, item in value.items()}
    if isinstance(value, list):
        return [expand(item, variables) for item in value]
    if not isinstance(value, str) or "${" not in value:
        return value

    def substitute(match: re.Match[str]) -> str:
        from_env, key = match.groups()
        if from_env:
            if key not in os.environ:
                logger.warning("Environment variable '%s' is not set", key)
            return os.environ.get(key, "")
        if key in variables:
            return variables[key]
        logger.warning("Unknown variable '%s'", key)
        return match.group(0)

    return _REFERENCE.sub(substitute, value)
