"""Packaged template sets.

Each set lives in its own directory holding a ``set.yaml`` declaration that
lists the templates (name, file, format) and the consistency constraints that
bind them.
"""

from __future__ import annotations

import logging
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml

from ..core.models import TemplateSet

logger = logging.getLogger(__name__)

DECLARATION_FILE = "set.yaml"


def _package_root() -> Traversable:
    return resources.files(__name__)


def available_template_sets(root: Path | Traversable | None = None) -> list[str]:
    """Return the names of the template sets found under ``root``."""
    base = root if root is not None else _package_root()
    return sorted(
        entry.name
        for entry in base.iterdir()
        if entry.is_dir() and entry.joinpath(DECLARATION_FILE).is_file()
    )


def load_template_set(
    name: str, root: Path | Traversable | None = None
) -> TemplateSet:
    """Load a template set declaration and its template files.

    Args:
        name: Template set directory name
        root: Directory holding template sets; defaults to the packaged ones

    Returns:
        Validated template set

    Raises:
        FileNotFoundError: If the set or one of its template files is missing
        yaml.YAMLError: If the declaration is not valid YAML
        pydantic.ValidationError: If the declaration is malformed
    """
    base = root if root is not None else _package_root()
    directory = base.joinpath(name)
    declaration_file = directory.joinpath(DECLARATION_FILE)
    if not declaration_file.is_file():
        raise FileNotFoundError(f"unknown template set: {name}")

    declaration: dict[str, Any] = yaml.safe_load(
        declaration_file.read_text(encoding="utf-8")
    ) or {}
    declaration.setdefault("name", name)

    templates = []
    for entry in declaration.get("templates") or []:
        entry = dict(entry)
        file_name = entry.pop("file", None) or entry.get("name")
        source = directory.joinpath(file_name)
        if not source.is_file():
            raise FileNotFoundError(f"template {file_name!r} missing from set {name}")
        entry["text"] = source.read_text(encoding="utf-8")
        templates.append(entry)
    declaration["templates"] = templates

    template_set = TemplateSet.model_validate(declaration)
    logger.debug(
        f"Loaded template set {template_set.name}: "
        f"{len(template_set.templates)} template(s), "
        f"{len(template_set.constraints)} constraint(s)"
    )
    return template_set


__all__ = ["available_template_sets", "load_template_set"]
