"""Namespace derivation from component identifiers."""

from __future__ import annotations

import pathlib
import re
from typing import Sequence

DEFAULT_ROLE_SUFFIXES = (
    "Component",
    "Page",
    "Dialog",
    "Modal",
    "View",
    "Container",
    "Widget",
)

_SEPARATOR_PATTERN = re.compile(r"[^A-Za-z0-9]+")
_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_WORD = re.compile(r"([A-Z]+)([A-Z][a-z])")


def strip_role_suffix(identifier: str, suffixes: Sequence[str]) -> str:
    """Remove the first matching role suffix, keeping at least one character."""

    for suffix in suffixes:
        if suffix and identifier.endswith(suffix) and len(identifier) > len(suffix):
            return identifier[: -len(suffix)]
    return identifier


def to_upper_snake(value: str) -> str:
    """Convert Pascal, camel, kebab or dotted text to UPPER_SNAKE_CASE."""

    value = _ACRONYM_WORD.sub(r"\1_\2", value)
    value = _LOWER_UPPER.sub(r"\1_\2", value)
    parts = [part for part in _SEPARATOR_PATTERN.split(value) if part]
    return "_".join(parts).upper()


def derive_namespace(
    identifier: str,
    suffixes: Sequence[str] = DEFAULT_ROLE_SUFFIXES,
) -> str:
    """Derive the catalog namespace for a component identifier.

    ``UserProfileComponent`` becomes ``USER_PROFILE``. The function is pure:
    the same identifier always maps to the same namespace, which lets a
    re-run reuse the keys created by earlier runs.
    """

    cleaned = identifier.strip()
    if not cleaned:
        raise ValueError("Component identifier must not be empty.")
    parts = [part for part in _SEPARATOR_PATTERN.split(cleaned) if part]
    pascal = "".join(part[:1].upper() + part[1:] for part in parts)
    namespace = to_upper_snake(strip_role_suffix(pascal, suffixes))
    if not namespace:
        raise ValueError(
            f"Component identifier '{identifier}' has no usable characters."
        )
    return namespace


def component_from_path(path: pathlib.Path) -> str:
    """Derive a component identifier from a template file name.

    ``user-profile.component.html`` becomes ``UserProfileComponent``.
    """

    name = path.name[: -len(path.suffix)] if path.suffix else path.name
    parts = [part for part in _SEPARATOR_PATTERN.split(name) if part]
    return "".join(part[:1].upper() + part[1:] for part in parts)
