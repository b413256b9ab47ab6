"""Placeholder substitution for pack templates and files.

Placeholders use the ``__NAME__`` form and are matched literally including
the double underscores. Values are keyed by the bare name (``NAME``).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from mcs_cli.core.constants import PLACEHOLDER_PATTERN

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(PLACEHOLDER_PATTERN)


def substitute(template: str, values: Mapping[str, str], emit_warnings: bool = True) -> str:
    """Replace ``__KEY__`` tokens with *values* and strip ``<!-- EDIT: -->`` lines.

    Unmapped tokens are left literal.
    """
    result = template
    for key, value in values.items():
        result = result.replace(f"__{key}__", value)

    kept = []
    for line in result.split("\n"):
        stripped = line.strip()
        if stripped.startswith("<!-- EDIT:") and stripped.endswith("-->"):
            continue
        kept.append(line)
    result = "\n".join(kept)

    if emit_warnings:
        unreplaced = find_unreplaced_placeholders(result)
        if unreplaced:
            logger.warning("Unreplaced placeholders found: %s", ", ".join(unreplaced))

    return result


def find_unreplaced_placeholders(text: str) -> list[str]:
    """Return the distinct ``__PLACEHOLDER__`` tokens in *text*, in first-seen order."""
    seen: list[str] = []
    for match in _PLACEHOLDER_RE.finditer(text):
        token = match.group(0)
        if token not in seen:
            seen.append(token)
    return seen


def strip_delimiters(placeholder: str) -> str:
    """``__FOO__`` -> ``FOO``."""
    return placeholder[2:-2]


def undeclared_keys(text: str, values: Mapping[str, str]) -> list[str]:
    """Return bare placeholder names in *text* that have no entry in *values*."""
    return [
        key
        for key in (strip_delimiters(token) for token in find_unreplaced_placeholders(text))
        if key not in values
    ]


__all__ = [
    "find_unreplaced_placeholders",
    "strip_delimiters",
    "substitute",
    "undeclared_keys",
]
