"""Section-marker composition for generated documentation files.

A composed file is user-owned text interleaved with generated sections::

    <!-- mcs:begin <id> v<version> -->
    ...generated content...
    <!-- mcs:end <id> -->

Everything outside a marker pair is user content and survives every
regeneration unchanged. A section whose begin marker has no matching end
marker is frozen: any operation targeting it returns the input unchanged
rather than risk dropping everything after the broken marker.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from mcs_cli.core.constants import CORE_SECTION, MARKER_BEGIN_PREFIX, MARKER_END_PREFIX, MARKER_SUFFIX
from mcs_cli.packs.models import TemplateContribution
from mcs_cli.templates.engine import substitute

logger = logging.getLogger(__name__)


def _current_version() -> str:
    from mcs_cli import __version__

    return __version__


@dataclass(frozen=True)
class Section:
    identifier: str
    version: str
    content: str


@dataclass
class ComposeResult:
    content: str
    warnings: list[str] = field(default_factory=list)


# ----------------------------------------------------------------------
# Markers
# ----------------------------------------------------------------------


def begin_marker(identifier: str, version: str) -> str:
    return f"{MARKER_BEGIN_PREFIX}{identifier} v{version}{MARKER_SUFFIX}"


def end_marker(identifier: str) -> str:
    return f"{MARKER_END_PREFIX}{identifier}{MARKER_SUFFIX}"


def _parse_begin(line: str) -> tuple[str, str] | None:
    stripped = line.strip()
    if not (stripped.startswith(MARKER_BEGIN_PREFIX) and stripped.endswith(MARKER_SUFFIX)):
        return None
    inner = stripped[len(MARKER_BEGIN_PREFIX) : -len(MARKER_SUFFIX)]
    identifier, sep, version = inner.partition(" ")
    if not sep or not identifier or not version.startswith("v"):
        return None
    return identifier, version[1:]


def _parse_end(line: str) -> str | None:
    stripped = line.strip()
    if not (stripped.startswith(MARKER_END_PREFIX) and stripped.endswith(MARKER_SUFFIX)):
        return None
    identifier = stripped[len(MARKER_END_PREFIX) : -len(MARKER_SUFFIX)]
    return identifier or None


def _wrap(identifier: str, version: str, content: str) -> list[str]:
    return [begin_marker(identifier, version), content, end_marker(identifier)]


# ----------------------------------------------------------------------
# Composition
# ----------------------------------------------------------------------


def compose(
    core_content: str | None,
    contributions: Sequence[TemplateContribution] = (),
    values: Mapping[str, str] | None = None,
    version: str | None = None,
    emit_warnings: bool = True,
) -> str:
    """Build a file from a core section plus one section per contribution.

    Passing ``None`` as *core_content* omits the core section.
    """
    values = values or {}
    version = version or _current_version()
    parts: list[str] = []
    if core_content is not None:
        parts.extend(_wrap(CORE_SECTION, version, substitute(core_content, values, emit_warnings)))
    for contribution in contributions:
        if parts:
            parts.append("")
        rendered = substitute(contribution.template_content, values, emit_warnings)
        parts.extend(_wrap(contribution.section_identifier, version, rendered))
    return "\n".join(parts)


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------


def parse_sections(content: str) -> list[Section]:
    """Return the well-formed sections of *content* in file order."""
    sections: list[Section] = []
    current: tuple[str, str] | None = None
    body: list[str] = []
    for line in content.split("\n"):
        begin = _parse_begin(line)
        if begin is not None:
            current = begin
            body = []
            continue
        end = _parse_end(line)
        if end is not None and current is not None and current[0] == end:
            sections.append(Section(identifier=current[0], version=current[1], content="\n".join(body)))
            current = None
            body = []
        elif current is not None:
            body.append(line)
    return sections


def extract_user_content(content: str) -> str:
    """Return the lines of *content* that lie outside every marker pair."""
    user_lines: list[str] = []
    in_section = False
    for line in content.split("\n"):
        if _parse_begin(line) is not None:
            in_section = True
        elif _parse_end(line) is not None:
            in_section = False
        elif not in_section:
            user_lines.append(line)
    return "\n".join(user_lines)


def unpaired_sections(content: str) -> list[str]:
    """Identifiers whose begin marker has no matching end marker."""
    open_sections: list[str] = []
    unpaired: list[str] = []
    for line in content.split("\n"):
        begin = _parse_begin(line)
        if begin is not None:
            if open_sections:
                unpaired.append(open_sections[-1])
            open_sections.append(begin[0])
            continue
        end = _parse_end(line)
        if end is not None and open_sections and open_sections[-1] == end:
            open_sections.pop()
    unpaired.extend(open_sections)
    return unpaired


# ----------------------------------------------------------------------
# Update
# ----------------------------------------------------------------------


def replace_section(content: str, section_identifier: str, new_content: str, new_version: str) -> str:
    """Replace one section's body and version stamp in place.

    A missing section is appended after a blank separator line. A section
    with an unpaired begin marker leaves *content* unchanged.
    """
    if section_identifier in unpaired_sections(content):
        return content

    result: list[str] = []
    skipping = False
    replaced = False
    for line in content.split("\n"):
        begin = _parse_begin(line)
        if begin is not None and begin[0] == section_identifier:
            result.extend([begin_marker(section_identifier, new_version), new_content])
            skipping = True
            replaced = True
            continue
        if skipping and _parse_end(line) == section_identifier:
            result.append(end_marker(section_identifier))
            skipping = False
            continue
        if not skipping:
            result.append(line)

    if not replaced:
        result.append("")
        result.extend(_wrap(section_identifier, new_version, new_content))
    return "\n".join(result)


def remove_section(content: str, section_identifier: str) -> str:
    """Strip a section and the blank separator line before it.

    Unchanged when the section is absent or its begin marker is unpaired.
    """
    if section_identifier in unpaired_sections(content):
        return content

    result: list[str] = []
    skipping = False
    for line in content.split("\n"):
        begin = _parse_begin(line)
        if begin is not None and begin[0] == section_identifier:
            if result and result[-1] == "":
                result.pop()
            skipping = True
            continue
        if skipping:
            if _parse_end(line) == section_identifier:
                skipping = False
            continue
        result.append(line)
    return "\n".join(result)


def compose_or_update(
    existing: str | None,
    contributions: Sequence[TemplateContribution],
    values: Mapping[str, str] | None = None,
    version: str | None = None,
    emit_warnings: bool = True,
) -> ComposeResult:
    """Write *contributions* into *existing*, preserving user content.

    A contribution with identifier ``core`` becomes the core section. Without
    existing markers the file is composed fresh and any prior text is kept
    after the generated sections. Otherwise each contribution is replaced in
    place or appended, in order.
    """
    values = values or {}
    version = version or _current_version()
    core = next((c for c in contributions if c.section_identifier == CORE_SECTION), None)
    others = [c for c in contributions if c.section_identifier != CORE_SECTION]
    warnings: list[str] = []

    has_markers = existing is not None and (bool(parse_sections(existing)) or bool(unpaired_sections(existing)))
    if not has_markers:
        composed = compose(
            core.template_content if core else None,
            others,
            values,
            version,
            emit_warnings,
        )
        prior = (existing or "").strip()
        if prior:
            composed = f"{composed}\n\n{prior}\n"
        elif composed and not composed.endswith("\n"):
            composed += "\n"
        return ComposeResult(content=composed, warnings=warnings)

    unpaired = unpaired_sections(existing)
    if unpaired:
        warnings.append(f"Unpaired section markers: {', '.join(unpaired)}")
        warnings.append("Sections with missing end markers will not be updated to prevent data loss.")
        warnings.append("Add the missing end markers manually, then re-run sync.")

    user_content = extract_user_content(existing).strip()
    updated = existing
    ordered = ([core] if core else []) + others
    for contribution in ordered:
        rendered = substitute(contribution.template_content, values, emit_warnings)
        updated = replace_section(updated, contribution.section_identifier, rendered, version)

    if user_content and not extract_user_content(updated).strip():
        updated = f"{updated}\n\n{user_content}\n"

    return ComposeResult(content=updated, warnings=warnings)


__all__ = [
    "ComposeResult",
    "Section",
    "begin_marker",
    "compose",
    "compose_or_update",
    "end_marker",
    "extract_user_content",
    "parse_sections",
    "remove_section",
    "replace_section",
    "unpaired_sections",
]
