"""
GitignoreManager module for the user's global ignore list.

Assistant artifacts (``.claude/``, ``*.local.*`` settings and the like) must
never be committed, in any repository. mcs therefore manages the *global*
git excludes file rather than per-project ``.gitignore`` files: core entries
are always present and packs may add their own.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from mcs_cli.core.constants import CLAUDE_DIRECTORY
from mcs_cli.core.fs import atomic_write_text
from mcs_cli.core.shell import ShellRunner

logger = logging.getLogger(__name__)

CORE_ENTRIES = [
    CLAUDE_DIRECTORY,
    "*.local.*",
    f"{CLAUDE_DIRECTORY}/memories/",
]


@dataclass
class GitignoreResult:
    """Result of a gitignore update."""

    modified: bool
    """Whether the ignore file was modified"""

    entries_added: list[str] = field(default_factory=list)
    """New entries added"""

    entries_removed: list[str] = field(default_factory=list)
    """Entries removed"""


class GitignoreManager:
    """Manages entries in the global git excludes file."""

    def __init__(self, shell: ShellRunner, home: Path | None = None):
        """
        Args:
            shell: Runner used to query ``git config``
            home: Home directory used for ``~`` expansion and the fallback path
        """
        self.shell = shell
        self.home = home or shell.environment.home_directory
        self._line_ending = "\n"

    def resolve_path(self) -> Path:
        """Return ``core.excludesFile`` if configured, else ``~/.config/git/ignore``."""
        result = self.shell.run("git", ["config", "--global", "core.excludesFile"])
        if result.succeeded and result.stdout.strip():
            configured = result.stdout.strip()
            if configured.startswith("~"):
                configured = str(self.home) + configured[1:]
            return Path(configured)
        return self.home / ".config" / "git" / "ignore"

    def _read_lines(self, path: Path) -> list[str]:
        if not path.exists():
            self._line_ending = "\n"
            return []
        content = path.read_text(encoding="utf-8")
        self._line_ending = self._detect_line_ending(content)
        return content.splitlines()

    def _write_lines(self, path: Path, lines: list[str]) -> None:
        # Ensure file ends with newline
        if lines and lines[-1] != "":
            lines.append("")
        atomic_write_text(path, self._line_ending.join(lines))

    def ensure_entries(self, entries: Iterable[str]) -> GitignoreResult:
        """Append any of *entries* not already present (exact line match).

        Raises:
            OSError: If the ignore file cannot be read or written.
        """
        wanted = [entry for entry in entries if entry]
        if not wanted:
            return GitignoreResult(modified=False)

        path = self.resolve_path()
        lines = self._read_lines(path)
        existing = set(lines)

        added = []
        for entry in wanted:
            if entry not in existing:
                lines.append(entry)
                existing.add(entry)
                added.append(entry)

        if added:
            self._write_lines(path, lines)
            logger.debug("Added %s to %s", added, path)

        return GitignoreResult(modified=bool(added), entries_added=added)

    def remove_entries(self, entries: Iterable[str]) -> GitignoreResult:
        """Remove every line exactly matching one of *entries*.

        Raises:
            OSError: If the ignore file cannot be read or written.
        """
        targets = set(entries)
        path = self.resolve_path()
        if not targets or not path.exists():
            return GitignoreResult(modified=False)

        lines = self._read_lines(path)
        kept = [line for line in lines if line not in targets]
        removed = [line for line in lines if line in targets]
        if removed:
            self._write_lines(path, kept)
            logger.debug("Removed %s from %s", removed, path)
        return GitignoreResult(modified=bool(removed), entries_removed=removed)

    def add_core_entries(self) -> GitignoreResult:
        return self.ensure_entries(CORE_ENTRIES)

    def _detect_line_ending(self, content: str) -> str:
        """Return ``'\\r\\n'`` when the file uses Windows line endings, else ``'\\n'``."""
        if "\r\n" in content:
            return "\r\n"
        return "\n"


__all__ = ["CORE_ENTRIES", "GitignoreManager", "GitignoreResult"]
