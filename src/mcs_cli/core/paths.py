"""Environment paths and path-containment helpers.

Provides the canonical functions for locating:
- The mcs home directory (``~/.mcs/``) holding global state, the project
  index, the process lock and installed packs
- The assistant home directory (``~/.claude/``) that global sync targets

Every security-sensitive containment check goes through
:func:`is_contained` / :func:`safe_path` so call sites cannot diverge.
"""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from pathlib import Path

from mcs_cli.core.constants import (
    CLAUDE_DIRECTORY,
    CLAUDE_GLOBAL_MD,
    GLOBAL_SETTINGS_FILE,
    GLOBAL_STATE_FILE,
    LOCK_FILE,
    PACKS_DIRECTORY,
    PROJECTS_INDEX_FILE,
)


def get_mcs_home() -> Path:
    """Return the mcs home directory.

    Resolution order:
    1. ``MCS_HOME`` environment variable
    2. ``~/.mcs/``
    """
    if env_home := os.environ.get("MCS_HOME"):
        return Path(env_home).expanduser()
    return Path.home() / ".mcs"


def get_claude_home() -> Path:
    """Return the assistant home directory (``MCS_CLAUDE_HOME`` or ``~/.claude``)."""
    if env_home := os.environ.get("MCS_CLAUDE_HOME"):
        return Path(env_home).expanduser()
    return Path.home() / CLAUDE_DIRECTORY


def _default_brew_path() -> str:
    if env_brew := os.environ.get("MCS_BREW_PATH"):
        return env_brew
    if platform.machine() == "arm64":
        return "/opt/homebrew/bin/brew"
    return "/usr/local/bin/brew"


@dataclass(frozen=True)
class Environment:
    """Resolved filesystem locations for one mcs invocation."""

    home_directory: Path
    mcs_directory: Path
    claude_directory: Path
    brew_path: str

    @classmethod
    def from_env(cls) -> Environment:
        return cls(
            home_directory=Path.home(),
            mcs_directory=get_mcs_home(),
            claude_directory=get_claude_home(),
            brew_path=_default_brew_path(),
        )

    @classmethod
    def for_home(cls, home: Path) -> Environment:
        """Build an environment rooted at *home* (used by tests and sandboxes)."""
        return cls(
            home_directory=home,
            mcs_directory=home / ".mcs",
            claude_directory=home / CLAUDE_DIRECTORY,
            brew_path=_default_brew_path(),
        )

    @property
    def global_state_file(self) -> Path:
        return self.mcs_directory / GLOBAL_STATE_FILE

    @property
    def projects_index_file(self) -> Path:
        return self.mcs_directory / PROJECTS_INDEX_FILE

    @property
    def lock_file(self) -> Path:
        return self.mcs_directory / LOCK_FILE

    @property
    def packs_directory(self) -> Path:
        return self.mcs_directory / PACKS_DIRECTORY

    @property
    def claude_settings(self) -> Path:
        return self.claude_directory / GLOBAL_SETTINGS_FILE

    @property
    def global_claude_md(self) -> Path:
        return self.claude_directory / CLAUDE_GLOBAL_MD

    @property
    def hooks_directory(self) -> Path:
        return self.claude_directory / "hooks"

    @property
    def skills_directory(self) -> Path:
        return self.claude_directory / "skills"

    @property
    def commands_directory(self) -> Path:
        return self.claude_directory / "commands"

    @property
    def path_with_brew(self) -> str:
        """PATH string that includes the Homebrew bin directory."""
        current = os.environ.get("PATH", "/usr/bin:/bin")
        brew_bin = str(Path(self.brew_path).parent)
        if brew_bin in current.split(os.pathsep):
            return current
        return f"{brew_bin}{os.pathsep}{current}"


def is_contained(path: Path, base: Path) -> bool:
    """Return True when *path* equals or lies under *base* after resolving symlinks."""
    resolved = path.resolve()
    resolved_base = base.resolve()
    return resolved == resolved_base or resolved_base in resolved.parents


def safe_path(relative_path: str, base: Path) -> Path | None:
    """Join *relative_path* onto *base*, or return None if the result escapes it."""
    candidate = base / relative_path
    if not is_contained(candidate, base):
        return None
    return candidate


def relative_path(full: Path, base: Path) -> str:
    """Return *full* relative to *base*, or the full path string when outside it."""
    try:
        return full.relative_to(base).as_posix()
    except ValueError:
        return str(full)


__all__ = [
    "Environment",
    "get_claude_home",
    "get_mcs_home",
    "is_contained",
    "relative_path",
    "safe_path",
]
