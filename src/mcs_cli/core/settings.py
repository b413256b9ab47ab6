"""Assistant settings JSON model with deep-merge support.

Only ``hooks`` and ``enabledPlugins`` get structured access; every other
top-level key is carried in :attr:`Settings.extra` so unknown keys survive a
load/save round-trip untouched.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mcs_cli.core.fs import atomic_write_text
from mcs_cli.templates.engine import substitute

logger = logging.getLogger(__name__)

HOOKS_KEY = "hooks"
ENABLED_PLUGINS_KEY = "enabledPlugins"
KNOWN_TOP_LEVEL_KEYS = frozenset({HOOKS_KEY, ENABLED_PLUGINS_KEY})


class SettingsParseError(ValueError):
    """The settings file exists but is not a JSON object."""


def _first_command(group: Mapping[str, Any]) -> str | None:
    entries = group.get("hooks") or []
    if entries and isinstance(entries[0], Mapping):
        command = entries[0].get("command")
        return command if isinstance(command, str) else None
    return None


@dataclass
class Settings:
    hooks: dict[str, list[dict[str, Any]]] | None = None
    enabled_plugins: dict[str, bool] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Settings:
        hooks = data.get(HOOKS_KEY)
        plugins = data.get(ENABLED_PLUGINS_KEY)
        return cls(
            hooks=copy.deepcopy(dict(hooks)) if isinstance(hooks, Mapping) else None,
            enabled_plugins=dict(plugins) if isinstance(plugins, Mapping) else None,
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in KNOWN_TOP_LEVEL_KEYS},
        )

    @classmethod
    def loads(cls, text: str) -> Settings:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SettingsParseError(f"Invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise SettingsParseError("Settings root must be a JSON object")
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Path, values: Mapping[str, str] | None = None) -> Settings:
        """Load *path*, returning empty settings when the file does not exist.

        When *values* is given, ``__KEY__`` placeholders are substituted in the
        raw text before parsing.

        Raises:
            SettingsParseError: If the file is not valid JSON.
            OSError: If the file cannot be read.
        """
        if not path.exists():
            return cls()
        text = path.read_text(encoding="utf-8")
        if values:
            text = substitute(text, values, emit_warnings=False)
        return cls.loads(text)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def add_hook_entry(self, event: str, command: str) -> bool:
        """Add a command hook for *event*, deduplicated by command.

        Returns True if the entry was added.
        """
        hooks = self.hooks if self.hooks is not None else {}
        groups = hooks.setdefault(event, [])
        if any(_first_command(group) == command for group in groups):
            self.hooks = hooks
            return False
        groups.append({"hooks": [{"type": "command", "command": command}]})
        self.hooks = hooks
        return True

    def remove_hook_commands(self, commands: Iterable[str]) -> int:
        """Remove hook groups whose first command is in *commands*."""
        targets = set(commands)
        return self._filter_hooks(lambda cmd: cmd in targets)

    def strip_hooks_with_prefix(self, prefix: str) -> int:
        """Remove managed hook groups whose first command starts with *prefix*."""
        return self._filter_hooks(lambda cmd: cmd.startswith(prefix))

    def _filter_hooks(self, should_remove) -> int:
        if not self.hooks:
            return 0
        removed = 0
        filtered: dict[str, list[dict[str, Any]]] = {}
        for event, groups in self.hooks.items():
            kept = []
            for group in groups:
                cmd = _first_command(group)
                if cmd is not None and should_remove(cmd):
                    removed += 1
                    continue
                kept.append(group)
            if kept:
                filtered[event] = kept
        self.hooks = filtered or None
        return removed

    def hook_commands(self) -> list[str]:
        commands = []
        for groups in (self.hooks or {}).values():
            for group in groups:
                cmd = _first_command(group)
                if cmd is not None:
                    commands.append(cmd)
        return commands

    # ------------------------------------------------------------------
    # Merge and removal
    # ------------------------------------------------------------------

    def merge(self, other: Settings) -> None:
        """Merge *other* into this settings object; existing values win.

        - Hook groups are deduplicated by their first command.
        - Plugins merge key-by-key.
        - Extra keys: two JSON objects merge key-by-key, anything else keeps
          the existing value.
        """
        if other.hooks:
            merged = self.hooks if self.hooks is not None else {}
            for event, other_groups in other.hooks.items():
                existing = merged.setdefault(event, [])
                existing_commands = {_first_command(g) for g in existing}
                for group in other_groups:
                    cmd = _first_command(group)
                    if cmd is not None and cmd not in existing_commands:
                        existing.append(copy.deepcopy(group))
                        existing_commands.add(cmd)
            self.hooks = merged

        if other.enabled_plugins:
            plugins = self.enabled_plugins if self.enabled_plugins is not None else {}
            for name, enabled in other.enabled_plugins.items():
                plugins.setdefault(name, enabled)
            self.enabled_plugins = plugins

        for key, value in other.extra.items():
            if key not in self.extra:
                self.extra[key] = copy.deepcopy(value)
                continue
            current = self.extra[key]
            if isinstance(current, dict) and isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    current.setdefault(sub_key, copy.deepcopy(sub_value))

    def remove_keys(self, key_paths: Iterable[str]) -> None:
        """Remove keys by dotted path (``env.FOO``, ``enabledPlugins.NAME``, ``model``)."""
        for key_path in key_paths:
            section, _, key = key_path.partition(".")
            if key:
                if section == HOOKS_KEY:
                    if self.hooks:
                        self.hooks.pop(key, None)
                        self.hooks = self.hooks or None
                elif section == ENABLED_PLUGINS_KEY:
                    if self.enabled_plugins:
                        self.enabled_plugins.pop(key, None)
                        self.enabled_plugins = self.enabled_plugins or None
                else:
                    nested = self.extra.get(section)
                    if isinstance(nested, dict):
                        nested.pop(key, None)
                        if not nested:
                            del self.extra[section]
            elif section == HOOKS_KEY:
                self.hooks = None
            elif section == ENABLED_PLUGINS_KEY:
                self.enabled_plugins = None
            else:
                self.extra.pop(section, None)

    def contributed_key_paths(self) -> list[str]:
        """Top-level extra keys this settings fragment contributes."""
        return sorted(self.extra)

    @property
    def is_empty(self) -> bool:
        return not self.hooks and not self.enabled_plugins and not self.extra

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.hooks is not None:
            data[HOOKS_KEY] = self.hooks
        if self.enabled_plugins is not None:
            data[ENABLED_PLUGINS_KEY] = self.enabled_plugins
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    def save(self, path: Path, drop_keys: Iterable[str] = ()) -> None:
        """Write settings to *path* atomically.

        Layers, highest priority first: typed fields, extra keys, then unknown
        keys already present in the destination file (except *drop_keys*),
        so user-written keys survive.
        """
        data = self.to_dict()
        dropped = set(drop_keys)

        preserved: dict[str, Any] = {}
        if path.exists():
            try:
                existing = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.debug("Not preserving keys from unreadable %s: %s", path, exc)
                existing = None
            if isinstance(existing, dict):
                preserved = {k: v for k, v in existing.items() if k not in KNOWN_TOP_LEVEL_KEYS}

        for key, value in preserved.items():
            if key not in data and key not in dropped:
                data[key] = value

        atomic_write_text(path, json.dumps(data, indent=2, sort_keys=True) + "\n")


__all__ = ["Settings", "SettingsParseError"]
