"""Per-scope state: which packs are configured and what each one created.

Provides:
- MCPServerRef / ArtifactRecord dataclasses with JSON round-tripping
- ProjectState, loaded once per sync and saved atomically at checkpoints
- Migration from the legacy ``KEY=VALUE`` state format
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mcs_cli.core.fs import atomic_write_text

logger = logging.getLogger(__name__)


def _get_cli_version() -> str:
    from mcs_cli import __version__

    return __version__


@dataclass(frozen=True, order=True)
class MCPServerRef:
    """A registered MCP server, kept for ``claude mcp remove``."""

    name: str
    scope: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "scope": self.scope}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MCPServerRef:
        return cls(name=str(data["name"]), scope=str(data.get("scope", "local")))


_JSON_KEYS = {
    "mcp_servers": "mcpServers",
    "files": "files",
    "brew_packages": "brewPackages",
    "plugins": "plugins",
    "hook_commands": "hookCommands",
    "settings_keys": "settingsKeys",
    "template_sections": "templateSections",
    "gitignore_entries": "gitignoreEntries",
}


@dataclass
class ArtifactRecord:
    """What one pack created in one scope.

    Convergent fields (servers, files, hook commands, settings keys, sections,
    gitignore entries) are rebuilt on every sync. Ownership fields (brew
    packages, plugins) are carried forward because removing them is gated by
    reference counting.
    """

    mcp_servers: list[MCPServerRef] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    brew_packages: list[str] = field(default_factory=list)
    plugins: list[str] = field(default_factory=list)
    hook_commands: list[str] = field(default_factory=list)
    settings_keys: list[str] = field(default_factory=list)
    template_sections: list[str] = field(default_factory=list)
    gitignore_entries: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def carry_forward(self, previous: ArtifactRecord | None) -> None:
        """Copy ownership fields from *previous* into this record (deduplicated)."""
        if previous is None:
            return
        for package in previous.brew_packages:
            if package not in self.brew_packages:
                self.brew_packages.append(package)
        for plugin in previous.plugins:
            if plugin not in self.plugins:
                self.plugins.append(plugin)

    def copy(self) -> ArtifactRecord:
        return ArtifactRecord(**{f.name: list(getattr(self, f.name)) for f in fields(self)})

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for attr, key in _JSON_KEYS.items():
            values = getattr(self, attr)
            data[key] = [v.to_dict() for v in values] if attr == "mcp_servers" else list(values)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArtifactRecord:
        kwargs: dict[str, Any] = {}
        for attr, key in _JSON_KEYS.items():
            raw = data.get(key) or []
            if attr == "mcp_servers":
                kwargs[attr] = [MCPServerRef.from_dict(item) for item in raw]
            else:
                kwargs[attr] = [str(item) for item in raw]
        return cls(**kwargs)


class ProjectState:
    """State of one scope, persisted as key-sorted JSON.

    A missing file is an empty state. An unreadable or corrupt file is also
    treated as empty, with :attr:`load_error` set so callers can tell the two
    apart.
    """

    def __init__(self, state_file: Path) -> None:
        self.path = state_file
        self.mcs_version: str | None = None
        self.configured_at: str | None = None
        self._configured_packs: list[str] = []
        self._pack_artifacts: dict[str, ArtifactRecord] = {}
        self._excluded_components: dict[str, set[str]] = {}
        self.resolved_values: dict[str, str] = {}
        self.load_error: Exception | None = None
        self._load()

    @property
    def exists(self) -> bool:
        return self.path.exists()

    # ------------------------------------------------------------------
    # Packs
    # ------------------------------------------------------------------

    @property
    def configured_packs(self) -> list[str]:
        return list(self._configured_packs)

    def record_pack(self, pack_id: str) -> None:
        if pack_id not in self._configured_packs:
            self._configured_packs.append(pack_id)
            self._configured_packs.sort()

    def remove_pack(self, pack_id: str) -> None:
        """Forget a pack entirely: configured entry, artifacts and exclusions."""
        if pack_id in self._configured_packs:
            self._configured_packs.remove(pack_id)
        self._pack_artifacts.pop(pack_id, None)
        self._excluded_components.pop(pack_id, None)

    # ------------------------------------------------------------------
    # Artifacts and exclusions
    # ------------------------------------------------------------------

    def artifacts(self, pack_id: str) -> ArtifactRecord | None:
        return self._pack_artifacts.get(pack_id)

    def set_artifacts(self, pack_id: str, record: ArtifactRecord) -> None:
        self._pack_artifacts[pack_id] = record

    @property
    def pack_artifacts(self) -> dict[str, ArtifactRecord]:
        return dict(self._pack_artifacts)

    def excluded_components(self, pack_id: str) -> set[str]:
        return set(self._excluded_components.get(pack_id, set()))

    def set_excluded_components(self, pack_id: str, component_ids: set[str]) -> None:
        if component_ids:
            self._excluded_components[pack_id] = set(component_ids)
        else:
            self._excluded_components.pop(pack_id, None)

    def set_resolved_values(self, values: dict[str, str]) -> None:
        self.resolved_values = dict(values)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "configuredPacks": list(self._configured_packs),
            "packArtifacts": {pid: rec.to_dict() for pid, rec in self._pack_artifacts.items()},
            "excludedComponents": {pid: sorted(ids) for pid, ids in self._excluded_components.items()},
            "resolvedValues": dict(self.resolved_values),
        }
        if self.mcs_version is not None:
            data["mcsVersion"] = self.mcs_version
        if self.configured_at is not None:
            data["configuredAt"] = self.configured_at
        return data

    def save(self) -> None:
        """Stamp version and time, then write atomically.

        Raises:
            OSError: If the file cannot be written. The previous file is kept.
        """
        self.configured_at = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        self.mcs_version = _get_cli_version()
        text = json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"
        atomic_write_text(self.path, text)
        logger.debug("Saved state to %s", self.path)

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            text = self.path.read_text(encoding="utf-8")
            if text.lstrip().startswith("{"):
                self._apply(json.loads(text))
            else:
                self._migrate_legacy(text)
        except (OSError, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Could not read state file %s: %s. Treating as empty.", self.path, exc)
            self._configured_packs = []
            self._pack_artifacts = {}
            self._excluded_components = {}
            self.resolved_values = {}
            self.load_error = exc

    def _apply(self, data: dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise TypeError("State root must be a JSON object")
        self.mcs_version = data.get("mcsVersion")
        self.configured_at = data.get("configuredAt")
        self._configured_packs = sorted(str(p) for p in data.get("configuredPacks") or [])
        self._pack_artifacts = {
            str(pid): ArtifactRecord.from_dict(rec) for pid, rec in (data.get("packArtifacts") or {}).items()
        }
        self._excluded_components = {
            str(pid): {str(c) for c in ids} for pid, ids in (data.get("excludedComponents") or {}).items() if ids
        }
        self.resolved_values = {str(k): str(v) for k, v in (data.get("resolvedValues") or {}).items()}

    def _migrate_legacy(self, text: str) -> None:
        """Parse the old ``KEY=VALUE`` format."""
        legacy: dict[str, str] = {}
        for line in text.splitlines():
            stripped = line.strip()
            if not stripped or "=" not in stripped:
                continue
            key, _, value = stripped.partition("=")
            legacy[key] = value

        packs = legacy.get("CONFIGURED_PACKS", "")
        self._configured_packs = sorted(p for p in packs.split(",") if p)
        self.mcs_version = legacy.get("MCS_VERSION")
        self.configured_at = legacy.get("CONFIGURED_AT")
        logger.info("Migrated legacy state file %s", self.path)


__all__ = ["ArtifactRecord", "MCPServerRef", "ProjectState"]
