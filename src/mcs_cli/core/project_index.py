"""Cross-scope registry of which packs are active where (``~/.mcs/projects.yaml``).

The index is the only way one scope learns what another scope needs, so the
reference counter reads it before removing any shared resource.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from mcs_cli.core.constants import GLOBAL_SCOPE_SENTINEL
from mcs_cli.core.fs import atomic_write_text

logger = logging.getLogger(__name__)

INDEX_VERSION = 1


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@dataclass
class ProjectEntry:
    """One scope: an absolute project path or ``__global__``."""

    path: str
    packs: list[str] = field(default_factory=list)
    last_synced: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "packs": list(self.packs), "last_synced": self.last_synced}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectEntry:
        return cls(
            path=str(data["path"]),
            packs=[str(p) for p in data.get("packs") or []],
            last_synced=str(data.get("last_synced") or ""),
        )


@dataclass
class IndexData:
    index_version: int = INDEX_VERSION
    projects: list[ProjectEntry] = field(default_factory=list)


class ProjectIndex:
    """Load, mutate and save the project index.

    Mutations operate on an :class:`IndexData` value so callers control when
    the index is written.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> IndexData:
        """Load the index; a missing or blank file is an empty index.

        Raises:
            OSError: If the file cannot be read.
            ValueError: If the YAML is malformed.
        """
        if not self.path.exists():
            return IndexData()
        content = self.path.read_text(encoding="utf-8")
        if not content.strip():
            return IndexData()

        yaml = YAML(typ="safe")
        try:
            raw = yaml.load(content)
        except Exception as exc:
            raise ValueError(f"Malformed project index {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ValueError(f"Malformed project index {self.path}: root is not a mapping")

        try:
            projects = [ProjectEntry.from_dict(item) for item in raw.get("projects") or []]
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Malformed project index {self.path}: {exc}") from exc
        return IndexData(index_version=int(raw.get("index_version", INDEX_VERSION)), projects=projects)

    def save(self, data: IndexData) -> None:
        """Write *data* atomically.

        Raises:
            OSError: If the write fails.
        """
        yaml = YAML()
        yaml.default_flow_style = False
        buffer = io.StringIO()
        yaml.dump(
            {
                "index_version": data.index_version,
                "projects": [entry.to_dict() for entry in data.projects],
            },
            buffer,
        )
        atomic_write_text(self.path, buffer.getvalue())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert(self, project_path: str, pack_ids: list[str], data: IndexData) -> None:
        """Register or update a scope entry with its current packs."""
        entry = ProjectEntry(path=project_path, packs=sorted(pack_ids), last_synced=_timestamp())
        for i, existing in enumerate(data.projects):
            if existing.path == project_path:
                data.projects[i] = entry
                return
        data.projects.append(entry)

    def remove(self, project_path: str, data: IndexData) -> None:
        data.projects = [e for e in data.projects if e.path != project_path]

    def remove_pack(self, pack_id: str, data: IndexData) -> None:
        """Drop *pack_id* from every entry; entries left without packs are removed."""
        for entry in data.projects:
            entry.packs = [p for p in entry.packs if p != pack_id]
        data.projects = [e for e in data.projects if e.packs]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def projects_with_pack(self, pack_id: str, data: IndexData) -> list[ProjectEntry]:
        """Entries with *pack_id* configured. Stale entries are not filtered."""
        return [e for e in data.projects if pack_id in e.packs]

    def prune_stale(self, data: IndexData) -> list[str]:
        """Remove entries whose directory no longer exists; return their paths.

        The ``__global__`` sentinel is never pruned.
        """
        pruned = [
            e.path for e in data.projects if e.path != GLOBAL_SCOPE_SENTINEL and not Path(e.path).exists()
        ]
        if pruned:
            data.projects = [e for e in data.projects if e.path not in pruned]
        return pruned


__all__ = ["INDEX_VERSION", "IndexData", "ProjectEntry", "ProjectIndex"]
