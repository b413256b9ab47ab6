"""Reference counting for machine-wide resources.

Homebrew packages and plugins are shared by every scope on the machine, so a
pack being removed from one scope may only uninstall them when nothing else
still needs them. There is no live counter: every query re-scans the current
scope, the global state file and the project index, which stays correct
after manual edits or an interrupted sync.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from mcs_cli.core.constants import GLOBAL_SCOPE_SENTINEL, PACK_REMOVE_SENTINEL
from mcs_cli.core.output import Output
from mcs_cli.core.paths import Environment
from mcs_cli.core.project_index import IndexData, ProjectIndex
from mcs_cli.core.state import ArtifactRecord, ProjectState
from mcs_cli.packs.models import Pack, PluginRef
from mcs_cli.packs.registry import PackCatalog

logger = logging.getLogger(__name__)


class ResourceKind(StrEnum):
    BREW_PACKAGE = "brewPackage"
    PLUGIN = "plugin"


@dataclass(frozen=True)
class Resource:
    kind: ResourceKind
    name: str

    @classmethod
    def brew_package(cls, name: str) -> Resource:
        return cls(ResourceKind.BREW_PACKAGE, name)

    @classmethod
    def plugin(cls, name: str) -> Resource:
        return cls(ResourceKind.PLUGIN, name)

    @property
    def display_name(self) -> str:
        if self.kind is ResourceKind.PLUGIN:
            return f"plugin '{PluginRef.parse(self.name).bare_name}'"
        return f"brew package '{self.name}'"

    def owned_by(self, record: ArtifactRecord) -> bool:
        """Whether *record*'s ownership fields list this resource. Plugins match by bare name."""
        if self.kind is ResourceKind.BREW_PACKAGE:
            return self.name in record.brew_packages
        bare = PluginRef.parse(self.name).bare_name
        return any(PluginRef.parse(p).bare_name == bare for p in record.plugins)

    def declared_by(self, pack: Pack) -> bool:
        if self.kind is ResourceKind.BREW_PACKAGE:
            return pack.declares_brew_package(self.name)
        return pack.declares_plugin(self.name)


class ResourceRefCounter:
    """Answers whether a resource is still needed outside the pack being removed."""

    def __init__(
        self,
        environment: Environment,
        catalog: PackCatalog,
        output: Output,
        index: ProjectIndex | None = None,
    ) -> None:
        self.environment = environment
        self.catalog = catalog
        self.output = output
        self.index = index or ProjectIndex(environment.projects_index_file)

    def is_still_needed(
        self,
        resource: Resource,
        excluding_scope: str,
        excluding_pack: str,
        scope_state: ProjectState | None = None,
        retained_packs: Iterable[str] = (),
    ) -> bool:
        """Return True if anything other than *excluding_pack* in *excluding_scope* needs *resource*.

        Args:
            resource: The package or plugin about to be removed
            excluding_scope: Scope identifier being changed, or the pack-removal sentinel
            excluding_pack: Pack whose removal triggered the check
            scope_state: In-memory state of the scope being synced, if any
            retained_packs: Packs that stay configured in that scope after this sync
        """
        if scope_state is not None and self._check_current_scope(resource, excluding_pack, scope_state, retained_packs):
            return True
        if self._check_global_artifacts(resource, excluding_scope, excluding_pack, scope_state):
            return True
        return self._check_project_index(resource, excluding_scope, excluding_pack)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_current_scope(
        self,
        resource: Resource,
        excluding_pack: str,
        scope_state: ProjectState,
        retained_packs: Iterable[str],
    ) -> bool:
        for pack_id in sorted(set(retained_packs)):
            if pack_id == excluding_pack:
                continue
            record = scope_state.artifacts(pack_id)
            if record is not None and resource.owned_by(record):
                return True
            pack = self.catalog.pack(pack_id)
            if pack is not None and resource.declared_by(pack):
                return True
        return False

    def _check_global_artifacts(
        self,
        resource: Resource,
        excluding_scope: str,
        excluding_pack: str,
        scope_state: ProjectState | None,
    ) -> bool:
        if excluding_scope == GLOBAL_SCOPE_SENTINEL and scope_state is not None:
            # The in-memory state is newer than the file while a global sync runs.
            return False

        global_state = ProjectState(self.environment.global_state_file)
        if global_state.load_error is not None:
            self.output.warn(f"Could not read global state, keeping {resource.display_name} as a precaution")
            return True

        skip_own = excluding_scope in (GLOBAL_SCOPE_SENTINEL, PACK_REMOVE_SENTINEL)
        for pack_id in global_state.configured_packs:
            if skip_own and pack_id == excluding_pack:
                continue
            record = global_state.artifacts(pack_id)
            if record is not None and resource.owned_by(record):
                logger.debug("%s still owned by global pack %s", resource.display_name, pack_id)
                return True
        return False

    def _check_project_index(self, resource: Resource, excluding_scope: str, excluding_pack: str) -> bool:
        try:
            data = self.index.load()
        except (OSError, ValueError) as exc:
            logger.warning("Could not read project index: %s", exc)
            self.output.warn(f"Could not read project index, keeping {resource.display_name} as a precaution")
            return True

        self._prune(data)
        for entry in data.projects:
            if entry.path == excluding_scope:
                continue
            for pack_id in entry.packs:
                if excluding_scope == PACK_REMOVE_SENTINEL and pack_id == excluding_pack:
                    continue
                if self._pack_declares(pack_id, resource):
                    logger.debug("%s still needed by %s in %s", resource.display_name, pack_id, entry.path)
                    return True
        return False

    def _pack_declares(self, pack_id: str, resource: Resource) -> bool:
        pack = self.catalog.pack(pack_id)
        if pack is None:
            self.output.dimmed(f"Pack '{pack_id}' not found in registry, assuming resource still needed")
            return True
        return resource.declared_by(pack)

    def _prune(self, data: IndexData) -> None:
        """Drop every index entry whose project directory is gone, and persist the result."""
        stale = self.index.prune_stale(data)
        if not stale:
            return
        for path in stale:
            self.output.warn(f"Project not found: {path}, removing from index")
        try:
            self.index.save(data)
        except OSError as exc:
            self.output.warn(f"Could not persist pruned index entries: {exc}")


__all__ = ["Resource", "ResourceKind", "ResourceRefCounter"]
