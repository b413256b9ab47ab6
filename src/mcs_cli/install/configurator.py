"""Convergence engine: bring a scope in line with a pack selection.

A sync compares the selected packs with the packs recorded in the scope's
state file, removes what was deselected, and (re)installs everything that
remains. Every step is idempotent so running the same sync twice is a no-op
apart from timestamps.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from mcs_cli.core.backup import backup_file
from mcs_cli.core.constants import PACK_REMOVE_SENTINEL
from mcs_cli.core.errors import ConfigurationError, MCSError, StateWriteError
from mcs_cli.core.fs import atomic_write_text, ensure_directory
from mcs_cli.core.output import Output
from mcs_cli.core.paths import Environment, safe_path
from mcs_cli.core.project_index import ProjectIndex
from mcs_cli.core.settings import Settings, SettingsParseError
from mcs_cli.core.shell import ShellRunner
from mcs_cli.core.state import ArtifactRecord, MCPServerRef, ProjectState
from mcs_cli.install.dispatcher import ComponentDispatcher, hook_command_for, retry_hint
from mcs_cli.install.prompts import Prompter, ValueResolver
from mcs_cli.install.refcount import Resource, ResourceKind, ResourceRefCounter
from mcs_cli.install.resolver import resolve
from mcs_cli.install.scope import SyncScope
from mcs_cli.install.settings_compose import compose_settings, load_scope_settings
from mcs_cli.packs.models import (
    BrewInstallAction,
    Component,
    CopyPackFileAction,
    MCPServerAction,
    Pack,
    PluginAction,
    TemplateContribution,
)
from mcs_cli.packs.peers import validate_selection
from mcs_cli.packs.registry import PackCatalog
from mcs_cli.templates.composer import compose_or_update, remove_section
from mcs_cli.templates.engine import find_unreplaced_placeholders, substitute

logger = logging.getLogger(__name__)

CONFIGURE_SCRIPT_TIMEOUT = 60
PROJECT_PATH_ENV = "MCS_PROJECT_PATH"
RESOLVED_VALUE_ENV_PREFIX = "MCS_RESOLVED_"


@dataclass
class SyncReport:
    """Outcome of one sync, by pack identifier."""

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.updated)


class PlaceholderChoice(StrEnum):
    PROCEED = "p"
    SKIP = "s"
    STOP = "x"


class ProjectHookRunner:
    """Runs a pack's configure script against a project after install."""

    def __init__(self, shell: ShellRunner, output: Output, timeout: float = CONFIGURE_SCRIPT_TIMEOUT) -> None:
        self.shell = shell
        self.output = output
        self.timeout = timeout

    def run(self, pack: Pack, project_path: Path, resolved_values: Mapping[str, str]) -> bool:
        """Run *pack*'s configure script. Returns False if it failed; a pack without one succeeds."""
        if not pack.configure_script or pack.pack_path is None:
            return True
        script = safe_path(pack.configure_script, pack.pack_path)
        if script is None or not script.is_file():
            self.output.warn(f"Configure script for {pack.display_name} not found: {pack.configure_script}")
            return False

        env = {PROJECT_PATH_ENV: str(project_path)}
        for key, value in resolved_values.items():
            env[f"{RESOLVED_VALUE_ENV_PREFIX}{key.upper()}"] = value

        self.output.dimmed(f"Running configure script for {pack.display_name}...")
        result = self.shell.run(
            "/bin/bash",
            [str(script)],
            working_directory=project_path,
            additional_environment=env,
            timeout=self.timeout,
        )
        if not result.succeeded:
            detail = result.stderr.strip()[:200]
            self.output.warn(f"Configure script for {pack.display_name} failed" + (f": {detail}" if detail else ""))
            return False
        return True


class Configurator:
    """Converges one scope (a project or the global scope) to a pack selection."""

    def __init__(
        self,
        environment: Environment,
        scope: SyncScope,
        catalog: PackCatalog,
        dispatcher: ComponentDispatcher,
        prompter: Prompter,
        output: Output,
        shell: ShellRunner,
        index: ProjectIndex | None = None,
        refcounter: ResourceRefCounter | None = None,
        hook_runner: ProjectHookRunner | None = None,
    ) -> None:
        self.environment = environment
        self.scope = scope
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.prompter = prompter
        self.output = output
        self.shell = shell
        self.index = index or ProjectIndex(environment.projects_index_file)
        self.refcounter = refcounter or ResourceRefCounter(environment, catalog, output, self.index)
        self.hook_runner = hook_runner or ProjectHookRunner(shell, output)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def load_state(self) -> ProjectState:
        """Load the scope's state.

        A corrupt file is reported and treated as empty. A file that exists
        but cannot be read at all stops the sync.
        """
        state = ProjectState(self.scope.state_file)
        if isinstance(state.load_error, OSError):
            raise MCSError(f"Could not read {self.scope.state_file}: {state.load_error}")
        if state.load_error is not None:
            self.output.warn(f"{self.scope.state_file.name} is corrupt ({state.load_error}), treating it as empty")
        return state

    # ------------------------------------------------------------------
    # Pre-flight
    # ------------------------------------------------------------------

    def validate(self, packs: Sequence[Pack], excluded_components: Mapping[str, set[str]]) -> None:
        """Check everything that can fail before any mutation.

        Raises:
            ConfigurationError: On unmet peer dependencies, a dependency cycle
                or unknown component, or an unparseable global settings file.
        """
        failures = validate_selection(packs, self.catalog)
        if failures:
            for failure in failures:
                self.output.error(failure.message)
            raise ConfigurationError(
                "Unmet peer dependencies: " + "; ".join(f.message for f in failures)
            )

        components = self._component_map(packs)
        owners = _component_owners(packs)
        for pack in packs:
            self.install_plan(pack, excluded_components.get(pack.identifier, set()), components, owners)

        if self.scope.is_global_scope:
            load_scope_settings(self.scope)

    def _component_map(self, packs: Sequence[Pack]) -> dict[str, Component]:
        components = dict(self.catalog.all_components())
        for pack in packs:
            components.update({c.id: c for c in pack.components})
        return components

    def effective_exclusions(
        self,
        packs: Sequence[Pack],
        requested: Mapping[str, set[str]],
        components: Mapping[str, Component],
    ) -> dict[str, set[str]]:
        """Drop exclusions of components some active component, in any selected pack, depends on."""
        active_ids = [c.id for pack in packs for c in pack.active_components(requested.get(pack.identifier, set()))]
        plan = resolve(active_ids, components.values())
        needed = {c.id for c in plan.added_dependencies}
        effective: dict[str, set[str]] = {}
        for pack in packs:
            excluded = set(requested.get(pack.identifier, set()))
            for component_id in sorted(excluded & needed):
                self.output.dimmed(
                    f"Component '{component_id}' is excluded but required by another component, keeping it"
                )
            effective[pack.identifier] = excluded - needed
        return effective

    def install_plan(
        self,
        pack: Pack,
        excluded: set[str],
        components: Mapping[str, Component],
        owners: Mapping[str, str],
    ) -> list[Component]:
        """The pack's active components, every dependency before its dependents.

        Dependencies owned by another selected pack are installed by that pack.

        Raises:
            ConfigurationError: On a cycle, an unknown component, or a
                dependency on a pack that is not selected.
        """
        active = pack.active_components(excluded)
        plan = resolve([c.id for c in active], components.values())
        ordered: list[Component] = []
        for component in plan.ordered_components:
            owner = owners.get(component.id)
            if owner is None:
                raise ConfigurationError(
                    f"{pack.display_name} depends on '{component.id}', which belongs to a pack that is not "
                    "selected. Select that pack too."
                )
            if owner == pack.identifier:
                ordered.append(component)
        return ordered

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def configure(
        self,
        packs: Sequence[Pack],
        excluded_components: Mapping[str, set[str]] | None = None,
        confirm_removals: bool = True,
    ) -> SyncReport:
        """Converge the scope to exactly *packs*.

        Raises:
            ConfigurationError: Pre-flight validation failed, or the user
                stopped at the placeholder check.
            StateWriteError: The state file could not be saved.
        """
        packs = sorted(packs, key=lambda p: p.identifier)
        requested = {pack.identifier: set((excluded_components or {}).get(pack.identifier, ())) for pack in packs}
        self.validate(packs, requested)
        components = self._component_map(packs)
        owners = _component_owners(packs)
        excluded = self.effective_exclusions(packs, requested, components)
        plans = {
            pack.identifier: self.install_plan(pack, excluded[pack.identifier], components, owners) for pack in packs
        }
        install_order = _install_order(packs, plans, owners)
        warnings_start = len(self.output.warnings)

        state = self.load_state()
        selected_ids = {p.identifier for p in packs}
        previous_ids = set(state.configured_packs)
        removals = sorted(previous_ids - selected_ids)
        additions = sorted(selected_ids - previous_ids)
        updates = sorted(selected_ids & previous_ids)

        if removals and confirm_removals:
            self.output.header("Packs to remove")
            for pack_id in removals:
                self.output.plain(f"  - {self._pack_label(pack_id)}")
                record = state.artifacts(pack_id)
                if record is not None:
                    self._print_record_summary(record)
            if not self.prompter.ask_yes_no("Proceed with removal?", True):
                self.output.info("Sync cancelled.")
                return SyncReport(cancelled=True)

        for pack_id in removals:
            self.unconfigure_pack(pack_id, state, retained_packs=selected_ids)

        previous_records = {
            pack.identifier: record.copy()
            for pack in packs
            if (record := state.artifacts(pack.identifier)) is not None
        }

        owned: dict[str, ArtifactRecord] = {}
        if packs:
            ensure_directory(self.scope.target_path)
            self.output.header(f"Installing dependencies{self.scope.label_suffix}")
        for pack in install_order:
            owned[pack.identifier] = self.dispatcher.install_dependencies(
                pack, excluded[pack.identifier], components=plans[pack.identifier]
            )

        resolver = ValueResolver(self.prompter, self.output, self.shell, self.scope)
        values = resolver.resolve(packs, excluded)

        state.set_resolved_values(values)
        self._save_intermediate(state)

        for pack in install_order:
            self.output.header(f"Configuring {pack.display_name}{self.scope.label_suffix}")
            result = self.dispatcher.install_pack(
                pack,
                excluded[pack.identifier],
                values,
                self.scope,
                previous_records.get(pack.identifier),
                components=plans[pack.identifier],
            )
            record = result.record
            _merge_ownership(record, owned[pack.identifier])
            state.set_artifacts(pack.identifier, record)
            state.set_excluded_components(pack.identifier, excluded[pack.identifier])
            state.record_pack(pack.identifier)
        self._remove_orphaned_artifacts(packs, state, previous_records)
        self._save_intermediate(state)

        previous_keys = [key for record in previous_records.values() for key in record.settings_keys]
        contributed = compose_settings(self.scope, packs, excluded, values, self.output, previous_keys)
        for pack in packs:
            record = state.artifacts(pack.identifier)
            if record is not None:
                record.settings_keys = list(contributed.get(pack.identifier, []))

        self._compose_claude_file(packs, state, values, previous_records)

        if self.scope.run_configure_project_hooks and self.scope.project_path is not None:
            for pack in packs:
                self.hook_runner.run(pack, self.scope.project_path, values)

        self._update_gitignore(packs, state)

        try:
            state.save()
        except OSError as exc:
            raise StateWriteError(str(self.scope.state_file), str(exc), self.scope.sync_hint) from exc
        self.output.success(f"Updated {self.scope.state_file.name}{self.scope.label_suffix}")

        self._update_index([p.identifier for p in packs])

        return SyncReport(
            added=additions,
            updated=updates,
            removed=removals,
            warnings=self.output.warnings[warnings_start:],
        )

    def _save_intermediate(self, state: ProjectState) -> None:
        try:
            state.save()
        except OSError as exc:
            self.output.warn(f"Could not save intermediate state: {exc}")

    def _remove_orphaned_artifacts(
        self,
        packs: Sequence[Pack],
        state: ProjectState,
        previous_records: Mapping[str, ArtifactRecord],
    ) -> None:
        """Remove servers and files from the previous sync that no selected pack installs any more.

        This covers newly excluded components and components a pack update
        dropped. Failed removals stay in the pack's record so the next sync
        retries them.
        """
        kept_servers: set[MCPServerRef] = set()
        kept_files: set[str] = set()
        for pack in packs:
            record = state.artifacts(pack.identifier)
            if record is not None:
                kept_servers.update(record.mcp_servers)
                kept_files.update(record.files)

        for pack in packs:
            previous = previous_records.get(pack.identifier)
            record = state.artifacts(pack.identifier)
            if previous is None or record is None:
                continue
            for server in previous.mcp_servers:
                if server in kept_servers:
                    continue
                kept_servers.add(server)
                if self.dispatcher.remove_mcp_server(server, self.scope):
                    self.output.dimmed(f"Removed MCP server: {server.name}")
                else:
                    record.mcp_servers.append(server)
            for path in previous.files:
                if path in kept_files:
                    continue
                kept_files.add(path)
                if not self.dispatcher.remove_file_artifact(path, self.scope):
                    record.files.append(path)

    def _pack_label(self, pack_id: str) -> str:
        pack = self.catalog.pack(pack_id)
        return pack.display_name if pack is not None else pack_id

    # ------------------------------------------------------------------
    # Documentation file
    # ------------------------------------------------------------------

    def _compose_claude_file(
        self,
        packs: Sequence[Pack],
        state: ProjectState,
        values: Mapping[str, str],
        previous_records: Mapping[str, ArtifactRecord],
    ) -> None:
        path = self.scope.claude_file_path
        contributions: list[TemplateContribution] = [t for pack in packs for t in pack.templates]
        current_ids = {c.section_identifier for c in contributions}
        dropped = sorted(
            {s for record in previous_records.values() for s in record.template_sections} - current_ids
        )
        if not contributions and not dropped:
            self.output.dimmed(f"No templates to compose, skipping {path.name}")
            return

        if self.scope.is_global_scope and contributions:
            contributions = self._check_placeholders(contributions, values)
            if contributions is None:
                raise ConfigurationError(f"Stopped: unresolved placeholders in {path.name}")

        try:
            existing = path.read_text(encoding="utf-8") if path.exists() else None
        except (OSError, UnicodeDecodeError) as exc:
            self.output.warn(f"Could not read {path.name}: {exc}")
            return

        content = existing
        if content is not None:
            for identifier in dropped:
                content = remove_section(content, identifier)
        if contributions:
            result = compose_or_update(content, contributions, values, emit_warnings=not self.scope.is_global_scope)
            for warning in result.warnings:
                self.output.warn(warning)
            content = result.content

        if content is None or content == existing:
            self.output.dimmed(f"{path.name} is up to date")
        else:
            try:
                self._write_documentation(path, content)
            except OSError as exc:
                self.output.warn(f"Could not write {path.name}: {exc}. {retry_hint(self.scope)}")
                return
            self.output.success(f"Composed {path.name}{self.scope.label_suffix}")

        written = {c.section_identifier for c in contributions}
        for pack in packs:
            record = state.artifacts(pack.identifier)
            if record is not None:
                record.template_sections = [s for s in record.template_sections if s in written]

    def _write_documentation(self, path: Path, content: str) -> None:
        """Back up the user's documentation file, then replace it atomically.

        Raises:
            OSError: If the backup or the write fails; the file is left untouched.
        """
        backup = backup_file(path)
        if backup is not None:
            self.output.dimmed(f"Backed up {path.name} to {backup.name}")
        ensure_directory(path.parent)
        atomic_write_text(path, content)

    def _check_placeholders(
        self,
        contributions: list[TemplateContribution],
        values: Mapping[str, str],
    ) -> list[TemplateContribution] | None:
        """Ask what to do about unresolved placeholders.

        Returns the contributions to write, or None when the user chose to stop.
        """
        unresolved: dict[str, list[str]] = {}
        for contribution in contributions:
            rendered = substitute(contribution.template_content, values, emit_warnings=False)
            tokens = find_unreplaced_placeholders(rendered)
            if tokens:
                unresolved[contribution.section_identifier] = tokens
        if not unresolved:
            return contributions

        self.output.warn("Unresolved placeholders in templates:")
        for identifier, tokens in unresolved.items():
            self.output.dimmed(f"{identifier}: {', '.join(tokens)}")
        self.output.plain("  [p] proceed anyway  [s] skip these sections  [x] stop")

        while True:
            answer = self.prompter.prompt_inline("Choose", PlaceholderChoice.PROCEED.value).strip().lower()
            try:
                choice = PlaceholderChoice(answer or PlaceholderChoice.PROCEED.value)
            except ValueError:
                self.output.warn(f"Unknown choice '{answer}'")
                continue
            break

        match choice:
            case PlaceholderChoice.PROCEED:
                return contributions
            case PlaceholderChoice.SKIP:
                return [c for c in contributions if c.section_identifier not in unresolved]
            case PlaceholderChoice.STOP:
                return None

    # ------------------------------------------------------------------
    # Gitignore and index
    # ------------------------------------------------------------------

    def _update_gitignore(self, packs: Sequence[Pack], state: ProjectState) -> None:
        try:
            self.dispatcher.gitignore.add_core_entries()
        except OSError as exc:
            self.output.warn(f"Could not update global gitignore: {exc}. {retry_hint(self.scope)}")

        for pack in packs:
            if not pack.gitignore_entries:
                continue
            if not self.dispatcher.add_gitignore_entries(pack.gitignore_entries):
                self.output.warn(f"Could not add gitignore entries for {pack.display_name}. {retry_hint(self.scope)}")
                continue
            record = state.artifacts(pack.identifier)
            if record is not None:
                record.gitignore_entries.extend(e for e in pack.gitignore_entries if e not in record.gitignore_entries)

    def _update_index(self, pack_ids: list[str]) -> None:
        try:
            data = self.index.load()
            if pack_ids:
                self.index.upsert(self.scope.scope_identifier, pack_ids, data)
            else:
                self.index.remove(self.scope.scope_identifier, data)
            self.index.save(data)
        except (OSError, ValueError) as exc:
            self.output.warn(
                f"Could not update project index: {exc}. Resource cleanup may be affected. "
                f"{retry_hint(self.scope)}"
            )

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def unconfigure_pack(
        self,
        pack_id: str,
        state: ProjectState,
        ref_count_scope: str | None = None,
        retained_packs: Iterable[str] = (),
    ) -> bool:
        """Remove every artifact recorded for *pack_id*.

        On full success the pack is dropped from *state*. Otherwise its record
        is narrowed to what is still left so the next sync retries only that.
        Returns True when everything was removed.
        """
        scope = self.scope
        ref_scope = ref_count_scope or scope.scope_identifier
        retained = [p for p in retained_packs if p != pack_id]
        self.output.header(f"Removing {self._pack_label(pack_id)}{scope.label_suffix}")

        record = state.artifacts(pack_id)
        if record is None:
            self.output.dimmed("No artifact record, nothing to remove")
            state.remove_pack(pack_id)
            return True

        remaining = record.copy()

        remaining.mcp_servers = []
        for server in record.mcp_servers:
            if self.dispatcher.remove_mcp_server(server, scope):
                self.output.dimmed(f"Removed MCP server: {server.name}")
            else:
                remaining.mcp_servers.append(server)

        remaining.brew_packages = []
        for package in record.brew_packages:
            resource = Resource.brew_package(package)
            if self._keep_shared(resource, pack_id, ref_scope, state, retained):
                continue
            if self.dispatcher.uninstall_brew_package(package, scope):
                self.output.dimmed(f"Uninstalled {package}")
            else:
                remaining.brew_packages.append(package)

        remaining.plugins = []
        for plugin in record.plugins:
            resource = Resource.plugin(plugin)
            if self._keep_shared(resource, pack_id, ref_scope, state, retained):
                continue
            if self.dispatcher.remove_plugin(plugin, scope):
                self.output.dimmed(f"Removed plugin {plugin}")
            else:
                remaining.plugins.append(plugin)

        remaining.files = [f for f in record.files if not self.dispatcher.remove_file_artifact(f, scope)]

        if record.hook_commands or record.settings_keys:
            if self._remove_settings_entries(record):
                remaining.hook_commands = []
                remaining.settings_keys = []

        if record.template_sections:
            if self._remove_template_sections(record.template_sections):
                remaining.template_sections = []

        remaining.gitignore_entries = [
            e for e in record.gitignore_entries if not self.dispatcher.remove_gitignore_entry(e, scope)
        ]

        if remaining.is_empty:
            state.remove_pack(pack_id)
            self.output.success(f"{self._pack_label(pack_id)} removed")
            return True

        state.set_artifacts(pack_id, remaining)
        self.output.warn(f"Some artifacts for {self._pack_label(pack_id)} could not be removed. {retry_hint(scope)}")
        return False

    def remove_pack(self, pack_id: str) -> bool:
        """Unconfigure *pack_id* in this scope as part of removing the pack everywhere.

        Shared resources are reference-counted as if the pack were gone from
        every scope. Returns True when the pack is no longer configured here.

        Raises:
            StateWriteError: The state file could not be saved.
        """
        state = self.load_state()
        if pack_id not in state.configured_packs:
            self.output.dimmed(f"{pack_id} is not configured in {self.scope.scope_identifier}")
            return True

        retained = [p for p in state.configured_packs if p != pack_id]
        removed = self.unconfigure_pack(pack_id, state, ref_count_scope=PACK_REMOVE_SENTINEL, retained_packs=retained)
        try:
            state.save()
        except OSError as exc:
            raise StateWriteError(str(self.scope.state_file), str(exc), self.scope.sync_hint) from exc
        return removed

    def _keep_shared(
        self,
        resource: Resource,
        pack_id: str,
        ref_scope: str,
        state: ProjectState,
        retained: list[str],
    ) -> bool:
        if not self.refcounter.is_still_needed(resource, ref_scope, pack_id, state, retained):
            return False
        self.output.dimmed(f"Keeping {resource.display_name}, still needed elsewhere")
        self._transfer_ownership(resource, state, retained)
        return True

    def _transfer_ownership(self, resource: Resource, state: ProjectState, retained: list[str]) -> None:
        """Hand a kept resource to a retained pack in this scope that declares it."""
        for other_id in sorted(retained):
            other = self.catalog.pack(other_id)
            if other is None or not resource.declared_by(other):
                continue
            record = state.artifacts(other_id) or ArtifactRecord()
            if resource.owned_by(record):
                return
            if resource.kind is ResourceKind.BREW_PACKAGE:
                record.brew_packages.append(resource.name)
            else:
                record.plugins.append(resource.name)
            state.set_artifacts(other_id, record)
            logger.debug("Transferred ownership of %s to %s", resource.display_name, other_id)
            return

    def _remove_settings_entries(self, record: ArtifactRecord) -> bool:
        path = self.scope.settings_path
        if not path.exists():
            return True
        try:
            settings = Settings.load(path)
        except (OSError, SettingsParseError) as exc:
            self.output.warn(f"Could not read {path.name} to remove entries: {exc}. {retry_hint(self.scope)}")
            return False
        removed_hooks = settings.remove_hook_commands(record.hook_commands)
        settings.remove_keys(record.settings_keys)
        drop_keys = {k for k in record.settings_keys if "." not in k}
        try:
            settings.save(path, drop_keys=drop_keys)
        except OSError as exc:
            self.output.warn(f"Could not update {path.name}: {exc}. {retry_hint(self.scope)}")
            return False
        if removed_hooks:
            self.output.dimmed(f"Removed {removed_hooks} hook entr{'y' if removed_hooks == 1 else 'ies'}")
        return True

    def _remove_template_sections(self, sections: Sequence[str]) -> bool:
        path = self.scope.claude_file_path
        if not path.exists():
            return True
        try:
            content = path.read_text(encoding="utf-8")
            updated = content
            for identifier in sections:
                updated = remove_section(updated, identifier)
            if updated != content:
                self._write_documentation(path, updated)
                self.output.dimmed(f"Removed sections from {path.name}: {', '.join(sections)}")
        except (OSError, UnicodeDecodeError) as exc:
            self.output.warn(f"Could not update {path.name}: {exc}. {retry_hint(self.scope)}")
            return False
        return True

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def dry_run(
        self,
        packs: Sequence[Pack],
        excluded_components: Mapping[str, set[str]] | None = None,
    ) -> SyncReport:
        """Print what :meth:`configure` would do without changing anything."""
        packs = sorted(packs, key=lambda p: p.identifier)
        excluded_components = excluded_components or {}
        state = self.load_state()
        selected_ids = {p.identifier for p in packs}
        previous_ids = set(state.configured_packs)
        removals = sorted(previous_ids - selected_ids)
        additions = sorted(selected_ids - previous_ids)
        updates = sorted(selected_ids & previous_ids)

        self.output.header(f"Plan{self.scope.label_suffix}: {self.scope.scope_identifier}")
        for pack in packs:
            marker = "+" if pack.identifier in additions else "~"
            status = "new" if pack.identifier in additions else "update"
            self.output.plain(f"  {marker} {pack.display_name} ({status})")
            excluded = set(excluded_components.get(pack.identifier, ()))
            self._print_pack_summary(pack, excluded)
        for pack_id in removals:
            self.output.plain(f"  - {pack_id} (remove)")
            record = state.artifacts(pack_id)
            if record is not None:
                self._print_record_summary(record)

        self.output.plain("")
        if not (additions or removals or updates):
            self.output.info("Nothing to do.")
        else:
            self.output.info(f"+{len(additions)} added, -{len(removals)} removed, ~{len(updates)} updated")
        self.output.dimmed("No changes made (dry run).")
        return SyncReport(added=additions, updated=updates, removed=removals)

    def _print_pack_summary(self, pack: Pack, excluded: set[str]) -> None:
        prefix = self.scope.file_display_prefix
        for component in pack.active_components(excluded):
            action = component.install_action
            if isinstance(action, MCPServerAction):
                self.output.dimmed(f"MCP server: {action.config.name}")
            elif isinstance(action, CopyPackFileAction):
                subdirectory = action.file_type.subdirectory
                self.output.dimmed(f"File: {prefix}{subdirectory}{action.destination}")
                if hook_command_for(component, self.scope) is not None:
                    self.output.dimmed(f"Hook: {component.hook_event}")
            elif isinstance(action, BrewInstallAction):
                self.output.dimmed(f"Brew package: {action.package}")
            elif isinstance(action, PluginAction):
                self.output.dimmed(f"Plugin: {action.ref.bare_name}")
            else:
                self.output.dimmed(component.display_name)
        for identifier in pack.template_section_identifiers:
            self.output.dimmed(f"Template section: {identifier}")
        if pack.gitignore_entries:
            self.output.dimmed(f"Gitignore: {', '.join(pack.gitignore_entries)}")

    def _print_record_summary(self, record: ArtifactRecord) -> None:
        for server in record.mcp_servers:
            self.output.dimmed(f"MCP server: {server.name}")
        for path in record.files:
            self.output.dimmed(f"File: {path}")
        for package in record.brew_packages:
            self.output.dimmed(f"Brew package: {package} (if unused elsewhere)")
        for plugin in record.plugins:
            self.output.dimmed(f"Plugin: {plugin} (if unused elsewhere)")
        for identifier in record.template_sections:
            self.output.dimmed(f"Template section: {identifier}")
        if record.settings_keys:
            self.output.dimmed(f"Settings keys: {', '.join(record.settings_keys)}")


def _component_owners(packs: Sequence[Pack]) -> dict[str, str]:
    return {c.id: pack.identifier for pack in packs for c in pack.components}


def _install_order(
    packs: Sequence[Pack],
    plans: Mapping[str, Sequence[Component]],
    owners: Mapping[str, str],
) -> list[Pack]:
    """Order *packs* so a pack installs after the packs whose components it depends on.

    Ties keep identifier order. Packs that depend on each other fall back to
    identifier order.
    """
    requires = {
        pack.identifier: {
            owners[dependency]
            for component in plans[pack.identifier]
            for dependency in component.dependencies
            if owners.get(dependency, pack.identifier) != pack.identifier
        }
        for pack in packs
    }
    ordered: list[Pack] = []
    placed: set[str] = set()
    pending = sorted(packs, key=lambda p: p.identifier)
    while pending:
        ready = next((p for p in pending if requires[p.identifier] <= placed), pending[0])
        ordered.append(ready)
        placed.add(ready.identifier)
        pending.remove(ready)
    return ordered


def _merge_ownership(record: ArtifactRecord, owned: ArtifactRecord) -> None:
    record.brew_packages.extend(p for p in owned.brew_packages if p not in record.brew_packages)
    record.plugins.extend(p for p in owned.plugins if p not in record.plugins)


__all__ = ["Configurator", "PlaceholderChoice", "ProjectHookRunner", "SyncReport"]
