"""Install and remove single components.

Every operation here reports success as a ``bool`` or a result dataclass and
prints its own warnings; nothing raises for a single component failing, so
the orchestrator's per-component loops always run to completion.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import assert_never

from mcs_cli.core.fs import copy_into, remove_path
from mcs_cli.core.gitignore_manager import GitignoreManager
from mcs_cli.core.integrations import AssistantCLI, PackageManager
from mcs_cli.core.output import Output
from mcs_cli.core.paths import relative_path, safe_path
from mcs_cli.core.shell import ShellRunner
from mcs_cli.core.state import ArtifactRecord, MCPServerRef
from mcs_cli.install.scope import SyncScope
from mcs_cli.packs.models import (
    BrewInstallAction,
    Component,
    ComponentType,
    CopyFileType,
    CopyPackFileAction,
    GitignoreEntriesAction,
    MCPServerAction,
    MCPServerConfig,
    Pack,
    PluginAction,
    PluginRef,
    SettingsMergeAction,
    ShellCommandAction,
)

logger = logging.getLogger(__name__)

_STDERR_LIMIT = 200


@dataclass
class PackInstallResult:
    record: ArtifactRecord
    warnings: list[str] = field(default_factory=list)


def retry_hint(scope: SyncScope) -> str:
    return f"Re-run '{scope.sync_hint}' to retry."


def hook_command_for(component: Component, scope: SyncScope) -> str | None:
    """Settings hook command for a hook-file component, or None when it registers none."""
    action = component.install_action
    if (
        component.type is ComponentType.HOOK_FILE
        and component.hook_event
        and isinstance(action, CopyPackFileAction)
        and action.file_type is CopyFileType.HOOK
    ):
        return f"{scope.hook_command_prefix}{action.destination}"
    return None


class ComponentDispatcher:
    """Routes each install action to the collaborator that performs it."""

    def __init__(
        self,
        shell: ShellRunner,
        package_manager: PackageManager,
        assistant: AssistantCLI,
        gitignore: GitignoreManager,
        output: Output,
    ) -> None:
        self.shell = shell
        self.package_manager = package_manager
        self.assistant = assistant
        self.gitignore = gitignore
        self.output = output

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def is_already_installed(self, component: Component) -> bool:
        """Whether installing *component* can be skipped.

        File copies, settings merges, ignore entries and server registrations
        are idempotent and always re-run. Shell commands have no check.
        """
        match component.install_action:
            case BrewInstallAction(package=package):
                return self.package_manager.is_installed(package)
            case PluginAction() as action:
                return self.assistant.is_plugin_installed(action.ref)
            case (
                MCPServerAction()
                | ShellCommandAction()
                | SettingsMergeAction()
                | GitignoreEntriesAction()
                | CopyPackFileAction()
            ):
                return False
            case _ as unreachable:
                assert_never(unreachable)

    # ------------------------------------------------------------------
    # Machine-wide dependencies
    # ------------------------------------------------------------------

    def install_dependencies(
        self,
        pack: Pack,
        excluded_ids: set[str] | frozenset[str] = frozenset(),
        components: Sequence[Component] | None = None,
    ) -> ArtifactRecord:
        """Install the pack's package and plugin dependencies.

        *components* is the dependency-ordered install list; without it the
        pack's active components are used in declaration order.

        Returns a record whose ownership fields list only what this call
        actually installed. Anything already present beforehand is left out so
        removal never uninstalls a tool the user had on their own.
        """
        owned = ArtifactRecord()
        if components is None:
            components = pack.active_components(excluded_ids)
        for component in components:
            action = component.install_action
            if not isinstance(action, BrewInstallAction | PluginAction):
                continue
            if self.is_already_installed(component):
                self.output.dimmed(f"{component.display_name} already installed, skipping")
                continue
            if isinstance(action, BrewInstallAction):
                self.output.dimmed(f"Installing {component.display_name}...")
                if self.install_brew_package(action.package):
                    owned.brew_packages.append(action.package)
                    self.output.success(f"{component.display_name} installed")
                else:
                    self.output.warn(f"{component.display_name} failed to install")
            else:
                self.output.dimmed(f"Installing plugin {component.display_name}...")
                if self.install_plugin(action.name):
                    owned.plugins.append(action.name)
                    self.output.success(f"{component.display_name} installed")
                else:
                    self.output.warn(f"{component.display_name} failed to install")
        return owned

    # ------------------------------------------------------------------
    # Per-scope artifacts
    # ------------------------------------------------------------------

    def install_pack(
        self,
        pack: Pack,
        excluded_ids: set[str] | frozenset[str],
        resolved_values: Mapping[str, str],
        scope: SyncScope,
        previous: ArtifactRecord | None = None,
        components: Sequence[Component] | None = None,
    ) -> PackInstallResult:
        """Install every active component of *pack* into *scope*.

        *components* is the dependency-ordered install list; without it the
        pack's active components are used in declaration order. The returned
        record holds freshly computed convergent fields plus the ownership
        fields carried forward from *previous*.
        """
        record = ArtifactRecord()
        record.carry_forward(previous)
        warnings: list[str] = []

        def warn(message: str) -> None:
            warnings.append(message)
            self.output.warn(message)

        if components is None:
            components = pack.active_components(excluded_ids)
        install_ids = {c.id for c in components}
        for component in pack.components:
            if component.id not in install_ids:
                self.output.dimmed(f"{component.display_name} excluded, skipping")

        for component in components:
            match component.install_action:
                case MCPServerAction(config=config):
                    ref = self.install_mcp_server(config, resolved_values, scope)
                    if ref is None:
                        warn(f"{component.display_name} could not be registered")
                    else:
                        record.mcp_servers.append(ref)
                        self.output.success(f"{component.display_name} registered (scope: {ref.scope})")

                case CopyPackFileAction() as action:
                    installed = self.install_copy_pack_file(action, scope, resolved_values)
                    if installed is None:
                        warn(f"{component.display_name} could not be installed")
                        continue
                    record.files.extend(installed)
                    hook_command = hook_command_for(component, scope)
                    if hook_command is not None:
                        record.hook_commands.append(hook_command)
                    self.output.success(f"{component.display_name} installed")

                case GitignoreEntriesAction(entries=entries):
                    if self.add_gitignore_entries(entries):
                        record.gitignore_entries.extend(e for e in entries if e not in record.gitignore_entries)
                    else:
                        warn(f"Could not add gitignore entries for {component.display_name}")

                case ShellCommandAction(command=command):
                    self.output.dimmed(f"Running {component.display_name}...")
                    result = self.shell.shell(command)
                    if result.succeeded:
                        self.output.success(f"{component.display_name} installed")
                    else:
                        warn(f"{component.display_name} requires manual installation: {command}")
                        if result.stderr:
                            self.output.dimmed(f"Error: {result.stderr[:_STDERR_LIMIT]}")
                        self.output.dimmed(f"Run the command above, then re-run '{scope.sync_hint}'.")

                case BrewInstallAction() | PluginAction() | SettingsMergeAction():
                    # Dependencies are installed up front; settings are composed later.
                    pass

                case _ as unreachable:
                    assert_never(unreachable)

        record.template_sections = list(pack.template_section_identifiers)
        return PackInstallResult(record=record, warnings=warnings)

    # ------------------------------------------------------------------
    # Individual installers
    # ------------------------------------------------------------------

    def install_brew_package(self, package: str) -> bool:
        if not self.package_manager.is_available():
            self.output.warn(f"Homebrew not found, cannot install {package}")
            return False
        result = self.package_manager.install(package)
        if not result.succeeded:
            self.output.warn(result.stderr[:_STDERR_LIMIT] or f"brew install {package} failed")
        return result.succeeded

    def install_plugin(self, name: str) -> bool:
        if not self.assistant.is_available():
            self.output.warn("claude CLI not found, skipping plugin")
            return False
        result = self.assistant.install_plugin(PluginRef.parse(name))
        if not result.succeeded and result.stderr:
            self.output.dimmed(result.stderr[:_STDERR_LIMIT])
        return result.succeeded

    def install_mcp_server(
        self,
        config: MCPServerConfig,
        resolved_values: Mapping[str, str],
        scope: SyncScope,
    ) -> MCPServerRef | None:
        """Register a server; returns the reference to record, or None on failure."""
        if not self.assistant.is_available():
            self.output.warn("claude CLI not found, skipping MCP server")
            return None
        resolved = config.substituting(resolved_values)
        if scope.mcp_scope_override:
            resolved = resolved.with_scope(scope.mcp_scope_override)
        result = self.assistant.register_server(resolved.name, resolved.resolved_scope, resolved.cli_arguments())
        if not result.succeeded:
            if result.stderr:
                self.output.dimmed(result.stderr[:_STDERR_LIMIT])
            return None
        return MCPServerRef(name=resolved.name, scope=resolved.resolved_scope)

    def install_copy_pack_file(
        self,
        action: CopyPackFileAction,
        scope: SyncScope,
        resolved_values: Mapping[str, str],
    ) -> list[str] | None:
        """Copy a pack file or directory; returns scope-relative paths, or None on failure."""
        base = action.file_type.base_directory(scope.target_path)
        dest = base / action.destination
        result = copy_into(
            action.source,
            dest,
            base,
            values=resolved_values,
            executable=action.file_type is CopyFileType.HOOK,
        )
        for backup in result.backups:
            self.output.dimmed(f"Backed up existing file to {backup.name}")
        if not result.success:
            self.output.warn(result.error or f"Could not copy {action.source}")
            return None
        return [relative_path(path, scope.files_root) for path in result.installed]

    def add_gitignore_entries(self, entries: tuple[str, ...] | list[str]) -> bool:
        try:
            self.gitignore.ensure_entries(entries)
        except OSError as exc:
            self.output.dimmed(str(exc))
            return False
        return True

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove_mcp_server(self, server: MCPServerRef, scope: SyncScope) -> bool:
        result = self.assistant.remove_server(server.name, server.scope)
        if not result.succeeded:
            self.output.warn(
                f"Could not remove MCP server {server.name}: {result.stderr[:_STDERR_LIMIT]}. {retry_hint(scope)}"
            )
        return result.succeeded

    def uninstall_brew_package(self, package: str, scope: SyncScope) -> bool:
        result = self.package_manager.uninstall(package)
        if not result.succeeded:
            self.output.warn(f"Could not uninstall {package}: {result.stderr[:_STDERR_LIMIT]}. {retry_hint(scope)}")
        return result.succeeded

    def remove_plugin(self, name: str, scope: SyncScope) -> bool:
        ref = PluginRef.parse(name)
        result = self.assistant.remove_plugin(ref)
        if not result.succeeded:
            self.output.warn(
                f"Could not remove plugin {ref.bare_name}: {result.stderr[:_STDERR_LIMIT]}. {retry_hint(scope)}"
            )
        return result.succeeded

    def remove_gitignore_entry(self, entry: str, scope: SyncScope) -> bool:
        try:
            self.gitignore.remove_entries([entry])
        except OSError as exc:
            self.output.warn(f"Could not remove gitignore entry '{entry}': {exc}. {retry_hint(scope)}")
            return False
        return True

    def remove_file_artifact(self, relative: str, scope: SyncScope) -> bool:
        """Delete a recorded file. Returns True when it is gone (or was never there).

        A recorded path that escapes the scope is cleared from tracking
        without touching the filesystem.
        """
        full_path = safe_path(relative, scope.files_root)
        if full_path is None:
            self.output.warn(f"Path '{relative}' escapes {scope.files_root}, clearing from tracking")
            return True
        if not full_path.exists() and not full_path.is_symlink():
            return True
        try:
            remove_path(full_path)
        except OSError as exc:
            self.output.warn(f"Could not remove {relative}: {exc}. {retry_hint(scope)}")
            return False
        self.output.dimmed(f"Removed: {relative}")
        _prune_empty_parents(full_path.parent, scope.target_path)
        return True


def _prune_empty_parents(directory: Path, stop: Path) -> None:
    """Remove empty directories from *directory* up to (not including) *stop*."""
    stop = stop.resolve()
    current = directory.resolve()
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent


__all__ = ["ComponentDispatcher", "PackInstallResult", "hook_command_for", "retry_hint"]
