"""Read-only health checks for a synced scope.

Checks are derived from what the scope's state says is configured: every
active component of every configured pack gets the check its install action
implies, the documentation file is validated section by section, and the
project index is compared with the state file. Nothing here writes; repairs
are left to ``mcs sync``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import assert_never

from mcs_cli.core.backup import BACKUP_MARKER, find_backups
from mcs_cli.core.constants import GLOBAL_SCOPE_SENTINEL
from mcs_cli.core.fs import render_file_bytes
from mcs_cli.core.integrations import AssistantCLI, PackageManager
from mcs_cli.core.paths import Environment
from mcs_cli.core.project_index import ProjectIndex
from mcs_cli.core.settings import Settings, SettingsParseError
from mcs_cli.core.state import ArtifactRecord, ProjectState
from mcs_cli.install.dispatcher import hook_command_for
from mcs_cli.install.scope import SyncScope
from mcs_cli.packs.models import (
    BrewInstallAction,
    Component,
    CopyPackFileAction,
    GitignoreEntriesAction,
    MCPServerAction,
    Pack,
    PluginAction,
    SettingsMergeAction,
    ShellCommandAction,
    TemplateContribution,
)
from mcs_cli.packs.registry import PackCatalog
from mcs_cli.templates.composer import parse_sections, unpaired_sections
from mcs_cli.templates.engine import substitute

logger = logging.getLogger(__name__)


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class DoctorCheck:
    """Result of a single health check."""

    section: str
    name: str
    passed: bool
    message: str
    severity: Severity = Severity.INFO


@dataclass
class DoctorReport:
    scope: SyncScope
    checks: list[DoctorCheck] = field(default_factory=list)

    @property
    def errors(self) -> list[DoctorCheck]:
        return [c for c in self.checks if not c.passed and c.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[DoctorCheck]:
        return [c for c in self.checks if not c.passed and c.severity is Severity.WARNING]

    @property
    def healthy(self) -> bool:
        return not self.errors


def _passed(section: str, name: str, message: str) -> DoctorCheck:
    return DoctorCheck(section, name, True, message)


def _failed(section: str, name: str, message: str, severity: Severity = Severity.ERROR) -> DoctorCheck:
    return DoctorCheck(section, name, False, message, severity)


class Doctor:
    """Inspects one scope without changing it."""

    def __init__(
        self,
        environment: Environment,
        scope: SyncScope,
        catalog: PackCatalog,
        package_manager: PackageManager,
        assistant: AssistantCLI,
        index: ProjectIndex | None = None,
    ) -> None:
        self.environment = environment
        self.scope = scope
        self.catalog = catalog
        self.package_manager = package_manager
        self.assistant = assistant
        self.index = index or ProjectIndex(environment.projects_index_file)

    def run(self) -> DoctorReport:
        report = DoctorReport(self.scope)
        state = ProjectState(self.scope.state_file)
        if state.load_error is not None:
            report.checks.append(
                _failed("State", self.scope.state_file.name, f"Could not read state: {state.load_error}")
            )
            return report
        if not state.configured_packs:
            report.checks.append(_passed("State", self.scope.state_file.name, "No packs configured"))

        hook_commands = self._registered_hook_commands(report)
        packs: list[Pack] = []
        for pack_id in state.configured_packs:
            pack = self.catalog.pack(pack_id)
            if pack is None:
                report.checks.append(
                    _failed(
                        "Packs",
                        pack_id,
                        "Configured but not found in the packs directory; restore it or run "
                        f"'mcs pack remove {pack_id}'",
                        Severity.WARNING,
                    )
                )
                continue
            packs.append(pack)
            record = state.artifacts(pack_id) or ArtifactRecord()
            for component in pack.active_components(state.excluded_components(pack_id)):
                check = self.check_component(component, record, state.resolved_values, hook_commands)
                if check is not None:
                    report.checks.append(check)

        report.checks.extend(self.check_documentation(packs, state))
        report.checks.extend(self.check_index(state))
        report.checks.extend(self.check_backups())
        return report

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def check_component(
        self,
        component: Component,
        record: ArtifactRecord,
        values: Mapping[str, str],
        hook_commands: list[str] | None,
    ) -> DoctorCheck | None:
        """The check implied by *component*'s install action, or None when it has none."""
        section = "Components"
        name = component.display_name
        match component.install_action:
            case BrewInstallAction(package=package):
                if self.package_manager.is_installed(package):
                    return _passed(section, name, f"{package} installed")
                return _failed(section, name, f"{package} is not installed. Run '{self.scope.sync_hint}'")

            case PluginAction() as action:
                if self.assistant.is_plugin_installed(action.ref):
                    return _passed(section, name, f"Plugin {action.ref.bare_name} installed")
                return _failed(
                    section, name, f"Plugin {action.ref.bare_name} is not installed. Run '{self.scope.sync_hint}'"
                )

            case MCPServerAction(config=config):
                if any(server.name == config.name for server in record.mcp_servers):
                    return _passed(section, name, f"MCP server {config.name} registered")
                return _failed(
                    section, name, f"MCP server {config.name} is not registered. Run '{self.scope.sync_hint}'"
                )

            case CopyPackFileAction() as action:
                return self._check_copied_file(component, action, values, hook_commands)

            case ShellCommandAction() | SettingsMergeAction() | GitignoreEntriesAction():
                return None

            case _ as unreachable:
                assert_never(unreachable)

    def _check_copied_file(
        self,
        component: Component,
        action: CopyPackFileAction,
        values: Mapping[str, str],
        hook_commands: list[str] | None,
    ) -> DoctorCheck:
        section = "Components"
        name = component.display_name
        destination = action.file_type.base_directory(self.scope.target_path) / action.destination
        shown = f"{self.scope.file_display_prefix}{action.file_type.subdirectory}{action.destination}"
        if not destination.exists():
            return _failed(section, name, f"{shown} is missing. Run '{self.scope.sync_hint}'")

        hook_command = hook_command_for(component, self.scope)
        if hook_command is not None and hook_commands is not None and hook_command not in hook_commands:
            return _failed(
                section, name, f"Hook for {shown} is not registered in settings. Run '{self.scope.sync_hint}'"
            )

        if destination.is_file() and action.source.is_file():
            try:
                drifted = destination.read_bytes() != render_file_bytes(action.source, values)
            except OSError as exc:
                return _failed(section, name, f"Could not compare {shown}: {exc}", Severity.WARNING)
            if drifted:
                return _failed(
                    section,
                    name,
                    f"{shown} differs from the pack source. Run '{self.scope.sync_hint}' to refresh it",
                    Severity.WARNING,
                )
        return _passed(section, name, f"{shown} present")

    def _registered_hook_commands(self, report: DoctorReport) -> list[str] | None:
        path = self.scope.settings_path
        if not path.exists():
            return []
        try:
            return Settings.load(path).hook_commands()
        except (OSError, SettingsParseError) as exc:
            report.checks.append(_failed("Settings", path.name, f"Could not read settings: {exc}"))
            return None

    # ------------------------------------------------------------------
    # Documentation file
    # ------------------------------------------------------------------

    def check_documentation(self, packs: list[Pack], state: ProjectState) -> list[DoctorCheck]:
        """Validate every section the state says was written to the documentation file."""
        path = self.scope.claude_file_path
        section = "Templates"
        recorded = {
            identifier
            for pack in packs
            if (record := state.artifacts(pack.identifier)) is not None
            for identifier in record.template_sections
        }
        expected: dict[str, TemplateContribution] = {
            t.section_identifier: t for pack in packs for t in pack.templates if t.section_identifier in recorded
        }
        if not expected:
            return []
        if not path.exists():
            return [_failed(section, path.name, f"{path.name} is missing. Run '{self.scope.sync_hint}'")]
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return [_failed(section, path.name, f"Could not read {path.name}: {exc}")]

        checks: list[DoctorCheck] = []
        unpaired = unpaired_sections(content)
        if unpaired:
            checks.append(
                _failed(
                    section,
                    path.name,
                    f"Unpaired section markers: {', '.join(unpaired)}. Add the missing end markers manually",
                )
            )

        installed = {s.identifier: s for s in parse_sections(content)}
        for identifier, contribution in sorted(expected.items()):
            if identifier in unpaired:
                continue
            current = installed.get(identifier)
            if current is None:
                checks.append(
                    _failed(section, identifier, f"Section not found in {path.name}. Run '{self.scope.sync_hint}'")
                )
                continue
            rendered = substitute(contribution.template_content, state.resolved_values, emit_warnings=False)
            if current.content.strip() != rendered.strip():
                checks.append(
                    _failed(
                        section,
                        identifier,
                        f"Section content drifted (v{current.version}). Run '{self.scope.sync_hint}' to refresh it",
                        Severity.WARNING,
                    )
                )
            else:
                checks.append(_passed(section, identifier, f"v{current.version} up to date"))
        return checks

    # ------------------------------------------------------------------
    # Index and backups
    # ------------------------------------------------------------------

    def check_index(self, state: ProjectState) -> list[DoctorCheck]:
        """Compare the project index with this scope's state and report stale entries."""
        section = "Index"
        try:
            data = self.index.load()
        except (OSError, ValueError) as exc:
            return [_failed(section, "projects", f"Could not read project index: {exc}")]

        checks: list[DoctorCheck] = []
        entry = next((e for e in data.projects if e.path == self.scope.scope_identifier), None)
        configured = sorted(state.configured_packs)
        if entry is None and configured:
            checks.append(
                _failed(
                    section,
                    "this scope",
                    f"Not in the project index. Run '{self.scope.sync_hint}'",
                    Severity.WARNING,
                )
            )
        elif entry is not None and sorted(entry.packs) != configured:
            checks.append(
                _failed(
                    section,
                    "this scope",
                    f"Index lists {', '.join(entry.packs) or 'no packs'} but the state has "
                    f"{', '.join(configured) or 'no packs'}. Run '{self.scope.sync_hint}'",
                    Severity.WARNING,
                )
            )
        elif entry is not None:
            checks.append(_passed(section, "this scope", "Index matches state"))

        stale = [e.path for e in data.projects if e.path != self.scope.scope_identifier and _is_stale(e.path)]
        for path in stale:
            checks.append(
                _failed(section, path, "Project directory no longer exists. Run 'mcs index --prune'", Severity.WARNING)
            )
        return checks

    def check_backups(self) -> list[DoctorCheck]:
        doc = self.scope.claude_file_path
        backups = set(find_backups(self.scope.target_path))
        backups.update(doc.parent.glob(f"{doc.name}{BACKUP_MARKER}*"))
        if not backups:
            return []
        return [_passed("Backups", "backups", f"{len(backups)} backup file(s) can be reviewed and deleted")]


def _is_stale(path: str) -> bool:
    return path != GLOBAL_SCOPE_SENTINEL and not Path(path).exists()


__all__ = ["Doctor", "DoctorCheck", "DoctorReport", "Severity"]
