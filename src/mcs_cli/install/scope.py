"""Sync scope: the paths and flags that differ between project and global targets."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from mcs_cli.core.constants import (
    CLAUDE_DIRECTORY,
    CLAUDE_LOCAL_MD,
    GLOBAL_SCOPE_SENTINEL,
    PROJECT_SETTINGS_FILE,
    PROJECT_STATE_FILE,
)
from mcs_cli.core.paths import Environment

GLOBAL_MCP_SCOPE = "user"


@dataclass(frozen=True)
class SyncScope:
    """Everything the convergence engine needs to know about one target.

    Fields:
        label: Human label ("Project" / "Global")
        target_path: The scope's ``.claude`` directory; copied files land below it
        files_root: Base that recorded file paths are relative to
        state_file: Per-scope state file
        settings_path: Settings JSON the scope composes
        claude_file_path: Generated documentation file
        scope_identifier: Project path string or ``__global__`` (index key)
        mcp_scope_override: Forced MCP registration scope, if any
        include_templates_in_scan: Whether template content is scanned for undeclared placeholders
        run_configure_project_hooks: Whether pack configure scripts run
        is_global_scope: True for the machine-wide scope
        sync_hint: Command that re-runs this sync
        label_suffix: Appended to pack names in progress output
        hook_command_prefix: Prefix of managed hook commands in settings
        file_display_prefix: Prefix for showing destination paths
    """

    label: str
    target_path: Path
    files_root: Path
    state_file: Path
    settings_path: Path
    claude_file_path: Path
    scope_identifier: str
    mcp_scope_override: str | None
    include_templates_in_scan: bool
    run_configure_project_hooks: bool
    is_global_scope: bool
    sync_hint: str
    label_suffix: str
    hook_command_prefix: str
    file_display_prefix: str

    @classmethod
    def project(cls, project_path: Path) -> SyncScope:
        project_path = project_path.resolve()
        claude_dir = project_path / CLAUDE_DIRECTORY
        return cls(
            label="Project",
            target_path=claude_dir,
            files_root=project_path,
            state_file=claude_dir / PROJECT_STATE_FILE,
            settings_path=claude_dir / PROJECT_SETTINGS_FILE,
            claude_file_path=project_path / CLAUDE_LOCAL_MD,
            scope_identifier=str(project_path),
            mcp_scope_override=None,
            include_templates_in_scan=True,
            run_configure_project_hooks=True,
            is_global_scope=False,
            sync_hint="mcs sync",
            label_suffix="",
            hook_command_prefix=f"bash {CLAUDE_DIRECTORY}/hooks/",
            file_display_prefix=f"{CLAUDE_DIRECTORY}/",
        )

    @classmethod
    def global_(cls, environment: Environment) -> SyncScope:
        return cls(
            label="Global",
            target_path=environment.claude_directory,
            files_root=environment.claude_directory,
            state_file=environment.global_state_file,
            settings_path=environment.claude_settings,
            claude_file_path=environment.global_claude_md,
            scope_identifier=GLOBAL_SCOPE_SENTINEL,
            mcp_scope_override=GLOBAL_MCP_SCOPE,
            include_templates_in_scan=False,
            run_configure_project_hooks=False,
            is_global_scope=True,
            sync_hint="mcs sync --global",
            label_suffix=" (global)",
            hook_command_prefix="bash ~/.claude/hooks/",
            file_display_prefix="~/.claude/",
        )

    @property
    def project_path(self) -> Path | None:
        """The project root for project scope, ``None`` for global."""
        return None if self.is_global_scope else self.files_root


__all__ = ["GLOBAL_MCP_SCOPE", "SyncScope"]
