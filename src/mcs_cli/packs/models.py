"""Pack domain models.

A :class:`Pack` bundles :class:`Component` definitions plus documentation,
ignore-list and prompt contributions. Each component carries exactly one
:data:`InstallAction`, a closed union of frozen dataclasses that the
dispatcher matches exhaustively.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from pathlib import Path

from mcs_cli.core.constants import OFFICIAL_MARKETPLACE, OFFICIAL_MARKETPLACE_REPO
from mcs_cli.templates.engine import substitute

HTTP_TRANSPORT_COMMAND = "http"
DEFAULT_MCP_SCOPE = "local"


class ComponentType(StrEnum):
    MCP_SERVER = "mcpServer"
    PLUGIN = "plugin"
    SKILL = "skill"
    HOOK_FILE = "hookFile"
    COMMAND = "command"
    BREW_PACKAGE = "brewPackage"
    CONFIGURATION = "configuration"


class CopyFileType(StrEnum):
    SKILL = "skill"
    HOOK = "hook"
    COMMAND = "command"
    GENERIC = "generic"

    @property
    def subdirectory(self) -> str:
        """Directory under the scope's ``.claude`` root, with trailing slash."""
        if self is CopyFileType.GENERIC:
            return ""
        return {"skill": "skills/", "hook": "hooks/", "command": "commands/"}[self.value]

    def base_directory(self, claude_root: Path) -> Path:
        if self is CopyFileType.GENERIC:
            return claude_root
        return claude_root / self.subdirectory.rstrip("/")


class PromptType(StrEnum):
    INPUT = "input"
    SELECT = "select"
    FILE_DETECT = "fileDetect"
    SCRIPT = "script"


# ----------------------------------------------------------------------
# Value types
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class MCPServerConfig:
    """An MCP server registration. ``command == "http"`` means HTTP transport."""

    name: str
    command: str
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    scope: str | None = None

    @classmethod
    def http(cls, name: str, url: str, scope: str | None = None) -> MCPServerConfig:
        return cls(name=name, command=HTTP_TRANSPORT_COMMAND, args=(url,), scope=scope)

    @property
    def is_http(self) -> bool:
        return self.command == HTTP_TRANSPORT_COMMAND

    @property
    def resolved_scope(self) -> str:
        return self.scope or DEFAULT_MCP_SCOPE

    def substituting(self, values: Mapping[str, str]) -> MCPServerConfig:
        """Return a copy with placeholders replaced in command, args and env values."""
        if not values:
            return self
        return replace(
            self,
            command=substitute(self.command, values, emit_warnings=False),
            args=tuple(substitute(a, values, emit_warnings=False) for a in self.args),
            env={k: substitute(v, values, emit_warnings=False) for k, v in self.env.items()},
        )

    def with_scope(self, scope: str) -> MCPServerConfig:
        return replace(self, scope=scope)

    def cli_arguments(self) -> list[str]:
        """Arguments following ``claude mcp add -s <scope> <name>``."""
        args: list[str] = []
        for key in sorted(self.env):
            args.extend(["-e", f"{key}={self.env[key]}"])
        if self.is_http:
            args.extend(["--transport", "http", *self.args])
        else:
            args.extend(["--", self.command, *self.args])
        return args


@dataclass(frozen=True)
class PluginRef:
    """A ``name@repo`` plugin reference.

    - ``my-plugin`` uses the official marketplace
    - ``my-plugin@claude-plugins-official`` is the short official form
    - ``my-plugin@org/repo`` names a marketplace repository
    """

    full_name: str
    bare_name: str
    marketplace_repo: str

    @classmethod
    def parse(cls, full_name: str) -> PluginRef:
        bare, sep, repo = full_name.partition("@")
        if not sep:
            return cls(full_name, full_name, OFFICIAL_MARKETPLACE_REPO)
        if "/" not in repo and repo == OFFICIAL_MARKETPLACE:
            repo = OFFICIAL_MARKETPLACE_REPO
        return cls(full_name, bare, repo)


# ----------------------------------------------------------------------
# Install actions
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class MCPServerAction:
    config: MCPServerConfig


@dataclass(frozen=True)
class PluginAction:
    name: str

    @property
    def ref(self) -> PluginRef:
        return PluginRef.parse(self.name)


@dataclass(frozen=True)
class BrewInstallAction:
    package: str


@dataclass(frozen=True)
class ShellCommandAction:
    command: str


@dataclass(frozen=True)
class SettingsMergeAction:
    source: Path | None = None


@dataclass(frozen=True)
class GitignoreEntriesAction:
    entries: tuple[str, ...]


@dataclass(frozen=True)
class CopyPackFileAction:
    source: Path
    destination: str
    file_type: CopyFileType = CopyFileType.GENERIC


InstallAction = (
    MCPServerAction
    | PluginAction
    | BrewInstallAction
    | ShellCommandAction
    | SettingsMergeAction
    | GitignoreEntriesAction
    | CopyPackFileAction
)


# ----------------------------------------------------------------------
# Packs and components
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Component:
    id: str
    display_name: str
    type: ComponentType
    install_action: InstallAction
    description: str = ""
    is_required: bool = False
    dependencies: tuple[str, ...] = ()
    hook_event: str | None = None


@dataclass(frozen=True)
class TemplateContribution:
    """A documentation section contributed by a pack."""

    section_identifier: str
    template_content: str
    placeholders: tuple[str, ...] = ()


@dataclass(frozen=True)
class PromptOption:
    value: str
    label: str


@dataclass(frozen=True)
class PromptDefinition:
    key: str
    type: PromptType
    label: str | None = None
    default: str | None = None
    options: tuple[PromptOption, ...] = ()
    detect_patterns: tuple[str, ...] = ()
    script_command: str | None = None


@dataclass(frozen=True)
class PeerDependency:
    pack: str
    min_version: str


@dataclass(frozen=True)
class Pack:
    identifier: str
    display_name: str
    description: str = ""
    version: str = "0.0.0"
    components: tuple[Component, ...] = ()
    templates: tuple[TemplateContribution, ...] = ()
    gitignore_entries: tuple[str, ...] = ()
    prompts: tuple[PromptDefinition, ...] = ()
    peer_dependencies: tuple[PeerDependency, ...] = ()
    configure_script: str | None = None
    pack_path: Path | None = None

    def component(self, component_id: str) -> Component | None:
        for candidate in self.components:
            if candidate.id == component_id:
                return candidate
        return None

    def active_components(self, excluded_ids: set[str] | frozenset[str] = frozenset()) -> list[Component]:
        """Components not excluded, in declaration order. Required ones are never excluded."""
        return [c for c in self.components if c.is_required or c.id not in excluded_ids]

    @property
    def template_section_identifiers(self) -> list[str]:
        return [t.section_identifier for t in self.templates]

    def declares_brew_package(self, package: str) -> bool:
        return any(
            isinstance(c.install_action, BrewInstallAction) and c.install_action.package == package
            for c in self.components
        )

    def declares_plugin(self, name: str) -> bool:
        bare = PluginRef.parse(name).bare_name
        return any(
            isinstance(c.install_action, PluginAction) and c.install_action.ref.bare_name == bare
            for c in self.components
        )


__all__ = [
    "BrewInstallAction",
    "Component",
    "ComponentType",
    "CopyFileType",
    "CopyPackFileAction",
    "GitignoreEntriesAction",
    "InstallAction",
    "MCPServerAction",
    "MCPServerConfig",
    "Pack",
    "PeerDependency",
    "PluginAction",
    "PluginRef",
    "PromptDefinition",
    "PromptOption",
    "PromptType",
    "SettingsMergeAction",
    "ShellCommandAction",
    "TemplateContribution",
]
