"""Pack manifest schema (``techpack.yaml``).

Manifests are YAML files validated with pydantic, then checked for
structural rules that span fields (identifier format, component-id prefix,
duplicate ids and prompt keys) and converted into immutable
:class:`~mcs_cli.packs.models.Pack` values.

Key concepts:
- PackManifest: top-level manifest model (camelCase keys in YAML)
- ManifestInstallAction: flat ``type``-tagged action record
- normalized(): auto-prefixes short component ids and dependencies
- to_pack(): resolves pack-relative paths with containment checks
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from ruamel.yaml import YAML

from mcs_cli.core.errors import ManifestError
from mcs_cli.core.paths import safe_path
from mcs_cli.packs.models import (
    BrewInstallAction,
    Component,
    ComponentType,
    CopyFileType,
    CopyPackFileAction,
    GitignoreEntriesAction,
    InstallAction,
    MCPServerAction,
    MCPServerConfig,
    Pack,
    PeerDependency,
    PluginAction,
    PromptDefinition,
    PromptOption,
    PromptType,
    SettingsMergeAction,
    ShellCommandAction,
    TemplateContribution,
)

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_VERSION = 1
IDENTIFIER_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")


class _ManifestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ManifestPeerDependency(_ManifestModel):
    pack: str
    min_version: str = Field(..., alias="minVersion")


class ManifestInstallAction(_ManifestModel):
    """One install action; which fields apply depends on ``type``."""

    type: Literal[
        "mcpServer",
        "plugin",
        "brewInstall",
        "shellCommand",
        "gitignoreEntries",
        "settingsMerge",
        "settingsFile",
        "copyPackFile",
    ]
    name: str | None = None
    package: str | None = None
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    transport: Literal["stdio", "http"] | None = None
    url: str | None = None
    scope: Literal["local", "user", "project"] | None = None
    entries: list[str] = Field(default_factory=list)
    source: str | None = None
    destination: str | None = None
    file_type: CopyFileType | None = Field(default=None, alias="fileType")

    def require(self, *names: str) -> None:
        missing = [n for n in names if not getattr(self, n)]
        if missing:
            raise ManifestError(f"Install action '{self.type}' requires: {', '.join(missing)}")


class ManifestComponent(_ManifestModel):
    id: str
    display_name: str = Field(..., alias="displayName")
    description: str = ""
    type: ComponentType
    dependencies: list[str] = Field(default_factory=list)
    is_required: bool = Field(default=False, alias="isRequired")
    hook_event: str | None = Field(default=None, alias="hookEvent")
    install_action: ManifestInstallAction = Field(..., alias="installAction")


class ManifestTemplate(_ManifestModel):
    section_identifier: str = Field(..., alias="sectionIdentifier")
    content_file: str = Field(..., alias="contentFile")
    placeholders: list[str] = Field(default_factory=list)


class ManifestPromptOption(_ManifestModel):
    value: str
    label: str


class ManifestPrompt(_ManifestModel):
    key: str
    type: PromptType
    label: str | None = None
    default: str | None = None
    options: list[ManifestPromptOption] = Field(default_factory=list)
    detect_patterns: list[str] = Field(default_factory=list, alias="detectPattern")
    script_command: str | None = Field(default=None, alias="scriptCommand")

    @field_validator("detect_patterns", mode="before")
    @classmethod
    def _single_pattern(cls, value: Any) -> Any:
        # A single pattern may be written as a plain string
        if isinstance(value, str):
            return [value]
        return value


class ManifestConfigureProject(_ManifestModel):
    script: str


class PackManifest(_ManifestModel):
    schema_version: int = Field(..., alias="schemaVersion")
    identifier: str
    display_name: str = Field(..., alias="displayName")
    description: str = ""
    version: str = "0.0.0"
    peer_dependencies: list[ManifestPeerDependency] = Field(default_factory=list, alias="peerDependencies")
    components: list[ManifestComponent] = Field(default_factory=list)
    templates: list[ManifestTemplate] = Field(default_factory=list)
    gitignore_entries: list[str] = Field(default_factory=list, alias="gitignoreEntries")
    prompts: list[ManifestPrompt] = Field(default_factory=list)
    configure_project: ManifestConfigureProject | None = Field(default=None, alias="configureProject")

    @classmethod
    def from_yaml_file(cls, path: Path) -> PackManifest:
        """Load a manifest from YAML.

        Raises:
            ManifestError: If the file is unreadable, not YAML, or fails the schema.
        """
        yaml = YAML(typ="safe")
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.load(f)
        except OSError as exc:
            raise ManifestError(f"Could not read {path}: {exc}") from exc
        except Exception as exc:
            raise ManifestError(f"Invalid YAML in {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ManifestError(f"Manifest {path} must be a mapping")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ManifestError(f"Invalid manifest {path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Validation and normalization
    # ------------------------------------------------------------------

    def validate_structure(self) -> None:
        """Check cross-field rules.

        Raises:
            ManifestError: On the first violated rule.
        """
        if self.schema_version != SUPPORTED_SCHEMA_VERSION:
            raise ManifestError(f"Unsupported schema version {self.schema_version}")
        if not IDENTIFIER_PATTERN.match(self.identifier):
            raise ManifestError(
                f"Invalid pack identifier '{self.identifier}': must be lowercase alphanumeric with hyphens"
            )

        prefix = f"{self.identifier}."
        seen_ids: set[str] = set()
        for component in self.components:
            if not component.id.startswith(prefix):
                raise ManifestError(f"Component '{component.id}' must start with '{prefix}'")
            if component.id in seen_ids:
                raise ManifestError(f"Duplicate component id '{component.id}'")
            seen_ids.add(component.id)

        for template in self.templates:
            section = template.section_identifier
            if section != self.identifier and not section.startswith(prefix):
                raise ManifestError(
                    f"Template section '{section}' must be '{self.identifier}' or start with '{prefix}'"
                )

        seen_keys: set[str] = set()
        for prompt in self.prompts:
            if prompt.key in seen_keys:
                raise ManifestError(f"Duplicate prompt key '{prompt.key}'")
            seen_keys.add(prompt.key)

    def normalized(self) -> PackManifest:
        """Prefix short (dot-free) component ids, dependencies and section ids with the pack id."""
        prefix = f"{self.identifier}."

        def qualify(value: str) -> str:
            return value if "." in value else prefix + value

        components = [
            c.model_copy(update={"id": qualify(c.id), "dependencies": [qualify(d) for d in c.dependencies]})
            for c in self.components
        ]
        templates = [
            t.model_copy(update={"section_identifier": qualify(t.section_identifier)})
            for t in self.templates
        ]
        return self.model_copy(update={"components": components, "templates": templates})

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_pack(self, pack_path: Path) -> Pack:
        """Build a :class:`Pack`, reading template content from *pack_path*.

        Components whose source escapes the pack directory are skipped with a
        warning.

        Raises:
            ManifestError: If a template file escapes the pack or cannot be read.
        """
        components = []
        for ext in self.components:
            action = self._convert_action(ext, pack_path)
            if action is None:
                continue
            components.append(
                Component(
                    id=ext.id,
                    display_name=ext.display_name,
                    description=ext.description,
                    type=ext.type,
                    install_action=action,
                    is_required=ext.is_required,
                    dependencies=tuple(ext.dependencies),
                    hook_event=ext.hook_event,
                )
            )

        templates = []
        for ext in self.templates:
            content_path = safe_path(ext.content_file, pack_path)
            if content_path is None:
                raise ManifestError(f"Template file '{ext.content_file}' escapes pack directory")
            try:
                content = content_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ManifestError(f"Could not read template {content_path}: {exc}") from exc
            templates.append(
                TemplateContribution(
                    section_identifier=ext.section_identifier,
                    template_content=content,
                    placeholders=tuple(ext.placeholders),
                )
            )

        prompts = tuple(
            PromptDefinition(
                key=p.key,
                type=p.type,
                label=p.label,
                default=p.default,
                options=tuple(PromptOption(o.value, o.label) for o in p.options),
                detect_patterns=tuple(p.detect_patterns),
                script_command=p.script_command,
            )
            for p in self.prompts
        )

        return Pack(
            identifier=self.identifier,
            display_name=self.display_name,
            description=self.description,
            version=self.version,
            components=tuple(components),
            templates=tuple(templates),
            gitignore_entries=tuple(self.gitignore_entries),
            prompts=prompts,
            peer_dependencies=tuple(PeerDependency(d.pack, d.min_version) for d in self.peer_dependencies),
            configure_script=self.configure_project.script if self.configure_project else None,
            pack_path=pack_path,
        )

    def _convert_action(self, ext: ManifestComponent, pack_path: Path) -> InstallAction | None:
        action = ext.install_action
        match action.type:
            case "mcpServer":
                action.require("name")
                if action.transport == "http":
                    action.require("url")
                    config = MCPServerConfig.http(action.name, action.url, action.scope)
                else:
                    config = MCPServerConfig(
                        name=action.name,
                        command=action.command or "",
                        args=tuple(action.args),
                        env=dict(action.env),
                        scope=action.scope,
                    )
                return MCPServerAction(config)
            case "plugin":
                action.require("name")
                return PluginAction(action.name)
            case "brewInstall":
                action.require("package")
                return BrewInstallAction(action.package)
            case "shellCommand":
                action.require("command")
                return ShellCommandAction(action.command)
            case "gitignoreEntries":
                return GitignoreEntriesAction(tuple(action.entries))
            case "settingsMerge":
                return SettingsMergeAction(None)
            case "settingsFile":
                action.require("source")
                source = safe_path(action.source, pack_path)
                if source is None:
                    logger.warning("Source '%s' escapes pack directory, skipping %s", action.source, ext.id)
                    return None
                return SettingsMergeAction(source)
            case "copyPackFile":
                action.require("source", "destination")
                source = safe_path(action.source, pack_path)
                if source is None:
                    logger.warning("Source '%s' escapes pack directory, skipping %s", action.source, ext.id)
                    return None
                return CopyPackFileAction(
                    source=source,
                    destination=action.destination,
                    file_type=action.file_type or CopyFileType.GENERIC,
                )
        raise ManifestError(f"Unknown install action type '{action.type}'")


def load_pack(pack_path: Path, manifest_name: str) -> Pack:
    """Load, validate and normalize the manifest in *pack_path*.

    Raises:
        ManifestError: If anything about the manifest is invalid.
    """
    manifest = PackManifest.from_yaml_file(pack_path / manifest_name).normalized()
    manifest.validate_structure()
    return manifest.to_pack(pack_path)


__all__ = ["IDENTIFIER_PATTERN", "PackManifest", "load_pack"]
