"""Placeholder value resolution.

Values are resolved once per sync, in priority order, and an earlier stage
always wins over a later one:

1. Built-ins (``REPO_NAME`` and ``PROJECT_DIR_NAME`` in project scope)
2. Prompts declared by two or more packs, asked once
3. Remaining per-pack prompts
4. Placeholders found in pack files that nothing declared
"""

from __future__ import annotations

import fnmatch
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from mcs_cli.core.output import Output
from mcs_cli.core.shell import ShellRunner
from mcs_cli.install.scope import SyncScope
from mcs_cli.packs.models import CopyPackFileAction, Pack, PromptDefinition, PromptOption, PromptType
from mcs_cli.templates.engine import find_unreplaced_placeholders, strip_delimiters

logger = logging.getLogger(__name__)

REPO_NAME = "REPO_NAME"
PROJECT_DIR_NAME = "PROJECT_DIR_NAME"

SHAREABLE_TYPES = frozenset({PromptType.INPUT, PromptType.SELECT})

_REMOTE_RE = re.compile(r"[:/]([^/:]+?)(?:\.git)?/?$")


class Prompter(Protocol):
    """Interactive questions asked during a sync."""

    def ask_yes_no(self, question: str, default: bool = True) -> bool: ...

    def prompt_inline(self, label: str, default: str | None = None) -> str: ...

    def single_select(self, title: str, items: Sequence[tuple[str, str]]) -> int:
        """Return the index of the chosen ``(name, description)`` item."""
        ...


# ----------------------------------------------------------------------
# Built-ins
# ----------------------------------------------------------------------


def parse_repo_name(remote_url: str) -> str | None:
    """``git@github.com:org/repo.git`` / ``https://host/org/repo`` -> ``repo``."""
    match = _REMOTE_RE.search(remote_url.strip())
    if match is None:
        return None
    return match.group(1) or None


def resolve_builtin_values(scope: SyncScope, shell: ShellRunner, output: Output) -> dict[str, str]:
    """Values every pack can rely on. Global scope has none."""
    project_path = scope.project_path
    if project_path is None:
        return {}

    top_level = shell.run("git", ["-C", str(project_path), "rev-parse", "--show-toplevel"])
    if top_level.succeeded and top_level.stdout.strip():
        dir_name = Path(top_level.stdout.strip()).name
    else:
        dir_name = project_path.name

    repo_name = dir_name
    remote = shell.run("git", ["-C", str(project_path), "remote", "get-url", "origin"])
    if remote.succeeded and remote.stdout.strip():
        parsed = parse_repo_name(remote.stdout)
        if parsed:
            repo_name = parsed
        else:
            output.warn(f"Could not parse repo name from remote URL '{remote.stdout.strip()}', using directory name")

    return {REPO_NAME: repo_name, PROJECT_DIR_NAME: dir_name}


def detect_files(patterns: Sequence[str], directory: Path) -> list[str]:
    """Names of non-hidden entries directly in *directory* matching any glob in *patterns*."""
    if not directory.is_dir():
        return []
    patterns = list(patterns) or ["*"]
    names = sorted(p.name for p in directory.iterdir() if not p.name.startswith("."))
    return [name for name in names if any(fnmatch.fnmatch(name, pattern) for pattern in patterns)]


# ----------------------------------------------------------------------
# Resolution
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class SharedPrompt:
    """One prompt key declared by several packs."""

    key: str
    declarations: tuple[tuple[str, PromptDefinition], ...]

    @property
    def pack_names(self) -> list[str]:
        return [name for name, _ in self.declarations]


def group_shared_prompts(
    packs: Sequence[Pack],
    resolved: Mapping[str, str],
) -> list[SharedPrompt]:
    """Input and select prompts whose key is declared by two or more packs, sorted by key."""
    by_key: dict[str, list[tuple[str, PromptDefinition]]] = {}
    for pack in packs:
        for prompt in pack.prompts:
            if prompt.type not in SHAREABLE_TYPES or prompt.key in resolved:
                continue
            by_key.setdefault(prompt.key, []).append((pack.display_name, prompt))
    return [SharedPrompt(key, tuple(decls)) for key, decls in sorted(by_key.items()) if len(decls) > 1]


class ValueResolver:
    """Resolves placeholder values for one sync."""

    def __init__(self, prompter: Prompter, output: Output, shell: ShellRunner, scope: SyncScope) -> None:
        self.prompter = prompter
        self.output = output
        self.shell = shell
        self.scope = scope

    def resolve(
        self,
        packs: Sequence[Pack],
        excluded_components: Mapping[str, set[str]] | None = None,
    ) -> dict[str, str]:
        excluded_components = excluded_components or {}
        values = resolve_builtin_values(self.scope, self.shell, self.output)

        for shared in group_shared_prompts(packs, values):
            values.setdefault(shared.key, self.resolve_shared(shared))

        for pack in packs:
            for prompt in pack.prompts:
                if prompt.key in values:
                    continue
                if prompt.type is PromptType.FILE_DETECT and self.scope.is_global_scope:
                    logger.debug("Skipping fileDetect prompt %s in global scope", prompt.key)
                    continue
                value = self.execute(prompt, pack)
                if value is not None:
                    values[prompt.key] = value

        for key in self.scan_undeclared(packs, values, excluded_components):
            values.setdefault(key, self.prompter.prompt_inline(f"Set value for {key}", None))

        return values

    def resolve_shared(self, shared: SharedPrompt) -> str:
        self.output.plain("")
        self.output.info(f"{shared.key} (shared by {', '.join(shared.pack_names)})")
        for pack_name, prompt in shared.declarations:
            self.output.dimmed(f'{pack_name}: "{prompt.label or "(no description)"}"')

        prompts = [prompt for _, prompt in shared.declarations]
        primary_type = prompts[0].type
        conflict = any(p.type is not primary_type for p in prompts)
        if conflict:
            self.output.warn(f"Type conflict across packs for {shared.key}, using text input")
        default = next((p.default for p in prompts if p.default is not None), None)

        if not conflict and primary_type is PromptType.SELECT:
            merged: list[PromptOption] = []
            seen: set[str] = set()
            for prompt in prompts:
                for option in prompt.options:
                    if option.value not in seen:
                        seen.add(option.value)
                        merged.append(option)
            return self._select(f"Select value for {shared.key}", merged, default)

        return self.prompter.prompt_inline(f"Enter value for {shared.key}", default)

    def execute(self, prompt: PromptDefinition, pack: Pack) -> str | None:
        """Run one per-pack prompt. Returns None when no value could be produced."""
        label = prompt.label or f"Enter value for {prompt.key}"
        match prompt.type:
            case PromptType.INPUT:
                return self.prompter.prompt_inline(label, prompt.default)
            case PromptType.SELECT:
                return self._select(prompt.label or f"Select value for {prompt.key}", prompt.options, prompt.default)
            case PromptType.FILE_DETECT:
                return self._file_detect(prompt)
            case PromptType.SCRIPT:
                return self._script(prompt, pack)
        return None

    def _select(self, title: str, options: Sequence[PromptOption], default: str | None) -> str:
        if not options:
            return default or ""
        index = self.prompter.single_select(title, [(o.label, o.value) for o in options])
        return options[index].value

    def _file_detect(self, prompt: PromptDefinition) -> str | None:
        project_path = self.scope.project_path
        files = detect_files(prompt.detect_patterns, project_path) if project_path else []
        if len(files) == 1:
            self.output.info(f"Found: {files[0]}")
            return files[0]
        if files:
            items = [(name, Path(name).suffix.lstrip(".") or "File") for name in files]
            return files[self.prompter.single_select(prompt.label or "Select a file", items)]

        entered = self.prompter.prompt_inline(prompt.label or f"Enter value for {prompt.key}", prompt.default)
        if not entered:
            patterns = ", ".join(prompt.detect_patterns) or "*"
            self.output.warn(f"No files matching '{patterns}' were found, leaving {prompt.key} unset")
            return None
        return entered

    def _script(self, prompt: PromptDefinition, pack: Pack) -> str | None:
        if not prompt.script_command:
            return prompt.default or ""
        result = self.shell.shell(prompt.script_command, working_directory=pack.pack_path)
        if result.succeeded:
            return result.stdout.strip()
        self.output.warn(f"Script for prompt '{prompt.key}' failed: {result.stderr.strip()}")
        return None

    # ------------------------------------------------------------------
    # Undeclared placeholders
    # ------------------------------------------------------------------

    def scan_undeclared(
        self,
        packs: Sequence[Pack],
        values: Mapping[str, str],
        excluded_components: Mapping[str, set[str]] | None = None,
    ) -> list[str]:
        """Placeholder keys used in pack files but absent from *values*, sorted."""
        excluded_components = excluded_components or {}
        undeclared: set[str] = set()
        for pack in packs:
            for component in pack.active_components(excluded_components.get(pack.identifier, set())):
                if isinstance(component.install_action, CopyPackFileAction):
                    for token in _placeholders_in_source(component.install_action.source):
                        undeclared.add(strip_delimiters(token))
            if self.scope.include_templates_in_scan:
                for template in pack.templates:
                    for token in find_unreplaced_placeholders(template.template_content):
                        undeclared.add(strip_delimiters(token))
        return sorted(key for key in undeclared if key not in values)


def _placeholders_in_source(source: Path) -> list[str]:
    if source.is_dir():
        files = sorted(p for p in source.rglob("*") if p.is_file())
    elif source.is_file():
        files = [source]
    else:
        return []

    tokens: list[str] = []
    for file in files:
        try:
            text = file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        tokens.extend(find_unreplaced_placeholders(text))
    return tokens


__all__ = [
    "PROJECT_DIR_NAME",
    "REPO_NAME",
    "Prompter",
    "SharedPrompt",
    "ValueResolver",
    "detect_files",
    "group_shared_prompts",
    "parse_repo_name",
    "resolve_builtin_values",
]
