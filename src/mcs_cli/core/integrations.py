"""Package-manager and assistant-CLI bridges.

Both are thin wrappers over :class:`ShellRunner`; the convergence engine
depends only on the :class:`PackageManager` and :class:`AssistantCLI`
protocols so tests can substitute recording fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from mcs_cli.core.constants import CLAUDE_COMMAND, ENV_COMMAND
from mcs_cli.core.shell import ShellResult, ShellRunner
from mcs_cli.packs.models import PluginRef


class PackageManager(Protocol):
    def is_available(self) -> bool: ...

    def is_installed(self, name: str) -> bool: ...

    def install(self, name: str) -> ShellResult: ...

    def uninstall(self, name: str) -> ShellResult: ...


class AssistantCLI(Protocol):
    def is_available(self) -> bool: ...

    def register_server(self, name: str, scope: str, arguments: Sequence[str]) -> ShellResult: ...

    def remove_server(self, name: str, scope: str) -> ShellResult: ...

    def install_plugin(self, ref: PluginRef) -> ShellResult: ...

    def remove_plugin(self, ref: PluginRef) -> ShellResult: ...

    def is_plugin_installed(self, ref: PluginRef) -> bool: ...


class Homebrew:
    """Homebrew package installation."""

    def __init__(self, shell: ShellRunner) -> None:
        self.shell = shell

    @property
    def brew_path(self) -> str:
        return self.shell.environment.brew_path

    def is_available(self) -> bool:
        return Path(self.brew_path).exists()

    def is_installed(self, name: str) -> bool:
        if self.shell.command_exists(name):
            return True
        if not self.is_available():
            return False
        return self.shell.run(self.brew_path, ["list", name]).succeeded

    def install(self, name: str) -> ShellResult:
        if not self.is_available():
            return ShellResult(exit_code=1, stderr=f"Homebrew not found, cannot install {name}")
        return self.shell.run(self.brew_path, ["install", name])

    def uninstall(self, name: str) -> ShellResult:
        """Uninstall a package. May fail when other formulas depend on it."""
        if not self.is_available():
            return ShellResult(exit_code=1, stderr=f"Homebrew not found, cannot uninstall {name}")
        return self.shell.run(self.brew_path, ["uninstall", name])


class ClaudeIntegration:
    """Wrapper for the ``claude`` CLI managing MCP servers and plugins."""

    # Unset so the CLI does not refuse to run nested inside an assistant session.
    _CLAUDE_ENV = {"CLAUDECODE": ""}

    def __init__(self, shell: ShellRunner) -> None:
        self.shell = shell

    def _claude(self, *args: str) -> ShellResult:
        return self.shell.run(
            ENV_COMMAND,
            [CLAUDE_COMMAND, *args],
            additional_environment=self._CLAUDE_ENV,
        )

    def is_available(self) -> bool:
        return self.shell.command_exists(CLAUDE_COMMAND)

    def register_server(self, name: str, scope: str, arguments: Sequence[str]) -> ShellResult:
        """Add an MCP server, removing any existing entry first."""
        self.remove_server(name, scope)
        return self._claude("mcp", "add", "-s", scope, name, *arguments)

    def remove_server(self, name: str, scope: str) -> ShellResult:
        return self._claude("mcp", "remove", "-s", scope, name)

    def install_plugin(self, ref: PluginRef) -> ShellResult:
        """Install a plugin, registering its marketplace first."""
        self._claude("plugin", "marketplace", "add", ref.marketplace_repo)
        return self._claude("plugin", "install", ref.bare_name)

    def remove_plugin(self, ref: PluginRef) -> ShellResult:
        return self._claude("plugin", "remove", ref.bare_name)

    def is_plugin_installed(self, ref: PluginRef) -> bool:
        result = self._claude("plugin", "list")
        if not result.succeeded:
            return False
        return any(line.split()[:1] == [ref.bare_name] for line in result.stdout.splitlines() if line.strip())


__all__ = ["AssistantCLI", "ClaudeIntegration", "Homebrew", "PackageManager"]
