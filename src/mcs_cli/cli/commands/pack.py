"""``mcs pack``: tech pack management commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from mcs_cli.cli.commands import sync as sync_command
from mcs_cli.cli.ui import TerminalPrompter
from mcs_cli.core.constants import GLOBAL_SCOPE_SENTINEL
from mcs_cli.core.errors import MCSError
from mcs_cli.core.file_lock import file_lock
from mcs_cli.core.output import Output
from mcs_cli.core.paths import Environment
from mcs_cli.core.project_index import ProjectIndex
from mcs_cli.install.scope import SyncScope
from mcs_cli.packs.registry import PackCatalog

console = Console()

app = typer.Typer(help="Tech pack management commands")


def _scope_for(path: str, environment: Environment) -> SyncScope | None:
    if path == GLOBAL_SCOPE_SENTINEL:
        return SyncScope.global_(environment)
    project = Path(path)
    if not project.is_dir():
        return None
    return SyncScope.project(project)


@app.command("remove")
def remove(
    identifier: str = typer.Argument(..., help="Identifier of the pack to remove"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    packs_dir: Path | None = typer.Option(None, "--packs-dir", help="Directory holding tech packs"),
) -> None:
    """Remove a pack's artifacts from every scope it is configured in.

    Shared packages and plugins are only uninstalled when no other pack
    still needs them. The pack's own files in the packs directory are left
    in place.
    """
    environment = Environment.from_env()
    output = Output(console)
    catalog, load_errors = PackCatalog.from_directory(packs_dir or environment.packs_directory)
    for message in load_errors:
        output.warn(message)

    index = ProjectIndex(environment.projects_index_file)
    try:
        entries = index.projects_with_pack(identifier, index.load())
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] Could not read project index: {e}")
        raise typer.Exit(1)
    if not entries:
        console.print(f"[red]Error:[/red] Pack '{identifier}' is not configured in any scope")
        raise typer.Exit(1)

    pack = catalog.pack(identifier)
    label = pack.display_name if pack is not None else identifier
    output.header(f"Remove {label} from {len(entries)} scope(s)")
    for entry in entries:
        output.plain(f"  - {'global' if entry.path == GLOBAL_SCOPE_SENTINEL else entry.path}")
    if not TerminalPrompter(console, assume_yes=yes).ask_yes_no("Proceed with removal?", True):
        output.info("Removal cancelled.")
        return

    failed: dict[str, list[str]] = {}
    try:
        with file_lock(environment.lock_file):
            for entry in entries:
                scope = _scope_for(entry.path, environment)
                if scope is None:
                    output.warn(f"Project not found: {entry.path}, removing from index")
                    continue
                configurator = sync_command.build_configurator(environment, scope, catalog, output, assume_yes=True)
                try:
                    removed = configurator.remove_pack(identifier)
                except MCSError as e:
                    output.warn(str(e))
                    failed[entry.path] = list(entry.packs)
                    continue
                if not removed:
                    failed[entry.path] = configurator.load_state().configured_packs

            data = index.load()
            index.remove_pack(identifier, data)
            for path, packs in failed.items():
                index.upsert(path, packs, data)
            index.save(data)
    except (MCSError, OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    output.header("Summary")
    output.info(f"{label} removed from {len(entries) - len(failed)} of {len(entries)} scope(s)")
    if failed:
        output.warn(f"Some artifacts could not be removed. Re-run 'mcs pack remove {identifier}' to retry.")
        raise typer.Exit(1)
    if pack is not None and pack.pack_path is not None:
        output.dimmed(f"Pack files in {pack.pack_path} were left in place")
