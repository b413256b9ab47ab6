"""``mcs index``: show the cross-scope project index."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from mcs_cli.core.constants import GLOBAL_SCOPE_SENTINEL
from mcs_cli.core.errors import MCSError
from mcs_cli.core.file_lock import file_lock
from mcs_cli.core.paths import Environment
from mcs_cli.core.project_index import ProjectIndex

console = Console()


def index(
    prune: bool = typer.Option(False, "--prune", help="Remove entries whose project directory no longer exists"),
) -> None:
    """List every scope mcs has synced and the packs configured there."""
    environment = Environment.from_env()
    project_index = ProjectIndex(environment.projects_index_file)

    try:
        data = project_index.load()
        if prune:
            with file_lock(environment.lock_file):
                data = project_index.load()
                pruned = project_index.prune_stale(data)
                if pruned:
                    project_index.save(data)
            for path in pruned:
                console.print(f"[yellow]Pruned[/yellow] {path}")
            if not pruned:
                console.print("[dim]No stale entries[/dim]")
    except (MCSError, OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not data.projects:
        console.print("[dim]No projects have been synced yet.[/dim]")
        return

    table = Table(title="Project Index", show_lines=False)
    table.add_column("Scope", style="cyan")
    table.add_column("Packs", style="bold")
    table.add_column("Last synced", style="dim")
    for entry in sorted(data.projects, key=lambda e: e.path):
        scope = "[magenta]global[/magenta]" if entry.path == GLOBAL_SCOPE_SENTINEL else entry.path
        table.add_row(scope, ", ".join(entry.packs) or "[dim]-[/dim]", entry.last_synced or "")
    console.print(table)
