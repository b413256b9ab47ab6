"""``mcs doctor``: report the health of a synced scope without changing it."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mcs_cli.core.integrations import ClaudeIntegration, Homebrew
from mcs_cli.core.paths import Environment
from mcs_cli.core.project_index import ProjectIndex
from mcs_cli.core.shell import ShellRunner
from mcs_cli.install.doctor import Doctor, DoctorReport, Severity
from mcs_cli.install.scope import SyncScope
from mcs_cli.packs.registry import PackCatalog

console = Console()

_STATUS = {
    Severity.ERROR: "[red]✗ fail[/red]",
    Severity.WARNING: "[yellow]! warn[/yellow]",
    Severity.INFO: "[dim]- info[/dim]",
}


def build_doctor(environment: Environment, scope: SyncScope, catalog: PackCatalog) -> Doctor:
    """Wire the real read-only collaborators for *scope*."""
    shell = ShellRunner(environment)
    return Doctor(
        environment=environment,
        scope=scope,
        catalog=catalog,
        package_manager=Homebrew(shell),
        assistant=ClaudeIntegration(shell),
        index=ProjectIndex(environment.projects_index_file),
    )


def _render(report: DoctorReport) -> None:
    table = Table(title=f"mcs doctor{report.scope.label_suffix}: {report.scope.scope_identifier}")
    table.add_column("Section", style="cyan")
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Details")
    for check in report.checks:
        status = "[green]✓ pass[/green]" if check.passed else _STATUS[check.severity]
        table.add_row(check.section, escape(check.name), status, escape(check.message))
    console.print(table)
    console.print(f"{len(report.errors)} error(s), {len(report.warnings)} warning(s)")


def doctor(
    path: Path | None = typer.Argument(None, help="Project directory (defaults to the current directory)"),
    global_scope: bool = typer.Option(False, "--global", "-g", help="Check the global scope instead of a project"),
    packs_dir: Path | None = typer.Option(None, "--packs-dir", help="Directory holding tech packs"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
) -> None:
    """Check that every configured component is still in place. Exits 1 when a check fails."""
    if global_scope and path is not None:
        console.print("[red]Error:[/red] PATH cannot be combined with --global")
        raise typer.Exit(1)

    environment = Environment.from_env()
    if global_scope:
        scope = SyncScope.global_(environment)
    else:
        project_path = (path or Path.cwd()).expanduser()
        if not project_path.is_dir():
            console.print(f"[red]Error:[/red] Not a directory: {project_path}")
            raise typer.Exit(1)
        scope = SyncScope.project(project_path)

    catalog, load_errors = PackCatalog.from_directory(packs_dir or environment.packs_directory)
    report = build_doctor(environment, scope, catalog).run()

    if json_output:
        print(
            json.dumps(
                {
                    "scope": scope.scope_identifier,
                    "healthy": report.healthy,
                    "load_errors": load_errors,
                    "checks": [
                        {
                            "section": c.section,
                            "name": c.name,
                            "passed": c.passed,
                            "severity": c.severity.value,
                            "message": c.message,
                        }
                        for c in report.checks
                    ],
                },
                indent=2,
            )
        )
    else:
        for message in load_errors:
            console.print(f"[yellow]![/yellow] {escape(message)}")
        _render(report)

    if not report.healthy:
        raise typer.Exit(1)
