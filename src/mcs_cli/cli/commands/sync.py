"""``mcs sync``: converge a project (or the global scope) to a pack selection."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console

from mcs_cli.cli.ui import TerminalPrompter, is_interactive, multi_select_with_arrows
from mcs_cli.core.errors import MCSError
from mcs_cli.core.file_lock import file_lock
from mcs_cli.core.gitignore_manager import GitignoreManager
from mcs_cli.core.integrations import ClaudeIntegration, Homebrew
from mcs_cli.core.output import Output
from mcs_cli.core.paths import Environment
from mcs_cli.core.project_index import ProjectIndex
from mcs_cli.core.shell import ShellRunner
from mcs_cli.install.configurator import Configurator, SyncReport
from mcs_cli.install.dispatcher import ComponentDispatcher
from mcs_cli.install.scope import SyncScope
from mcs_cli.packs.models import Pack
from mcs_cli.packs.registry import PackCatalog

logger = logging.getLogger(__name__)

console = Console()


def build_configurator(
    environment: Environment,
    scope: SyncScope,
    catalog: PackCatalog,
    output: Output,
    assume_yes: bool = False,
) -> Configurator:
    """Wire the real collaborators for *scope*."""
    shell = ShellRunner(environment)
    dispatcher = ComponentDispatcher(
        shell=shell,
        package_manager=Homebrew(shell),
        assistant=ClaudeIntegration(shell),
        gitignore=GitignoreManager(shell, environment.home_directory),
        output=output,
    )
    return Configurator(
        environment=environment,
        scope=scope,
        catalog=catalog,
        dispatcher=dispatcher,
        prompter=TerminalPrompter(output.console, assume_yes=assume_yes),
        output=output,
        shell=shell,
        index=ProjectIndex(environment.projects_index_file),
    )


def _select_packs(
    catalog: PackCatalog,
    configured: list[str],
    requested: list[str],
    all_packs: bool,
    interactive: bool,
) -> list[Pack]:
    if all_packs:
        return catalog.available_packs

    if requested:
        unknown = sorted({p for p in requested if p not in catalog})
        if unknown:
            available = ", ".join(catalog.identifiers) or "none"
            raise MCSError(f"Unknown pack(s): {', '.join(unknown)}. Available: {available}")
        return [pack for pack_id in sorted(set(requested)) if (pack := catalog.pack(pack_id)) is not None]

    if interactive and len(catalog):
        options = {pack.identifier: pack.description or pack.display_name for pack in catalog.available_packs}
        chosen = multi_select_with_arrows(options, "Select tech packs", default_keys=configured)
        return [pack for pack_id in chosen if (pack := catalog.pack(pack_id)) is not None]

    missing = [p for p in configured if p not in catalog]
    if missing:
        raise MCSError(
            f"Configured pack(s) not found in the packs directory: {', '.join(missing)}. "
            "Pass --pack to choose the selection explicitly."
        )
    return [pack for pack_id in configured if (pack := catalog.pack(pack_id)) is not None]


def _print_summary(output: Output, report: SyncReport) -> None:
    output.header("Summary")
    if not report.has_changes:
        output.info("Already up to date")
    output.info(f"+{len(report.added)} added, -{len(report.removed)} removed, ~{len(report.updated)} updated")
    if report.warnings:
        output.plain("")
        output.plain(f"Completed with {len(report.warnings)} warning(s):")
        for warning in report.warnings:
            output.dimmed(warning)


def sync(
    path: Path | None = typer.Argument(None, help="Project directory (defaults to the current directory)"),
    global_scope: bool = typer.Option(False, "--global", "-g", help="Sync the global scope instead of a project"),
    pack: list[str] | None = typer.Option(None, "--pack", "-p", help="Pack to select (repeatable)"),
    all_packs: bool = typer.Option(False, "--all", help="Select every available pack"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without changing anything"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation before removals"),
    packs_dir: Path | None = typer.Option(None, "--packs-dir", help="Directory holding tech packs"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed progress"),
) -> None:
    """Install, update and remove tech pack artifacts so the scope matches the selection."""
    if verbose:
        logging.getLogger("mcs_cli").setLevel(logging.DEBUG)

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

    output = Output(console, verbose=verbose)
    catalog, load_errors = PackCatalog.from_directory(packs_dir or environment.packs_directory)
    for message in load_errors:
        output.warn(message)

    explicit = bool(pack) or all_packs
    try:
        configurator = build_configurator(environment, scope, catalog, output, assume_yes=yes)
        state = configurator.load_state()
        interactive = not explicit and not yes and not dry_run and is_interactive()
        packs = _select_packs(catalog, state.configured_packs, list(pack or []), all_packs, interactive)
        excluded = {p.identifier: state.excluded_components(p.identifier) for p in packs}

        output.header(f"mcs sync{scope.label_suffix}: {scope.scope_identifier}")
        if dry_run:
            configurator.dry_run(packs, excluded)
            return

        with file_lock(environment.lock_file):
            report = configurator.configure(packs, excluded, confirm_removals=not (explicit or yes))
    except MCSError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if report.cancelled:
        return
    _print_summary(output, report)
