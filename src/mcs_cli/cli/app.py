"""Typer application for the ``mcs`` command."""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from mcs_cli import __version__
from mcs_cli.cli.commands import pack
from mcs_cli.cli.commands.doctor import doctor
from mcs_cli.cli.commands.index import index
from mcs_cli.cli.commands.sync import sync

console = Console()

app = typer.Typer(
    name="mcs",
    help="Converge assistant configuration (servers, hooks, skills, settings) from tech packs",
    add_completion=False,
    no_args_is_help=True,
)


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG with ``--verbose``, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)],
        force=True,
    )


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"mcs {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
) -> None:
    """Sync tech packs into a project or the global scope."""
    configure_logging(verbose)


app.command()(sync)
app.command()(doctor)
app.command()(index)
app.add_typer(pack.app, name="pack")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
