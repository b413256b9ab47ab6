"""User-facing console output.

Thin wrapper over a ``rich`` console so the engine can report progress
without depending on the CLI layer. Warnings are recorded as well as
printed so callers can summarize them at the end of a sync.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape


class Output:
    def __init__(self, console: Console | None = None, verbose: bool = False) -> None:
        self.console = console or Console()
        self.verbose = verbose
        self.warnings: list[str] = []

    def header(self, text: str) -> None:
        self.console.print()
        self.console.print(f"[bold cyan]{escape(text)}[/bold cyan]")

    def info(self, text: str) -> None:
        self.console.print(f"  {escape(text)}")

    def plain(self, text: str) -> None:
        self.console.print(escape(text))

    def success(self, text: str) -> None:
        self.console.print(f"  [green]✓[/green] {escape(text)}")

    def warn(self, text: str) -> None:
        self.warnings.append(text)
        self.console.print(f"  [yellow]![/yellow] {escape(text)}")

    def error(self, text: str) -> None:
        self.console.print(f"[red]Error:[/red] {escape(text)}")

    def dimmed(self, text: str) -> None:
        self.console.print(f"  [dim]{escape(text)}[/dim]")

    def debug(self, text: str) -> None:
        if self.verbose:
            self.dimmed(text)


__all__ = ["Output"]
