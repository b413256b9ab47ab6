"""Terminal interaction helpers for the mcs CLI."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping, Sequence

import readchar
import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

_CI_ENV_VARS = [
    "CI",
    "GITHUB_ACTIONS",
    "JENKINS_HOME",
    "GITLAB_CI",
    "CIRCLECI",
    "TRAVIS",
    "BUILDKITE",
]


def is_interactive() -> bool:
    """True when attached to a terminal and not running under CI."""
    if not sys.stdin.isatty():
        return False
    return not any(os.getenv(var) for var in _CI_ENV_VARS)


def get_key() -> str:
    """Get a single keypress in a cross-platform way using readchar."""
    key = readchar.readkey()

    if key in (readchar.key.UP, readchar.key.CTRL_P):
        return "up"
    if key in (readchar.key.DOWN, readchar.key.CTRL_N):
        return "down"
    if key == readchar.key.ENTER:
        return "enter"
    if key in (readchar.key.ESC, "\x1b"):
        return "escape"
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt
    return key


def _cancel(console: Console) -> typer.Exit:
    console.print("\n[yellow]Selection cancelled[/yellow]")
    return typer.Exit(1)


def select_with_arrows(
    options: Sequence[tuple[str, str]],
    prompt_text: str = "Select an option",
    default_index: int = 0,
    console: Console | None = None,
) -> int:
    """Pick one ``(name, description)`` option with the arrow keys; returns its index."""
    console = console or Console()
    selected_index = default_index if 0 <= default_index < len(options) else 0

    def build_panel() -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left")
        for i, (name, description) in enumerate(options):
            pointer = "▶" if i == selected_index else " "
            table.add_row(pointer, f"[cyan]{name}[/cyan] [dim]({description})[/dim]")
        table.add_row("", "")
        table.add_row("", "[dim]Use ↑/↓ to navigate, Enter to select, Esc to cancel[/dim]")
        return Panel(table, title=f"[bold]{prompt_text}[/bold]", border_style="cyan", padding=(1, 2))

    console.print()
    with Live(build_panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                raise _cancel(console) from None
            if key == "up":
                selected_index = (selected_index - 1) % len(options)
            elif key == "down":
                selected_index = (selected_index + 1) % len(options)
            elif key == "enter":
                return selected_index
            elif key == "escape":
                raise _cancel(console)
            live.update(build_panel(), refresh=True)


def multi_select_with_arrows(
    options: Mapping[str, str],
    prompt_text: str = "Select options",
    default_keys: Sequence[str] = (),
    console: Console | None = None,
) -> list[str]:
    """Toggle options with Space and confirm with Enter; an empty selection is allowed."""
    console = console or Console()
    option_keys = list(options)
    selected = {option_keys.index(k) for k in default_keys if k in option_keys}
    cursor = min(selected) if selected else 0

    def build_panel() -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left")
        for i, key in enumerate(option_keys):
            indicator = "[cyan]☑" if i in selected else "[bright_black]☐"
            pointer = "▶" if i == cursor else " "
            table.add_row(pointer, f"{indicator} [cyan]{key}[/cyan] [dim]({options[key]})[/dim]")
        table.add_row("", "")
        table.add_row("", "[dim]Use ↑/↓ to move, Space to toggle, Enter to confirm, Esc to cancel[/dim]")
        return Panel(table, title=f"[bold]{prompt_text}[/bold]", border_style="cyan", padding=(1, 2))

    console.print()
    with Live(build_panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                raise _cancel(console) from None
            if key == "up":
                cursor = (cursor - 1) % len(option_keys)
            elif key == "down":
                cursor = (cursor + 1) % len(option_keys)
            elif key in (" ", readchar.key.SPACE):
                selected ^= {cursor}
            elif key == "enter":
                return [option_keys[i] for i in sorted(selected)]
            elif key == "escape":
                raise _cancel(console)
            live.update(build_panel(), refresh=True)


class TerminalPrompter:
    """Prompter backed by the terminal.

    Arrow-key selection is used on a TTY; otherwise selections fall back to a
    numbered ``typer.prompt`` so piped input still works.
    """

    def __init__(self, console: Console | None = None, assume_yes: bool = False) -> None:
        self.console = console or Console()
        self.assume_yes = assume_yes

    def ask_yes_no(self, question: str, default: bool = True) -> bool:
        if self.assume_yes:
            return True
        return typer.confirm(question, default=default)

    def prompt_inline(self, label: str, default: str | None = None) -> str:
        if default is None:
            return typer.prompt(label, default="", show_default=False)
        return typer.prompt(label, default=default)

    def single_select(self, title: str, items: Sequence[tuple[str, str]]) -> int:
        if not items:
            raise ValueError("single_select needs at least one item")
        if is_interactive():
            return select_with_arrows(items, title, console=self.console)

        self.console.print(f"[bold]{title}[/bold]")
        for number, (name, description) in enumerate(items, start=1):
            self.console.print(f"  {number}. {name} [dim]({description})[/dim]")
        while True:
            choice = typer.prompt("Choice", default=1, type=int)
            if 1 <= choice <= len(items):
                return choice - 1
            self.console.print(f"[yellow]Enter a number between 1 and {len(items)}[/yellow]")


__all__ = [
    "TerminalPrompter",
    "get_key",
    "is_interactive",
    "multi_select_with_arrows",
    "select_with_arrows",
]
