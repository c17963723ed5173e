"""Human-readable progress output. Everything goes to stderr so stdout stays
clean for pattern lists."""

from __future__ import annotations

import os
from typing import Any, Iterable

import click
from rich.console import Console
from rich.markup import escape

console = Console(stderr=True, highlight=False)

_verbose = os.environ.get("VERBOSE", "") == "1"


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def is_verbose() -> bool:
    return _verbose


def divider() -> None:
    console.print("─" * 56, style="blue")


def heading(text: str) -> None:
    console.print(escape(text), style="bold cyan")


def note(text: str) -> None:
    console.print(escape(text), style="dim")


def debug(text: str) -> None:
    """Only shown with --verbose or VERBOSE=1."""
    if _verbose:
        console.print(escape(text), style="dim italic")


def label_value(label: str, value: Any) -> None:
    console.print(f"[bold]{escape(label)}:[/] {escape(str(value))}")


def bullet_list(lines: Iterable[str]) -> None:
    for line in lines:
        if line:
            console.print(f"  [green]•[/] {escape(line)}")


def success(message: str) -> None:
    console.print(escape(message), style="bold green")


def warn(message: str) -> None:
    console.print(escape(message), style="bold yellow")


def confirm(prompt: str, default_yes: bool, auto_yes: bool) -> bool:
    """Ask a yes/no question on stderr; ``auto_yes`` answers yes without asking."""
    if auto_yes:
        return True
    try:
        return click.confirm(prompt, default=default_yes, err=True)
    except click.Abort:
        return False
