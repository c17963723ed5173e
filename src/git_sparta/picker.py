"""Interactive tag/file picker.

Renders the collected tags and files as rich tables filtered by the current
query and reads one command per round:

* a row number selects that row and accepts,
* any other text becomes the new query,
* an empty line accepts the current query,
* ``q`` cancels.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Union

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .output import console as default_console

MAX_FILE_ROWS = 40


@dataclass(frozen=True)
class AttributeRow:
    name: str
    count: int


@dataclass(frozen=True)
class FileRow:
    path: str
    tags: tuple[str, ...] = ()


SearchSelection = Union[AttributeRow, FileRow]


@dataclass
class SearchData:
    """Rows and labels handed to the picker."""

    context: str = ""
    initial_query: str = ""
    attributes: list[AttributeRow] = field(default_factory=list)
    files: list[FileRow] = field(default_factory=list)


@dataclass
class SearchOutcome:
    accepted: bool
    query: str
    selection: SearchSelection | None = None


def _default_prompt(text: str) -> str:
    return click.prompt(text, default="", show_default=False, err=True)


class SearchUi:
    """Runs the picker loop over a SearchData."""

    def __init__(
        self,
        data: SearchData,
        input_title: str = "Filter",
        console: Console | None = None,
        prompt: Callable[[str], str] | None = None,
    ):
        self.data = data
        self.input_title = input_title
        self.console = console or default_console
        self.prompt = prompt or _default_prompt

    def filtered(self, query: str) -> tuple[list[AttributeRow], list[FileRow]]:
        q = query.strip()
        attrs = [a for a in self.data.attributes if q in a.name]
        files = [f for f in self.data.files if q in f.path or any(q in t for t in f.tags)]
        return attrs, files

    def render(self, query: str, attrs: list[AttributeRow], files: list[FileRow]) -> None:
        title = self.data.context or "git-sparta"
        if attrs or not files:
            table = Table(title=f"Tags in {escape(title)}", show_header=True, border_style="dim")
            table.add_column("#", justify="right", style="dim")
            table.add_column("Tag", style="bold cyan")
            table.add_column("Files", justify="right")
            for i, row in enumerate(attrs, 1):
                table.add_row(str(i), escape(row.name), str(row.count))
            self.console.print(table)

        if files:
            table = Table(title="Files", show_header=True, border_style="dim")
            table.add_column("#", justify="right", style="dim")
            table.add_column("Path")
            table.add_column("Tags", style="magenta")
            offset = len(attrs)
            for i, row in enumerate(files[:MAX_FILE_ROWS], offset + 1):
                table.add_row(str(i), escape(row.path), escape(", ".join(row.tags)))
            self.console.print(table)
            if len(files) > MAX_FILE_ROWS:
                self.console.print(f"  ... {len(files) - MAX_FILE_ROWS} more files", style="dim")

        if query:
            self.console.print(f"[bold]Query:[/] {escape(query)}")

    def run(self) -> SearchOutcome:
        query = self.data.initial_query
        while True:
            attrs, files = self.filtered(query)
            self.render(query, attrs, files)
            try:
                reply = self.prompt(f"{self.input_title} (number selects, Enter accepts, q cancels)")
            except (click.Abort, EOFError):
                return SearchOutcome(accepted=False, query=query)
            reply = reply.strip()

            if reply == "":
                return SearchOutcome(accepted=True, query=query)
            if reply.lower() == "q":
                return SearchOutcome(accepted=False, query=query)
            if reply.isdigit():
                index = int(reply) - 1
                shown_files = files[:MAX_FILE_ROWS]
                if 0 <= index < len(attrs):
                    return SearchOutcome(accepted=True, query=query, selection=attrs[index])
                if 0 <= index - len(attrs) < len(shown_files):
                    return SearchOutcome(
                        accepted=True, query=query, selection=shown_files[index - len(attrs)]
                    )
                self.console.print(f"No row {reply}", style="yellow")
                continue
            query = reply
