"""git-sparta - sparse submodule checkouts driven by git attributes.

Usage:
    git-sparta generate-sparse-list [TAG] [--yes] [--repo DIR]
    git-sparta list-tags [--repo DIR]
    git-sparta setup-submodule [--config-dir DIR] [--yes]
    git-sparta teardown-submodule [--config-dir DIR] [--yes]
"""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from . import __version__, output
from .attributes import DEFAULT_ATTRIBUTE
from .collector import CollectState, collect_matching_files, discover_tags
from .config import load_config
from .errors import NoMatchError, SpartaError, UserAbortedError
from .picker import AttributeRow, FileRow, SearchData, SearchUi
from .provision import setup_submodule
from .repository import open_repository
from .teardown import teardown_submodule

console = Console(highlight=False)


def _select_tag(root: Path, attribute: str) -> str:
    """Show the tag picker over every tag found in the repository."""
    counts = discover_tags(root, attribute)
    if counts.is_empty():
        raise NoMatchError(
            f"no '{attribute}' attributes found in {root}; ensure .gitattributes files "
            f"define the '{attribute}' attribute",
            root=root,
        )

    data = SearchData(
        context=str(root),
        attributes=[AttributeRow(name, count) for name, count in counts.sorted_items()],
    )
    outcome = SearchUi(data, input_title="Select a project tag").run()
    if not outcome.accepted:
        raise UserAbortedError()

    if isinstance(outcome.selection, AttributeRow):
        return outcome.selection.name
    if isinstance(outcome.selection, FileRow):
        raise SpartaError("unexpected file selection; please select a tag")
    # a typed query without a selected row is used as the tag
    tag = outcome.query.strip()
    if not tag:
        raise SpartaError("no tag selected")
    return tag


def _preview(root: Path, tag: str, state: CollectState) -> None:
    """Let the user browse the matched tags and files before printing."""
    data = SearchData(
        context=str(root),
        initial_query=tag,
        attributes=[AttributeRow(name, count) for name, count in state.sorted_tag_counts()],
        files=[FileRow(path, tuple(tags)) for path, tags in state.sorted_files()],
    )
    outcome = SearchUi(data).run()
    if not outcome.accepted:
        raise UserAbortedError()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show every step and git command detail")
def cli(verbose: bool):
    """git-sparta - sparse submodule checkouts driven by git attributes.

    Files are tagged with a `projects` attribute in .gitattributes; a
    project then checks out only the files carrying its tag (plus files
    marked global).
    """
    if verbose:
        output.set_verbose(True)


@cli.command("generate-sparse-list")
@click.argument("tag", required=False)
@click.option("--yes", "-y", "auto_yes", is_flag=True, help="Skip the preview and print patterns directly")
@click.option("--repo", "repo_dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Repository directory (defaults to the current directory)")
@click.option("--attribute", default=DEFAULT_ATTRIBUTE, show_default=True, help="Attribute holding project tags")
def generate_sparse_list(tag: str | None, auto_yes: bool, repo_dir: Path | None, attribute: str):
    """Print sparse-checkout patterns for a project tag.

    TAG is matched as a substring of each file's attribute tokens. Without
    TAG an interactive tag picker is shown.

    Examples:

        git-sparta generate-sparse-list app --yes > .git/info/sparse-checkout

        git-sparta generate-sparse-list --repo ../monorepo
    """
    if tag is not None and not tag.strip():
        raise click.UsageError("TAG must not be empty")
    if tag is None and auto_yes:
        raise click.UsageError(
            "TAG is required when using --yes; run without --yes to select interactively"
        )

    try:
        root = open_repository(repo_dir).worktree
        interactive = tag is None
        if interactive:
            tag = _select_tag(root, attribute)

        state = collect_matching_files(root, tag, attribute)
        if state.is_empty():
            raise NoMatchError(
                f"no matching attribute entries found for tag '{tag}' in {root}", tag=tag, root=root
            )

        # a picked tag was already confirmed in the picker
        if not auto_yes and not interactive:
            _preview(root, tag, state)

        for pattern in state.sorted_patterns():
            click.echo(pattern)
    except SpartaError as e:
        raise click.ClickException(str(e))


@cli.command("list-tags")
@click.option("--repo", "repo_dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Repository directory (defaults to the current directory)")
@click.option("--attribute", default=DEFAULT_ATTRIBUTE, show_default=True, help="Attribute holding project tags")
def list_tags(repo_dir: Path | None, attribute: str):
    """List every tag used in the repository with its file count."""
    try:
        root = open_repository(repo_dir).worktree
        counts = discover_tags(root, attribute)
    except SpartaError as e:
        raise click.ClickException(str(e))

    if counts.is_empty():
        output.warn(f"No '{attribute}' attributes found in {root}")
        return

    table = Table(title=f"Tags in {root}", show_header=True, border_style="dim")
    table.add_column("Tag", style="bold cyan")
    table.add_column("Files", justify="right")
    for name, count in counts.sorted_items():
        table.add_row(name, f"{count:,}")
    console.print(table)


@cli.command("setup-submodule")
@click.option("--config-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding the JSON configuration and .gitmodules (defaults to the current directory)")
@click.option("--yes", "-y", "auto_yes", is_flag=True, help="Do not ask for confirmation")
def setup_submodule_cmd(config_dir: Path | None, auto_yes: bool):
    """Configure a sparse submodule clone according to JSON metadata."""
    try:
        config = load_config(config_dir)
    except SpartaError as e:
        raise click.ClickException(str(e))

    try:
        setup_submodule(config, auto_yes)
    except UserAbortedError as e:
        raise click.ClickException(str(e))
    except SpartaError as e:
        output.note("Run `git-sparta teardown-submodule` to remove a partial setup.")
        raise click.ClickException(str(e))


@cli.command("teardown-submodule")
@click.option("--config-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding the JSON configuration and .gitmodules (defaults to the current directory)")
@click.option("--yes", "-y", "auto_yes", is_flag=True, help="Do not ask for confirmation")
def teardown_submodule_cmd(config_dir: Path | None, auto_yes: bool):
    """Remove a previously configured sparse submodule clone."""
    try:
        config = load_config(config_dir)
        teardown_submodule(config, auto_yes)
    except SpartaError as e:
        raise click.ClickException(str(e))


if __name__ == "__main__":
    cli()
