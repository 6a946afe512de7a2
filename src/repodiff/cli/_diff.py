"""diff command: line diff of one file against the remote branch."""

from __future__ import annotations

import click

from ..linediff import DEFAULT_CONTEXT_LINES, DiffMode, diff_change
from ..models import LineKind, SkippedLines
from ..paths import normalize_prefix, strip_prefix
from ._helpers import main, _remote_options, _run_compare

_LINE_MARKERS = {
    LineKind.ADDED: "+",
    LineKind.REMOVED: "-",
    LineKind.UNCHANGED: " ",
}


def _render(items):
    """Yield printable lines for a sequence of diff items."""
    for item in items:
        if isinstance(item, SkippedLines):
            yield f"@@ {item.count} unchanged line{'s' if item.count != 1 else ''} @@"
        else:
            yield f"{_LINE_MARKERS[item.kind]}{item.line_number:>6}  {item.text}"


@main.command()
@click.argument("local_dir", type=click.Path(exists=True, file_okay=False))
@click.argument("repo_spec", metavar="OWNER/REPO")
@click.argument("path")
@_remote_options
@click.option("--full", is_flag=True, help="Show every line instead of context windows.")
@click.option("--context", "-U", "context_lines", type=click.IntRange(min=0),
              default=DEFAULT_CONTEXT_LINES, show_default=True,
              help="Unchanged lines kept around each change.")
@click.pass_context
def diff(ctx, local_dir, repo_spec, path, branch, token, local_repo, prefix,
         concurrency, full, context_lines):
    """Show the line diff of PATH between the remote branch and LOCAL_DIR.

    Removed lines are numbered in the remote version, added and
    unchanged lines in the local one.

    \b
    Examples:
        repodiff diff ./site octocat/site index.html
        repodiff diff ./site octocat/site css/main.css --full
    """
    result = _run_compare(
        ctx, local_dir, repo_spec, branch=branch, token=token,
        local_repo=local_repo, prefix=prefix, concurrency=concurrency,
        fetch_deleted=True,
    )
    key = strip_prefix(path.replace("\\", "/").lstrip("/"), normalize_prefix(prefix))
    change = result.get(key)
    if change is None:
        raise click.ClickException(f"No such file locally or remotely: {path}")

    click.echo(f"{change.status}: {key}")
    mode = DiffMode.FULL if full else DiffMode.CONTEXTUAL
    items = diff_change(change, mode, context_lines)
    if items is None:
        click.echo("Binary or unreadable content; no line diff available")
        return
    for line in _render(items):
        click.echo(line)
