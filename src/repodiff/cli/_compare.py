"""compare command: classify a local directory against a remote branch."""

from __future__ import annotations

import json

import click

from ..models import ChangeStatus, ComparisonResult
from ._helpers import main, _remote_options, _run_compare, _status

_MARKERS = {
    ChangeStatus.ADDED: "A",
    ChangeStatus.MODIFIED: "M",
    ChangeStatus.DELETED: "D",
    ChangeStatus.UNCHANGED: "=",
}


def _result_dict(result: ComparisonResult, show_all: bool) -> dict:
    return {
        "commit": result.snapshot.base_commit_oid,
        "tree": result.snapshot.base_tree_oid,
        "counts": {str(s): n for s, n in result.counts().items()},
        "changes": [
            {"path": path, "status": str(change.status)}
            for path, change in sorted(result.changes.items())
            if show_all or change.status is not ChangeStatus.UNCHANGED
        ],
    }


@main.command()
@click.argument("local_dir", type=click.Path(exists=True, file_okay=False))
@click.argument("repo_spec", metavar="OWNER/REPO")
@_remote_options
@click.option("--all", "show_all", is_flag=True,
              help="Also list unchanged files.")
@click.option("--format", "fmt", type=click.Choice(["text", "json"]),
              default="text", help="Output format.")
@click.option("--exit-zero", is_flag=True,
              help="Exit 0 even when there are changes.")
@click.pass_context
def compare(ctx, local_dir, repo_spec, branch, token, local_repo, prefix,
            concurrency, show_all, fmt, exit_zero):
    """Compare LOCAL_DIR with a branch of OWNER/REPO.

    \b
    Output (text format):
        A  path   only in LOCAL_DIR
        M  path   content differs
        D  path   only in the remote branch
        =  path   identical (with --all)

    \b
    Exit codes:
        0  in sync (or --exit-zero)
        1  there are changes, or an error occurred

    \b
    Examples:
        repodiff compare ./site octocat/site
        repodiff compare ./site octocat/site -b gh-pages --format json
        repodiff compare ./site any/name --local-repo ./site-mirror.git
    """
    result = _run_compare(
        ctx, local_dir, repo_spec, branch=branch, token=token,
        local_repo=local_repo, prefix=prefix, concurrency=concurrency,
    )

    if fmt == "json":
        click.echo(json.dumps(_result_dict(result, show_all), indent=2))
    else:
        statuses = list(_MARKERS) if show_all else [
            ChangeStatus.ADDED, ChangeStatus.MODIFIED, ChangeStatus.DELETED,
        ]
        for status in statuses:
            for path in result.paths(status):
                click.echo(f"{_MARKERS[status]}  {path}")

    counts = result.counts()
    _status(ctx, (
        f"{counts[ChangeStatus.ADDED]} added, "
        f"{counts[ChangeStatus.MODIFIED]} modified, "
        f"{counts[ChangeStatus.DELETED]} deleted, "
        f"{counts[ChangeStatus.UNCHANGED]} unchanged"
    ))
    ctx.exit(0 if result.in_sync or exit_zero else 1)
