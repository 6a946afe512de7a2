"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import asyncio
import logging

import click

from ..exceptions import RepodiffError
from ..local import filter_ignored, read_local_files
from ..models import ComparisonResult
from ..paths import normalize_prefix
from ..reconcile import DEFAULT_CONCURRENCY, Reconciler
from ..transport import GitHubTransport, LocalRepoTransport, RemoteTransport


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _parse_repo_spec(value: str) -> tuple[str, str]:
    """Split ``owner/repo`` into its parts."""
    owner, sep, name = value.strip("/").partition("/")
    if not sep or not owner or not name or "/" in name:
        raise click.ClickException(f"Invalid repository {value!r}; expected OWNER/REPO")
    return owner, name


def _make_transport(token: str | None, local_repo: str | None) -> RemoteTransport:
    if local_repo:
        return LocalRepoTransport(local_repo)
    try:
        return GitHubTransport(token)
    except ValueError as exc:
        raise click.ClickException(str(exc))


def _remote_options(f):
    """Shared options selecting the remote side of a comparison."""
    f = click.option("--concurrency", type=click.IntRange(min=1),
                     default=DEFAULT_CONCURRENCY, show_default=True,
                     help="Maximum number of blob fetches in flight.")(f)
    f = click.option("--prefix", default="",
                     help="Project-root prefix stripped from local paths.")(f)
    f = click.option("--local-repo", "local_repo", type=click.Path(exists=True),
                     envvar="REPODIFF_REPO",
                     help="Compare against a git repository on disk instead of "
                          "GitHub (or set REPODIFF_REPO).")(f)
    f = click.option("--token", envvar="GITHUB_TOKEN",
                     help="GitHub token (or set GITHUB_TOKEN).")(f)
    f = click.option("--branch", "-b", default="main", show_default=True,
                     help="Remote branch to compare against.")(f)
    return f


def _run_compare(ctx, local_dir, repo_spec, *, branch, token, local_repo,
                 prefix, concurrency, fetch_deleted=False) -> ComparisonResult:
    """Read *local_dir* (minus ignored files) and reconcile it.

    Library errors become ClickExceptions.
    """
    owner, name = _parse_repo_spec(repo_spec)
    prefix = normalize_prefix(prefix)
    try:
        files = filter_ignored(read_local_files(local_dir, prefix=prefix), prefix=prefix)
    except OSError as exc:
        raise click.ClickException(str(exc))
    reconciler = Reconciler(
        _make_transport(token, local_repo),
        project_prefix=prefix,
        concurrency=concurrency,
        fetch_deleted=fetch_deleted,
    )

    def _progress(message, percent):
        _status(ctx, f"[{percent:3d}%] {message}")

    try:
        return asyncio.run(
            reconciler.compare(files, owner, name, branch, progress=_progress)
        )
    except RepodiffError as exc:
        raise click.ClickException(str(exc))


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, verbose):
    """repodiff: compare local files with a branch of a git repository.

    Files are compared by git blob id first; remote content is only
    downloaded when ids differ, and then compared after normalizing line
    endings and trailing whitespace.

    \b
    Quick start:
      repodiff compare ./site octocat/site
      repodiff diff ./site octocat/site index.html
      repodiff hash README.md

    \b
    Set GITHUB_TOKEN to avoid passing --token on every call, or use
    --local-repo to compare against a repository on disk.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
