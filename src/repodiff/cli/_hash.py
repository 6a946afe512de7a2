"""hash command: git blob ids of local files."""

from __future__ import annotations

import click

from ..content import blob_oid, comparison_oid
from ._helpers import main


@main.command("hash")
@click.argument("files", nargs=-1, required=True,
                type=click.Path(exists=True, dir_okay=False))
@click.option("--raw", is_flag=True,
              help="Hash the bytes as stored, without normalizing text.")
def hash_cmd(files, raw):
    """Print the git blob id of each FILE.

    By default text files are normalized first (LF line endings, no
    trailing whitespace, one final newline), which gives the id the
    comparison uses.  With --raw the id matches `git hash-object`.
    """
    for name in files:
        with open(name, "rb") as f:
            data = f.read()
        if raw:
            oid = blob_oid(data)
        else:
            try:
                oid = comparison_oid(data.decode("utf-8"))
            except UnicodeDecodeError:
                oid = blob_oid(data)
        click.echo(f"{oid}  {name}")
