"""Shared fixtures for repodiff tests."""

import asyncio
import base64
import os

import pytest
from click.testing import CliRunner
from dulwich.objects import Blob, Commit, Tree
from dulwich.repo import Repo as DulwichRepo

from repodiff.content import blob_oid
from repodiff.exceptions import TransportError
from repodiff.transport import RemoteTransport, TreeEntry

COMMIT_OID = "c0ffee" + "0" * 34
TREE_OID = "7ee" + "0" * 37


class FakeTransport(RemoteTransport):
    """In-memory remote; blob ids are real git blob ids of the stored bytes."""

    def __init__(self, files=None, *, fail_paths=(), corrupt_paths=(), errors=None,
                 delay=0.0):
        self.files = {
            p: c.encode("utf-8") if isinstance(c, str) else c
            for p, c in (files or {}).items()
        }
        self.fail_paths = set(fail_paths)
        self.corrupt_paths = set(corrupt_paths)
        self.errors = dict(errors or {})
        self.delay = delay
        self.blob_calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def resolve_branch(self, owner, repo, branch):
        return COMMIT_OID

    async def get_commit_tree(self, owner, repo, commit_oid):
        return TREE_OID

    async def list_tree(self, owner, repo, tree_oid, recursive=True):
        entries = []
        dirs = set()
        for path, data in self.files.items():
            parts = path.split("/")
            for depth in range(1, len(parts)):
                dirs.add("/".join(parts[:depth]))
            entries.append(TreeEntry(path, blob_oid(data), "blob"))
        entries.extend(TreeEntry(d, "d" * 40, "tree") for d in sorted(dirs))
        return entries

    async def get_blob(self, owner, repo, path, ref):
        self.blob_calls.append((path, ref))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if path in self.fail_paths:
                raise TransportError(f"boom: {path}")
            if path in self.errors:
                raise self.errors[path]
            if path in self.corrupt_paths:
                return "%%% not base64 %%%"
            return base64.b64encode(self.files[path]).decode("ascii")
        finally:
            self.in_flight -= 1


# ---------------------------------------------------------------------------
# Real repositories
# ---------------------------------------------------------------------------

def _build_tree(store, node):
    tree = Tree()
    for name, value in node.items():
        if isinstance(value, dict):
            tree.add(name.encode(), 0o040000, _build_tree(store, value))
        else:
            blob = Blob.from_string(value)
            store.add_object(blob)
            tree.add(name.encode(), 0o100644, blob.id)
    store.add_object(tree)
    return tree.id


def commit_files(repo_path, files, branch="main", message="update"):
    """Commit ``{path: str|bytes}`` as the whole tree of *branch*; return the commit id."""
    root = {}
    for path, data in files.items():
        parts = path.split("/")
        node = root
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = data.encode("utf-8") if isinstance(data, str) else data

    repo = DulwichRepo(repo_path)
    try:
        store = repo.object_store
        c = Commit()
        c.tree = _build_tree(store, root)
        ref = f"refs/heads/{branch}".encode()
        c.parents = [repo.refs[ref]] if ref in repo.refs else []
        c.author = c.committer = b"Test <test@example.com>"
        c.author_time = c.commit_time = 1700000000
        c.author_timezone = c.commit_timezone = 0
        c.encoding = b"UTF-8"
        c.message = message.encode() + b"\n"
        store.add_object(c)
        repo.refs[ref] = c.id
        return c.id.decode("ascii")
    finally:
        repo.close()


@pytest.fixture
def make_repo(tmp_path):
    """Create a bare repository holding *files* on ``main``; return its path."""
    def _make(files, branch="main"):
        path = str(tmp_path / "remote.git")
        if not os.path.exists(path):
            DulwichRepo.init_bare(path, mkdir=True).close()
        commit_files(path, files, branch=branch)
        return path
    return _make


@pytest.fixture
def make_dir(tmp_path):
    """Write ``{path: str|bytes}`` into a fresh directory; return its path."""
    def _make(files, name="local"):
        root = tmp_path / name
        root.mkdir()
        for path, data in files.items():
            target = root / path
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(data, str):
                target.write_bytes(data.encode("utf-8"))
            else:
                target.write_bytes(data)
        return str(root)
    return _make


@pytest.fixture
def runner():
    return CliRunner()
