"""Remote transports: where the remote tree and blobs come from.

The reconciler talks to the remote store only through
:class:`RemoteTransport`.  Transports report failures as
:class:`~repodiff.exceptions.TransportError` and do not retry on the
reconciler's behalf.
"""

from __future__ import annotations

import asyncio
import base64
import os
import threading
from abc import ABC, abstractmethod
from functools import cached_property
from typing import NamedTuple

from dulwich.errors import NotGitRepository, NotTreeError
from dulwich.object_store import tree_lookup_path
from dulwich.objects import Blob, Commit, Tree
from dulwich.repo import Repo as _DRepo
from github import Auth, Github, GithubException
from github.Repository import Repository

from .exceptions import TransportError


class TreeEntry(NamedTuple):
    """One entry of a recursive tree listing."""

    path: str
    oid: str
    kind: str   # "blob", "tree" or "commit" (submodule)


class RemoteTransport(ABC):
    """Read-only access to a remote git repository."""

    @abstractmethod
    async def resolve_branch(self, owner: str, repo: str, branch: str) -> str:
        """Return the commit oid *branch* points at."""
        ...

    @abstractmethod
    async def get_commit_tree(self, owner: str, repo: str, commit_oid: str) -> str:
        """Return the root tree oid of *commit_oid*."""
        ...

    @abstractmethod
    async def list_tree(
        self, owner: str, repo: str, tree_oid: str, recursive: bool = True,
    ) -> list[TreeEntry]:
        """List the entries of *tree_oid* (all descendants when *recursive*)."""
        ...

    @abstractmethod
    async def get_blob(self, owner: str, repo: str, path: str, ref: str) -> str:
        """Return the base64-encoded content of *path* at *ref*."""
        ...


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------

class GitHubTransport(RemoteTransport):
    """GitHub REST API transport using PyGithub.

    PyGithub is synchronous, so all blocking calls are wrapped
    with asyncio.to_thread() to avoid blocking the event loop.
    """

    def __init__(self, token: str | None = None, *, base_url: str | None = None):
        self._token = token or os.environ.get("GITHUB_TOKEN", "")
        if not self._token:
            raise ValueError(
                "GitHub token required. Pass token= or set GITHUB_TOKEN env var."
            )
        self._base_url = base_url

    @cached_property
    def _client(self) -> Github:
        auth = Auth.Token(self._token)
        if self._base_url:
            return Github(base_url=self._base_url, auth=auth)
        return Github(auth=auth)

    def _get_repo(self, owner: str, repo: str) -> Repository:
        # lazy: no GET /repos/{owner}/{repo} before every call
        return self._client.get_repo(f"{owner}/{repo}", lazy=True)

    async def _call(self, what: str, fn):
        def _sync():
            try:
                return fn()
            except GithubException as exc:
                raise TransportError(f"GitHub error while {what}: {exc}") from exc
            except OSError as exc:
                raise TransportError(f"Network error while {what}: {exc}") from exc

        return await asyncio.to_thread(_sync)

    async def resolve_branch(self, owner: str, repo: str, branch: str) -> str:
        def _sync() -> str:
            ref = self._get_repo(owner, repo).get_git_ref(f"heads/{branch}")
            return ref.object.sha

        return await self._call(f"resolving branch {owner}/{repo}@{branch}", _sync)

    async def get_commit_tree(self, owner: str, repo: str, commit_oid: str) -> str:
        def _sync() -> str:
            return self._get_repo(owner, repo).get_git_commit(commit_oid).tree.sha

        return await self._call(f"reading commit {commit_oid}", _sync)

    async def list_tree(
        self, owner: str, repo: str, tree_oid: str, recursive: bool = True,
    ) -> list[TreeEntry]:
        def _sync() -> list[TreeEntry]:
            tree = self._get_repo(owner, repo).get_git_tree(tree_oid, recursive=recursive)
            if tree.raw_data.get("truncated"):
                raise TransportError(
                    f"Tree {tree_oid} is too large to list in one request"
                )
            return [TreeEntry(e.path, e.sha, e.type) for e in tree.tree]

        return await self._call(f"listing tree {tree_oid}", _sync)

    async def get_blob(self, owner: str, repo: str, path: str, ref: str) -> str:
        def _sync() -> str:
            gh_repo = self._get_repo(owner, repo)
            contents = gh_repo.get_contents(path, ref=ref)
            # get_contents returns a list for directories
            if isinstance(contents, list):
                raise TransportError(f"Path '{path}' is a directory, not a file.")
            if contents.content:
                return contents.content
            # Files over 1 MB come back without inline content
            return gh_repo.get_git_blob(contents.sha).content

        return await self._call(f"fetching {path}@{ref}", _sync)


# ---------------------------------------------------------------------------
# Local repository (dulwich)
# ---------------------------------------------------------------------------

GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_COMMIT = 0o160000


def _kind_from_mode(mode: int) -> str:
    if mode == GIT_FILEMODE_TREE:
        return "tree"
    if mode == GIT_FILEMODE_COMMIT:
        return "commit"
    return "blob"


class LocalRepoTransport(RemoteTransport):
    """Reads a git repository on disk as if it were the remote.

    *owner* and *repo* arguments are ignored; the repository is fixed at
    construction.  dulwich reads run in worker threads, one at a time.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = os.fspath(path)
        self._lock = threading.Lock()

    @cached_property
    def _repo(self) -> _DRepo:
        try:
            return _DRepo(self._path)
        except (NotGitRepository, OSError) as exc:
            raise TransportError(f"Cannot open repository {self._path}: {exc}") from exc

    async def _call(self, fn, *args):
        def _sync():
            with self._lock:
                return fn(*args)

        return await asyncio.to_thread(_sync)

    def _commit(self, oid: str) -> Commit:
        try:
            obj = self._repo[oid.encode("ascii")]
        except (KeyError, ValueError) as exc:
            raise TransportError(f"Unknown commit: {oid}") from exc
        if not isinstance(obj, Commit):
            raise TransportError(f"Not a commit: {oid}")
        return obj

    def _resolve_ref(self, ref: str) -> Commit:
        """Resolve a branch name, full ref name or commit oid."""
        for name in (f"refs/heads/{ref}", ref):
            try:
                sha = self._repo.refs[name.encode()]
            except KeyError:
                continue
            return self._commit(sha.decode("ascii"))
        return self._commit(ref)

    # ------------------------------------------------------------------
    def _branch_sync(self, branch: str) -> str:
        try:
            sha = self._repo.refs[f"refs/heads/{branch}".encode()]
        except KeyError as exc:
            raise TransportError(f"Branch not found: {branch}") from exc
        return sha.decode("ascii")

    def _tree_sync(self, commit_oid: str) -> str:
        return self._commit(commit_oid).tree.decode("ascii")

    def _list_sync(self, tree_oid: str, recursive: bool) -> list[TreeEntry]:
        result: list[TreeEntry] = []

        def _walk(oid: bytes, prefix: str) -> None:
            try:
                tree = self._repo[oid]
            except KeyError as exc:
                raise TransportError(f"Unknown tree: {oid.decode()}") from exc
            if not isinstance(tree, Tree):
                raise TransportError(f"Not a tree: {oid.decode()}")
            for item in tree.iteritems():
                name = item.path.decode("utf-8", "surrogateescape")
                path = f"{prefix}{name}"
                kind = _kind_from_mode(item.mode)
                result.append(TreeEntry(path, item.sha.decode("ascii"), kind))
                if recursive and kind == "tree":
                    _walk(item.sha, path + "/")

        _walk(tree_oid.encode("ascii"), "")
        return result

    def _blob_sync(self, path: str, ref: str) -> str:
        commit = self._resolve_ref(ref)
        try:
            _mode, sha = tree_lookup_path(
                self._repo.__getitem__, commit.tree, path.encode("utf-8"),
            )
        except (KeyError, NotTreeError) as exc:
            raise TransportError(f"Path not found at {ref}: {path}") from exc
        blob = self._repo[sha]
        if not isinstance(blob, Blob):
            raise TransportError(f"Not a file at {ref}: {path}")
        return base64.b64encode(blob.data).decode("ascii")

    # ------------------------------------------------------------------
    async def resolve_branch(self, owner: str, repo: str, branch: str) -> str:
        return await self._call(self._branch_sync, branch)

    async def get_commit_tree(self, owner: str, repo: str, commit_oid: str) -> str:
        return await self._call(self._tree_sync, commit_oid)

    async def list_tree(
        self, owner: str, repo: str, tree_oid: str, recursive: bool = True,
    ) -> list[TreeEntry]:
        return await self._call(self._list_sync, tree_oid, recursive)

    async def get_blob(self, owner: str, repo: str, path: str, ref: str) -> str:
        return await self._call(self._blob_sync, path, ref)
