"""Reconcile a local file set against a remote git tree.

Every local path is classified as added, modified or unchanged; every
remote-only path as deleted unless ignore rules exclude it.  Remote
content is fetched only when a local digest does not match the remote
blob id, and the fetched text (not the digest) then decides.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Mapping

from .content import (
    Content,
    comparison_oid,
    decode_base64,
    decode_base64_bytes,
    is_placeholder,
    normalize,
)
from .exceptions import DecodeError, EncodingError, TransportError
from .ignore import GitignoreMatcher, IgnoreFilter, PathMatcher
from .models import (
    Added,
    ComparisonResult,
    Deleted,
    FileChange,
    Modified,
    RepoSnapshot,
    Unchanged,
)
from .paths import DEFAULT_PREFIX, normalize_prefix, path_variants, strip_prefix
from .transport import RemoteTransport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]

DEFAULT_CONCURRENCY = 8

# Progress checkpoints (percent)
_PROGRESS_TREE = 10
_PROGRESS_ANALYZE = 30
_PROGRESS_COMPARE = 50
_PROGRESS_FETCH_SPAN = 30
_PROGRESS_DELETIONS = 90
_PROGRESS_DONE = 100


class Reconciler:
    """Compares local files with a branch of a remote repository.

    The instance holds configuration only; each :meth:`compare` call
    works on its own snapshot, so one reconciler can serve concurrent
    runs.

    Args:
        transport: Source of the remote tree and blobs.
        matcher: Ignore matcher for remote-only paths.  Defaults to the
            project's ``.gitignore`` (or built-in patterns) read from the
            local file set of each run.
        project_prefix: Leading path segment stripped from local paths
            before comparison (``""`` for none).
        concurrency: Maximum number of blob fetches in flight.
        fetch_deleted: Also fetch the previous content of deleted files.
    """

    def __init__(
        self,
        transport: RemoteTransport,
        *,
        matcher: PathMatcher | None = None,
        project_prefix: str = DEFAULT_PREFIX,
        concurrency: int = DEFAULT_CONCURRENCY,
        fetch_deleted: bool = False,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.transport = transport
        self.matcher = matcher
        self.project_prefix = normalize_prefix(project_prefix)
        self.concurrency = concurrency
        self.fetch_deleted = fetch_deleted

    # ------------------------------------------------------------------
    async def compare(
        self,
        local_files: Mapping[str, Content],
        owner: str,
        repo: str,
        branch: str,
        progress: ProgressCallback | None = None,
    ) -> ComparisonResult:
        """Classify *local_files* against *owner*/*repo* at *branch*.

        Raises:
            TransportError: The branch, commit or tree could not be read.
                No partial result is produced.
        """
        run = _Run(self, local_files, owner, repo, progress)
        return await run.execute(branch)


# ---------------------------------------------------------------------------
# One comparison run
# ---------------------------------------------------------------------------

class _Run:
    """State of a single :meth:`Reconciler.compare` call."""

    def __init__(self, reconciler: Reconciler, local_files, owner, repo, progress):
        self.r = reconciler
        self.local_files = local_files
        self.owner = owner
        self.repo = repo
        self.progress = progress
        self.prefix = reconciler.project_prefix
        self.semaphore = asyncio.Semaphore(reconciler.concurrency)
        self.commit_oid = ""
        self.fetches_done = 0
        self.fetches_total = 0

    def notify(self, message: str, percent: float) -> None:
        if self.progress is None:
            return
        try:
            self.progress(message, int(percent))
        except Exception:
            logger.warning("Progress callback failed on %r", message, exc_info=True)

    # ------------------------------------------------------------------
    async def execute(self, branch: str) -> ComparisonResult:
        self.notify("Fetching repository data...", _PROGRESS_TREE)
        snapshot = await self._fetch_snapshot(branch)
        remote_files = snapshot.remote_files
        self.commit_oid = snapshot.base_commit_oid

        self.notify("Analyzing repository files...", _PROGRESS_ANALYZE)
        local = self._comparison_paths()

        self.notify("Comparing files...", _PROGRESS_COMPARE)
        # None marks a path awaiting a content fetch; keeps processing order
        changes: dict[str, FileChange | None] = {}
        pending: list[tuple[str, Content]] = []
        for path, content in local.items():
            remote_oid = remote_files.get(path)
            if remote_oid is None:
                changes[path] = Added(path, content)
                continue
            try:
                local_oid = comparison_oid(content)
            except EncodingError as exc:
                logger.warning("Cannot hash %s (%s); reporting as modified", path, exc)
                changes[path] = Modified(path, content)
                continue
            if local_oid == remote_oid:
                logger.debug("%s: digest match", path)
                changes[path] = Unchanged(path, content)
            else:
                changes[path] = None
                pending.append((path, content))

        self.fetches_total = len(pending)
        resolved = await asyncio.gather(
            *(self._disambiguate(path, content) for path, content in pending)
        )
        for change in resolved:
            changes[change.path] = change

        self.notify("Checking for deleted files...", _PROGRESS_DELETIONS)
        for change in await self._deletions(remote_files):
            changes[change.path] = change

        self.notify("Comparison complete", _PROGRESS_DONE)
        return ComparisonResult(changes=changes, snapshot=snapshot)

    # ------------------------------------------------------------------
    async def _fetch_snapshot(self, branch: str) -> RepoSnapshot:
        t = self.r.transport
        commit_oid = await t.resolve_branch(self.owner, self.repo, branch)
        tree_oid = await t.get_commit_tree(self.owner, self.repo, commit_oid)
        entries = await t.list_tree(self.owner, self.repo, tree_oid, recursive=True)
        remote_files = {e.path: e.oid for e in entries if e.kind == "blob"}
        logger.debug(
            "%s/%s@%s: commit %s, tree %s, %d files",
            self.owner, self.repo, branch, commit_oid, tree_oid, len(remote_files),
        )
        return RepoSnapshot(
            base_tree_oid=tree_oid,
            base_commit_oid=commit_oid,
            remote_files=remote_files,
        )

    def _comparison_paths(self) -> dict[str, Content]:
        """Map comparison path -> content, skipping directory placeholders."""
        result: dict[str, Content] = {}
        for original, content in self.local_files.items():
            if is_placeholder(original, content):
                continue
            path = strip_prefix(original, self.prefix)
            if path in result:
                logger.warning(
                    "Local path %s duplicates %s after prefix stripping; ignoring it",
                    original, path,
                )
                continue
            result[path] = content
        return result

    # ------------------------------------------------------------------
    async def _fetch(self, path: str) -> str:
        """Fetch the base64 payload of one remote blob at the snapshot commit."""
        async with self.semaphore:
            return await self.r.transport.get_blob(
                self.owner, self.repo, path, self.commit_oid,
            )

    async def _disambiguate(self, path: str, content: Content) -> FileChange:
        binary = isinstance(content, bytes)
        try:
            payload = await self._fetch(path)
            remote = decode_base64_bytes(payload) if binary else decode_base64(payload)
        except (TransportError, DecodeError) as exc:
            logger.warning("Failed to fetch remote content for %s: %s", path, exc)
            return Modified(path, content)
        except Exception:
            logger.warning(
                "Unexpected error fetching remote content for %s", path, exc_info=True,
            )
            return Modified(path, content)
        finally:
            self.fetches_done += 1
            self.notify(
                f"Fetching content for {path}...",
                _PROGRESS_COMPARE
                + _PROGRESS_FETCH_SPAN * self.fetches_done / self.fetches_total,
            )

        if binary:
            same = content == remote
        else:
            same = normalize(content) == normalize(remote)
        if same:
            logger.debug("%s: digest mismatch but normalized content equal", path)
            return Unchanged(path, content, remote)
        return Modified(path, content, remote)

    # ------------------------------------------------------------------
    def _ignore_filter(self) -> IgnoreFilter:
        matcher = self.r.matcher
        if matcher is None:
            matcher = GitignoreMatcher.from_local_files(self.local_files, self.prefix)
        return IgnoreFilter(matcher, prefix=self.prefix)

    async def _deletions(self, remote_files: Mapping[str, str]) -> list[Deleted]:
        remote_only = [
            path for path in remote_files
            if not any(v in self.local_files for v in path_variants(path, self.prefix))
        ]
        if not remote_only:
            return []
        ignore = self._ignore_filter()
        ignore.load(remote_only)
        deleted = [p for p in remote_only if not ignore.is_ignored(p)]
        if not self.r.fetch_deleted:
            return [Deleted(p) for p in deleted]
        return list(await asyncio.gather(*(self._deleted_with_content(p) for p in deleted)))

    async def _deleted_with_content(self, path: str) -> Deleted:
        try:
            payload = await self._fetch(path)
        except TransportError as exc:
            logger.warning("Failed to fetch deleted file %s: %s", path, exc)
            return Deleted(path)
        except Exception:
            logger.warning("Unexpected error fetching deleted file %s", path, exc_info=True)
            return Deleted(path)
        try:
            return Deleted(path, decode_base64(payload))
        except DecodeError:
            pass
        # Not UTF-8: keep the raw bytes
        try:
            return Deleted(path, decode_base64_bytes(payload))
        except DecodeError as exc:
            logger.warning("Cannot decode deleted file %s: %s", path, exc)
            return Deleted(path)
