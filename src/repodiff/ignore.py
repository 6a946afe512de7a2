"""Ignore-rule handling for remote-only paths.

A remote path that no longer exists locally is reported as deleted
unless the project's ignore rules exclude it: files that were never part
of the local project (build output, dependencies, logs) must not show up
as deletions.  Ignore verdicts only ever suppress deletions.

Pattern syntax follows gitignore rules (implemented by
``dulwich.ignore.IgnoreFilter``).
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Protocol, Sequence

from dulwich.ignore import IgnoreFilter as _DulwichIgnoreFilter

from .content import Content
from .exceptions import IgnoreFilterError
from .paths import DEFAULT_PREFIX, normalize_prefix, strip_prefix

logger = logging.getLogger(__name__)

# Used when the project has no .gitignore of its own.
DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    "node_modules/",
    "dist/",
    "build/",
    ".DS_Store",
    "coverage/",
    ".env",
    ".env.local",
    ".env.*.local",
    "*.log",
    "npm-debug.log*",
    "yarn-debug.log*",
    "yarn-error.log*",
    ".idea/",
    ".vscode/",
    "*.suo",
    "*.ntvs*",
    "*.njsproj",
    "*.sln",
    "*.sw?",
    ".next/",
    "out/",
    ".nuxt/",
    ".cache/",
    ".temp/",
    "tmp/",
)


class PathMatcher(Protocol):
    """Anything that can tell which of a set of paths are excluded."""

    def matches(self, paths: Iterable[str]) -> set[str]:
        ...


# ---------------------------------------------------------------------------
# gitignore matcher
# ---------------------------------------------------------------------------

def _pattern_lines(text: str) -> list[bytes]:
    lines: list[bytes] = []
    for raw in text.splitlines():
        line = raw.rstrip("\r")
        if line.strip() and not line.lstrip().startswith("#"):
            lines.append(line.encode("utf-8"))
    return lines


class GitignoreMatcher:
    """Matches paths against gitignore patterns."""

    def __init__(self, patterns: Sequence[str]) -> None:
        lines: list[bytes] = []
        for p in patterns:
            lines.extend(_pattern_lines(p))
        self._filter = _DulwichIgnoreFilter(lines)

    @classmethod
    def from_gitignore(cls, text: str) -> GitignoreMatcher:
        """Build from the contents of a ``.gitignore`` file."""
        return cls([text])

    @classmethod
    def from_local_files(
        cls,
        files: Mapping[str, Content],
        prefix: str = DEFAULT_PREFIX,
    ) -> GitignoreMatcher:
        """Use the project's root ``.gitignore`` or the default patterns."""
        prefix = normalize_prefix(prefix)
        for candidate in (".gitignore", prefix + ".gitignore"):
            text = files.get(candidate)
            if isinstance(text, str) and text.strip():
                return cls.from_gitignore(text)
        return cls(DEFAULT_IGNORE_PATTERNS)

    def is_ignored(self, path: str) -> bool:
        """True if *path* or one of its parent directories is ignored.

        Files inside an excluded directory cannot be re-included, as
        in git.
        """
        parts = path.split("/")
        for depth in range(1, len(parts)):
            if self._filter.is_ignored("/".join(parts[:depth]) + "/") is True:
                return True
        return self._filter.is_ignored(path) is True

    def matches(self, paths: Iterable[str]) -> set[str]:
        return {p for p in paths if self.is_ignored(p)}


# ---------------------------------------------------------------------------
# Deletion filter
# ---------------------------------------------------------------------------

class IgnoreFilter:
    """Decides which remote-only paths are excluded from deletion reports.

    The matcher is asked once for the whole candidate set.  A failing
    matcher is logged and treated as "nothing ignored", so a broken rule
    set can only produce more deletions, never hide one.
    """

    def __init__(self, matcher: PathMatcher, *, prefix: str = DEFAULT_PREFIX) -> None:
        self._matcher = matcher
        self._prefix = normalize_prefix(prefix)
        self._ignored: set[str] = set()

    def _query(self, candidates: set[str]) -> set[str]:
        try:
            verdict = self._matcher.matches(sorted(candidates))
        except Exception as exc:
            raise IgnoreFilterError(f"Ignore matcher failed: {exc}") from exc
        if verdict is None:
            raise IgnoreFilterError("Ignore matcher returned no verdict")
        return set(verdict) & candidates

    def load(self, remote_only: Iterable[str]) -> set[str]:
        """Evaluate the candidate set; returns the excluded paths."""
        candidates = {strip_prefix(p, self._prefix) for p in remote_only}
        if not candidates:
            self._ignored = set()
            return set()
        try:
            self._ignored = self._query(candidates)
        except IgnoreFilterError as exc:
            logger.warning("%s; reporting all remote-only paths as deleted", exc)
            self._ignored = set()
        return set(self._ignored)

    def is_ignored(self, path: str) -> bool:
        """True if *path* (with or without prefix) was excluded by :meth:`load`."""
        return strip_prefix(path, self._prefix) in self._ignored
