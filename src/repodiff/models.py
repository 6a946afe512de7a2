"""Data structures for comparison results and line diffs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import ClassVar, Mapping, Union

from .content import Content


# ---------------------------------------------------------------------------
# File changes
# ---------------------------------------------------------------------------

class ChangeStatus(str, Enum):
    """Classification of one path: ``ADDED``, ``MODIFIED``, ``DELETED``, ``UNCHANGED``."""
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass(frozen=True)
class Added:
    """A local file with no counterpart in the remote tree.

    Attributes:
        path: Repo-relative path (project prefix stripped).
        content: Local content.
    """
    path: str
    content: Content

    status: ClassVar[ChangeStatus] = ChangeStatus.ADDED


@dataclass(frozen=True)
class Modified:
    """A local file whose content differs from the remote blob.

    Attributes:
        path: Repo-relative path.
        content: Local content.
        previous_content: Remote content, or ``None`` when it could not be
            fetched or decoded (the file is then reported as modified
            without proof).
    """
    path: str
    content: Content
    previous_content: Content | None = None

    status: ClassVar[ChangeStatus] = ChangeStatus.MODIFIED


@dataclass(frozen=True)
class Unchanged:
    """A local file identical (after normalization) to the remote blob.

    ``previous_content`` is set when the remote blob had to be fetched to
    settle a digest mismatch.
    """
    path: str
    content: Content
    previous_content: Content | None = None

    status: ClassVar[ChangeStatus] = ChangeStatus.UNCHANGED


@dataclass(frozen=True)
class Deleted:
    """A remote file that is absent locally and not excluded by ignore rules."""
    path: str
    previous_content: Content | None = None

    status: ClassVar[ChangeStatus] = ChangeStatus.DELETED


FileChange = Union[Added, Modified, Unchanged, Deleted]


# ---------------------------------------------------------------------------
# Comparison result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RepoSnapshot:
    """The remote state a comparison was computed against.

    A later write-back can build on exactly this tree without fetching it
    again.

    Attributes:
        base_tree_oid: Root tree of the compared commit.
        base_commit_oid: Commit the branch pointed at when the run started.
        remote_files: Read-only ``{path: blob_oid}`` of the tree.
    """
    base_tree_oid: str
    base_commit_oid: str
    remote_files: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "remote_files", MappingProxyType(dict(self.remote_files)),
        )


@dataclass(frozen=True)
class ComparisonResult:
    """Classified change-set of one reconciliation run.

    Attributes:
        changes: ``{path: FileChange}`` in processing order (local paths
            first, then deletions).
        snapshot: The remote snapshot that was compared.
    """
    changes: Mapping[str, FileChange]
    snapshot: RepoSnapshot

    def __post_init__(self) -> None:
        object.__setattr__(self, "changes", MappingProxyType(dict(self.changes)))

    def paths(self, status: ChangeStatus) -> list[str]:
        """Sorted paths with the given *status*."""
        return sorted(p for p, c in self.changes.items() if c.status is status)

    @property
    def added(self) -> list[str]:
        return self.paths(ChangeStatus.ADDED)

    @property
    def modified(self) -> list[str]:
        return self.paths(ChangeStatus.MODIFIED)

    @property
    def deleted(self) -> list[str]:
        return self.paths(ChangeStatus.DELETED)

    @property
    def unchanged(self) -> list[str]:
        return self.paths(ChangeStatus.UNCHANGED)

    @property
    def in_sync(self) -> bool:
        """``True`` if nothing was added, modified or deleted."""
        return self.total == 0

    @property
    def total(self) -> int:
        """Number of added + modified + deleted paths."""
        return sum(1 for c in self.changes.values()
                   if c.status is not ChangeStatus.UNCHANGED)

    def counts(self) -> dict[ChangeStatus, int]:
        """Number of paths per status (every status present)."""
        result = {s: 0 for s in ChangeStatus}
        for c in self.changes.values():
            result[c.status] += 1
        return result

    def get(self, path: str) -> FileChange | None:
        return self.changes.get(path)


# ---------------------------------------------------------------------------
# Line diffs
# ---------------------------------------------------------------------------

class LineKind(str, Enum):
    """Kind of a diff line: ``ADDED``, ``REMOVED``, or ``UNCHANGED``."""
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"

    def __str__(self) -> str:          # noqa: D105
        return self.value


@dataclass(frozen=True)
class LineDiffEntry:
    """One line of a diff.

    Attributes:
        kind: :class:`LineKind` value.
        line_number: 1-based line number in the old text for removals,
            in the new text otherwise.
        text: Line content without its terminator.
    """
    kind: LineKind
    line_number: int
    text: str


@dataclass(frozen=True)
class SkippedLines:
    """Marker replacing a run of unchanged lines in a contextual diff."""
    count: int


DiffItem = Union[LineDiffEntry, SkippedLines]
