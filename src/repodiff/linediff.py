"""Line-level diffs between two versions of a text file.

The edit script is a longest-common-subsequence diff over lines.  In
contextual mode long runs of unchanged lines are replaced by a
:class:`~repodiff.models.SkippedLines` marker, keeping a fixed window of
context around every change block.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterator

from .content import Content, is_binary, normalize
from .models import (
    Added,
    Deleted,
    DiffItem,
    FileChange,
    LineDiffEntry,
    LineKind,
    Modified,
    SkippedLines,
)

DEFAULT_CONTEXT_LINES = 3


class DiffMode(str, Enum):
    """``FULL`` lists every line; ``CONTEXTUAL`` elides long unchanged runs."""
    FULL = "full"
    CONTEXTUAL = "contextual"

    def __str__(self) -> str:          # noqa: D105
        return self.value


def split_lines(text: str) -> list[str]:
    """Normalize *text* and split it into lines (no terminators)."""
    text = normalize(text)
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


# ---------------------------------------------------------------------------
# Edit script
# ---------------------------------------------------------------------------

def _lcs_table(a: list[str], b: list[str]) -> list[list[int]]:
    """``table[i][j]`` = length of the LCS of ``a[i:]`` and ``b[j:]``."""
    table = [[0] * (len(b) + 1) for _ in range(len(a) + 1)]
    for i in range(len(a) - 1, -1, -1):
        row, below, ai = table[i], table[i + 1], a[i]
        for j in range(len(b) - 1, -1, -1):
            if ai == b[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = max(below[j], row[j + 1])
    return table


def _edit_script(old: list[str], new: list[str]) -> list[LineDiffEntry]:
    """Full list of entries turning *old* into *new*.

    The common prefix and suffix are matched directly; only the middle
    goes through the quadratic LCS table.  Within a change block
    removals come before additions.
    """
    start = 0
    while start < len(old) and start < len(new) and old[start] == new[start]:
        start += 1
    end_old, end_new = len(old), len(new)
    while end_old > start and end_new > start and old[end_old - 1] == new[end_new - 1]:
        end_old -= 1
        end_new -= 1

    entries = [LineDiffEntry(LineKind.UNCHANGED, k + 1, new[k]) for k in range(start)]

    a, b = old[start:end_old], new[start:end_new]
    table = _lcs_table(a, b)
    i = j = 0
    while i < len(a) or j < len(b):
        if i < len(a) and j < len(b) and a[i] == b[j]:
            entries.append(LineDiffEntry(LineKind.UNCHANGED, start + j + 1, b[j]))
            i += 1
            j += 1
        elif i < len(a) and (j == len(b) or table[i + 1][j] >= table[i][j + 1]):
            entries.append(LineDiffEntry(LineKind.REMOVED, start + i + 1, a[i]))
            i += 1
        else:
            entries.append(LineDiffEntry(LineKind.ADDED, start + j + 1, b[j]))
            j += 1

    entries.extend(
        LineDiffEntry(LineKind.UNCHANGED, k + 1, new[k]) for k in range(end_new, len(new))
    )
    return entries


def _windowed(entries: list[LineDiffEntry], context_lines: int) -> Iterator[DiffItem]:
    """Keep *context_lines* around each change, collapse the rest."""
    keep = [False] * len(entries)
    for idx, entry in enumerate(entries):
        if entry.kind is LineKind.UNCHANGED:
            continue
        lo = max(0, idx - context_lines)
        hi = min(len(entries), idx + context_lines + 1)
        for k in range(lo, hi):
            keep[k] = True

    skipped = 0
    for entry, kept in zip(entries, keep):
        if not kept:
            skipped += 1
            continue
        if skipped:
            yield SkippedLines(skipped)
            skipped = 0
        yield entry
    if skipped:
        yield SkippedLines(skipped)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def diff_lines(
    before: str,
    after: str,
    mode: DiffMode | str = DiffMode.FULL,
    context_lines: int = DEFAULT_CONTEXT_LINES,
) -> Iterator[DiffItem]:
    """Diff *before* against *after*, line by line.

    Both texts are normalized first, so texts that differ only in line
    endings or trailing whitespace produce no changes.  The result is
    always a sequence of entries (all unchanged, or a single
    :class:`SkippedLines` in contextual mode), never a special value.

    Raises:
        ValueError: *context_lines* is negative or *mode* is unknown.
    """
    mode = DiffMode(mode)
    if context_lines < 0:
        raise ValueError(f"context_lines must be >= 0, got {context_lines}")
    entries = _edit_script(split_lines(before), split_lines(after))
    if mode is DiffMode.FULL:
        return iter(entries)
    return _windowed(entries, context_lines)


def _one_sided(text: str, kind: LineKind) -> Iterator[DiffItem]:
    return iter([LineDiffEntry(kind, n, line)
                 for n, line in enumerate(split_lines(text), start=1)])


def diff_change(
    change: FileChange,
    mode: DiffMode | str = DiffMode.FULL,
    context_lines: int = DEFAULT_CONTEXT_LINES,
) -> Iterator[DiffItem] | None:
    """Line diff for one classified file.

    Added files are all additions and deleted files all removals.
    Returns ``None`` when the content is binary or the previous content
    is not known (a modified file whose remote blob could not be read, a
    deleted file whose content was not fetched).
    """
    if isinstance(change, Added):
        if is_binary(change.content):
            return None
        return _one_sided(change.content, LineKind.ADDED)

    if isinstance(change, Deleted):
        if change.previous_content is None or is_binary(change.previous_content):
            return None
        return _one_sided(change.previous_content, LineKind.REMOVED)

    previous: Content | None = change.previous_content
    if previous is None:
        if isinstance(change, Modified):
            return None
        previous = change.content
    if is_binary(previous) or is_binary(change.content):
        return None
    return diff_lines(previous, change.content, mode, context_lines)
