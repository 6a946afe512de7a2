"""Reading a project directory on disk into a local file set."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from .content import Content
from .ignore import GitignoreMatcher, PathMatcher
from .paths import normalize_prefix, strip_prefix

logger = logging.getLogger(__name__)

_SKIP_DIRS = {".git"}


def _walk_local_paths(local_path: str | os.PathLike[str]) -> list[str]:
    """Return sorted relative paths of regular files under *local_path*.

    ``.git`` directories are pruned and symlinked directories are not
    descended into.
    """
    result: list[str] = []
    base = Path(local_path)
    for dirpath, dirnames, filenames in os.walk(base):
        dp = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in _SKIP_DIRS and not (dp / d).is_symlink()
        )
        for fname in filenames:
            full = dp / fname
            if not full.is_file():
                continue
            result.append(str(full.relative_to(base)).replace(os.sep, "/"))
    result.sort()
    return result


def read_local_files(
    local_path: str | os.PathLike[str], *, prefix: str = "",
) -> dict[str, Content]:
    """Read every file under *local_path* into ``{path: content}``.

    UTF-8 files are returned as ``str``, anything else as ``bytes``.
    *prefix* (e.g. ``"project/"``) is prepended to every key.
    """
    base = Path(local_path)
    if not base.is_dir():
        raise NotADirectoryError(f"Not a directory: {local_path}")
    files: dict[str, Content] = {}
    for rel in _walk_local_paths(base):
        data = (base / rel).read_bytes()
        try:
            content: Content = data.decode("utf-8")
        except UnicodeDecodeError:
            content = data
        files[prefix + rel] = content
    return files


def filter_ignored(
    files: Mapping[str, Content],
    *,
    prefix: str = "",
    matcher: PathMatcher | None = None,
) -> dict[str, Content]:
    """Drop local files the project's ignore rules exclude.

    *matcher* defaults to the project's ``.gitignore`` (or the built-in
    patterns) read from *files*.  Keys keep their *prefix*; matching is
    done on the prefix-stripped path.  If the matcher fails, every file
    is kept.
    """
    prefix = normalize_prefix(prefix)
    if matcher is None:
        matcher = GitignoreMatcher.from_local_files(files, prefix)
    stripped = {path: strip_prefix(path, prefix) for path in files}
    try:
        ignored = set(matcher.matches(sorted(stripped.values())) or ())
    except Exception:
        logger.warning("Ignore matcher failed; keeping all local files", exc_info=True)
        return dict(files)
    kept = {path: content for path, content in files.items()
            if stripped[path] not in ignored}
    logger.debug("Ignored %d of %d local files", len(files) - len(kept), len(files))
    return kept
