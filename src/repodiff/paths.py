"""Project-root prefix handling shared by the reconciler and ignore filter."""

from __future__ import annotations

DEFAULT_PREFIX = "project/"


def normalize_prefix(prefix: str | None) -> str:
    """Return *prefix* as ``"segment/"`` (or ``""`` for no prefix)."""
    if not prefix:
        return ""
    prefix = prefix.replace("\\", "/").strip("/")
    return prefix + "/" if prefix else ""


def strip_prefix(path: str, prefix: str) -> str:
    """Strip a leading project-root *prefix* from *path* if present."""
    if prefix and path.startswith(prefix):
        return path[len(prefix):]
    return path


def path_variants(path: str, prefix: str) -> tuple[str, ...]:
    """Spellings under which a repo *path* may appear in a local file set."""
    if not prefix:
        return (path,)
    return (path, prefix + path)
