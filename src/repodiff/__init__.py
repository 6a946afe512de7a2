from .content import blob_oid, comparison_oid, decode_base64, decode_base64_bytes, normalize
from .exceptions import (
    RepodiffError, TransportError, DecodeError, EncodingError, IgnoreFilterError,
)
from .ignore import GitignoreMatcher, IgnoreFilter, PathMatcher, DEFAULT_IGNORE_PATTERNS
from .linediff import DiffMode, diff_lines, diff_change
from .local import filter_ignored, read_local_files
from .models import (
    Added, Modified, Unchanged, Deleted, FileChange, ChangeStatus,
    ComparisonResult, RepoSnapshot, LineDiffEntry, LineKind, SkippedLines,
)
from .reconcile import Reconciler
from .transport import RemoteTransport, TreeEntry, GitHubTransport, LocalRepoTransport

__all__ = [
    "normalize", "blob_oid", "comparison_oid", "decode_base64", "decode_base64_bytes",
    "RepodiffError", "TransportError", "DecodeError", "EncodingError", "IgnoreFilterError",
    "GitignoreMatcher", "IgnoreFilter", "PathMatcher", "DEFAULT_IGNORE_PATTERNS",
    "DiffMode", "diff_lines", "diff_change",
    "read_local_files", "filter_ignored",
    "Added", "Modified", "Unchanged", "Deleted", "FileChange", "ChangeStatus",
    "ComparisonResult", "RepoSnapshot", "LineDiffEntry", "LineKind", "SkippedLines",
    "Reconciler",
    "RemoteTransport", "TreeEntry", "GitHubTransport", "LocalRepoTransport",
]
