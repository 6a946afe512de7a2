"""Tests for Reconciler.compare."""

import logging
from unittest.mock import AsyncMock

import pytest

from repodiff.content import blob_oid
from repodiff.exceptions import TransportError
from repodiff.ignore import GitignoreMatcher
from repodiff.models import (
    Added,
    ChangeStatus,
    Deleted,
    Modified,
    Unchanged,
)
from repodiff.reconcile import Reconciler
from repodiff.transport import LocalRepoTransport, RemoteTransport, TreeEntry

from conftest import COMMIT_OID, TREE_OID, FakeTransport


async def _compare(transport, local_files, **kwargs):
    progress = kwargs.pop("progress", None)
    reconciler = Reconciler(transport, **kwargs)
    return await reconciler.compare(local_files, "octo", "site", "main", progress)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestClassification:
    async def test_digest_match_is_unchanged_without_fetch(self):
        t = FakeTransport({"a.txt": "hello\n"})
        result = await _compare(t, {"project/a.txt": "hello\n"})
        assert result.get("a.txt") == Unchanged("a.txt", "hello\n")
        assert t.blob_calls == []

    async def test_added(self):
        t = FakeTransport({})
        result = await _compare(t, {"project/new.txt": "x\n"})
        assert result.get("new.txt") == Added("new.txt", "x\n")
        assert result.added == ["new.txt"]

    async def test_modified_carries_remote_content(self):
        t = FakeTransport({"a.txt": "old\n"})
        result = await _compare(t, {"project/a.txt": "new\n"})
        assert result.get("a.txt") == Modified("a.txt", "new\n", "old\n")
        assert t.blob_calls == [("a.txt", COMMIT_OID)]

    async def test_whitespace_only_difference_is_unchanged(self):
        t = FakeTransport({"a.txt": "a\r\nb  \r\n\r\n"})
        result = await _compare(t, {"project/a.txt": "a\nb\n"})
        change = result.get("a.txt")
        assert isinstance(change, Unchanged)
        assert change.previous_content == "a\r\nb  \r\n\r\n"
        assert len(t.blob_calls) == 1

    async def test_local_crlf_matches_clean_remote_by_digest(self):
        t = FakeTransport({"a.txt": "a\nb\n"})
        result = await _compare(t, {"project/a.txt": "a\r\nb\r\n"})
        assert isinstance(result.get("a.txt"), Unchanged)
        assert t.blob_calls == []

    async def test_deleted(self):
        t = FakeTransport({"gone.txt": "bye\n", "kept.txt": "k\n"})
        result = await _compare(t, {"project/kept.txt": "k\n"})
        assert result.get("gone.txt") == Deleted("gone.txt")
        assert result.deleted == ["gone.txt"]

    async def test_deleted_file_never_fetched_by_default(self):
        t = FakeTransport({"gone.txt": "bye\n"})
        await _compare(t, {})
        assert t.blob_calls == []

    async def test_fetch_deleted(self):
        t = FakeTransport({"gone.txt": "bye\n", "img.bin": b"\xff\x00"})
        result = await _compare(t, {}, fetch_deleted=True)
        assert result.get("gone.txt") == Deleted("gone.txt", "bye\n")
        assert result.get("img.bin") == Deleted("img.bin", b"\xff\x00")

    async def test_fetch_deleted_failure_keeps_deletion(self):
        t = FakeTransport({"gone.txt": "bye\n"}, fail_paths={"gone.txt"})
        result = await _compare(t, {}, fetch_deleted=True)
        assert result.get("gone.txt") == Deleted("gone.txt")

    async def test_binary_digest_match(self):
        data = b"\x89PNG\x00\x01"
        t = FakeTransport({"logo.png": data})
        result = await _compare(t, {"project/logo.png": data})
        assert isinstance(result.get("logo.png"), Unchanged)
        assert t.blob_calls == []

    async def test_binary_modified_compares_raw_bytes(self):
        t = FakeTransport({"logo.png": b"\x89PNG\x00\x02"})
        result = await _compare(t, {"project/logo.png": b"\x89PNG\x00\x01"})
        assert result.get("logo.png") == Modified(
            "logo.png", b"\x89PNG\x00\x01", b"\x89PNG\x00\x02",
        )

    async def test_non_utf8_remote_text_is_modified(self):
        t = FakeTransport({"a.txt": b"caf\xe9\n"})
        result = await _compare(t, {"project/a.txt": "café\n"})
        assert result.get("a.txt") == Modified("a.txt", "café\n")

    async def test_unencodable_local_text_is_modified_without_fetch(self):
        t = FakeTransport({"a.txt": "x\n"})
        result = await _compare(t, {"project/a.txt": "bad \ud800\n"})
        assert result.get("a.txt") == Modified("a.txt", "bad \ud800\n")
        assert t.blob_calls == []

    async def test_multibyte_content_hashes_by_bytes(self):
        text = "© 2024 \U0001f600\n"
        t = FakeTransport({"a.txt": text})
        result = await _compare(t, {"project/a.txt": text})
        assert isinstance(result.get("a.txt"), Unchanged)
        assert t.blob_calls == []


# ---------------------------------------------------------------------------
# Paths and placeholders
# ---------------------------------------------------------------------------

class TestPaths:
    async def test_placeholders_skipped(self):
        t = FakeTransport({"empty.txt": "", "dir/a.txt": "a\n"})
        local = {
            "project/dir/": "",
            "project/empty.txt": "",
            "project/dir/a.txt": "a\n",
        }
        result = await _compare(t, local)
        assert "empty.txt" not in result.changes
        assert "dir/" not in result.changes
        assert "dir" not in result.changes
        assert isinstance(result.get("dir/a.txt"), Unchanged)

    async def test_unprefixed_local_path(self):
        t = FakeTransport({"a.txt": "a\n"})
        result = await _compare(t, {"a.txt": "a\n"})
        assert isinstance(result.get("a.txt"), Unchanged)
        assert result.deleted == []

    async def test_empty_prefix(self):
        t = FakeTransport({"project/a.txt": "a\n"})
        result = await _compare(t, {"project/a.txt": "a\n"}, project_prefix="")
        assert isinstance(result.get("project/a.txt"), Unchanged)

    async def test_custom_prefix(self):
        t = FakeTransport({"a.txt": "a\n", "b.txt": "b\n"})
        result = await _compare(t, {"site/a.txt": "a\n"}, project_prefix="site")
        assert isinstance(result.get("a.txt"), Unchanged)
        assert result.deleted == ["b.txt"]

    async def test_duplicate_after_stripping_keeps_first(self, caplog):
        t = FakeTransport({})
        with caplog.at_level(logging.WARNING, logger="repodiff.reconcile"):
            result = await _compare(t, {"project/a.txt": "first", "a.txt": "second"})
        assert result.get("a.txt") == Added("a.txt", "first")
        assert "duplicates" in caplog.text

    async def test_tree_entries_are_not_files(self):
        t = FakeTransport({"src/deep/a.txt": "a\n"})
        result = await _compare(t, {"project/src/deep/a.txt": "a\n"})
        assert set(result.changes) == {"src/deep/a.txt"}
        assert set(result.snapshot.remote_files) == {"src/deep/a.txt"}


# ---------------------------------------------------------------------------
# Ignore rules
# ---------------------------------------------------------------------------

class TestIgnore:
    async def test_default_patterns_suppress_deletions(self):
        t = FakeTransport({
            "node_modules/react/index.js": "x",
            "debug.log": "x",
            "src/app.js": "x",
        })
        result = await _compare(t, {})
        assert result.deleted == ["src/app.js"]
        assert "node_modules/react/index.js" not in result.changes

    async def test_project_gitignore(self):
        t = FakeTransport({
            ".gitignore": "secret/\n",
            "secret/key.txt": "k",
            "node_modules/a.js": "x",
        })
        result = await _compare(t, {"project/.gitignore": "secret/\n"})
        assert "secret/key.txt" not in result.changes
        # The project's own rules replace the defaults
        assert result.deleted == ["node_modules/a.js"]

    async def test_ignore_never_hides_local_files(self):
        t = FakeTransport({"debug.log": "old\n"})
        result = await _compare(t, {"project/debug.log": "new\n", "project/x.log": "x"})
        assert result.modified == ["debug.log"]
        assert result.added == ["x.log"]

    async def test_custom_matcher(self):
        t = FakeTransport({"keep/a.txt": "a", "drop/b.txt": "b"})
        result = await _compare(t, {}, matcher=GitignoreMatcher(["keep/"]))
        assert result.deleted == ["drop/b.txt"]

    async def test_broken_matcher_reports_every_deletion(self, caplog):
        class _Broken:
            def matches(self, paths):
                raise RuntimeError("nope")

        t = FakeTransport({"node_modules/a.js": "x", "b.txt": "b"})
        with caplog.at_level(logging.WARNING):
            result = await _compare(t, {}, matcher=_Broken())
        assert result.deleted == ["b.txt", "node_modules/a.js"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    async def test_fetch_failure_is_modified(self, caplog):
        t = FakeTransport({"a.txt": "old\n", "b.txt": "b\n"}, fail_paths={"a.txt"})
        with caplog.at_level(logging.WARNING, logger="repodiff.reconcile"):
            result = await _compare(t, {"project/a.txt": "new\n", "project/b.txt": "b\n"})
        assert result.get("a.txt") == Modified("a.txt", "new\n")
        assert isinstance(result.get("b.txt"), Unchanged)
        assert "a.txt" in caplog.text

    @pytest.mark.parametrize("error", [
        ConnectionResetError("peer reset"),
        TimeoutError("slow"),
        RuntimeError("client bug"),
    ])
    async def test_unexpected_fetch_error_is_modified(self, error, caplog):
        t = FakeTransport({"a.txt": "old\n", "b.txt": "old\n"}, errors={"a.txt": error})
        with caplog.at_level(logging.WARNING, logger="repodiff.reconcile"):
            result = await _compare(t, {"project/a.txt": "new\n", "project/b.txt": "new\n"})
        assert result.modified == ["a.txt", "b.txt"]
        assert result.get("a.txt").previous_content is None
        assert result.get("b.txt").previous_content == "old\n"
        assert "Unexpected error fetching remote content for a.txt" in caplog.text

    async def test_unexpected_error_fetching_deleted_keeps_deletion(self):
        t = FakeTransport({"gone.txt": "bye\n"},
                          errors={"gone.txt": ConnectionResetError("reset")})
        result = await _compare(t, {}, fetch_deleted=True)
        assert result.get("gone.txt") == Deleted("gone.txt")

    async def test_corrupt_payload_is_modified(self):
        t = FakeTransport({"a.txt": "old\n"}, corrupt_paths={"a.txt"})
        result = await _compare(t, {"project/a.txt": "new\n"})
        assert result.get("a.txt") == Modified("a.txt", "new\n")

    async def test_one_failure_does_not_abort_others(self):
        files = {f"f{i}.txt": f"remote {i}\n" for i in range(5)}
        t = FakeTransport(files, fail_paths={"f2.txt"})
        local = {f"project/f{i}.txt": f"local {i}\n" for i in range(5)}
        result = await _compare(t, local)
        assert result.modified == sorted(files)
        assert result.get("f1.txt").previous_content == "remote 1\n"
        assert result.get("f2.txt").previous_content is None

    @pytest.mark.parametrize("method", ["resolve_branch", "get_commit_tree", "list_tree"])
    async def test_snapshot_failure_is_fatal(self, method):
        transport = AsyncMock(spec=RemoteTransport)
        transport.resolve_branch.return_value = COMMIT_OID
        transport.get_commit_tree.return_value = TREE_OID
        transport.list_tree.return_value = [TreeEntry("a.txt", blob_oid("a"), "blob")]
        getattr(transport, method).side_effect = TransportError("down")

        with pytest.raises(TransportError):
            await _compare(transport, {"project/a.txt": "b"})
        transport.get_blob.assert_not_awaited()

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            Reconciler(FakeTransport(), concurrency=0)


# ---------------------------------------------------------------------------
# Result shape
# ---------------------------------------------------------------------------

class TestResult:
    async def test_partition(self):
        remote = {
            "same.txt": "s\n",
            "changed.txt": "old\n",
            "gone.txt": "g\n",
            "dist/bundle.js": "b",
        }
        local = {
            "project/same.txt": "s\n",
            "project/changed.txt": "new\n",
            "project/new.txt": "n\n",
        }
        result = await _compare(FakeTransport(remote), local)
        assert set(result.changes) == {"same.txt", "changed.txt", "new.txt", "gone.txt"}
        assert result.added == ["new.txt"]
        assert result.modified == ["changed.txt"]
        assert result.deleted == ["gone.txt"]
        assert result.unchanged == ["same.txt"]
        assert result.total == 3
        assert result.in_sync is False
        assert result.counts() == {
            ChangeStatus.ADDED: 1,
            ChangeStatus.MODIFIED: 1,
            ChangeStatus.DELETED: 1,
            ChangeStatus.UNCHANGED: 1,
        }
        for path, change in result.changes.items():
            assert change.path == path

    async def test_deletions_come_last(self):
        t = FakeTransport({"a.txt": "old\n", "z.txt": "z\n"})
        result = await _compare(t, {"project/b.txt": "b", "project/a.txt": "new\n"})
        assert list(result.changes) == ["b.txt", "a.txt", "z.txt"]

    async def test_in_sync(self):
        t = FakeTransport({"a.txt": "a\n"})
        result = await _compare(t, {"project/a.txt": "a\n"})
        assert result.in_sync is True
        assert result.total == 0

    async def test_snapshot(self):
        t = FakeTransport({"a.txt": "a\n"})
        result = await _compare(t, {})
        snap = result.snapshot
        assert snap.base_commit_oid == COMMIT_OID
        assert snap.base_tree_oid == TREE_OID
        assert dict(snap.remote_files) == {"a.txt": blob_oid("a\n")}
        with pytest.raises(TypeError):
            snap.remote_files["b.txt"] = "x"

    async def test_changes_read_only(self):
        result = await _compare(FakeTransport({}), {"project/a.txt": "a"})
        with pytest.raises(TypeError):
            result.changes["b.txt"] = Added("b.txt", "b")

    async def test_reconciler_reusable(self):
        t = FakeTransport({"a.txt": "a\n"})
        reconciler = Reconciler(t)
        first = await reconciler.compare({"project/a.txt": "a\n"}, "o", "r", "main")
        second = await reconciler.compare({}, "o", "r", "main")
        assert first.in_sync
        assert second.deleted == ["a.txt"]


# ---------------------------------------------------------------------------
# Progress and concurrency
# ---------------------------------------------------------------------------

class TestProgress:
    async def test_checkpoints_without_fetches(self):
        events = []
        t = FakeTransport({"a.txt": "a\n"})
        await _compare(t, {"project/a.txt": "a\n"},
                       progress=lambda msg, pct: events.append(pct))
        assert events == [10, 30, 50, 90, 100]

    async def test_per_file_progress(self):
        events = []
        files = {f"f{i}.txt": "old\n" for i in range(4)}
        local = {f"project/f{i}.txt": "new\n" for i in range(4)}
        await _compare(FakeTransport(files), local,
                       progress=lambda msg, pct: events.append((msg, pct)))
        percents = [pct for _, pct in events]
        assert percents == sorted(percents)
        assert percents[0] == 10
        assert percents[-1] == 100
        fetch_pcts = [pct for msg, pct in events if msg.startswith("Fetching content")]
        assert len(fetch_pcts) == 4
        assert all(50 < p <= 80 for p in fetch_pcts)
        assert fetch_pcts[-1] == 80

    async def test_failing_callback_does_not_abort(self, caplog):
        def _bad(msg, pct):
            raise RuntimeError("ui gone")

        t = FakeTransport({"a.txt": "a\n"})
        with caplog.at_level(logging.WARNING, logger="repodiff.reconcile"):
            result = await _compare(t, {"project/a.txt": "a\n"}, progress=_bad)
        assert result.in_sync
        assert "Progress callback failed" in caplog.text


class TestConcurrency:
    async def test_fetches_bounded(self):
        files = {f"f{i}.txt": f"old {i}\n" for i in range(20)}
        local = {f"project/f{i}.txt": f"new {i}\n" for i in range(20)}
        t = FakeTransport(files, delay=0.01)
        result = await _compare(t, local, concurrency=3)
        assert len(t.blob_calls) == 20
        assert 1 <= t.max_in_flight <= 3
        assert len(result.modified) == 20

    async def test_fetches_overlap(self):
        files = {f"f{i}.txt": "old\n" for i in range(6)}
        local = {f"project/f{i}.txt": "new\n" for i in range(6)}
        t = FakeTransport(files, delay=0.01)
        await _compare(t, local, concurrency=4)
        assert t.max_in_flight > 1

    async def test_blobs_read_at_snapshot_commit(self):
        t = FakeTransport({"a.txt": "old\n"})
        await _compare(t, {"project/a.txt": "new\n"})
        assert {ref for _, ref in t.blob_calls} == {COMMIT_OID}


class TestEndToEnd:
    async def test_against_real_repository(self, make_repo):
        path = make_repo({
            "index.html": "<p>hi</p>\n",
            "css/site.css": "body {}\n",
            "old.txt": "old\n",
            "build/out.js": "x",
        })
        local = {
            "project/index.html": "<p>hi</p>\r\n",
            "project/css/site.css": "body { color: red; }\n",
            "project/img/": "",
            "project/new.md": "# new\n",
        }
        result = await Reconciler(LocalRepoTransport(path)).compare(
            local, "any", "repo", "main",
        )
        assert result.unchanged == ["index.html"]
        assert result.modified == ["css/site.css"]
        assert result.get("css/site.css").previous_content == "body {}\n"
        assert result.added == ["new.md"]
        assert result.deleted == ["old.txt"]
        assert len(result.snapshot.base_commit_oid) == 40
