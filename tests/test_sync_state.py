"""Tests for sync state persistence layer.

Covers:
- Load returns empty state when file doesn't exist
- Save creates file atomically and stamps last_sync
- Save/load round-trip preserves all fields
- Unreadable state files fall back to empty state
- content_hash normalizes BOM, CRLF, trailing whitespace
- update_partition/get_partition/remove_partition
"""

from __future__ import annotations

import json
from pathlib import Path

from syssla_sync.sync.state import SyncState

# ---------------------------------------------------------------------------
# Load / Save
# ---------------------------------------------------------------------------


class TestSyncStateLoad:
    """Tests for SyncState.load()."""

    def test_load_returns_empty_state_when_file_missing(self, tmp_path: Path):
        """load() returns a well-formed empty state when no file exists."""
        ss = SyncState(tmp_path / "nonexistent")
        state = ss.load("tasks")
        assert state == {
            "version": 1,
            "last_sync": None,
            "collection": "tasks",
            "status": None,
            "error": None,
            "partitions": {},
        }

    def test_corrupt_file_yields_empty_state(self, tmp_path: Path):
        """A truncated state file is ignored rather than raised."""
        (tmp_path / "sync_wiki.json").write_text("{", encoding="utf-8")
        state = SyncState(tmp_path).load("wiki")
        assert state["partitions"] == {}
        assert state["collection"] == "wiki"


class TestSyncStateSave:
    """Tests for SyncState.save()."""

    def test_save_creates_file(self, tmp_path: Path):
        """save() creates the state directory and file on disk."""
        state_dir = tmp_path / ".syssla"
        ss = SyncState(state_dir)
        ss.save("customers", ss.load("customers"))
        assert (state_dir / "sync_customers.json").exists()

    def test_save_sets_last_sync(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        state = ss.load("tasks")
        ss.save("tasks", state)
        assert state["last_sync"].endswith("Z")

    def test_round_trip(self, tmp_path: Path):
        """Everything written comes back unchanged (apart from last_sync)."""
        ss = SyncState(tmp_path)
        state = ss.load("tasks")
        state["status"] = "partial"
        state["error"] = "GitHub is down"
        ss.update_partition(
            state, "todos/active.json", {"version_tag": "abc", "content_hash": "h"}
        )
        ss.save("tasks", state)

        loaded = ss.load("tasks")
        assert loaded == state

    def test_no_temp_files_left_behind(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        ss.save("tasks", ss.load("tasks"))
        assert [p.name for p in tmp_path.iterdir()] == ["sync_tasks.json"]

    def test_file_is_sorted_json(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        ss.save("tasks", ss.load("tasks"))
        data = json.loads((tmp_path / "sync_tasks.json").read_text(encoding="utf-8"))
        assert list(data) == sorted(data)

    def test_load_all(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        states = ss.load_all(["tasks", "wiki"])
        assert set(states) == {"tasks", "wiki"}


# ---------------------------------------------------------------------------
# Partitions
# ---------------------------------------------------------------------------


class TestPartitions:
    def test_update_and_get(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        state = ss.load("wiki")
        ss.update_partition(state, "wiki/a.md", {"version_tag": "1"})
        assert ss.get_partition(state, "wiki/a.md") == {"version_tag": "1"}
        assert ss.get_partition(state, "wiki/b.md") is None

    def test_update_overwrites(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        state = ss.load("wiki")
        ss.update_partition(state, "wiki/a.md", {"version_tag": "1"})
        ss.update_partition(state, "wiki/a.md", {"version_tag": "2"})
        assert ss.get_partition(state, "wiki/a.md") == {"version_tag": "2"}

    def test_remove(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        state = ss.load("wiki")
        ss.update_partition(state, "wiki/a.md", {"version_tag": "1"})
        ss.remove_partition(state, "wiki/a.md")
        ss.remove_partition(state, "wiki/missing.md")
        assert state["partitions"] == {}

    def test_partitions_created_on_bare_dict(self, tmp_path: Path):
        ss = SyncState(tmp_path)
        state: dict = {}
        ss.update_partition(state, "p", {"version_tag": "x"})
        assert state == {"partitions": {"p": {"version_tag": "x"}}}


# ---------------------------------------------------------------------------
# Content hashing
# ---------------------------------------------------------------------------


class TestContentHash:
    def test_identical_content_same_hash(self):
        assert SyncState.content_hash("[]\n") == SyncState.content_hash("[]\n")

    def test_normalizes_bom_crlf_and_trailing_whitespace(self):
        plain = SyncState.content_hash("# Title\nbody")
        noisy = SyncState.content_hash("﻿# Title  \r\nbody\r\n\r\n")
        assert plain == noisy

    def test_different_content_different_hash(self):
        assert SyncState.content_hash("a") != SyncState.content_hash("b")

    def test_hash_is_sha256_hex(self):
        digest = SyncState.content_hash("")
        assert len(digest) == 64
        int(digest, 16)
