"""Tests for sync reporter formatting functions.

Covers:
- format_sync_report with various result combinations
- format_sync_reports totals line and empty input
- format_sync_status table
- report_to_json structure and completeness
- No-op report produces concise output
"""

from __future__ import annotations

from syssla_sync.models import Collection
from syssla_sync.sync.models import (
    MergeStats,
    PartitionResult,
    SyncReport,
    SyncStage,
    SyncStatus,
)
from syssla_sync.sync.reporter import (
    format_sync_report,
    format_sync_reports,
    format_sync_status,
    report_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_report(**overrides) -> SyncReport:
    """Build a SyncReport with sensible defaults."""
    fields = {
        "collection": Collection.TASKS,
        "status": SyncStatus.OK,
        "started_at": "2024-03-01T10:00:00.000Z",
        "completed_at": "2024-03-01T10:00:02.000Z",
        "attempts": 1,
    }
    fields.update(overrides)
    return SyncReport(**fields)


def _written(path: str = "todos/active.json", count: int = 3) -> PartitionResult:
    return PartitionResult(
        path=path, written=True, record_count=count, version_tag="0123456789abcdef"
    )


def _failed(path: str = "todos/active.json", error: str = "GitHub is down") -> PartitionResult:
    return PartitionResult(path=path, written=False, record_count=1, error=error)


# ---------------------------------------------------------------------------
# format_sync_report
# ---------------------------------------------------------------------------


class TestFormatSyncReport:
    def test_header_includes_collection_and_status(self):
        text = format_sync_report(_make_report())
        assert text.startswith("Sync of 'tasks': OK")
        assert "Started: 2024-03-01T10:00:00.000Z" in text

    def test_noop_report(self):
        text = format_sync_report(_make_report())
        assert "Already in sync." in text
        assert "Written:" not in text
        assert "Local store: unchanged" in text

    def test_written_partitions_list_short_tags(self):
        text = format_sync_report(_make_report(partitions=[_written()]))
        assert "Written:" in text
        assert "  todos/active.json: 3 records (0123456)" in text
        assert "Already in sync." not in text

    def test_failed_partitions_and_error(self):
        report = _make_report(
            status=SyncStatus.PARTIAL,
            partitions=[_failed()],
            failed_stage=SyncStage.COMMITTING_REMOTE,
            error_type="RemoteUnavailable",
            error="GitHub is down",
            local_changed=True,
        )
        text = format_sync_report(report)
        assert "PARTIAL" in text
        assert "Not written:" in text
        assert "  todos/active.json: GitHub is down" in text
        assert "Error during committing_remote: [RemoteUnavailable] GitHub is down" in text
        assert "Local store: updated" in text

    def test_attempts_shown_after_retry(self):
        text = format_sync_report(_make_report(attempts=2))
        assert "after 2 attempts" in text

    def test_merge_stats_line(self):
        stats = MergeStats(adopted=2, retained=1, completion_wins=1, normalized=3, dropped=1)
        text = format_sync_report(_make_report(stats=stats))
        assert "Merged: 2 adopted, 1 local only" in text
        assert "1 completions kept" in text
        assert "Normalized: 3 records" in text
        assert "Dropped: 1 invalid records" in text

    def test_no_trailing_whitespace(self):
        text = format_sync_report(_make_report(partitions=[_written()]))
        assert text == text.rstrip()


class TestFormatSyncReports:
    def test_empty(self):
        assert format_sync_reports([]) == "Nothing to sync."

    def test_totals_line(self):
        reports = [
            _make_report(),
            _make_report(collection=Collection.WIKI, status=SyncStatus.FAILED),
        ]
        text = format_sync_reports(reports)
        assert text.endswith("Synced 2 collections: 1 ok, 0 partial, 1 failed")
        assert "Sync of 'wiki': FAILED" in text


class TestFormatSyncStatus:
    def test_never_synced(self):
        text = format_sync_status({"tasks": {"last_sync": None, "partitions": {}}})
        assert text == "tasks: last sync never, status -, 0 partitions"

    def test_with_error(self):
        state = {
            "last_sync": "2024-03-01T10:00:00.000Z",
            "status": "failed",
            "error": "down",
            "partitions": {"a": {}, "b": {}},
        }
        text = format_sync_status({"wiki": state})
        assert "status failed, 2 partitions (error: down)" in text


# ---------------------------------------------------------------------------
# report_to_json
# ---------------------------------------------------------------------------


class TestReportToJson:
    def test_structure(self):
        data = report_to_json(_make_report(partitions=[_written(), _failed("x.json")]))
        assert data["collection"] == "tasks"
        assert data["status"] == "ok"
        assert data["attempts"] == 1
        assert data["stats"]["adopted"] == 0
        assert data["partitions"][0] == {
            "path": "todos/active.json",
            "written": True,
            "record_count": 3,
            "version_tag": "0123456789abcdef",
        }
        assert data["partitions"][1]["error"] == "GitHub is down"
        assert "error" not in data

    def test_error_block(self):
        report = _make_report(
            status=SyncStatus.FAILED,
            failed_stage=SyncStage.FETCHING,
            error_type="Unauthenticated",
            error="No credential available",
        )
        assert report_to_json(report)["error"] == {
            "type": "Unauthenticated",
            "message": "No credential available",
            "stage": "fetching",
        }
