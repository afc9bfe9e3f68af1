"""Tests for the record models and timestamp helpers."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from syssla_sync.models import (
    ActiveTimerSession,
    Collection,
    Customer,
    SyncTarget,
    Task,
    TaskSource,
    TimeEntry,
    WikiEntry,
    collection_of,
    format_timestamp,
    normalize_timestamp,
    round_minutes,
)


class TestTimestamps:
    def test_format_matches_iso_string_with_millis(self):
        value = datetime(2024, 3, 1, 9, 5, 7, 123456, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-03-01T09:05:07.123Z"

    def test_format_converts_offsets_to_utc(self):
        cet = timezone(timedelta(hours=1))
        value = datetime(2024, 3, 1, 10, 0, tzinfo=cet)
        assert format_timestamp(value) == "2024-03-01T09:00:00.000Z"

    def test_naive_datetime_is_treated_as_utc(self):
        value = normalize_timestamp(datetime(2024, 3, 1, 10, 0))
        assert value.tzinfo == timezone.utc
        assert value.hour == 10

    def test_normalize_truncates_to_milliseconds(self):
        value = normalize_timestamp(
            datetime(2024, 1, 1, 0, 0, 0, 999999, tzinfo=timezone.utc)
        )
        assert value.microsecond == 999000

    @pytest.mark.parametrize(
        "seconds,minutes",
        [(0, 0), (29, 0), (30, 1), (89, 1), (90, 2), (3600, 60)],
    )
    def test_round_minutes_rounds_halves_up(self, seconds, minutes):
        assert round_minutes(timedelta(seconds=seconds)) == minutes


class TestTask:
    def test_wire_format_uses_camel_case(self):
        task = Task(
            id="personal-1",
            title="Write report",
            created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
        wire = task.to_wire()
        assert wire == {
            "id": "personal-1",
            "source": "personal",
            "title": "Write report",
            "createdAt": "2024-03-01T00:00:00.000Z",
        }

    def test_decodes_camel_case_and_z_suffix(self):
        task = Task.model_validate(
            {
                "id": "t1",
                "title": "Ship",
                "createdAt": "2024-03-01T10:00:00.000Z",
                "completedAt": "2024-03-02T10:00:00.000Z",
            }
        )
        assert task.is_completed
        assert task.completed_at == datetime(2024, 3, 2, 10, tzinfo=timezone.utc)

    def test_issue_task_round_trips_github_issue_source(self):
        data = {
            "id": "github-alice-app-7",
            "source": "github-issue",
            "title": "Crash on start",
            "createdAt": "2024-03-01T10:00:00.000Z",
            "github": {"owner": "alice", "repo": "app", "issueNumber": 7},
        }
        task = Task.model_validate(data)
        assert task.source == TaskSource.EXTERNAL_ISSUE
        wire = task.to_wire()
        assert wire["source"] == "github-issue"
        assert wire["github"]["issueNumber"] == 7

    def test_external_source_requires_issue_reference(self):
        with pytest.raises(ValidationError, match="issue reference"):
            Task(
                id="t1",
                source=TaskSource.EXTERNAL_ISSUE,
                title="x",
                created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
            )

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError, match="title cannot be empty"):
            Task(id="t1", title="  ", created_at=datetime(2024, 3, 1))

    def test_completion_before_creation_rejected(self):
        with pytest.raises(ValidationError, match="completedAt precedes"):
            Task(
                id="t1",
                title="x",
                created_at=datetime(2024, 3, 2),
                completed_at=datetime(2024, 3, 1),
            )

    def test_merge_timestamp_falls_back_to_created_at(self):
        task = Task(id="t1", title="x", created_at=datetime(2024, 3, 1))
        assert task.merge_timestamp == task.created_at

    def test_models_are_frozen(self):
        task = Task(id="t1", title="x", created_at=datetime(2024, 3, 1))
        with pytest.raises(ValidationError):
            task.title = "y"  # type: ignore[misc]

    def test_unknown_fields_are_ignored(self):
        task = Task.model_validate(
            {"id": "t1", "title": "x", "createdAt": "2024-03-01T00:00:00Z", "color": "red"}
        )
        assert "color" not in task.to_wire()


class TestTimeEntry:
    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError, match="end precedes start"):
            TimeEntry(
                id="e1",
                customer_id="c1",
                start=datetime(2024, 3, 1, 10),
                end=datetime(2024, 3, 1, 9),
            )

    def test_computed_duration(self):
        entry = TimeEntry(
            id="e1",
            customer_id="c1",
            start=datetime(2024, 3, 1, 10, 0),
            end=datetime(2024, 3, 1, 11, 30, 30),
        )
        assert entry.computed_duration() == 91
        assert not entry.is_running

    def test_running_entry_has_no_duration(self):
        entry = TimeEntry(id="e1", customer_id="c1", start=datetime(2024, 3, 1))
        assert entry.is_running
        assert entry.computed_duration() is None

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            TimeEntry(
                id="e1",
                customer_id="c1",
                start=datetime(2024, 3, 1),
                duration_minutes=-1,
            )


class TestWikiEntry:
    def test_filename_must_end_in_md(self):
        with pytest.raises(ValidationError, match="must end with '.md'"):
            WikiEntry(
                id="w1",
                title="Note",
                filename="note.txt",
                content="",
                created_at=datetime(2024, 3, 1),
                updated_at=datetime(2024, 3, 1),
            )

    def test_filename_cannot_escape_wiki_root(self):
        with pytest.raises(ValidationError, match="'..'"):
            WikiEntry(
                id="w1",
                title="Note",
                filename="../secrets.md",
                content="",
                created_at=datetime(2024, 3, 1),
                updated_at=datetime(2024, 3, 1),
            )

    def test_unsynced_changes(self):
        entry = WikiEntry(
            id="w1",
            title="Note",
            filename="note.md",
            content="x",
            created_at=datetime(2024, 3, 1),
            updated_at=datetime(2024, 3, 2),
        )
        assert entry.has_unsynced_changes
        synced = entry.model_copy(update={"synced_at": datetime(2024, 3, 3, tzinfo=timezone.utc)})
        assert not synced.has_unsynced_changes


class TestMisc:
    def test_collection_of(self):
        customer = Customer(id="c1", name="Acme")
        assert collection_of(customer) == Collection.CUSTOMERS

    def test_collection_of_rejects_unsynced_types(self):
        session = ActiveTimerSession(customer_id="c1", start_time=datetime(2024, 3, 1))
        with pytest.raises(ValueError, match="Unsupported record type"):
            collection_of(session)

    def test_active_timer_paused_duration_alias(self):
        session = ActiveTimerSession.model_validate(
            {"customerId": "c1", "startTime": "2024-03-01T10:00:00Z", "pausedDuration": 5000}
        )
        assert session.paused_duration_ms == 5000
        assert not session.is_paused

    def test_sync_target_full_name(self):
        target = SyncTarget(owner="alice", repo="data")
        assert target.full_name == "alice/data"
        assert target.branch == "main"

    def test_sync_target_rejects_empty_owner(self):
        with pytest.raises(ValidationError):
            SyncTarget(owner="", repo="data")
