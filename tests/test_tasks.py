"""Tests for TaskService and GitHub issue materialisation."""

from __future__ import annotations

import pytest
from conftest import ts

from syssla_sync.errors import NotFound
from syssla_sync.models import IssueState, TaskSource
from syssla_sync.tasks import TaskService, issue_task_id, issue_to_task


def _issue(number: int = 7, state: str = "open", **extra) -> dict:
    issue = {
        "id": 1000 + number,
        "number": number,
        "title": f"Issue {number}",
        "body": "Steps to reproduce",
        "state": state,
        "repository_url": "https://api.github.com/repos/alice/app",
        "html_url": f"https://github.com/alice/app/issues/{number}",
        "created_at": "2024-03-01T08:00:00Z",
        "updated_at": "2024-03-01T09:00:00Z",
        "labels": [{"name": "bug"}, "triage"],
    }
    issue.update(extra)
    return issue


@pytest.fixture
def tasks(store, clock):
    ids = iter(f"personal-{n}" for n in range(1, 100))
    return TaskService(store, clock, id_factory=lambda: next(ids))


class TestLifecycle:
    def test_create(self, tasks, clock):
        task = tasks.create("Write report", labels=["work"])
        assert task.id == "personal-1"
        assert task.source == TaskSource.PERSONAL
        assert task.created_at == clock.now
        assert task.updated_at == clock.now
        assert tasks.get(task.id) == task

    def test_create_rejects_empty_title(self, tasks):
        with pytest.raises(ValueError, match="title cannot be empty"):
            tasks.create(" ")

    def test_update_stamps_updated_at(self, tasks, clock):
        task = tasks.create("Draft")
        clock.advance(hours=1)
        updated = tasks.update(task.id, title="Final")
        assert updated.title == "Final"
        assert updated.updated_at == clock.now

    def test_complete(self, tasks, clock):
        task = tasks.create("Ship")
        clock.advance(minutes=5)
        done = tasks.complete(task.id)
        assert done.completed_at == clock.now
        assert [t.id for t in tasks.list(completed=True)] == [task.id]
        assert tasks.list(completed=False) == []

    def test_complete_is_idempotent(self, tasks, clock):
        task = tasks.create("Ship")
        first = tasks.complete(task.id)
        clock.advance(minutes=5)
        assert tasks.complete(task.id) == first

    def test_completed_task_cannot_be_edited(self, tasks):
        task = tasks.create("Ship")
        tasks.complete(task.id)
        with pytest.raises(ValueError, match="is completed"):
            tasks.update(task.id, title="Again")

    def test_reopen_creates_new_task(self, tasks, clock):
        task = tasks.create("Ship")
        tasks.complete(task.id)
        clock.advance(days=1)
        reopened = tasks.reopen(task.id)
        assert reopened.id == "personal-2"
        assert reopened.reopened_from == task.id
        assert reopened.completed_at is None
        assert tasks.get(task.id).is_completed

    def test_reopen_active_task_rejected(self, tasks):
        task = tasks.create("Ship")
        with pytest.raises(ValueError, match="not completed"):
            tasks.reopen(task.id)

    def test_get_missing(self, tasks):
        with pytest.raises(NotFound, match="tasks record 'nope' not found"):
            tasks.get("nope")

    def test_delete(self, tasks):
        task = tasks.create("Ship")
        tasks.delete(task.id)
        with pytest.raises(NotFound):
            tasks.get(task.id)


class TestIssues:
    def test_issue_task_id(self):
        assert issue_task_id("alice", "app", 7) == "github-alice-app-7"

    def test_issue_to_task(self):
        task = issue_to_task(_issue())
        assert task.id == "github-alice-app-7"
        assert task.source == TaskSource.EXTERNAL_ISSUE
        assert task.external.issue_number == 7
        assert task.external.state == IssueState.OPEN
        assert task.labels == ["bug", "triage"]
        assert task.description == "Steps to reproduce"
        assert not task.is_completed

    def test_closed_issue_is_completed(self):
        task = issue_to_task(_issue(state="closed", closed_at="2024-03-02T10:00:00Z"))
        assert task.completed_at == ts("2024-03-02T10:00:00")
        assert task.external.state == IssueState.CLOSED

    def test_import_inserts_and_skips_pull_requests(self, tasks):
        changed = tasks.import_issues([_issue(1), _issue(2, pull_request={})])
        assert [t.id for t in changed] == ["github-alice-app-1"]

    def test_import_is_idempotent(self, tasks):
        tasks.import_issues([_issue(1)])
        assert tasks.import_issues([_issue(1)]) == []

    def test_import_keeps_local_completion(self, tasks):
        [task] = tasks.import_issues([_issue(1)])
        tasks.complete(task.id)
        assert tasks.import_issues([_issue(1, updated_at="2024-03-09T00:00:00Z")]) == []
        assert tasks.get(task.id).is_completed

    def test_issue_tasks_cannot_be_edited_locally(self, tasks):
        [task] = tasks.import_issues([_issue(1)])
        with pytest.raises(ValueError, match="mirrors an issue"):
            tasks.update(task.id, title="Local title")

    def test_convert_to_issue(self, tasks):
        task = tasks.create("Bug in login")
        converted = tasks.convert_to_issue(task.id, "alice", "app", 42)
        assert converted.id == "github-alice-app-42"
        assert converted.created_at == task.created_at
        assert converted.external.state == IssueState.OPEN
        with pytest.raises(NotFound):
            tasks.get(task.id)
