"""Task service: local task lifecycle and GitHub issue materialisation."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, cast

from .errors import NotFound
from .models import (
    Collection,
    ExternalIssueRef,
    IssueState,
    Task,
    TaskSource,
    TaskStatus,
    utc_now,
)
from .storage import LocalStore

logger = logging.getLogger(__name__)


def issue_task_id(owner: str, repo: str, number: int) -> str:
    """Stable id of the task mirroring a GitHub issue."""
    return f"github-{owner}-{repo}-{number}"


def issue_to_task(issue: dict[str, Any]) -> Task:
    """Build a task from a GitHub issue payload.

    Closed issues are completed at ``closed_at`` (``updated_at`` if the
    payload lacks it).
    """
    owner, repo = issue["repository_url"].rstrip("/").split("/")[-2:]
    number = issue["number"]
    state = IssueState(issue.get("state", "open"))
    completed_at = None
    if state == IssueState.CLOSED:
        completed_at = issue.get("closed_at") or issue.get("updated_at")
    labels = [
        label if isinstance(label, str) else label.get("name", "")
        for label in issue.get("labels", [])
    ]
    return Task(
        id=issue_task_id(owner, repo, number),
        source=TaskSource.EXTERNAL_ISSUE,
        title=issue["title"],
        description=issue.get("body") or None,
        created_at=issue["created_at"],
        updated_at=issue.get("updated_at"),
        completed_at=completed_at,
        status=TaskStatus.OPEN,
        labels=labels,
        external=ExternalIssueRef(
            owner=owner,
            repo=repo,
            issue_number=number,
            state=state,
            url=issue.get("html_url"),
        ),
    )


class TaskService:
    """Create and change tasks in the local store.

    Every mutation stamps ``updated_at`` and returns the stored task.

    Args:
        store: Open local store.
        clock: Returns the current UTC time.
        id_factory: Generates ids for new personal tasks.
    """

    def __init__(
        self,
        store: LocalStore,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: f"personal-{uuid.uuid4()}",
    ) -> None:
        self.store = store
        self.clock = clock
        self.id_factory = id_factory

    def get(self, task_id: str) -> Task:
        task = self.store.get(Collection.TASKS, task_id)
        if task is None:
            raise NotFound(Collection.TASKS.value, task_id)
        return cast(Task, task)

    def list(self, completed: bool | None = None) -> list[Task]:
        return self.store.list(Collection.TASKS, {"completed": completed})  # type: ignore[return-value]

    def _save(self, task: Task, **changes: Any) -> Task:
        changes.setdefault("updated_at", self.clock())
        updated = Task.model_validate({**task.model_dump(), **changes})
        return self.store.update(updated)  # type: ignore[return-value]

    def create(
        self,
        title: str,
        description: str | None = None,
        labels: list[str] | None = None,
        due_date: str | None = None,
        status: TaskStatus | None = None,
    ) -> Task:
        now = self.clock()
        task = Task(
            id=self.id_factory(),
            source=TaskSource.PERSONAL,
            title=title,
            description=description,
            created_at=now,
            updated_at=now,
            labels=labels,
            due_date=due_date,
            status=status,
        )
        return self.store.insert(task)  # type: ignore[return-value]

    def update(
        self,
        task_id: str,
        title: str | None = None,
        description: str | None = None,
    ) -> Task:
        """Edit title/description of an active personal task.

        Raises:
            ValueError: If the task is completed or mirrors an issue.
        """
        task = self.get(task_id)
        if task.source != TaskSource.PERSONAL:
            raise ValueError(f"Task {task_id} mirrors an issue; edit it on GitHub")
        if task.is_completed:
            raise ValueError(f"Task {task_id} is completed")
        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = title
        if description is not None:
            changes["description"] = description
        return self._save(task, **changes)

    def complete(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task.is_completed:
            return task
        now = self.clock()
        return self._save(task, completed_at=now, updated_at=now)

    def reopen(self, task_id: str) -> Task:
        """Reopen a completed personal task as a new active task.

        The completed task stays in history; the new one records where it
        came from in ``reopened_from``.
        """
        task = self.get(task_id)
        if not task.is_completed:
            raise ValueError(f"Task {task_id} is not completed")
        if task.source != TaskSource.PERSONAL:
            raise ValueError(f"Task {task_id} mirrors an issue; reopen it on GitHub")
        now = self.clock()
        reopened = Task.model_validate(
            {
                **task.model_dump(),
                "id": self.id_factory(),
                "completed_at": None,
                "updated_at": now,
                "reopened_from": task.id,
            }
        )
        logger.info("Reopened task %s as %s", task.id, reopened.id)
        return self.store.insert(reopened)  # type: ignore[return-value]

    def delete(self, task_id: str) -> Task:
        return self.store.delete(Collection.TASKS, task_id)  # type: ignore[return-value]

    def convert_to_issue(
        self,
        task_id: str,
        owner: str,
        repo: str,
        issue_number: int,
        url: str | None = None,
    ) -> Task:
        """Replace a personal task with the task mirroring its new issue."""
        task = self.get(task_id)
        if task.source != TaskSource.PERSONAL:
            raise ValueError(f"Task {task_id} already mirrors an issue")
        now = self.clock()
        converted = Task(
            id=issue_task_id(owner, repo, issue_number),
            source=TaskSource.EXTERNAL_ISSUE,
            title=task.title,
            description=task.description,
            created_at=task.created_at,
            updated_at=now,
            status=task.status,
            labels=task.labels,
            due_date=task.due_date,
            icon=task.icon,
            external=ExternalIssueRef(
                owner=owner,
                repo=repo,
                issue_number=issue_number,
                state=IssueState.OPEN,
                url=url,
            ),
        )
        self.store.delete(Collection.TASKS, task_id)
        return self.store.insert(converted)  # type: ignore[return-value]

    def import_issues(self, issues: Iterable[dict[str, Any]]) -> list[Task]:
        """Insert or refresh tasks mirroring GitHub issues.

        A task completed locally stays completed even if its issue is still
        open.  Pull requests are skipped.

        Returns:
            Tasks that were inserted or changed.
        """
        changed: list[Task] = []
        for issue in issues:
            if "pull_request" in issue:
                continue
            incoming = issue_to_task(issue)
            existing = self.store.get(Collection.TASKS, incoming.id)
            if existing is None:
                changed.append(self.store.insert(incoming))  # type: ignore[arg-type]
                continue
            if cast(Task, existing).is_completed and not incoming.is_completed:
                continue
            if existing == incoming:
                continue
            changed.append(self.store.update(incoming))  # type: ignore[arg-type]
        logger.info("Imported %d changed issue tasks", len(changed))
        return changed
