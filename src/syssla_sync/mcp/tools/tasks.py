"""MCP tool handlers for tasks.

Personal tasks are created and edited locally; tasks mirroring GitHub
issues are refreshed with ``task_import_issues``.  Both kinds reach the
sync repository through the ``sync`` tool.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types
from pydantic import ValidationError

from ...core.async_utils import run_sync
from ...errors import NotConfigured
from ...models import Task, TaskStatus
from ...validators import describe_validation_error
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import AppContext

logger = logging.getLogger(__name__)

_STATUS_NAMES = [s.value for s in TaskStatus]

_TASK_ID = {"type": "string", "description": "Task id"}


def _annotations(
    read_only: bool = False,
    destructive: bool = False,
    idempotent: bool = False,
    open_world: bool = False,
) -> types.ToolAnnotations:
    return types.ToolAnnotations(
        readOnlyHint=read_only,
        destructiveHint=destructive,
        idempotentHint=idempotent,
        openWorldHint=open_world,
    )


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


TASK_TOOLS: list[types.Tool] = [
    types.Tool(
        name="task_list",
        description=(
            "List local tasks, personal ones and those mirroring GitHub issues. "
            "Filter by completion with completed=true/false."
        ),
        annotations=_annotations(read_only=True, idempotent=True),
        inputSchema={
            "type": "object",
            "properties": {
                "completed": {
                    "type": "boolean",
                    "description": "Only completed (true) or only active (false) tasks",
                },
            },
        },
    ),
    types.Tool(
        name="task_create",
        description="Create a personal task.",
        annotations=_annotations(),
        inputSchema={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Task title"},
                "description": {"type": "string", "description": "Longer description"},
                "labels": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Free-form labels",
                },
                "due_date": {"type": "string", "description": "Due date (YYYY-MM-DD)"},
                "status": {"type": "string", "enum": _STATUS_NAMES},
            },
            "required": ["title"],
        },
    ),
    types.Tool(
        name="task_update",
        description=(
            "Change the title or description of an active personal task. "
            "Tasks mirroring issues are edited on GitHub."
        ),
        annotations=_annotations(idempotent=True),
        inputSchema={
            "type": "object",
            "properties": {
                "task_id": _TASK_ID,
                "title": {"type": "string", "description": "New title"},
                "description": {"type": "string", "description": "New description"},
            },
            "required": ["task_id"],
        },
    ),
    types.Tool(
        name="task_complete",
        description="Mark a task completed. Completing a completed task does nothing.",
        annotations=_annotations(idempotent=True),
        inputSchema={
            "type": "object",
            "properties": {"task_id": _TASK_ID},
            "required": ["task_id"],
        },
    ),
    types.Tool(
        name="task_reopen",
        description=(
            "Reopen a completed personal task. The completed task stays in "
            "history and a new active task is created from it."
        ),
        annotations=_annotations(),
        inputSchema={
            "type": "object",
            "properties": {"task_id": _TASK_ID},
            "required": ["task_id"],
        },
    ),
    types.Tool(
        name="task_delete",
        description="Delete a task from the local store.",
        annotations=_annotations(destructive=True),
        inputSchema={
            "type": "object",
            "properties": {"task_id": _TASK_ID},
            "required": ["task_id"],
        },
    ),
    types.Tool(
        name="task_convert_to_issue",
        description=(
            "Replace a personal task with a task mirroring an existing GitHub "
            "issue, keeping its title, labels and due date."
        ),
        annotations=_annotations(destructive=True),
        inputSchema={
            "type": "object",
            "properties": {
                "task_id": _TASK_ID,
                "owner": {"type": "string", "description": "Issue repository owner"},
                "repo": {"type": "string", "description": "Issue repository name"},
                "issue_number": {"type": "integer", "minimum": 1},
                "url": {"type": "string", "description": "Issue URL"},
            },
            "required": ["task_id", "owner", "repo", "issue_number"],
        },
    ),
    types.Tool(
        name="task_import_issues",
        description=(
            "Fetch GitHub issues assigned to or created by the authenticated "
            "user and store them as tasks. Tasks completed locally stay completed."
        ),
        annotations=_annotations(idempotent=True, open_world=True),
        inputSchema={"type": "object", "properties": {}},
    ),
]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _task_line(task: Task) -> str:
    mark = "x" if task.is_completed else " "
    line = f"- [{mark}] {task.title} ({task.id})"
    if task.external is not None:
        line += f" {task.external.owner}/{task.external.repo}#{task.external.issue_number}"
    if task.status is not None and not task.is_completed:
        line += f" [{task.status.value}]"
    return line


def _task_result(verb: str, task: Task) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=f"Task {verb}: {task.title} ({task.id}).")],
        structuredContent=task.model_dump(mode="json"),
    )


def _require_id(args: dict[str, Any]) -> str:
    task_id = args.get("task_id")
    if not task_id:
        raise ValueError("task_id is required")
    return task_id


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_task_list(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    completed = args.get("completed")
    if completed is not None and not isinstance(completed, bool):
        raise ValueError("completed must be true or false")
    tasks = await run_sync(ctx.tasks.list, completed)
    if tasks:
        text = f"{len(tasks)} task(s):\n\n" + "\n".join(_task_line(t) for t in tasks)
    else:
        text = "No tasks."
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={"tasks": [t.model_dump(mode="json") for t in tasks]},
    )


async def _handle_task_create(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    title = args.get("title")
    if not title:
        raise ValueError("title is required")
    try:
        task = await run_sync(
            ctx.tasks.create,
            title,
            description=args.get("description"),
            labels=args.get("labels"),
            due_date=args.get("due_date"),
            status=args.get("status"),
        )
    except ValidationError as e:
        raise ValueError(describe_validation_error(e)) from e
    return _task_result("created", task)


async def _handle_task_update(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    task_id = _require_id(args)
    if args.get("title") is None and args.get("description") is None:
        raise ValueError("Provide title or description to change")
    try:
        task = await run_sync(
            ctx.tasks.update,
            task_id,
            title=args.get("title"),
            description=args.get("description"),
        )
    except ValidationError as e:
        raise ValueError(describe_validation_error(e)) from e
    return _task_result("updated", task)


async def _handle_task_complete(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    return _task_result("completed", await run_sync(ctx.tasks.complete, _require_id(args)))


async def _handle_task_reopen(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    return _task_result("reopened", await run_sync(ctx.tasks.reopen, _require_id(args)))


async def _handle_task_delete(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    return _task_result("deleted", await run_sync(ctx.tasks.delete, _require_id(args)))


async def _handle_task_convert_to_issue(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    task_id = _require_id(args)
    owner = args.get("owner")
    repo = args.get("repo")
    issue_number = args.get("issue_number")
    if not owner or not repo:
        raise ValueError("owner and repo are required")
    if not isinstance(issue_number, int) or isinstance(issue_number, bool) or issue_number < 1:
        raise ValueError("issue_number must be a positive integer")
    task = await run_sync(
        ctx.tasks.convert_to_issue,
        task_id,
        owner,
        repo,
        issue_number,
        url=args.get("url"),
    )
    return _task_result("converted", task)


async def _handle_task_import_issues(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    target = await run_sync(ctx.store.get_sync_target)
    if target is None:
        raise NotConfigured(
            "No GitHub repository configured. Use sync_configure first."
        )
    client = ctx.client_factory(target)
    issues = await run_sync(client.list_assigned_issues)
    changed = await run_sync(ctx.tasks.import_issues, issues)
    logger.info("Fetched %d issues, %d tasks changed", len(issues), len(changed))

    text = f"Fetched {len(issues)} issue(s); {len(changed)} task(s) added or updated."
    if changed:
        text += "\n\n" + "\n".join(_task_line(t) for t in changed)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "fetched": len(issues),
            "changed": [t.model_dump(mode="json") for t in changed],
        },
    )


TASK_SPECS: list[ToolSpec] = [
    ToolSpec(tool=TASK_TOOLS[0], mutating=False, handler=_handle_task_list),
    ToolSpec(tool=TASK_TOOLS[1], mutating=True, handler=_handle_task_create),
    ToolSpec(tool=TASK_TOOLS[2], mutating=True, handler=_handle_task_update),
    ToolSpec(tool=TASK_TOOLS[3], mutating=True, handler=_handle_task_complete),
    ToolSpec(tool=TASK_TOOLS[4], mutating=True, handler=_handle_task_reopen),
    ToolSpec(tool=TASK_TOOLS[5], mutating=True, handler=_handle_task_delete),
    ToolSpec(tool=TASK_TOOLS[6], mutating=True, handler=_handle_task_convert_to_issue),
    ToolSpec(tool=TASK_TOOLS[7], mutating=True, handler=_handle_task_import_issues),
]
