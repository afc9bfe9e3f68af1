"""MCP tool handlers for the time-tracking timer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...errors import NotFound
from ...models import ActiveTimerSession, Collection, TimeEntry
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import AppContext


def _mutating() -> types.ToolAnnotations:
    return types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=False,
    )


TIMER_TOOLS: list[types.Tool] = [
    types.Tool(
        name="timer_start",
        description=(
            "Start the timer for a customer (and optionally a project). "
            "Fails if a timer is already running or paused."
        ),
        annotations=_mutating(),
        inputSchema={
            "type": "object",
            "properties": {
                "customer_id": {"type": "string", "description": "Customer id"},
                "project_id": {"type": "string", "description": "Project id"},
                "note": {"type": "string", "description": "What you are working on"},
            },
            "required": ["customer_id"],
        },
    ),
    types.Tool(
        name="timer_pause",
        description="Pause the running timer. Paused time is not billed.",
        annotations=_mutating(),
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="timer_resume",
        description="Resume a paused timer.",
        annotations=_mutating(),
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="timer_stop",
        description=(
            "Stop the timer and save a time entry with the worked minutes "
            "(paused time excluded)."
        ),
        annotations=_mutating(),
        inputSchema={
            "type": "object",
            "properties": {
                "note": {
                    "type": "string",
                    "description": "Replaces the note given at start",
                },
            },
        },
    ),
    types.Tool(
        name="timer_status",
        description="Show whether the timer is stopped, running or paused, and the elapsed time.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}},
    ),
]


def _format_elapsed(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    return f"{hours}h {rest // 60:02d}m"


def _session_result(
    verb: str, session: ActiveTimerSession
) -> types.CallToolResult:
    text = f"Timer {verb} for customer {session.customer_id}"
    if session.project_id:
        text += f" (project {session.project_id})"
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text + ".")],
        structuredContent=session.model_dump(mode="json"),
    )


async def _handle_timer_start(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    customer_id = args.get("customer_id")
    if not customer_id:
        raise ValueError("customer_id is required")
    if await run_sync(ctx.store.get, Collection.CUSTOMERS, customer_id) is None:
        raise NotFound(Collection.CUSTOMERS.value, customer_id)
    session = await run_sync(
        ctx.timer.start,
        customer_id,
        project_id=args.get("project_id"),
        note=args.get("note"),
    )
    return _session_result("started", session)


async def _handle_timer_pause(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    return _session_result("paused", await run_sync(ctx.timer.pause))


async def _handle_timer_resume(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    return _session_result("resumed", await run_sync(ctx.timer.resume))


async def _handle_timer_stop(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    entry: TimeEntry = await run_sync(ctx.timer.stop, note=args.get("note"))
    text = (
        f"Timer stopped: {entry.duration_minutes} minutes recorded for "
        f"customer {entry.customer_id} (entry {entry.id})."
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=entry.model_dump(mode="json"),
    )


async def _handle_timer_status(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    status = await run_sync(ctx.timer.status)
    if status["session"] is None:
        text = "Timer is stopped."
    else:
        text = (
            f"Timer is {status['state']} for customer "
            f"{status['session']['customer_id']}: "
            f"{_format_elapsed(status['elapsed_seconds'])} worked."
        )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=status,
    )


TIMER_SPECS: list[ToolSpec] = [
    ToolSpec(tool=TIMER_TOOLS[0], mutating=True, handler=_handle_timer_start),
    ToolSpec(tool=TIMER_TOOLS[1], mutating=True, handler=_handle_timer_pause),
    ToolSpec(tool=TIMER_TOOLS[2], mutating=True, handler=_handle_timer_resume),
    ToolSpec(tool=TIMER_TOOLS[3], mutating=True, handler=_handle_timer_stop),
    ToolSpec(tool=TIMER_TOOLS[4], mutating=False, handler=_handle_timer_status),
]
