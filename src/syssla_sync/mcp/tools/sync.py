"""MCP tool handlers for GitHub sync.

Defines three tools:

- ``sync`` -- run a sync cycle for one collection or all of them.
- ``sync_status`` -- show persisted sync state per collection.
- ``sync_configure`` -- set or clear the GitHub repository used for sync.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types
from pydantic import ValidationError

from ...core.async_utils import run_sync
from ...models import Collection, SyncTarget
from ...sync.engine import SYNC_ORDER
from ...sync.reporter import (
    format_sync_report,
    format_sync_reports,
    format_sync_status,
    report_to_json,
)
from ...validators import describe_validation_error
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import AppContext

logger = logging.getLogger(__name__)

_COLLECTION_NAMES = [c.value for c in SYNC_ORDER]


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync",
        description=(
            "Synchronize local data with the configured GitHub repository. "
            "Fetches remote snapshots, merges them with local records "
            "(last-writer-wins, completed tasks always stay completed), "
            "stores the result locally and pushes changed files back."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "collection": {
                    "type": "string",
                    "enum": _COLLECTION_NAMES,
                    "description": "Collection to sync. Omit to sync all collections in order.",
                },
            },
        },
    ),
    types.Tool(
        name="sync_status",
        description=(
            "Show the configured sync repository and, per collection, the "
            "last sync time, its outcome and the number of tracked files."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="sync_configure",
        description=(
            "Set the GitHub repository used as the sync target, or clear it "
            "with clear=true."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "owner": {
                    "type": "string",
                    "description": "Repository owner (user or organization)",
                },
                "repo": {
                    "type": "string",
                    "description": "Repository name",
                },
                "branch": {
                    "type": "string",
                    "default": "main",
                    "description": "Branch holding the synced files",
                },
                "clear": {
                    "type": "boolean",
                    "default": False,
                    "description": "Remove the configured target instead of setting one",
                },
            },
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_sync(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    collection = args.get("collection")
    if collection:
        if collection not in _COLLECTION_NAMES:
            raise ValueError(
                f"Unknown collection '{collection}'. "
                f"Expected one of: {', '.join(_COLLECTION_NAMES)}"
            )
        report = await run_sync(ctx.orchestrator.sync, Collection(collection))
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=format_sync_report(report))],
            structuredContent=report_to_json(report),
        )

    reports = await run_sync(ctx.orchestrator.sync_all)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_reports(reports))],
        structuredContent={"reports": [report_to_json(r) for r in reports]},
    )


async def _handle_sync_status(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    target = await run_sync(ctx.store.get_sync_target)
    states = await run_sync(ctx.state_store.load_all, _COLLECTION_NAMES)

    if target is None:
        header = "Sync target: not configured"
    else:
        header = f"Sync target: {target.full_name} (branch {target.branch})"
    text = header + "\n" + format_sync_status(states)

    structured = {
        "target": target.model_dump() if target else None,
        "collections": {
            name: {
                "last_sync": state.get("last_sync"),
                "status": state.get("status"),
                "error": state.get("error"),
                "tracked_files": len(state.get("partitions", {})),
            }
            for name, state in states.items()
        },
    }
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


async def _handle_sync_configure(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    if args.get("clear", False):
        await run_sync(ctx.store.set_sync_target, None)
        logger.info("Sync target cleared")
        return types.CallToolResult(
            content=[types.TextContent(type="text", text="Sync target cleared.")],
            structuredContent={"target": None},
        )

    owner = args.get("owner")
    repo = args.get("repo")
    if not owner or not repo:
        raise ValueError("owner and repo are required unless clear=true")
    try:
        target = SyncTarget(
            owner=owner, repo=repo, branch=args.get("branch") or "main"
        )
    except ValidationError as e:
        raise ValueError(describe_validation_error(e)) from e

    await run_sync(ctx.store.set_sync_target, target)
    logger.info("Sync target set to %s@%s", target.full_name, target.branch)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Sync target set to {target.full_name} (branch {target.branch}).",
            )
        ],
        structuredContent={"target": target.model_dump()},
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], mutating=True, handler=_handle_sync),
    ToolSpec(tool=SYNC_TOOLS[1], mutating=False, handler=_handle_sync_status),
    ToolSpec(tool=SYNC_TOOLS[2], mutating=True, handler=_handle_sync_configure),
]
