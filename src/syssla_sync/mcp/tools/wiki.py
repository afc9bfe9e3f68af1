"""MCP tool handler for searching wiki notes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...models import format_timestamp
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import AppContext

MAX_SEARCH_LIMIT = 200

WIKI_TOOLS: list[types.Tool] = [
    types.Tool(
        name="wiki_search",
        description=(
            "Full-text search over local wiki notes (title and content). "
            "Returns matching notes with a snippet; an empty query lists all notes. "
            "Read a note with the syssla://wiki/{filename} resource."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search terms",
                },
                "limit": {
                    "type": "integer",
                    "default": 20,
                    "minimum": 1,
                    "maximum": MAX_SEARCH_LIMIT,
                    "description": "Maximum number of results",
                },
            },
        },
    ),
]


async def _handle_wiki_search(
    ctx: AppContext, args: dict[str, Any]
) -> types.CallToolResult:
    query = args.get("query") or ""
    limit = args.get("limit", 20)
    if not isinstance(limit, int) or not 1 <= limit <= MAX_SEARCH_LIMIT:
        raise ValueError(f"limit must be an integer between 1 and {MAX_SEARCH_LIMIT}")

    results = await run_sync(ctx.wiki.search, query, limit)

    if not results:
        text = f"No wiki notes match '{query}'." if query else "No wiki notes."
    else:
        lines = [f"Found {len(results)} note(s):", ""]
        for entry, snippet in results:
            lines.append(f"- {entry.title} ({entry.filename})")
            if snippet:
                lines.append(f"  {snippet}")
        text = "\n".join(lines)

    structured = {
        "query": query,
        "results": [
            {
                "id": entry.id,
                "title": entry.title,
                "filename": entry.filename,
                "updated_at": format_timestamp(entry.updated_at),
                "snippet": snippet,
            }
            for entry, snippet in results
        ],
    }
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


WIKI_SPECS: list[ToolSpec] = [
    ToolSpec(tool=WIKI_TOOLS[0], mutating=False, handler=_handle_wiki_search),
]
