"""Wiki resource handlers for MCP server.

Exposes local wiki notes as read-only resources. Agents can discover notes
via the index resource and read individual notes by filename.
"""

import difflib
from typing import Any
from urllib.parse import unquote

import mcp.types as types
from pydantic_core import Url

from ...core.async_utils import run_sync
from ...models import Collection, WikiEntry, format_timestamp
from ...storage import LocalStore

WIKI_URI_PREFIX = "syssla://wiki/"

# Resource definitions for list_resources()
WIKI_RESOURCES = [
    types.Resource(
        uri="syssla://wiki/{filename}",  # type: ignore[arg-type]  # MCP AnyUrl/Url type mismatch
        name="Wiki Note",
        description=(
            "Read a wiki note by filename. "
            "Example: syssla://wiki/2024-03-01-meeting-notes.md"
        ),
        mimeType="text/plain",
    ),
    types.Resource(
        uri="syssla://wiki/_index",  # type: ignore[arg-type]  # MCP AnyUrl/Url type mismatch
        name="Wiki Note Index",
        description=(
            "List all wiki notes in a hierarchical tree structure. "
            "Use this to discover available notes before reading them."
        ),
        mimeType="text/plain",
    ),
]


async def handle_list_wiki_resources() -> list[types.Resource]:
    """List available wiki resources."""
    return WIKI_RESOURCES


async def handle_read_wiki_resource(uri: Url | str, store: LocalStore) -> str:
    """Read a wiki resource by URI.

    Args:
        uri: Resource URI (e.g., syssla://wiki/_index, syssla://wiki/notes.md)
        store: Open local store

    Returns:
        Formatted note content with metadata, or error message.
    """
    path = str(uri)
    if path.startswith(WIKI_URI_PREFIX):
        path = path[len(WIKI_URI_PREFIX) :]
    # Query strings carry nothing for notes
    path = path.split("?", 1)[0]
    filename = unquote(path)

    if filename == "_index":
        return await _build_note_index(store)

    try:
        entry = await run_sync(store.get_wiki_by_filename, filename)
    except Exception as e:
        return f"Error (server_error): {str(e)}"
    if entry is None:
        return await _build_not_found_error(store, filename)
    return _format_note_response(entry)


async def _list_filenames(store: LocalStore) -> list[str]:
    entries = await run_sync(store.list, Collection.WIKI)
    return [e.filename for e in entries]  # type: ignore[attr-defined]


async def _build_note_index(store: LocalStore) -> str:
    filenames = await _list_filenames(store)
    tree = _format_note_tree(filenames)
    return f"# Wiki Notes\n\n{tree}"


def _format_note_tree(filenames: list[str]) -> str:
    """Format filenames as a tree with box-drawing characters.

    Example output:
        2024-03-01-standup.md
        clients
        |-- acme.md
        `-- globex.md
    """
    if not filenames:
        return ""

    tree: dict[str, Any] = {}
    for filename in sorted(filenames):
        current = tree
        for part in filename.split("/"):
            current = current.setdefault(part, {})

    lines: list[str] = []
    _format_tree_node(tree, "", lines, is_root=True)
    return "\n".join(lines)


def _format_tree_node(
    node: dict[str, Any],
    prefix: str,
    lines: list[str],
    is_root: bool = False,
) -> None:
    keys = sorted(node.keys())

    for i, key in enumerate(keys):
        is_last_child = i == len(keys) - 1

        if is_root:
            lines.append(key)
            child_prefix = ""
        else:
            connector = "`-- " if is_last_child else "|-- "
            lines.append(f"{prefix}{connector}{key}")
            child_prefix = prefix + ("    " if is_last_child else "|   ")

        children = node[key]
        if children:
            _format_tree_node(children, child_prefix, lines)


def _format_note_response(entry: WikiEntry) -> str:
    """Format note with a metadata header."""
    synced = format_timestamp(entry.synced_at) if entry.synced_at else "never"
    return f"""# {entry.title}

**File:** {entry.filename}
**Updated:** {format_timestamp(entry.updated_at)}
**Synced:** {synced}

---

{entry.content}"""


async def _build_not_found_error(store: LocalStore, filename: str) -> str:
    """Build not found error with similar filename suggestions."""
    try:
        filenames = await _list_filenames(store)
    except Exception:
        return f"Error (not_found): Note '{filename}' not found."

    similar = difflib.get_close_matches(filename, filenames, n=5, cutoff=0.6)
    if similar:
        suggestions = ", ".join(similar)
        return f"Error (not_found): Note '{filename}' not found.\n\nSimilar notes: {suggestions}"
    return f"Error (not_found): Note '{filename}' not found.\n\nUse syssla://wiki/_index to see available notes."
