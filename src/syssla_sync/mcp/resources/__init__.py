"""MCP resource handlers.

This package exposes local wiki notes as read-only resources via URI
templates.
"""

from .wiki import (
    WIKI_RESOURCES,
    handle_list_wiki_resources,
    handle_read_wiki_resource,
)

__all__ = [
    "handle_list_wiki_resources",
    "handle_read_wiki_resource",
    "WIKI_RESOURCES",
]
