"""MCP server for syssla-sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents sync local tasks, time entries, customers and wiki notes with a
GitHub repository, drive the time-tracking timer and read wiki notes.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
from pydantic_core import Url

from .. import __version__
from ..logger import setup_logging
from .lifespan import AppContext, server_lifespan
from .resources.wiki import (
    handle_list_wiki_resources,
    handle_read_wiki_resource,
)
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

SERVER_NAME = "syssla-sync"

# Initialize server instance
server = Server(SERVER_NAME)

# Global application context (initialized in main via lifespan)
_context: AppContext | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> AppContext:
    """Get the global AppContext instance.

    Raises:
        RuntimeError: If the context is not initialized
    """
    if _context is None:
        raise RuntimeError(
            "Application context not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: AppContext | None) -> None:
    """Set the global AppContext instance, or None to clear it."""
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear it."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List registered tools (mutating tools are absent in read-only mode)."""
    return get_registry().list_tools()


@server.list_resources()
async def handle_list_resources() -> list[types.Resource]:
    return await handle_list_wiki_resources()


@server.read_resource()  # type: ignore[arg-type]  # MCP Url type mismatch
async def handle_read_resource(uri: Url) -> str:
    """Read a resource by URI.

    Supports:
    - syssla://wiki/{filename} - Read a wiki note
    - syssla://wiki/_index - List all wiki notes as a tree

    Raises:
        ValueError: If URI scheme or path is not recognized
    """
    if uri.scheme != "syssla":
        raise ValueError(f"Unsupported URI scheme: {uri.scheme}")

    if uri.host == "wiki":
        return await handle_read_wiki_resource(uri, get_context().store)

    raise ValueError(f"Unknown resource type: {uri.host}")


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), opens the local
    store via the lifespan manager, and starts the server with stdio
    transport for JSON-RPC communication.

    Args:
        config_overrides: Optional dict with config values to override
            (db_path, owner, repo, branch, debug, log_file, read_only)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)
    read_only = overrides.pop("read_only", False)

    # Must run BEFORE stdio_server so nothing reaches stdout during negotiation
    setup_logging(mode="mcp", debug=overrides.get("debug", False), log_file=log_file)

    registry = ToolRegistry(ALL_SPECS, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    if read_only:
        print(
            f"Read-only mode: {registry.tool_count()} of {len(ALL_SPECS)} tools enabled",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_context() is called here rather than inside the lifespan so that
    # running this file as __main__ does not update a second module copy.
    async with server_lifespan(config_overrides=overrides or None) as ctx:
        set_context(ctx["context"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name=SERVER_NAME,
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_context(None)
            set_registry(None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="syssla-sync - local task, time and wiki store with GitHub sync over MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .syssla/config.yml)
  syssla-sync

  # Sync against a specific repository
  syssla-sync --owner alice --repo syssla-data

  # Use another database file and branch
  syssla-sync --db ~/work/syssla.db --branch data

  # Expose only read-only tools
  syssla-sync --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Set GITHUB_TOKEN for sync.
        """,
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        help="Path of the local SQLite database (overrides SYSSLA_DB_PATH and config files)",
    )
    parser.add_argument(
        "--owner",
        help="Owner of the sync repository (overrides SYSSLA_REPO_OWNER)",
    )
    parser.add_argument(
        "--repo",
        help="Name of the sync repository (overrides SYSSLA_REPO_NAME)",
    )
    parser.add_argument(
        "--branch",
        help="Branch holding the synced files (overrides SYSSLA_REPO_BRANCH)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/syssla-sync.log",
        help="Log file path (default: /tmp/syssla-sync.log)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only register tools that do not change local or remote data",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"syssla-sync version {__version__}",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Build the config overrides dict from parsed CLI arguments."""
    config_overrides: dict = {}
    for key in ("db_path", "owner", "repo", "branch", "log_file"):
        value = getattr(args, key)
        if value:
            config_overrides[key] = value
    if args.debug:
        config_overrides["debug"] = True
    if args.read_only:
        config_overrides["read_only"] = True
    return config_overrides


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args()
    config_overrides = overrides_from_args(args)

    # Report overrides on stderr before stdio transport starts
    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
