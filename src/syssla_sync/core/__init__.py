"""Remote client and async helpers shared by the sync engine and MCP server."""

from .async_utils import run_sync
from .client import (
    GitHubContentsClient,
    RemoteDocumentClient,
    RemoteEntry,
    RemoteFile,
    env_credentials,
    static_credentials,
)

__all__ = [
    "GitHubContentsClient",
    "RemoteDocumentClient",
    "RemoteEntry",
    "RemoteFile",
    "env_credentials",
    "run_sync",
    "static_credentials",
]
