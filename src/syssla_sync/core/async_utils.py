"""Bridge blocking store and HTTP calls into async MCP handlers."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    SQLite access and GitHub requests are blocking; MCP tool handlers wrap
    them with this helper.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        report = await run_sync(orchestrator.sync, Collection.TASKS)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
