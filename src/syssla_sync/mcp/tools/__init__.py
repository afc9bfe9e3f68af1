"""MCP tool handlers.

This package contains MCP tool implementations that wrap the sync
orchestrator and the local services (tasks, customers, timer, wiki) with
async handlers and structured error responses.
"""

from .customers import CUSTOMER_SPECS, CUSTOMER_TOOLS
from .errors import build_error_response, translate_error
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS
from .tasks import TASK_SPECS, TASK_TOOLS
from .timer import TIMER_SPECS, TIMER_TOOLS
from .wiki import WIKI_SPECS, WIKI_TOOLS

ALL_SPECS: list[ToolSpec] = (
    SYNC_SPECS + TASK_SPECS + CUSTOMER_SPECS + TIMER_SPECS + WIKI_SPECS
)

__all__ = [
    "ALL_SPECS",
    "CUSTOMER_SPECS",
    "CUSTOMER_TOOLS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
    "TASK_SPECS",
    "TASK_TOOLS",
    "TIMER_SPECS",
    "TIMER_TOOLS",
    "ToolRegistry",
    "ToolSpec",
    "WIKI_SPECS",
    "WIKI_TOOLS",
    "build_error_response",
    "translate_error",
]
