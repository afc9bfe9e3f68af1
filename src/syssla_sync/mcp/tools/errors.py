"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
to help AI agents recover from errors without human intervention.
"""

import mcp.types as types

from ...errors import (
    AlreadyRunning,
    Conflict,
    DecodeError,
    InvalidTransition,
    LocalStoreError,
    NotConfigured,
    NotFound,
    RemoteError,
    RemoteUnavailable,
    SyncAlreadyInProgress,
    SysslaError,
    Unauthenticated,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_configured, unauthenticated,
            version_conflict, not_found, validation_error, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "wiki record 'x' not found", "Use wiki_search to find notes.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


_NOT_FOUND_ACTIONS: dict[str, str] = {
    "wiki": "Use wiki_search to find available notes.",
    "customers": "Use customer_list with include_archived=true to find customer ids.",
    "projects": "Use project_list to find project ids for the customer.",
    "tasks": "Use task_list to find task ids, or sync tasks if it exists only remotely.",
    "time_entries": "Check the time entry id.",
}


def translate_error(error: SysslaError) -> types.CallToolResult:
    """Translate a syssla_sync error into a structured error response.

    Subclasses are matched before their bases (``Conflict`` before
    ``RemoteError``).
    """
    message = str(error)
    match error:
        case NotConfigured():
            return build_error_response(
                "not_configured",
                message,
                "Call sync_configure with owner and repo, or set "
                "SYSSLA_REPO_OWNER and SYSSLA_REPO_NAME.",
            )
        case Unauthenticated():
            return build_error_response(
                "unauthenticated",
                message,
                "Set GITHUB_TOKEN to a token with read/write access to the "
                "sync repository contents, then retry.",
            )
        case Conflict():
            return build_error_response(
                "version_conflict",
                message,
                "The remote file changed during the sync. Run sync again.",
            )
        case RemoteUnavailable():
            return build_error_response(
                "remote_unavailable",
                message,
                "Check network connectivity or wait for the rate limit to reset, then retry.",
            )
        case RemoteError():
            return build_error_response(
                "remote_error",
                message,
                "Check that the repository and branch exist and are accessible.",
            )
        case DecodeError():
            return build_error_response(
                "decode_error",
                message,
                "Fix or remove the malformed file in the sync repository.",
            )
        case NotFound():
            return build_error_response(
                "not_found",
                message,
                _NOT_FOUND_ACTIONS.get(error.collection, "Check the record id."),
            )
        case SyncAlreadyInProgress():
            return build_error_response(
                "sync_in_progress",
                message,
                "Wait for the running sync to finish, then retry.",
            )
        case AlreadyRunning():
            return build_error_response(
                "timer_running",
                message,
                "Use timer_stop to finish the current timer before starting a new one.",
            )
        case InvalidTransition():
            return build_error_response(
                "invalid_transition",
                message,
                "Use timer_status to see the current timer state.",
            )
        case LocalStoreError():
            return build_error_response(
                "local_store_error",
                message,
                "Check that the database file is writable and not locked by another process.",
            )
        case _:
            return build_error_response(
                "server_error", message, "Retry later."
            )
