"""Responses returned by tool handlers.

Failures carry a category and one concrete next step, so an agent can
recover without a human in the loop.
Engine exceptions are mapped to categories in ``translate_studio_error``.
"""

from typing import Any

import mcp.types as types

from ...errors import (
    CorruptPayloadError,
    FetchError,
    RestoreInProgressError,
    StoreUnavailableError,
    StoreWriteError,
    StudioSyncError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Wrap *message* as a failed tool result.

    The text reads ``Error (<error_type>): <message>`` followed by an
    ``Action:`` paragraph.  *error_type* is one of validation_error,
    corrupt_payload, store_write_failed, backup_unreachable,
    store_unavailable, restore_in_progress, not_configured, unknown_tool
    or server_error.
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def build_text_response(
    text: str, structured: dict[str, Any] | None = None
) -> types.CallToolResult:
    """Build a successful response with text and optional structured JSON."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


_ERROR_ACTIONS: dict[type[StudioSyncError], tuple[str, str]] = {
    CorruptPayloadError: (
        "corrupt_payload",
        "The snapshot could not be read and nothing was changed. "
        "Check the file or backup it came from.",
    ),
    StoreWriteError: (
        "store_write_failed",
        "The local store was left unchanged. Free disk space or check "
        "write permissions on the database file, then retry.",
    ),
    FetchError: (
        "backup_unreachable",
        "Check STUDIO_BACKUP_URL, the API key and network connectivity, "
        "then retry.",
    ),
    StoreUnavailableError: (
        "store_unavailable",
        "Restore the database file from a copy, or call "
        "store_wipe(confirm=true) to start over with an empty store "
        "(destroys all local data).",
    ),
    RestoreInProgressError: (
        "restore_in_progress",
        "Wait for the running restore to finish, then retry.",
    ),
}


def translate_studio_error(error: StudioSyncError) -> types.CallToolResult:
    """Translate an engine error into a structured error response."""
    for cls in type(error).__mro__:
        if cls in _ERROR_ACTIONS:
            error_type, action = _ERROR_ACTIONS[cls]
            return build_error_response(error_type, str(error), action)
    return build_error_response(
        "server_error", str(error), "Retry later or check the server log."
    )
