"""MCP tool handlers for undo/redo history.

Defines four tools:

- ``history_status`` -- current undo/redo availability.
- ``history_checkpoint`` -- record the current state before an edit.
- ``history_undo`` / ``history_redo`` -- time travel through the stacks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...backup.reporter import format_timestamp_ms
from ...history.models import HistoryState
from ...restore.pipeline import RestoreResult
from .constants import HISTORY_MODIFY, HISTORY_VIEW
from .errors import build_text_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...studio import Studio

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_NO_ARGS = {"type": "object", "properties": {}, "required": []}

HISTORY_TOOLS: list[types.Tool] = [
    types.Tool(
        name="history_status",
        description="Show how many undo and redo steps are available.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_NO_ARGS,
    ),
    types.Tool(
        name="history_checkpoint",
        description=(
            "Record the current state on the undo stack. Call before an "
            "edit that should be undoable. Identical consecutive states "
            "are recorded once."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_NO_ARGS,
    ),
    types.Tool(
        name="history_undo",
        description=(
            "Restore the state before the last checkpointed edit. The "
            "current state moves to the redo stack."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema=_NO_ARGS,
    ),
    types.Tool(
        name="history_redo",
        description="Re-apply the last undone state.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema=_NO_ARGS,
    ),
]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_history_state(state: HistoryState) -> str:
    return (
        f"Undo: {state.undo_depth} step(s) available\n"
        f"Redo: {state.redo_depth} step(s) available"
    )


def restore_response(
    result: RestoreResult, state: HistoryState
) -> types.CallToolResult:
    """Build the response shared by every restoring tool."""
    if result.restored:
        text = (
            f"Restored snapshot ({result.origin.value}). "
            f"Latest change: {format_timestamp_ms(result.latest_timestamp)}"
        )
    else:
        text = f"Nothing to {result.origin.value}."
    structured: dict[str, Any] = {
        **result.model_dump(mode="json"),
        "history": state.model_dump(),
    }
    return build_text_response(
        f"{text}\n{format_history_state(state)}", structured
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_history_status(
    studio: Studio, args: dict
) -> types.CallToolResult:
    await studio.history.init()
    state = studio.history.state
    return build_text_response(format_history_state(state), state.model_dump())


async def _handle_history_checkpoint(
    studio: Studio, args: dict
) -> types.CallToolResult:
    recorded = await studio.checkpoint()
    state = studio.history.state
    if recorded:
        text = "Checkpoint recorded."
    else:
        text = "No checkpoint recorded: state is unchanged since the last one."
    return build_text_response(
        f"{text}\n{format_history_state(state)}",
        {"recorded": recorded, "history": state.model_dump()},
    )


async def _handle_history_undo(
    studio: Studio, args: dict
) -> types.CallToolResult:
    result = await studio.undo()
    return restore_response(result, studio.history.state)


async def _handle_history_redo(
    studio: Studio, args: dict
) -> types.CallToolResult:
    result = await studio.redo()
    return restore_response(result, studio.history.state)


HISTORY_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=HISTORY_TOOLS[0],
        permissions=frozenset({HISTORY_VIEW}),
        handler=_handle_history_status,
    ),
    ToolSpec(
        tool=HISTORY_TOOLS[1],
        permissions=frozenset({HISTORY_MODIFY}),
        handler=_handle_history_checkpoint,
    ),
    ToolSpec(
        tool=HISTORY_TOOLS[2],
        permissions=frozenset({HISTORY_MODIFY}),
        handler=_handle_history_undo,
    ),
    ToolSpec(
        tool=HISTORY_TOOLS[3],
        permissions=frozenset({HISTORY_MODIFY}),
        handler=_handle_history_redo,
    ),
]
