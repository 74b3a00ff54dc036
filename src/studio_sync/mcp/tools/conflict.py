"""MCP tool handlers for remote/local divergence.

Defines two tools:

- ``conflict_status`` -- the pending divergence, if any, with a summary
  of how local and remote content differ.
- ``conflict_resolve`` -- adopt the remote backup or keep the local state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import mcp.types as types

from ...backup.models import Decision
from ...backup.reporter import divergence_to_json, format_divergence
from .constants import CONFLICT_RESOLVE, HISTORY_VIEW
from .errors import build_error_response, build_text_response
from .history import restore_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...studio import Studio

logger = logging.getLogger(__name__)

_DECISIONS = [d.value for d in Decision]


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

CONFLICT_TOOLS: list[types.Tool] = [
    types.Tool(
        name="conflict_status",
        description=(
            "Show the pending divergence between the local state and a "
            "newer remote backup, with book and document counts on each side."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="conflict_resolve",
        description=(
            "Resolve the pending divergence. 'adopt_remote' replaces the "
            "local state with the remote backup (undoable with "
            "history_undo); 'keep_local' dismisses it and schedules a push "
            "of the local state. Nothing is merged."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "decision": {
                    "type": "string",
                    "enum": _DECISIONS,
                    "description": "adopt_remote or keep_local",
                },
            },
            "required": ["decision"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_conflict_status(
    studio: Studio, args: dict
) -> types.CallToolResult:
    divergence = studio.resolver.pending
    if divergence is None:
        return build_text_response("No divergence pending.", {"pending": False})
    summary = await studio.resolver.diff_summary()
    return build_text_response(
        format_divergence(divergence, summary),
        divergence_to_json(divergence, summary),
    )


async def _handle_conflict_resolve(
    studio: Studio, args: dict
) -> types.CallToolResult:
    decision = args.get("decision")
    if decision not in _DECISIONS:
        return build_error_response(
            "validation_error",
            f"decision must be one of {_DECISIONS}, got {decision!r}",
            "Provide decision='adopt_remote' or decision='keep_local'.",
        )
    if studio.resolver.pending is None:
        return build_error_response(
            "validation_error",
            "No divergence is pending.",
            "Use backup_check to look for a newer remote backup.",
        )

    result = await studio.resolve_conflict(Decision(decision))
    if result is None:
        return build_text_response(
            "Kept local state. The remote backup will be overwritten by "
            "the next push.",
            {"decision": decision},
        )
    return restore_response(result, studio.history.state)


CONFLICT_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=CONFLICT_TOOLS[0],
        permissions=frozenset({HISTORY_VIEW}),
        handler=_handle_conflict_status,
    ),
    ToolSpec(
        tool=CONFLICT_TOOLS[1],
        permissions=frozenset({CONFLICT_RESOLVE}),
        handler=_handle_conflict_resolve,
    ),
]
