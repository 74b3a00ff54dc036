"""MCP tool handler for destructive store recovery.

``store_wipe`` deletes the local database and starts over with an empty
store.  It is the only recovery from an unreadable store and is never
run without an explicit ``confirm=true``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import mcp.types as types

from .constants import STORE_ADMIN
from .errors import build_error_response, build_text_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...studio import Studio

logger = logging.getLogger(__name__)


STORE_TOOLS: list[types.Tool] = [
    types.Tool(
        name="store_wipe",
        description=(
            "DESTRUCTIVE: delete every local book, document and setting, "
            "plus the undo/redo history, and start with an empty store. "
            "Requires confirm=true. Consider snapshot_export first."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "confirm": {
                    "type": "boolean",
                    "description": "Must be true to proceed",
                },
            },
            "required": ["confirm"],
        },
    ),
]


async def _handle_store_wipe(
    studio: Studio, args: dict
) -> types.CallToolResult:
    if args.get("confirm") is not True:
        return build_error_response(
            "validation_error",
            "store_wipe requires confirm=true",
            "Ask the user for explicit confirmation, then call "
            "store_wipe(confirm=true).",
        )
    logger.warning("Local store wipe requested via MCP")
    await studio.wipe_store()
    return build_text_response(
        f"Local store wiped: {studio.store.db_path}",
        {"wiped": True, "db_path": str(studio.store.db_path)},
    )


STORE_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=STORE_TOOLS[0],
        permissions=frozenset({STORE_ADMIN}),
        handler=_handle_store_wipe,
    ),
]
