"""MCP tool handlers for snapshot files and named versions.

Defines six tools:

- ``snapshot_export`` / ``snapshot_import`` -- whole-store snapshot files.
- ``version_create`` / ``version_list`` / ``version_restore`` /
  ``version_delete`` -- named versions of a single book.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...backup.reporter import format_timestamp_ms
from ...core.async_utils import run_sync
from .constants import (
    SNAPSHOT_EXPORT,
    SNAPSHOT_IMPORT,
    VERSION_MODIFY,
    VERSION_VIEW,
)
from .errors import build_error_response, build_text_response
from .history import restore_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...studio import Studio

logger = logging.getLogger(__name__)


def _string_arg(name: str, description: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: {"type": "string", "description": description}},
        "required": [name],
    }


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

SNAPSHOT_TOOLS: list[types.Tool] = [
    types.Tool(
        name="snapshot_export",
        description="Write a snapshot of the whole local store to a file.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_string_arg("file_path", "Absolute path of the output file"),
    ),
    types.Tool(
        name="snapshot_import",
        description=(
            "Replace the whole local store with a snapshot file. The "
            "current state is checkpointed first, so history_undo reverts "
            "the import. Older snapshot formats are upgraded."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema=_string_arg("file_path", "Absolute path of the snapshot file"),
    ),
    types.Tool(
        name="version_create",
        description="Save the current state of a book as a named version.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "book_id": {"type": "string", "description": "Book id"},
                "name": {"type": "string", "description": "Version name"},
            },
            "required": ["book_id", "name"],
        },
    ),
    types.Tool(
        name="version_list",
        description="List the named versions of a book, newest first.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_string_arg("book_id", "Book id"),
    ),
    types.Tool(
        name="version_restore",
        description=(
            "Put a named version of a book back in place. Undoable with "
            "history_undo."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=False,
        ),
        inputSchema=_string_arg("version_id", "Version id from version_list"),
    ),
    types.Tool(
        name="version_delete",
        description="Delete a named version.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema=_string_arg("version_id", "Version id from version_list"),
    ),
]


def _missing(name: str) -> types.CallToolResult:
    return build_error_response(
        "validation_error",
        f"{name} is required",
        f"Provide {name} parameter.",
    )


def _version_summary(version: dict) -> dict[str, Any]:
    return {
        "id": version.get("id"),
        "book_id": version.get("bookId"),
        "name": version.get("name"),
        "created_at": version.get("createdAt"),
    }


# ---------------------------------------------------------------------------
# Snapshot files
# ---------------------------------------------------------------------------


async def _handle_snapshot_export(
    studio: Studio, args: dict
) -> types.CallToolResult:
    file_path = args.get("file_path")
    if not file_path:
        return _missing("file_path")
    resolved, size = await studio.export_backup(file_path)
    return build_text_response(
        f"Exported snapshot to {resolved} ({size} bytes)",
        {"file_path": str(resolved), "size_bytes": size},
    )


async def _handle_snapshot_import(
    studio: Studio, args: dict
) -> types.CallToolResult:
    file_path = args.get("file_path")
    if not file_path:
        return _missing("file_path")
    result = await studio.import_backup(file_path)
    return restore_response(result, studio.history.state)


# ---------------------------------------------------------------------------
# Named versions
# ---------------------------------------------------------------------------


async def _handle_version_create(
    studio: Studio, args: dict
) -> types.CallToolResult:
    book_id = args.get("book_id")
    name = args.get("name")
    if not book_id:
        return _missing("book_id")
    if not name:
        return _missing("name")
    version = await run_sync(studio.versions.create, book_id, name)
    return build_text_response(
        f"Saved version '{version['name']}' of book {book_id} ({version['id']})",
        _version_summary(version),
    )


async def _handle_version_list(
    studio: Studio, args: dict
) -> types.CallToolResult:
    book_id = args.get("book_id")
    if not book_id:
        return _missing("book_id")
    versions = await run_sync(studio.versions.list_for_book, book_id)
    if versions:
        lines = [f"{len(versions)} version(s) of book {book_id}:"]
        for v in versions:
            lines.append(
                f"  {v['id']}  {format_timestamp_ms(v.get('createdAt'))}  {v.get('name')}"
            )
        text = "\n".join(lines)
    else:
        text = f"No versions saved for book {book_id}."
    return build_text_response(
        text, {"versions": [_version_summary(v) for v in versions]}
    )


async def _handle_version_restore(
    studio: Studio, args: dict
) -> types.CallToolResult:
    version_id = args.get("version_id")
    if not version_id:
        return _missing("version_id")
    book = await studio.restore_version(version_id)
    return build_text_response(
        f"Restored book {book['id']} from version {version_id}.",
        {"book_id": book["id"], "version_id": version_id},
    )


async def _handle_version_delete(
    studio: Studio, args: dict
) -> types.CallToolResult:
    version_id = args.get("version_id")
    if not version_id:
        return _missing("version_id")
    deleted = await run_sync(studio.versions.delete, version_id)
    if not deleted:
        return build_error_response(
            "not_found",
            f"Version '{version_id}' not found",
            "Use version_list to find existing versions.",
        )
    return build_text_response(
        f"Deleted version {version_id}.", {"version_id": version_id}
    )


SNAPSHOT_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SNAPSHOT_TOOLS[0],
        permissions=frozenset({SNAPSHOT_EXPORT}),
        handler=_handle_snapshot_export,
    ),
    ToolSpec(
        tool=SNAPSHOT_TOOLS[1],
        permissions=frozenset({SNAPSHOT_IMPORT}),
        handler=_handle_snapshot_import,
    ),
    ToolSpec(
        tool=SNAPSHOT_TOOLS[2],
        permissions=frozenset({VERSION_MODIFY}),
        handler=_handle_version_create,
    ),
    ToolSpec(
        tool=SNAPSHOT_TOOLS[3],
        permissions=frozenset({VERSION_VIEW}),
        handler=_handle_version_list,
    ),
    ToolSpec(
        tool=SNAPSHOT_TOOLS[4],
        permissions=frozenset({VERSION_MODIFY}),
        handler=_handle_version_restore,
    ),
    ToolSpec(
        tool=SNAPSHOT_TOOLS[5],
        permissions=frozenset({VERSION_MODIFY}),
        handler=_handle_version_delete,
    ),
]
