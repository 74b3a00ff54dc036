"""MCP tool handlers for the remote backup.

Defines six tools:

- ``backup_check`` -- compare the latest remote backup with local state.
- ``backup_push`` -- push the current state as the latest backup now.
- ``backup_status`` -- uploader and monitor status.
- ``backup_list`` -- daily snapshots stored on the server.
- ``backup_restore`` -- restore one of the daily snapshots.
- ``backup_enable`` -- turn automatic backup on or off.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import mcp.types as types

from ...backup.models import UploadStatus
from ...backup.reporter import (
    format_backup_list,
    format_backup_status,
    format_check_result,
)
from ...core.async_utils import run_sync
from .constants import BACKUP_MODIFY, BACKUP_NOT_CONFIGURED_ACTION, BACKUP_VIEW
from .errors import build_error_response, build_text_response
from .history import restore_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...studio import Studio

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

BACKUP_TOOLS: list[types.Tool] = [
    types.Tool(
        name="backup_check",
        description=(
            "Check whether the latest remote backup holds content newer "
            "than the local state. A newer backup becomes a pending "
            "conflict; see conflict_status."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "force": {
                    "type": "boolean",
                    "default": False,
                    "description": "Bypass the ETag cache and the disabled setting",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="backup_push",
        description="Push the current local state as the latest remote backup.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "force": {
                    "type": "boolean",
                    "default": True,
                    "description": "Push even if automatic backup is disabled",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="backup_status",
        description="Show automatic backup status and the last check result.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="backup_list",
        description="List the daily snapshots stored on the backup server, newest first.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="backup_restore",
        description=(
            "Replace the local state with a daily snapshot from the "
            "server. The current state is checkpointed first, so "
            "history_undo reverts the restore."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "backup_id": {
                    "type": "string",
                    "description": "Backup id from backup_list (e.g. daily_2024-05-01.json)",
                },
            },
            "required": ["backup_id"],
        },
    ),
    types.Tool(
        name="backup_enable",
        description="Turn automatic backup and backup checks on or off.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "enabled": {
                    "type": "boolean",
                    "description": "True to enable, false to disable",
                },
            },
            "required": ["enabled"],
        },
    ),
]


def _not_configured() -> types.CallToolResult:
    return build_error_response(
        "not_configured",
        "Remote backup is not configured.",
        BACKUP_NOT_CONFIGURED_ACTION,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_backup_check(
    studio: Studio, args: dict
) -> types.CallToolResult:
    if studio.monitor is None:
        return _not_configured()
    result = await studio.monitor.check(force=bool(args.get("force", False)))
    return build_text_response(
        format_check_result(result), result.model_dump(mode="json")
    )


async def _handle_backup_push(
    studio: Studio, args: dict
) -> types.CallToolResult:
    if studio.uploader is None:
        return _not_configured()
    pushed = await studio.uploader.backup_now(force=bool(args.get("force", True)))
    status = studio.uploader.status
    if status.status is UploadStatus.FAILED:
        return build_error_response(
            "backup_unreachable",
            "Backup push failed; see the server log for details.",
            "Check connectivity and retry with backup_push.",
        )
    if pushed:
        text = "Backup pushed."
    elif status.status is UploadStatus.DISABLED:
        text = "Automatic backup is disabled; use force=true to push anyway."
    else:
        text = "A backup is already running; one more push has been queued."
    return build_text_response(
        f"{text}\n{format_backup_status(status)}",
        {"pushed": pushed, **status.model_dump(mode="json")},
    )


async def _handle_backup_status(
    studio: Studio, args: dict
) -> types.CallToolResult:
    if studio.uploader is None or studio.monitor is None:
        return _not_configured()
    status = studio.uploader.status
    lines = [format_backup_status(status), f"Monitor: {studio.monitor.state.value}"]
    last = studio.monitor.last_result
    if last is not None:
        lines.append("")
        lines.append(format_check_result(last))
    return build_text_response(
        "\n".join(lines),
        {
            **status.model_dump(mode="json"),
            "monitor_state": studio.monitor.state.value,
            "last_check": last.model_dump(mode="json") if last else None,
        },
    )


async def _handle_backup_list(
    studio: Studio, args: dict
) -> types.CallToolResult:
    if studio.backup_client is None:
        return _not_configured()
    backups = await run_sync(studio.backup_client.list_backups)
    return build_text_response(
        format_backup_list(backups),
        {"backups": [b.model_dump() for b in backups]},
    )


async def _handle_backup_restore(
    studio: Studio, args: dict
) -> types.CallToolResult:
    if studio.backup_client is None:
        return _not_configured()
    backup_id = args.get("backup_id")
    if not backup_id:
        return build_error_response(
            "validation_error",
            "backup_id is required",
            "Provide backup_id parameter (see backup_list).",
        )
    result = await studio.restore_server_backup(backup_id)
    return restore_response(result, studio.history.state)


async def _handle_backup_enable(
    studio: Studio, args: dict
) -> types.CallToolResult:
    if studio.uploader is None:
        return _not_configured()
    enabled = args.get("enabled")
    if not isinstance(enabled, bool):
        return build_error_response(
            "validation_error",
            "enabled must be true or false",
            "Provide enabled parameter as a boolean.",
        )
    await studio.uploader.set_enabled(enabled)
    status = studio.uploader.status
    return build_text_response(
        format_backup_status(status), status.model_dump(mode="json")
    )


BACKUP_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=BACKUP_TOOLS[0],
        permissions=frozenset({BACKUP_VIEW}),
        handler=_handle_backup_check,
    ),
    ToolSpec(
        tool=BACKUP_TOOLS[1],
        permissions=frozenset({BACKUP_MODIFY}),
        handler=_handle_backup_push,
    ),
    ToolSpec(
        tool=BACKUP_TOOLS[2],
        permissions=frozenset({BACKUP_VIEW}),
        handler=_handle_backup_status,
    ),
    ToolSpec(
        tool=BACKUP_TOOLS[3],
        permissions=frozenset({BACKUP_VIEW}),
        handler=_handle_backup_list,
    ),
    ToolSpec(
        tool=BACKUP_TOOLS[4],
        permissions=frozenset({BACKUP_VIEW, BACKUP_MODIFY}),
        handler=_handle_backup_restore,
    ),
    ToolSpec(
        tool=BACKUP_TOOLS[5],
        permissions=frozenset({BACKUP_MODIFY}),
        handler=_handle_backup_enable,
    ),
]
