"""MCP tool handlers for the synchronization engine.

This package contains MCP tool implementations that wrap the Studio
with async handlers and structured error responses.
"""

from .backup import BACKUP_SPECS, BACKUP_TOOLS
from .conflict import CONFLICT_SPECS, CONFLICT_TOOLS
from .errors import build_error_response, build_text_response
from .history import HISTORY_SPECS, HISTORY_TOOLS
from .registry import ToolRegistry, ToolSpec, load_permissions_file
from .snapshots import SNAPSHOT_SPECS, SNAPSHOT_TOOLS
from .store import STORE_SPECS, STORE_TOOLS

ALL_SPECS: list[ToolSpec] = (
    HISTORY_SPECS
    + BACKUP_SPECS
    + CONFLICT_SPECS
    + SNAPSHOT_SPECS
    + STORE_SPECS
)

__all__ = [
    "build_error_response",
    "build_text_response",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    # Spec lists
    "ALL_SPECS",
    "HISTORY_SPECS",
    "BACKUP_SPECS",
    "CONFLICT_SPECS",
    "SNAPSHOT_SPECS",
    "STORE_SPECS",
    # Tool lists
    "HISTORY_TOOLS",
    "BACKUP_TOOLS",
    "CONFLICT_TOOLS",
    "SNAPSHOT_TOOLS",
    "STORE_TOOLS",
]
