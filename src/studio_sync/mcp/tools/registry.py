"""Tool registry: which tools an agent sees, and how calls are dispatched.

Every tool is declared as a ``ToolSpec`` naming the permissions it needs.
An operator can hand the server a permissions file so that, for example,
a read-only agent may inspect history and backups but never restore,
import or wipe.  Filtering happens once, when the registry is built;
a filtered-out tool is indistinguishable from an unknown one.

Handlers share one signature, ``(studio, args) -> CallToolResult``, and
never format engine errors themselves: ``call_tool()`` turns any
``StudioSyncError`` into a structured response with a corrective action.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import mcp.types as types

from ...errors import RestoreInProgressError, StudioSyncError
from .constants import ALL_PERMISSIONS
from .errors import build_error_response, translate_studio_error

if TYPE_CHECKING:
    from ...studio import Studio

logger = logging.getLogger(__name__)

Handler = Callable[["Studio", dict], Awaitable[types.CallToolResult]]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """One MCP tool together with its permissions and handler.

    Attributes:
        tool: The MCP Tool definition.
        permissions: Every permission the caller must hold.  Empty means
            the tool is always available (``ping``).
        handler: ``async (studio, args) -> CallToolResult``.
    """

    tool: types.Tool
    permissions: frozenset[str]
    handler: Handler

    @property
    def name(self) -> str:
        return self.tool.name

    def allowed(self, granted: frozenset[str] | None) -> bool:
        """True if a caller holding *granted* may use this tool.

        ``None`` means no permissions file was given: everything is allowed.
        """
        return granted is None or self.permissions <= granted


class ToolRegistry:
    """The tools exposed to one server, keyed by name.

    Args:
        specs: Every tool the server ships, in listing order.
        allowed_permissions: Permissions granted to the agent, or ``None``
            to expose every tool.
    """

    def __init__(
        self,
        specs: list[ToolSpec],
        allowed_permissions: frozenset[str] | None = None,
    ):
        self._specs: dict[str, ToolSpec] = {
            spec.name: spec for spec in specs if spec.allowed(allowed_permissions)
        }
        hidden = len(specs) - len(self._specs)
        if hidden:
            logger.debug("%d tool(s) hidden by permissions", hidden)

    def list_tools(self) -> list[types.Tool]:
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        studio: Studio,
    ) -> types.CallToolResult:
        """Run the handler registered as *name*.

        Engine errors, bad arguments and unexpected exceptions all come
        back as error responses; only an unknown name raises.

        Raises:
            ValueError: If *name* is unknown or hidden by permissions.
        """
        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        try:
            return await spec.handler(studio, arguments or {})
        except RestoreInProgressError as e:
            logger.info("%s rejected: %s", name, e)
            return translate_studio_error(e)
        except StudioSyncError as e:
            logger.warning("%s failed in %s: %s", type(e).__name__, name, e)
            return translate_studio_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Retry later or check the server log.",
            )


def load_permissions_file(path: str | Path) -> frozenset[str]:
    """Read the permissions granted to an agent.

    One permission per line; ``#`` starts a comment.  Example::

        # Read-only agent
        HISTORY_VIEW
        BACKUP_VIEW
        VERSION_VIEW

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a line is not a known permission, or the file
            grants nothing.
    """
    path = Path(path)
    permissions: set[str] = set()
    for line_num, line in enumerate(path.read_text().splitlines(), 1):
        stripped = line.split("#", 1)[0].strip()
        if not stripped:
            continue
        if stripped not in ALL_PERMISSIONS:
            raise ValueError(
                f"Unknown permission '{stripped}' at line {line_num} in {path}. "
                f"Valid permissions: {', '.join(sorted(ALL_PERMISSIONS))}"
            )
        permissions.add(stripped)
    if not permissions:
        raise ValueError(
            f"No permissions found in {path}. File must contain at least one permission."
        )
    return frozenset(permissions)
