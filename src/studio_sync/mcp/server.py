"""The ``studio-sync`` MCP server: tool routing and the stdio entry point.

Agents talk JSON-RPC over stdin/stdout.  Tools are looked up in a
``ToolRegistry`` built once at startup (optionally narrowed by a
permissions file) and run against the ``Studio`` opened by the lifespan.
"""

import argparse
import asyncio
import logging
import sys
from typing import Any

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config
from ..logger import DEFAULT_LOG_FILE, setup_logging
from ..studio import Studio
from ..version import check_version_consistency
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    build_text_response,
    load_permissions_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("studio-sync")

# Set while the lifespan is active.
_studio: Studio | None = None

_registry: ToolRegistry | None = None


async def _handle_ping(studio: Studio, args: dict) -> types.CallToolResult:
    if studio.uploader is not None:
        backup = studio.uploader.status.status.value
    else:
        backup = "not configured"
    text = (
        f"Studio Sync {__version__} running.\n"
        f"Local store: {studio.store.db_path}\n"
        f"Remote backup: {backup}"
    )
    return build_text_response(
        text,
        {
            "version": __version__,
            "db_path": str(studio.store.db_path),
            "backup": backup,
        },
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Check the server is running and report store and backup state",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    permissions=frozenset(),
    handler=_handle_ping,
)


def get_studio() -> Studio:
    """The studio opened by the lifespan.

    Raises:
        RuntimeError: Outside the lifespan.
    """
    if _studio is None:
        raise RuntimeError("Studio not initialized. Server lifespan not started.")
    return _studio


def set_studio(studio: Studio | None) -> None:
    """Set the global Studio instance, or None to clear."""
    global _studio
    _studio = studio


def get_registry() -> ToolRegistry:
    """Raises RuntimeError before ``main()`` has built the registry."""
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List all registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Dispatch to the registry; an unknown name is an error result, not
    a protocol error, so the agent can correct itself."""
    studio = get_studio()
    try:
        return await get_registry().call_tool(name, arguments, studio)
    except ValueError as e:
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


def build_registry(permissions_file: str | None = None) -> ToolRegistry:
    """Build the ToolRegistry, filtered by an optional permissions file."""
    allowed_permissions = None
    if permissions_file:
        allowed_permissions = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s",
            len(allowed_permissions),
            permissions_file,
        )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )

    if permissions_file:
        print(
            f"Permissions file: {permissions_file} "
            f"({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )
    return registry


async def main(config_overrides: dict | None = None):
    """Serve the registry over stdio until the client disconnects.

    Args:
        config_overrides: Optional dict with config values to override
            (db_path, backup_url, backup_api_key, debug, log_file,
            permissions_file, wipe_store)
    """
    overrides = config_overrides or {}

    # before stdio_server: nothing may reach stdout after that
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    is_consistent, message = check_version_consistency()
    if not is_consistent:
        logger.warning(message)
        sys.stderr.write(f"Warning: {message}\n")
    else:
        logger.info(message)

    set_registry(build_registry(overrides.get("permissions_file")))

    # set_studio() is called here rather than in the lifespan: when run
    # via `python -m studio_sync.mcp.server` this module is __main__, and
    # an import from lifespan.py would set a second copy's global.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_studio(ctx["studio"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="studio-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_studio(None)
            set_registry(None)


_EPILOG = """
Examples:
  # Run with .env / .studio_sync/config.yml settings
  studio-sync

  # Use a specific database and enable remote backup
  studio-sync --db-path ~/studio/studio.db \\
      --backup-url https://backup.example.com --backup-api-key KEY

  # Write .studio_sync/config.yml with commented defaults
  studio-sync --init-config

  # Discard an unreadable local store and start over (DESTRUCTIVE)
  studio-sync --wipe-store

  # Expose only the tools a read-only agent needs
  studio-sync --permissions-file /etc/studio-sync/read-only.permissions

stdout carries JSON-RPC for the MCP client; messages go to stderr.
"""

# CLI flag -> config override key, for flags copied over only when given.
_VALUE_FLAGS = ("db_path", "backup_url", "backup_api_key", "log_file", "permissions_file")
_SWITCH_FLAGS = ("debug", "wipe_store")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="studio-sync",
        description="Undo/redo history and remote backup for a local writing studio, served over MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )
    store = parser.add_argument_group("store and backup")
    store.add_argument(
        "--db-path",
        help="Database path (overrides STUDIO_DB_PATH and config files)",
    )
    store.add_argument(
        "--backup-url",
        help="Backup API URL (overrides STUDIO_BACKUP_URL and config files)",
    )
    store.add_argument(
        "--backup-api-key",
        help="Backup API key; visible in the process list, prefer STUDIO_BACKUP_API_KEY",
    )
    store.add_argument(
        "--wipe-store",
        action="store_true",
        help="DESTRUCTIVE: delete the local store before starting",
    )

    server_opts = parser.add_argument_group("server")
    server_opts.add_argument(
        "--permissions-file",
        help="File listing the permissions granted to the agent, one per line "
        "(e.g. HISTORY_VIEW); # starts a comment. Without it every tool is exposed.",
    )
    server_opts.add_argument("--debug", action="store_true", help="Enable debug logging")
    server_opts.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_LOG_FILE})",
    )
    server_opts.add_argument(
        "--init-config",
        action="store_true",
        help="Write a commented starter config file (if none exists) and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"studio-sync version {__version__}",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Only the options actually given on the command line."""
    overrides: dict[str, Any] = {
        key: getattr(args, key) for key in _VALUE_FLAGS if getattr(args, key)
    }
    overrides.update({key: True for key in _SWITCH_FLAGS if getattr(args, key)})
    return overrides


def run() -> None:
    """Console entry point."""
    args = build_parser().parse_args()

    if args.init_config:
        print(f"Config file: {ensure_config()}", file=sys.stderr)
        return

    config_overrides = overrides_from_args(args)
    shown = sorted(k for k in config_overrides if k != "backup_api_key")
    if shown:
        print(f"Config overrides from CLI: {', '.join(shown)}", file=sys.stderr)

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # lifespan has already explained the failure on stderr
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
