"""Startup and shutdown of the MCP server.

``server_lifespan`` resolves the configuration, opens the local store and
runs the periodic remote backup check for as long as the server is up.
Anything that stops the studio from opening becomes a ``RuntimeError``
after a human-readable explanation has been printed to stderr; stdout is
reserved for JSON-RPC.
"""

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from typing import Any

import yaml
from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, flatten_for_runtime
from ..core.async_utils import run_sync
from ..errors import StoreUnavailableError
from ..logger import apply_logging_section
from ..studio import Studio

logger = logging.getLogger(__name__)

_CONFIG_HINT = "Check STUDIO_DB_PATH, STUDIO_BACKUP_URL, STUDIO_BACKUP_API_KEY."


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def _resolve_config(overrides: dict[str, Any]) -> Config:
    """Merge CLI > env (.env included) > YAML > defaults into one Config.

    .env is loaded first so that ``${VAR}`` in the YAML can see it.
    """
    load_dotenv()

    yaml_fallbacks: dict[str, Any] | None = None
    sources = []
    config_files = discover_config_files()
    if config_files:
        raw = load_hierarchical_config()
        unified = build_config(raw)
        yaml_fallbacks = flatten_for_runtime(unified)
        if "logging" in raw:
            apply_logging_section(
                unified.logging.level,
                unified.logging.file,
                debug=overrides.get("debug", False),
            )
        sources.append(f"config file: {config_files[0]}")

    config = load_config(
        db_path=overrides.get("db_path"),
        backup_url=overrides.get("backup_url"),
        backup_api_key=overrides.get("backup_api_key"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )

    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")
    source_desc = ", ".join(sources)
    logger.info("Configuration loaded from: %s", source_desc)
    _stderr_print(f"  Configuration loaded from: {source_desc}")
    logger.info("Local store: %s", config.db_path)
    _stderr_print(f"  Local store: {config.db_path}")
    return config


async def _prepare_studio(config: Config, wipe: bool) -> Studio:
    studio = Studio(config)

    if wipe:
        logger.warning("Wiping local store on request: %s", config.db_path)
        _stderr_print(f"  Wiping local store: {config.db_path}")
        try:
            await run_sync(studio.store.wipe)
        except (OSError, StoreUnavailableError) as e:
            _stderr_print(f"ERROR: Store wipe failed: {e}")
            raise RuntimeError(f"Store wipe failed: {e}") from e

    try:
        await studio.open()
    except StoreUnavailableError as e:
        logger.error("Local store unavailable: %s", e)
        _stderr_print("ERROR: Local store could not be opened.")
        _stderr_print(f"  {e}")
        _stderr_print(
            "  Restart with --wipe-store to discard local data and start "
            "over (export or back up first if you can)."
        )
        raise RuntimeError(f"Local store unavailable: {e}") from e

    if studio.backup_enabled:
        _stderr_print(
            f"  Remote backup: {config.backup_url} "
            f"(checked every {config.check_interval:.0f}s)"
        )
    else:
        _stderr_print("  Remote backup: not configured")
    return studio


async def _stop_monitor(task: asyncio.Task | None, stop_event: asyncio.Event) -> None:
    stop_event.set()
    if task is None:
        return
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """Open the studio for the lifetime of the server.

    Args:
        config_overrides: Values from the command line (db_path,
            backup_url, backup_api_key, debug, wipe_store).

    Yields:
        ``{"studio": Studio}``, already opened.

    Raises:
        RuntimeError: If the configuration is invalid, the requested wipe
            fails, or the local store cannot be opened.
    """
    logger.info("MCP server starting...")
    _stderr_print("Studio Sync MCP Server starting...")

    overrides = config_overrides or {}
    try:
        config = _resolve_config(overrides)
    except (ValueError, yaml.YAMLError, FileNotFoundError) as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(f"  {_CONFIG_HINT}")
        raise RuntimeError(f"Configuration error: {e}. {_CONFIG_HINT}") from e

    studio = await _prepare_studio(config, bool(overrides.get("wipe_store")))

    stop_event = asyncio.Event()
    monitor_task: asyncio.Task | None = None
    if studio.monitor is not None:
        monitor_task = asyncio.create_task(
            studio.monitor.run(config.check_interval, stop_event)
        )

    _stderr_print("Server ready. Waiting for MCP client connection...")
    try:
        yield {"studio": studio}
    finally:
        logger.info("MCP server shutting down")
        await _stop_monitor(monitor_task, stop_event)
        await studio.close()
        _stderr_print("Studio Sync MCP Server shutting down.")
