"""Async utilities for running blocking store and network calls."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Local store reads/writes and remote backup requests are the only
    suspension points of the engine; both go through this helper.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        latest = await run_sync(store.get_latest_update_timestamp)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
