"""Bounded, persisted undo/redo history of snapshots.

Invariants:

* A new capture identical to the top of ``undo`` is ignored and leaves
  ``redo`` alone.
* Any other new capture clears ``redo``; time-travel branches are not kept.
* Neither stack grows beyond ``max_size``; the oldest entry is dropped.
* While the restore guard is held, new captures are ignored.

Listeners receive a ``HistoryState`` synchronously after every mutation,
including the initial load.  Every public operation first awaits the
initial load, which runs at most once.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable

from ..core.async_utils import run_sync
from ..errors import StudioSyncError
from ..restore.guard import RestoreGuard
from ..snapshot.serializer import Snapshot
from .models import HistoryState
from .repository import HistoryRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 50

Listener = Callable[[HistoryState], None]


class SnapshotHistory:
    """Undo/redo stacks of opaque snapshots.

    Args:
        repository: Persistence for the two stacks.
        guard: Restore guard shared with the restore pipeline.
        max_size: Capacity of each stack.
    """

    def __init__(
        self,
        repository: HistoryRepository,
        guard: RestoreGuard,
        max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.repository = repository
        self.guard = guard
        self.max_size = max_size
        self._undo: list[Snapshot] = []
        self._redo: list[Snapshot] = []
        self._listeners: list[Listener] = []
        self._load_task: asyncio.Future[None] | None = None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Load persisted stacks once; concurrent callers share the load."""
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        await self._load_task

    @property
    def loaded(self) -> bool:
        return self._load_task is not None and self._load_task.done()

    async def _load(self) -> None:
        try:
            undo, redo = await run_sync(self.repository.load)
            self._undo = undo[-self.max_size:]
            self._redo = redo[-self.max_size:]
            logger.debug(
                "History loaded: %d undo, %d redo",
                len(self._undo),
                len(self._redo),
            )
        except (StudioSyncError, ValueError):
            logger.exception("Could not load history; starting empty")
            self._undo, self._redo = [], []
        self._notify()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> HistoryState:
        return HistoryState(
            can_undo=bool(self._undo),
            can_redo=bool(self._redo),
            undo_depth=len(self._undo),
            redo_depth=len(self._redo),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* and call it at once with the current state.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)
        listener(self.state)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def push(self, snapshot: Snapshot) -> bool:
        """Record *snapshot* as the state before a new user action.

        Returns:
            True if the undo stack changed.
        """
        if self.guard.active:
            logger.debug("Capture ignored: restore in progress")
            return False
        await self.init()
        if self.guard.active:
            return False
        return await self.record(snapshot)

    async def record(self, snapshot: Snapshot) -> bool:
        """Like ``push()``, without the guard check.

        Only for the holder of the restore guard, which checkpoints the
        state it is about to replace.
        """
        await self.init()
        if self._undo and self._undo[-1] == snapshot:
            return False

        self._undo.append(snapshot)
        self._evict(self._undo)
        self._redo.clear()
        await self._commit()
        return True

    async def undo(self, current: Snapshot) -> Snapshot | None:
        """Step back: park *current* on ``redo`` and return the state to restore."""
        await self.init()
        if not self._undo:
            return None
        self._redo.append(current)
        self._evict(self._redo)
        target = self._undo.pop()
        await self._commit()
        return target

    async def redo(self, current: Snapshot) -> Snapshot | None:
        """Step forward: park *current* on ``undo`` and return the state to restore."""
        await self.init()
        if not self._redo:
            return None
        self._undo.append(current)
        self._evict(self._undo)
        target = self._redo.pop()
        await self._commit()
        return target

    async def clear(self) -> None:
        """Drop both stacks."""
        await self.init()
        self._undo.clear()
        self._redo.clear()
        await self._commit()

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[SnapshotHistory]:
        """Restore both stacks if the body raises.

        Used by the restore pipeline so that a failed apply does not
        consume an undo or redo step.
        """
        await self.init()
        undo, redo = list(self._undo), list(self._redo)
        try:
            yield self
        except Exception:
            if self._undo != undo or self._redo != redo:
                logger.debug("Rolling back history after failed restore")
                self._undo, self._redo = undo, redo
                await self._commit()
            raise

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evict(self, stack: list[Snapshot]) -> None:
        overflow = len(stack) - self.max_size
        if overflow > 0:
            del stack[:overflow]

    async def _commit(self) -> None:
        self._notify()
        try:
            await run_sync(
                self.repository.save, list(self._undo), list(self._redo)
            )
        except StudioSyncError as exc:
            logger.warning("Could not save history: %s", exc)

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            listener(state)
