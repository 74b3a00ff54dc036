"""Restore pipeline: swap the live store for a snapshot, then reload.

Every restore follows the same sequence:

1. Hold the restore guard, so nothing the restore does is captured as a
   user edit and no other restore can start.  A second request fails
   here, before it has read or changed the history.
2. Record the state being left behind (the opposite history stack for
   undo/redo, a fresh checkpoint for remote and file restores).
3. ``StateSerializer.apply()`` the snapshot; all tables or nothing.
4. Emit ``StoreReplaced`` so every in-memory consumer reloads from a
   cold read.

If any step fails the guard is released, the history stacks are put back
as they were, and the error propagates to the caller.  The reload signal
only fires after a successful apply.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

from ..core.async_utils import run_sync
from ..history.store import SnapshotHistory
from ..snapshot.serializer import Snapshot, StateSerializer, parse_payload
from .guard import RestoreGuard
from .signals import ReloadSignal, StoreReplaced

logger = logging.getLogger(__name__)


class RestoreOrigin(str, Enum):
    """Where the snapshot being restored came from."""

    UNDO = "undo"
    REDO = "redo"
    REMOTE_BACKUP = "remote_backup"
    FILE_IMPORT = "file_import"


class RestoreResult(BaseModel):
    """Outcome of one restore request.

    Attributes:
        origin: Origin of the restored snapshot.
        restored: False when there was nothing to restore (empty stack).
        latest_timestamp: Latest mutation timestamp of the store afterwards.
    """

    origin: RestoreOrigin
    restored: bool
    latest_timestamp: int

    model_config = {"frozen": True}


class RestorePipeline:
    """Apply snapshots to the live store.

    Args:
        serializer: Serializer bound to the live store.
        history: Undo/redo history sharing *guard*.
        guard: The restore guard.
        reload_signal: Signal emitted after every successful apply.
    """

    def __init__(
        self,
        serializer: StateSerializer,
        history: SnapshotHistory,
        guard: RestoreGuard,
        reload_signal: ReloadSignal,
    ) -> None:
        self.serializer = serializer
        self.history = history
        self.guard = guard
        self.reload_signal = reload_signal

    async def checkpoint(self) -> bool:
        """Capture the current state onto the undo stack.

        Called before every undo-eligible mutation.  Ignored while a
        restore is running.

        Returns:
            True if a new history entry was recorded.
        """
        if self.guard.active:
            logger.debug("Checkpoint skipped: restore in progress")
            return False
        snapshot = await run_sync(self.serializer.capture)
        return await self.history.push(snapshot)

    async def record_current(self) -> bool:
        """Checkpoint on behalf of the caller already holding the guard."""
        snapshot = await run_sync(self.serializer.capture)
        return await self.history.record(snapshot)

    async def undo(self) -> RestoreResult:
        return await self._time_travel(RestoreOrigin.UNDO)

    async def redo(self) -> RestoreResult:
        return await self._time_travel(RestoreOrigin.REDO)

    async def restore(
        self, snapshot: Snapshot, origin: RestoreOrigin
    ) -> RestoreResult:
        """Replace the store with *snapshot* from a remote backup or file.

        The current state is checkpointed first so the restore can be
        undone.

        Raises:
            ValueError: If *origin* is undo or redo; use ``undo()`` /
                ``redo()`` instead.
            CorruptPayloadError: If *snapshot* cannot be parsed.  Nothing
                is changed.
            StoreWriteError: If the store rejects the write.
            RestoreInProgressError: If another restore is running.
        """
        origin = RestoreOrigin(origin)
        if origin in (RestoreOrigin.UNDO, RestoreOrigin.REDO):
            raise ValueError(
                f"Origin '{origin.value}' must go through undo() or redo()"
            )
        # Reject unreadable payloads before anything is recorded
        parse_payload(snapshot)

        # guard first: a concurrent undo must fail before history is touched
        with self.guard.hold(origin.value):
            async with self.history.transaction():
                await self.record_current()
                latest = await self._apply(snapshot, origin)
        return RestoreResult(origin=origin, restored=True, latest_timestamp=latest)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _time_travel(self, origin: RestoreOrigin) -> RestoreResult:
        await self.history.init()
        state = self.history.state
        available = state.can_undo if origin is RestoreOrigin.UNDO else state.can_redo
        if not available:
            logger.debug("Nothing to %s", origin.value)
            return RestoreResult(
                origin=origin,
                restored=False,
                latest_timestamp=await self._latest_timestamp(),
            )

        with self.guard.hold(origin.value):
            current = await run_sync(self.serializer.capture)
            async with self.history.transaction():
                if origin is RestoreOrigin.UNDO:
                    target = await self.history.undo(current)
                else:
                    target = await self.history.redo(current)
                if target is None:
                    return RestoreResult(
                        origin=origin,
                        restored=False,
                        latest_timestamp=await self._latest_timestamp(),
                    )
                latest = await self._apply(target, origin)
        return RestoreResult(origin=origin, restored=True, latest_timestamp=latest)

    async def _apply(self, snapshot: Snapshot, origin: RestoreOrigin) -> int:
        try:
            await run_sync(self.serializer.apply, snapshot)
        except Exception as exc:
            logger.error("Restore from %s failed: %s", origin.value, exc)
            raise
        latest = await self._latest_timestamp()
        logger.info("Restored snapshot from %s", origin.value)
        self.reload_signal.emit(
            StoreReplaced(origin=origin.value, latest_timestamp=latest)
        )
        return latest

    async def _latest_timestamp(self) -> int:
        return await run_sync(self.serializer.store.get_latest_update_timestamp)
