"""Automatic backup uploads.

After local edits the studio calls ``trigger()``; once edits have been
quiet for the debounce period the whole store is captured and pushed as
the latest remote backup, and today's daily snapshot is created if it is
missing.

Only one push runs at a time.  A request that arrives mid-push queues a
single follow-up run, however many requests arrive.  Push failures are
logged and published as ``FAILED``; they never propagate, and the next
trigger retries.

Status: ``IDLE -> SYNCING -> SYNCED | FAILED``, or ``DISABLED`` while the
``autoBackupEnabled`` setting is False.  A forced push ignores the
setting.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable

from ..core.async_utils import run_sync
from ..errors import StudioSyncError
from ..snapshot.serializer import StateSerializer
from ..store.local import AUTO_BACKUP_ENABLED_KEY, LAST_BACKUP_TIMESTAMP_KEY
from .client import RemoteBackupClient
from .models import BackupStatus, UploadStatus

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.5

Listener = Callable[[BackupStatus], None]


class BackupUploader:
    """Debounced, single-flight backup pushes.

    Args:
        client: Remote backup client.
        serializer: Serializer bound to the local store.
        debounce_seconds: Quiet period before a triggered push runs.
    """

    def __init__(
        self,
        client: RemoteBackupClient,
        serializer: StateSerializer,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.client = client
        self.serializer = serializer
        self.store = serializer.store
        self.debounce_seconds = debounce_seconds
        self._status = BackupStatus()
        self._listeners: list[Listener] = []
        self._syncing = False
        self._queued = False
        self._debounce_task: asyncio.Task | None = None
        self._follow_up: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Derive the initial status from persisted settings."""
        enabled = await run_sync(self._enabled)
        last = await run_sync(
            self.store.get_setting, LAST_BACKUP_TIMESTAMP_KEY, None
        )
        if not enabled:
            status = UploadStatus.DISABLED
        elif last:
            status = UploadStatus.SYNCED
        else:
            status = UploadStatus.IDLE
        self._set(status, last_backup_timestamp=last)

    @property
    def status(self) -> BackupStatus:
        return self._status

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* and call it at once with the current status."""
        self._listeners.append(listener)
        listener(self._status)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def set_enabled(self, enabled: bool) -> None:
        """Persist the ``autoBackupEnabled`` setting."""
        await run_sync(self.store.put_setting, AUTO_BACKUP_ENABLED_KEY, enabled)
        if not enabled:
            self.cancel_pending()
            self._set(UploadStatus.DISABLED)
        elif self._status.status is UploadStatus.DISABLED:
            self._set(
                UploadStatus.SYNCED
                if self._status.last_backup_timestamp
                else UploadStatus.IDLE
            )
        logger.info("Automatic backup %s", "enabled" if enabled else "disabled")

    # ------------------------------------------------------------------
    # Pushing
    # ------------------------------------------------------------------

    def trigger(self) -> None:
        """Schedule a push after the debounce period, restarting the timer."""
        self.cancel_pending()
        self._debounce_task = asyncio.ensure_future(self._debounced())

    def cancel_pending(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    async def backup_now(self, force: bool = False) -> bool:
        """Push immediately, cancelling any debounced push.

        Returns:
            True if this call pushed a backup.
        """
        self.cancel_pending()
        return await self._perform(force)

    async def close(self) -> None:
        """Cancel the debounce timer and wait for a queued follow-up."""
        self.cancel_pending()
        if self._follow_up is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._follow_up

    async def _debounced(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._debounce_task = None
        await self._perform(False)

    async def _perform(self, force: bool) -> bool:
        if self._syncing:
            logger.debug("Backup already running; queueing a follow-up")
            self._queued = True
            return False

        if not force and not await run_sync(self._enabled):
            self._set(UploadStatus.DISABLED)
            return False

        self._syncing = True
        self._set(UploadStatus.SYNCING)
        try:
            snapshot = await run_sync(self.serializer.capture)
            content_ts = await run_sync(self.store.get_latest_update_timestamp)
            await run_sync(self.client.push, snapshot, content_ts)
            await run_sync(self.client.upload_daily_snapshot, snapshot)
            now = int(time.time() * 1000)
            await run_sync(self.store.put_setting, LAST_BACKUP_TIMESTAMP_KEY, now)
            self._set(UploadStatus.SYNCED, last_backup_timestamp=now)
            return True
        except StudioSyncError as exc:
            logger.error("Backup to server failed: %s", exc)
            self._set(UploadStatus.FAILED)
            return False
        finally:
            self._syncing = False
            if self._queued:
                self._queued = False
                self._follow_up = asyncio.ensure_future(self._perform(force))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _enabled(self) -> bool:
        return self.store.get_setting(AUTO_BACKUP_ENABLED_KEY, True) is not False

    def _set(self, status: UploadStatus, **changes) -> None:
        self._status = self._status.model_copy(update={"status": status, **changes})
        for listener in list(self._listeners):
            listener(self._status)
