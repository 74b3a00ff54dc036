"""Composition root of the synchronization engine.

``Studio`` builds every component around one local store in two phases:
the constructor wires the objects (no I/O), ``open()`` opens the store
and loads persisted state.  Components receive their dependencies
through their constructors; none of them reaches for a global.

Remote backup components (client, monitor, uploader) exist only when a
backup URL is configured.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .backup.cache import BackupCache
from .backup.client import RemoteBackupClient
from .backup.models import Decision
from .backup.monitor import BackupSyncMonitor
from .backup.resolver import ConflictResolver
from .backup.uploader import BackupUploader
from .config import Config
from .core.async_utils import run_sync
from .file_handler import read_file_async, write_file_async
from .history.repository import HistoryRepository
from .history.store import SnapshotHistory
from .restore.guard import RestoreGuard
from .restore.pipeline import RestoreOrigin, RestorePipeline, RestoreResult
from .restore.signals import ReloadSignal, StoreReplaced
from .snapshot.serializer import StateSerializer
from .snapshot.versions import NamedVersionStore
from .store.local import LocalStore

logger = logging.getLogger(__name__)


class Studio:
    """All engine components bound to one local store.

    Args:
        config: Validated runtime config.
        backup_client: Optional client override (tests inject fakes);
            built from *config* when omitted and a backup URL is set.
    """

    def __init__(
        self,
        config: Config,
        backup_client: RemoteBackupClient | None = None,
    ) -> None:
        self.config = config
        self.store = LocalStore(config.db_path)
        self.guard = RestoreGuard()
        self.reload_signal = ReloadSignal()
        self.serializer = StateSerializer(self.store)
        self.history = SnapshotHistory(
            HistoryRepository(self.store), self.guard, config.history_size
        )
        self.pipeline = RestorePipeline(
            self.serializer, self.history, self.guard, self.reload_signal
        )
        self.versions = NamedVersionStore(self.store)
        self.resolver = ConflictResolver(self.pipeline)

        if backup_client is None and config.backup_enabled:
            backup_client = RemoteBackupClient(config, BackupCache(config.state_dir))
        self.backup_client = backup_client
        self.monitor: BackupSyncMonitor | None = None
        self.uploader: BackupUploader | None = None
        if backup_client is not None:
            self.monitor = BackupSyncMonitor(backup_client, self.store, self.resolver)
            self.uploader = BackupUploader(
                backup_client, self.serializer, config.debounce_seconds
            )

    @property
    def backup_enabled(self) -> bool:
        return self.backup_client is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the store and load history and uploader state.

        Raises:
            StoreUnavailableError: If the store cannot be opened.  The only
                recovery is an explicit ``wipe_store()``.
        """
        await run_sync(self.store.open)
        await self.history.init()
        if self.uploader is not None:
            await self.uploader.init()
        logger.info(
            "Studio opened: %s (history %d/%d, backup %s)",
            self.store.db_path,
            self.history.state.undo_depth,
            self.history.max_size,
            "enabled" if self.backup_enabled else "not configured",
        )

    async def close(self) -> None:
        if self.uploader is not None:
            await self.uploader.close()
        logger.info("Studio closed")

    async def wipe_store(self) -> None:
        """Destroy all local data and start from an empty store.

        Destructive; only ever called on an explicit user request.
        """
        with self.guard.hold("wipe"):
            await run_sync(self.store.wipe)
            await self.history.clear()
            self.resolver.dismiss()
            self.reload_signal.emit(StoreReplaced(origin="wipe", latest_timestamp=0))

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    async def checkpoint(self) -> bool:
        """Record the current state before an undo-eligible edit."""
        return await self.pipeline.checkpoint()

    def notify_edited(self) -> None:
        """Tell the uploader that local content changed."""
        if self.uploader is not None:
            self.uploader.trigger()

    async def undo(self) -> RestoreResult:
        result = await self.pipeline.undo()
        if result.restored:
            self.notify_edited()
        return result

    async def redo(self) -> RestoreResult:
        result = await self.pipeline.redo()
        if result.restored:
            self.notify_edited()
        return result

    # ------------------------------------------------------------------
    # Conflicts and remote restores
    # ------------------------------------------------------------------

    async def resolve_conflict(self, decision: Decision) -> RestoreResult | None:
        """Apply a human decision to the pending divergence.

        Keeping the local state schedules a push so the remote backup
        catches up.
        """
        decision = Decision(decision)
        result = await self.resolver.resolve(decision)
        if decision is Decision.KEEP_LOCAL:
            self.notify_edited()
        return result

    async def restore_server_backup(self, backup_id: str) -> RestoreResult:
        """Restore one of the daily snapshots stored on the server.

        Raises:
            ValueError: If backup is not configured or the backup is missing.
        """
        if self.backup_client is None:
            raise ValueError("Remote backup is not configured")
        content = await run_sync(self.backup_client.fetch_backup_content, backup_id)
        if content is None:
            raise ValueError(f"Backup '{backup_id}' not found on the server")
        return await self.pipeline.restore(content, RestoreOrigin.REMOTE_BACKUP)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def export_backup(self, path: str) -> tuple[Path, int]:
        """Write a snapshot of the whole store to an absolute *path*.

        Returns:
            Tuple of (resolved_path, bytes_written).
        """
        snapshot = await run_sync(self.serializer.capture)
        resolved, size = await write_file_async(path, snapshot)
        logger.info("Exported snapshot to %s (%d bytes)", resolved, size)
        return resolved, size

    async def import_backup(self, path: str) -> RestoreResult:
        """Replace the store with the snapshot file at *path*.

        The current state is checkpointed first, so the import can be
        undone.
        """
        content, encoding, resolved = await read_file_async(path)
        logger.info("Importing snapshot from %s (%s)", resolved, encoding)
        result = await self.pipeline.restore(content, RestoreOrigin.FILE_IMPORT)
        self.notify_edited()
        return result

    # ------------------------------------------------------------------
    # Named versions
    # ------------------------------------------------------------------

    async def restore_version(self, version_id: str) -> dict:
        """Put a named version of a book back, undoably.

        Returns:
            The restored book record.
        """
        with self.guard.hold("version restore"):
            async with self.history.transaction():
                await self.pipeline.record_current()
                book = await run_sync(self.versions.restore, version_id)
                latest = await run_sync(self.store.get_latest_update_timestamp)
                self.reload_signal.emit(
                    StoreReplaced(origin="version_restore", latest_timestamp=latest)
                )
        self.notify_edited()
        return book
