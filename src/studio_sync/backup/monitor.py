"""Backup sync monitor.

State machine::

    IDLE -> CHECKING -> UP_TO_DATE | DIVERGED | CHECK_FAILED

A check compares the content timestamp of the latest remote backup with
the latest local mutation timestamp.  Only a strictly newer remote
content timestamp is a divergence; a fresh backup of equal or older
content is not news, whatever its backup timestamp says.

The monitor never writes to the store.  A divergence is handed to the
conflict resolver, and the monitor returns to IDLE once it is decided.
Fetch failures end in CHECK_FAILED and are retried on the next scheduled
check; they are never raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging

from ..core.async_utils import run_sync
from ..errors import CorruptPayloadError, FetchError, StudioSyncError
from ..store.local import AUTO_BACKUP_ENABLED_KEY, LocalStore
from .client import BackupProvider
from .models import CheckResult, Divergence, MonitorState
from .resolver import ConflictResolver

logger = logging.getLogger(__name__)


class BackupSyncMonitor:
    """Detect remote backups newer than the local store.

    Args:
        provider: Remote backup provider.
        store: The local store (read only).
        resolver: Receives detected divergences.
    """

    def __init__(
        self,
        provider: BackupProvider,
        store: LocalStore,
        resolver: ConflictResolver,
    ) -> None:
        self.provider = provider
        self.store = store
        self.resolver = resolver
        self.state = MonitorState.IDLE
        self.last_result: CheckResult | None = None
        resolver.subscribe(self._on_pending_changed)

    def _on_pending_changed(self, pending: Divergence | None) -> None:
        if pending is None and self.state is MonitorState.DIVERGED:
            self.state = MonitorState.IDLE

    def _enabled(self) -> bool:
        return self.store.get_setting(AUTO_BACKUP_ENABLED_KEY, True) is not False

    async def check(self, force: bool = False) -> CheckResult:
        """Run one check.

        Skipped (``skipped=True``) while another check is running, while a
        divergence awaits a decision, or, unless *force*, while automatic
        backup is disabled in settings.

        Raises:
            StoreUnavailableError: If the local store cannot be read.
        """
        if self.state is MonitorState.CHECKING:
            return CheckResult(state=MonitorState.CHECKING, skipped=True)

        pending = self.resolver.pending
        if pending is not None:
            return CheckResult(
                state=MonitorState.DIVERGED,
                local_timestamp=pending.local_timestamp,
                remote_timestamp=pending.remote_timestamp,
                backup_timestamp=pending.backup_timestamp,
                skipped=True,
            )

        if not force and not await run_sync(self._enabled):
            logger.debug("Backup check skipped: automatic backup disabled")
            return CheckResult(state=self.state, skipped=True)

        self.state = MonitorState.CHECKING
        result: CheckResult | None = None
        try:
            result = await self._run_check(force)
        finally:
            self.state = result.state if result else MonitorState.IDLE
        self.last_result = result
        return result

    async def _run_check(self, force: bool) -> CheckResult:
        try:
            record = await run_sync(self.provider.fetch_latest, force)
        except (FetchError, CorruptPayloadError) as exc:
            logger.warning("Backup check failed, will retry: %s", exc)
            return CheckResult(state=MonitorState.CHECK_FAILED, error=str(exc))

        local_timestamp = await run_sync(self.store.get_latest_update_timestamp)

        if record is None:
            logger.debug("No remote backup to compare against")
            return CheckResult(
                state=MonitorState.UP_TO_DATE, local_timestamp=local_timestamp
            )

        result_fields = {
            "local_timestamp": local_timestamp,
            "remote_timestamp": record.content_timestamp,
            "backup_timestamp": record.backup_timestamp,
        }

        if record.content_timestamp <= local_timestamp:
            logger.debug(
                "Local state is current (local %d >= remote %d)",
                local_timestamp,
                record.content_timestamp,
            )
            return CheckResult(state=MonitorState.UP_TO_DATE, **result_fields)

        if self.resolver.is_declined(record.content_timestamp, record.backup_timestamp):
            logger.debug(
                "Remote backup %d was already declined", record.content_timestamp
            )
            return CheckResult(state=MonitorState.UP_TO_DATE, **result_fields)

        self.resolver.offer(
            Divergence(
                remote_snapshot=record.content,
                remote_timestamp=record.content_timestamp,
                local_timestamp=local_timestamp,
                backup_timestamp=record.backup_timestamp,
            )
        )
        return CheckResult(state=MonitorState.DIVERGED, **result_fields)

    async def run(
        self, interval: float, stop_event: asyncio.Event | None = None
    ) -> None:
        """Check every *interval* seconds until *stop_event* is set."""
        stop_event = stop_event or asyncio.Event()
        logger.info("Backup monitor started (every %.0fs)", interval)
        while not stop_event.is_set():
            try:
                await self.check()
            except StudioSyncError as exc:
                logger.error("Backup check aborted: %s", exc)
            except Exception:
                logger.exception("Unexpected error in backup check")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Backup monitor stopped")
