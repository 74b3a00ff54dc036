"""Conflict resolver: the human decision surface for a divergence.

A divergence stays pending until someone decides.  It is never resolved
automatically and never blocks editing.  The two decisions are:

- ``ADOPT_REMOTE``: restore the remote snapshot through the restore
  pipeline (origin ``remote_backup``), which checkpoints the local state
  first so the adoption itself can be undone.
- ``KEEP_LOCAL``: drop the divergence.  No state change, no history
  entry.  That exact backup is remembered and not offered again; any
  other newer backup is.

``diff_summary()`` helps the human choose; it never merges.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.async_utils import run_sync
from ..restore.pipeline import RestoreOrigin, RestorePipeline, RestoreResult
from ..snapshot.serializer import parse_payload
from .models import BookRef, Decision, DiffSummary, Divergence

logger = logging.getLogger(__name__)

Listener = Callable[[Divergence | None], None]


def _book_ref(record: dict) -> BookRef:
    return BookRef(
        id=str(record.get("id")),
        title=str(record.get("topic") or record.get("title") or record.get("id")),
        updated_at=int(record.get("updatedAt") or 0),
    )


def summarize_diff(local: dict, remote: dict) -> DiffSummary:
    """Compare two parsed payloads book by book."""
    local_books = {str(b["id"]): b for b in local["tables"]["books"]}
    remote_books = {str(b["id"]): b for b in remote["tables"]["books"]}

    def _newer(side: dict, other: dict) -> list[BookRef]:
        return [
            _book_ref(book)
            for book_id, book in side.items()
            if book_id in other
            and (book.get("updatedAt") or 0) > (other[book_id].get("updatedAt") or 0)
        ]

    return DiffSummary(
        local_book_count=len(local_books),
        remote_book_count=len(remote_books),
        local_doc_count=len(local["tables"]["documents"]),
        remote_doc_count=len(remote["tables"]["documents"]),
        books_only_in_local=[
            _book_ref(b) for i, b in local_books.items() if i not in remote_books
        ],
        books_only_in_remote=[
            _book_ref(b) for i, b in remote_books.items() if i not in local_books
        ],
        newer_in_local=_newer(local_books, remote_books),
        newer_in_remote=_newer(remote_books, local_books),
    )


class ConflictResolver:
    """Hold at most one pending divergence and apply the human decision.

    Args:
        pipeline: Restore pipeline used to adopt a remote snapshot.
    """

    def __init__(self, pipeline: RestorePipeline) -> None:
        self.pipeline = pipeline
        self._pending: Divergence | None = None
        self._listeners: list[Listener] = []
        # (content timestamp, backup timestamp) of the backup last declined
        self.declined_backup: tuple[int, int | None] | None = None

    @property
    def pending(self) -> Divergence | None:
        return self._pending

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* and call it at once with the pending divergence."""
        self._listeners.append(listener)
        listener(self._pending)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def is_declined(self, content_timestamp: int, backup_timestamp: int | None) -> bool:
        """True if this very backup was declined with ``KEEP_LOCAL``.

        Any other backup newer than the local store is offered again, even
        one older than the declined backup.
        """
        return self.declined_backup == (content_timestamp, backup_timestamp)

    def offer(self, divergence: Divergence) -> None:
        """Surface *divergence* for a decision, replacing any older one."""
        self._pending = divergence
        logger.info(
            "Remote backup is newer (remote %d > local %d); decision pending",
            divergence.remote_timestamp,
            divergence.local_timestamp,
        )
        self._notify()

    def dismiss(self) -> None:
        self._pending = None
        self._notify()

    async def resolve(self, decision: Decision) -> RestoreResult | None:
        """Apply *decision* to the pending divergence.

        The divergence is dismissed whether or not the restore succeeds.

        Returns:
            The restore result for ``ADOPT_REMOTE``, ``None`` for
            ``KEEP_LOCAL``.

        Raises:
            ValueError: If no divergence is pending.
        """
        decision = Decision(decision)
        divergence = self._pending
        if divergence is None:
            raise ValueError("No divergence is pending")

        try:
            if decision is Decision.ADOPT_REMOTE:
                logger.info("Adopting remote backup")
                return await self.pipeline.restore(
                    divergence.remote_snapshot, RestoreOrigin.REMOTE_BACKUP
                )
            logger.info("Keeping local state; remote backup declined")
            self.declined_backup = (
                divergence.remote_timestamp,
                divergence.backup_timestamp,
            )
            return None
        finally:
            self.dismiss()

    async def diff_summary(self) -> DiffSummary | None:
        """Compare the pending remote snapshot with the current local state."""
        divergence = self._pending
        if divergence is None:
            return None
        local = parse_payload(await run_sync(self.pipeline.serializer.capture))
        remote = parse_payload(divergence.remote_snapshot)
        return summarize_diff(local, remote)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._pending)
