"""Store-replaced signal.

After a restore swaps the store's contents, no in-memory cache can be
trusted.  Every consumer that holds derived state subscribes here and
reloads itself from a cold read when the signal fires.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class StoreReplaced(BaseModel):
    """Payload of the store-replaced signal.

    Attributes:
        origin: Restore origin value (``undo``, ``redo``, ``remote_backup``,
            ``file_import``).
        latest_timestamp: Latest mutation timestamp after the restore.
    """

    origin: str
    latest_timestamp: int

    model_config = {"frozen": True}


Listener = Callable[[StoreReplaced], None]


class ReloadSignal:
    """Synchronous observer list for ``StoreReplaced`` events."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: StoreReplaced) -> None:
        """Notify every listener.

        The store has already been replaced when this runs, so a failing
        listener is logged and the remaining listeners still run.
        """
        logger.info(
            "Store replaced by %s restore; reloading %d consumer(s)",
            event.origin,
            len(self._listeners),
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Reload listener %r failed", listener)
