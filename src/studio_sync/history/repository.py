"""Persistence of the undo/redo stacks.

The stacks are stored as two records, ``undoStack`` and ``redoStack``,
in the store's ``history`` table.  That table is never part of a
snapshot, so a restore cannot overwrite the history used to undo it.
"""

from __future__ import annotations

import logging

from ..store.local import LocalStore

logger = logging.getLogger(__name__)

UNDO_KEY = "undoStack"
REDO_KEY = "redoStack"


class HistoryRepository:
    """Load and save both history stacks.

    Args:
        store: The opened local store.
    """

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    def load(self) -> tuple[list[str], list[str]]:
        """Return ``(undo, redo)``.  Missing or malformed entries load as empty."""
        return self._read(UNDO_KEY), self._read(REDO_KEY)

    def save(self, undo: list[str], redo: list[str]) -> None:
        """Persist both stacks in one transaction."""
        self.store.put_history({UNDO_KEY: list(undo), REDO_KEY: list(redo)})

    def _read(self, key: str) -> list[str]:
        value = self.store.get_history(key)
        if value is None:
            return []
        if not isinstance(value, list) or not all(
            isinstance(item, str) for item in value
        ):
            logger.warning("Ignoring malformed history entry '%s'", key)
            return []
        return value
