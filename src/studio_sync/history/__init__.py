"""Undo/redo history of full-state snapshots."""

from .models import HistoryState
from .repository import HistoryRepository
from .store import DEFAULT_MAX_SIZE, SnapshotHistory

__all__ = [
    "DEFAULT_MAX_SIZE",
    "HistoryRepository",
    "HistoryState",
    "SnapshotHistory",
]
