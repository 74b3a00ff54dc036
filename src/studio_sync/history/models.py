"""Published state of the undo/redo history."""

from __future__ import annotations

from pydantic import BaseModel


class HistoryState(BaseModel):
    """What the presentation layer needs to enable undo/redo controls.

    Attributes:
        can_undo: True when the undo stack is non-empty.
        can_redo: True when the redo stack is non-empty.
        undo_depth: Number of entries on the undo stack.
        redo_depth: Number of entries on the redo stack.
    """

    can_undo: bool = False
    can_redo: bool = False
    undo_depth: int = 0
    redo_depth: int = 0

    model_config = {"frozen": True}
