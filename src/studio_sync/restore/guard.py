"""The restoring flag, modelled as an explicit context value.

A single ``RestoreGuard`` instance is handed to both the restore pipeline
and the snapshot history.  While it is held, history refuses new
captures, so a restore is never recorded as if it were a user edit.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator

from ..errors import RestoreInProgressError

logger = logging.getLogger(__name__)


class RestoreGuard:
    """Reentrancy guard for restore operations."""

    def __init__(self) -> None:
        self._active = False
        self._label: str | None = None

    @property
    def active(self) -> bool:
        """True only while an undo, redo or restore is running."""
        return self._active

    @contextlib.contextmanager
    def hold(self, label: str = "restore") -> Iterator[None]:
        """Set the flag for the duration of the block.

        The flag is cleared on every exit path.

        Raises:
            RestoreInProgressError: If the guard is already held.
        """
        if self._active:
            raise RestoreInProgressError(
                f"Cannot start {label}: {self._label} is still running"
            )
        self._active = True
        self._label = label
        logger.debug("Restore guard acquired (%s)", label)
        try:
            yield
        finally:
            self._active = False
            self._label = None
            logger.debug("Restore guard released (%s)", label)
