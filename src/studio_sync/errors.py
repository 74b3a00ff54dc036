"""Error hierarchy for the state synchronization engine.

Every error raised by this package derives from ``StudioSyncError`` so
callers at the outer surface can translate them in one place.

- ``CorruptPayloadError``: a snapshot cannot be parsed or upgraded.
- ``StoreWriteError``: the local store rejected a write (disk full,
  read-only file, lock timeout).  The store is left untouched.
- ``FetchError``: the remote backup service is unreachable or replied
  with an unexpected status.
- ``StoreUnavailableError``: the local store cannot be opened at all.
- ``RestoreInProgressError``: a restore was requested while another one
  still holds the restore guard.
"""


class StudioSyncError(Exception):
    """Base class for all engine errors."""


class CorruptPayloadError(StudioSyncError):
    """Raised when a snapshot payload cannot be parsed."""


class StoreWriteError(StudioSyncError):
    """Raised when the local store cannot be overwritten."""


class FetchError(StudioSyncError):
    """Raised when the remote backup cannot be reached or read."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreUnavailableError(StudioSyncError):
    """Raised when the local store fails to initialize."""


class RestoreInProgressError(StudioSyncError):
    """Raised when a restore is started while another is running."""
