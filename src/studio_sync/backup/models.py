"""Pydantic models for remote backup synchronization.

Defines the data contracts shared by the backup modules:

- ``BackupRecord``: The latest remote backup and its two timestamps.
- ``Divergence``: A remote backup strictly newer than the local store.
- ``MonitorState``: States of the backup sync monitor.
- ``CheckResult``: Outcome of one monitor check.
- ``Decision``: The two ways a divergence can be resolved.
- ``UploadStatus`` / ``BackupStatus``: Published state of the uploader.
- ``ServerBackup``: One daily snapshot stored on the server.
- ``DiffSummary``: Informational comparison of local and remote content.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class BackupRecord(BaseModel):
    """The latest remote backup.

    Attributes:
        content: The backed-up snapshot payload.
        content_timestamp: Epoch ms when the content was last mutated.
        backup_timestamp: Epoch ms when the backup file was written.
    """

    content: str
    content_timestamp: int
    backup_timestamp: int

    model_config = {"frozen": True}


class Divergence(BaseModel):
    """A remote backup whose content is newer than the local store.

    Attributes:
        remote_snapshot: Snapshot payload of the remote backup.
        remote_timestamp: Content timestamp of the remote backup.
        local_timestamp: Latest local mutation timestamp at detection.
        backup_timestamp: When the remote backup was written.
    """

    remote_snapshot: str
    remote_timestamp: int
    local_timestamp: int
    backup_timestamp: int | None = None

    model_config = {"frozen": True}


class MonitorState(str, Enum):
    """States of the backup sync monitor."""

    IDLE = "idle"
    CHECKING = "checking"
    UP_TO_DATE = "up_to_date"
    DIVERGED = "diverged"
    CHECK_FAILED = "check_failed"


class CheckResult(BaseModel):
    """Outcome of a single backup check.

    Attributes:
        state: State the monitor reached.
        local_timestamp: Local latest mutation timestamp, if read.
        remote_timestamp: Remote content timestamp, if a backup exists.
        backup_timestamp: Remote backup write timestamp, if a backup exists.
        skipped: True when the check did not run (disabled, busy, or a
            divergence is already pending).
        error: Failure message for ``CHECK_FAILED``.
    """

    state: MonitorState
    local_timestamp: int | None = None
    remote_timestamp: int | None = None
    backup_timestamp: int | None = None
    skipped: bool = False
    error: str | None = None

    model_config = {"frozen": True}


class Decision(str, Enum):
    """Human decision on a divergence."""

    ADOPT_REMOTE = "adopt_remote"
    KEEP_LOCAL = "keep_local"


class UploadStatus(str, Enum):
    """States of the backup uploader."""

    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"
    DISABLED = "disabled"


class BackupStatus(BaseModel):
    """Published uploader state.

    Attributes:
        status: Current upload status.
        last_backup_timestamp: Epoch ms of the last successful push.
    """

    status: UploadStatus = UploadStatus.IDLE
    last_backup_timestamp: int | None = None

    model_config = {"frozen": True}


class ServerBackup(BaseModel):
    """A daily snapshot stored on the backup server.

    Attributes:
        id: Server filename, e.g. ``daily_2024-05-01.json``.
        created_at: Modification time reported by the server.
        size: Size in bytes.
    """

    id: str
    created_at: str
    size: int = 0

    model_config = {"frozen": True}


class BookRef(BaseModel):
    """Identifies a book in a ``DiffSummary``."""

    id: str
    title: str
    updated_at: int = 0

    model_config = {"frozen": True}


class DiffSummary(BaseModel):
    """Comparison of local and remote content.

    Informational only: it helps a human choose between the two sides and
    is never used to merge them.
    """

    local_book_count: int
    remote_book_count: int
    local_doc_count: int
    remote_doc_count: int
    books_only_in_local: list[BookRef] = []
    books_only_in_remote: list[BookRef] = []
    newer_in_local: list[BookRef] = []
    newer_in_remote: list[BookRef] = []

    model_config = {"frozen": True}
