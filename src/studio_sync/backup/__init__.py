"""Remote backup: client, divergence monitor, conflict resolver, uploader."""

from .cache import BackupCache
from .client import BackupProvider, RemoteBackupClient
from .models import (
    BackupRecord,
    BackupStatus,
    CheckResult,
    Decision,
    DiffSummary,
    Divergence,
    MonitorState,
    ServerBackup,
    UploadStatus,
)
from .monitor import BackupSyncMonitor
from .resolver import ConflictResolver
from .uploader import BackupUploader

__all__ = [
    "BackupCache",
    "BackupProvider",
    "BackupRecord",
    "BackupStatus",
    "BackupSyncMonitor",
    "BackupUploader",
    "CheckResult",
    "ConflictResolver",
    "Decision",
    "DiffSummary",
    "Divergence",
    "MonitorState",
    "RemoteBackupClient",
    "ServerBackup",
    "UploadStatus",
]
