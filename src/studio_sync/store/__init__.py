"""Local content store."""

from .local import (
    AUTO_BACKUP_ENABLED_KEY,
    CONTENT_TABLES,
    LAST_BACKUP_TIMESTAMP_KEY,
    READER_SETTINGS_KEY,
    LocalStore,
)

__all__ = [
    "AUTO_BACKUP_ENABLED_KEY",
    "CONTENT_TABLES",
    "LAST_BACKUP_TIMESTAMP_KEY",
    "READER_SETTINGS_KEY",
    "LocalStore",
]
