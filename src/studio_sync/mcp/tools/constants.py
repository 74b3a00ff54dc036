"""Shared constants for MCP tool handlers."""

# Permission names used to filter tools via --permissions-file.
HISTORY_VIEW = "HISTORY_VIEW"
HISTORY_MODIFY = "HISTORY_MODIFY"
BACKUP_VIEW = "BACKUP_VIEW"
BACKUP_MODIFY = "BACKUP_MODIFY"
CONFLICT_RESOLVE = "CONFLICT_RESOLVE"
SNAPSHOT_EXPORT = "SNAPSHOT_EXPORT"
SNAPSHOT_IMPORT = "SNAPSHOT_IMPORT"
VERSION_VIEW = "VERSION_VIEW"
VERSION_MODIFY = "VERSION_MODIFY"
STORE_ADMIN = "STORE_ADMIN"

ALL_PERMISSIONS = frozenset(
    {
        HISTORY_VIEW,
        HISTORY_MODIFY,
        BACKUP_VIEW,
        BACKUP_MODIFY,
        CONFLICT_RESOLVE,
        SNAPSHOT_EXPORT,
        SNAPSHOT_IMPORT,
        VERSION_VIEW,
        VERSION_MODIFY,
        STORE_ADMIN,
    }
)

# Corrective action when a backup tool runs without a configured provider.
BACKUP_NOT_CONFIGURED_ACTION = (
    "Set STUDIO_BACKUP_URL and STUDIO_BACKUP_API_KEY (or the backup section "
    "of .studio_sync/config.yml) and restart the server."
)
