"""Schema of ``.studio_sync/config.yml``.

The YAML is optional and every key in it has a default, so an empty or
missing file validates to ``UnifiedConfig()``.  Sections mirror the parts
of the engine they configure::

    store:    {db_path, state_dir}
    history:  {size}
    backup:   {url, api_key, app_id, check_interval, debounce_seconds,
               max_daily_backups}
    logging:  {level, file}

The YAML sits below env vars and CLI flags; ``flatten_for_runtime()``
produces the fallback dict ``config.load_config()`` consults last.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class StoreConfig(BaseModel):
    """Where the SQLite database lives.  Unset fields fall back to
    ``STUDIO_DB_PATH`` / ``STUDIO_STATE_DIR`` or the built-in defaults."""

    db_path: str | None = Field(
        default=None, description="Path of the SQLite database file"
    )
    state_dir: str | None = Field(
        default=None,
        description="Directory for engine state (backup cache, default db)",
    )

    model_config = {"frozen": True}


class HistoryConfig(BaseModel):
    """Undo/redo history settings."""

    size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum snapshots kept per stack (1-1000)",
    )

    model_config = {"frozen": True}


class BackupConfig(BaseModel):
    """Remote backup service settings."""

    url: str | None = Field(default=None, description="Backup API base URL")
    api_key: str | None = Field(default=None, description="Backup API key")
    app_id: str | None = Field(
        default=None, description="Application id for stored backups"
    )
    check_interval: float = Field(
        default=300.0,
        gt=0,
        description="Seconds between remote backup checks",
    )
    debounce_seconds: float = Field(
        default=1.5,
        ge=0,
        description="Quiet period before an automatic backup push",
    )
    max_daily_backups: int = Field(
        default=10,
        ge=1,
        le=365,
        description="Daily snapshots retained on the server (1-365)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """The ``logging`` section.  *file* is written in addition to the
    destination chosen on the command line."""

    level: str = Field(default="INFO", description="Log level name")
    file: str | None = Field(default=None, description="Extra log file path")

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LEVELS:
            raise ValueError(
                f"unknown log level {value!r}; use one of {', '.join(_LEVELS)}"
            )
        return level

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """The whole YAML file, one attribute per section."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Validate the merged YAML dict; an empty dict gives all defaults.

    Raises:
        pydantic.ValidationError: On unknown value types or out-of-range
            numbers.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def flatten_for_runtime(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the sectioned config into ``load_config`` fallback keys.

    ``None`` values are dropped so they never shadow a built-in default.

    Args:
        unified: The unified config produced by ``build_config()``.

    Returns:
        Dict keyed by ``Config`` field names.
    """
    flat = {
        "db_path": unified.store.db_path,
        "state_dir": unified.store.state_dir,
        "history_size": unified.history.size,
        "backup_url": unified.backup.url,
        "backup_api_key": unified.backup.api_key,
        "app_id": unified.backup.app_id,
        "check_interval": unified.backup.check_interval,
        "debounce_seconds": unified.backup.debounce_seconds,
        "max_daily_backups": unified.backup.max_daily_backups,
    }
    return {k: v for k, v in flat.items() if v is not None}
