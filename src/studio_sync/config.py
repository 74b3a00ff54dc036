"""Runtime configuration for the studio sync engine.

Reads store, history and backup settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    STUDIO_DB_PATH: Path of the embedded database (default: .studio_sync/studio.db)
    STUDIO_STATE_DIR: Directory for engine state files (default: .studio_sync)
    STUDIO_HISTORY_SIZE: Undo/redo capacity per stack (default: 50)
    STUDIO_BACKUP_URL: Base URL of the backup API (optional, disables backup when unset)
    STUDIO_BACKUP_API_KEY: API key for the backup API (required with a URL)
    STUDIO_APP_ID: Application id under which backups are stored
    STUDIO_CHECK_INTERVAL: Seconds between remote backup checks (default: 300)
    STUDIO_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".studio_sync"
DEFAULT_DB_NAME = "studio.db"
DEFAULT_APP_ID = "ai-book-studio"
DEFAULT_HISTORY_SIZE = 50
DEFAULT_CHECK_INTERVAL = 300.0
MAX_HISTORY_SIZE = 1000


@dataclass
class Config:
    db_path: str
    state_dir: str = DEFAULT_STATE_DIR
    history_size: int = DEFAULT_HISTORY_SIZE
    backup_url: str | None = None
    backup_api_key: str | None = None
    app_id: str = DEFAULT_APP_ID
    check_interval: float = DEFAULT_CHECK_INTERVAL
    debounce_seconds: float = 1.5
    max_daily_backups: int = 10
    debug: bool = False

    @property
    def backup_enabled(self) -> bool:
        """True when a remote backup endpoint is configured."""
        return bool(self.backup_url)


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the history size is out of range, the backup URL
            is malformed, or a backup URL is given without an API key.
    """
    config.db_path = config.db_path.strip()
    if not config.db_path:
        raise ValueError(
            "Database path cannot be empty. Set STUDIO_DB_PATH environment variable."
        )

    if not (1 <= config.history_size <= MAX_HISTORY_SIZE):
        raise ValueError(
            f"Invalid history size {config.history_size}: must be between 1 and {MAX_HISTORY_SIZE}"
        )

    if config.check_interval <= 0:
        raise ValueError(
            f"Invalid check interval {config.check_interval}: must be positive"
        )

    if not config.backup_url:
        return

    config.backup_url = config.backup_url.strip()
    if not config.backup_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid backup URL '{config.backup_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.backup_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid backup URL '{config.backup_url}': URL must include a hostname"
        )

    config.backup_url = config.backup_url.removesuffix("/")

    if not (config.backup_api_key or "").strip():
        raise ValueError(
            "Backup API key cannot be empty when a backup URL is set. "
            "Set STUDIO_BACKUP_API_KEY environment variable."
        )

    if config.backup_url.startswith("http://"):
        logger.warning(
            "WARNING: backup URL uses plain HTTP; snapshots travel unencrypted."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, cast: type, bounds: str):
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be {bounds}"
        ) from None


def load_config(
    db_path: str | None = None,
    backup_url: str | None = None,
    backup_api_key: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        db_path: Override database path.
        backup_url: Override backup API base URL.
        backup_api_key: Override backup API key.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file
            (see ``config_schema.flatten_for_runtime``).

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If any value is invalid after checking all sources.
    """
    fb = yaml_fallbacks or {}

    state_dir = (
        os.getenv("STUDIO_STATE_DIR")
        or fb.get("state_dir")
        or DEFAULT_STATE_DIR
    )
    final_db_path = (
        db_path
        or os.getenv("STUDIO_DB_PATH")
        or fb.get("db_path")
        or os.path.join(state_dir, DEFAULT_DB_NAME)
    )

    final_backup_url = (
        backup_url or os.getenv("STUDIO_BACKUP_URL") or fb.get("backup_url")
    )
    final_api_key = (
        backup_api_key
        or os.getenv("STUDIO_BACKUP_API_KEY")
        or fb.get("backup_api_key")
    )
    app_id = os.getenv("STUDIO_APP_ID") or fb.get("app_id") or DEFAULT_APP_ID

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("STUDIO_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    history_size = _get_number_env(
        "STUDIO_HISTORY_SIZE", int, f"a number between 1 and {MAX_HISTORY_SIZE}"
    )
    if history_size is None:
        history_size = int(fb.get("history_size", DEFAULT_HISTORY_SIZE))

    check_interval = _get_number_env(
        "STUDIO_CHECK_INTERVAL", float, "a positive number of seconds"
    )
    if check_interval is None:
        check_interval = float(
            fb.get("check_interval", DEFAULT_CHECK_INTERVAL)
        )

    config = Config(
        db_path=final_db_path,
        state_dir=state_dir,
        history_size=history_size,
        backup_url=final_backup_url,
        backup_api_key=final_api_key,
        app_id=app_id,
        check_interval=check_interval,
        debounce_seconds=float(fb.get("debounce_seconds", 1.5)),
        max_daily_backups=int(fb.get("max_daily_backups", 10)),
        debug=final_debug,
    )

    validate_config(config)

    return config
