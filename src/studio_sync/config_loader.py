"""Find, load and merge the YAML config files of a studio.

A project file under ``.studio_sync/`` wins over the user-level one in
``~/.config/studio_sync/``.  Files may pull others in with ``!include``
and refer to the environment with ``${VAR}``.

Usage:
    from studio_sync.config_loader import load_hierarchical_config

    config = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "STUDIO_SYNC_CONFIG"
PROJECT_DIR_NAME = ".studio_sync"

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` becomes the value of VAR, or ``""`` when unset.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * An unterminated ``${`` is kept as-is.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        default = match.group(2)
        return default if default is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    match obj:
        case str():
            return interpolate_env_vars(obj)
        case dict():
            return {key: _interpolate_recursive(val) for key, val in obj.items()}
        case list():
            return [_interpolate_recursive(item) for item in obj]
        case _:
            return obj


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass that understands ``!include``.

    The global ``yaml.SafeLoader`` is never touched.  Each load carries
    the chain of files being included so cycles can be reported.
    """


def _include_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> Any:
    """Load the file named by an ``!include`` node."""
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    chain: list[Path] = getattr(loader, "_include_stack", [])
    if target in chain:
        cycle = " -> ".join(str(p) for p in [*chain, target])
        raise ValueError(f"Circular include detected: {cycle}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(target, _include_stack=[*chain, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse *path* with ``ConfigLoader`` so nested includes resolve."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``STUDIO_SYNC_CONFIG`` env var (explicit single path)
        2. ``.studio_sync/config.yml`` in CWD (project-level)
        3. ``.studio_sync/config.yaml`` in CWD
        4. ``~/.config/studio_sync/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_DIR_NAME / "config.yml")
    candidates.append(cwd / PROJECT_DIR_NAME / "config.yaml")
    candidates.append(Path.home() / ".config" / "studio_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# studio-sync configuration
#
# Every value can also come from the environment:
#   STUDIO_DB_PATH, STUDIO_HISTORY_SIZE, STUDIO_BACKUP_URL,
#   STUDIO_BACKUP_API_KEY, STUDIO_APP_ID, STUDIO_CHECK_INTERVAL
#
# store:
#   db_path: .studio_sync/studio.db
#
# history:
#   size: 50
#
# backup:
#   url: https://backup.example.com/backup-api/api/v1
#   api_key: ${STUDIO_BACKUP_API_KEY}
#   app_id: ai-book-studio
#   check_interval: 300
#   max_daily_backups: 10
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Explicit path to create. Defaults to
            ``CWD / .studio_sync / config.yml``.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / PROJECT_DIR_NAME / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


def load_hierarchical_config() -> dict[str, Any]:
    """Load every discovered config file and merge them.

    A section (``store``, ``backup``, ...) from a higher-precedence file
    replaces the whole section from a lower one; sections are not merged
    key by key.  ``${VAR}`` references are expanded after the merge, so a
    project file may refer to secrets kept only in the environment.

    Returns an empty dict when no config files exist (zero-config).

    Raises:
        yaml.YAMLError: If a file is not valid YAML.
        ValueError, FileNotFoundError: On a bad ``!include``.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        match data:
            case dict():
                merged.update(data)
            case None:
                logger.debug("Config file %s is empty", path)
            case _:
                logger.warning(
                    "Config file %s has non-dict root (%s); skipping",
                    path,
                    type(data).__name__,
                )

    if not merged:
        logger.debug("No config values found; using zero-config defaults")
    return _interpolate_recursive(merged)
