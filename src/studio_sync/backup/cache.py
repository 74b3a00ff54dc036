"""Local cache of the latest remote backup.

The backup API answers ``GET /latest`` with an ETag.  The cache keeps
that ETag together with the downloaded content and its Last-Modified
value, so an unchanged backup costs one ``304 Not Modified`` round trip.

The cache is a single JSON file (``backup_cache.json``) in the state
directory.  ``save()`` writes to a temp file then calls ``os.replace()``
so readers never see partial data.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

CACHE_FILENAME = "backup_cache.json"


class BackupCache:
    """Load, save and clear the cached latest backup.

    Args:
        state_dir: Directory holding the cache file.
    """

    def __init__(self, state_dir: Path | str) -> None:
        self._state_dir = Path(state_dir)

    @property
    def path(self) -> Path:
        return self._state_dir / CACHE_FILENAME

    def load(self) -> dict:
        """Return the cached entry.

        Returns:
            A dict with ``etag``, ``content`` and ``last_modified`` keys,
            each ``None`` when unknown.  An unreadable file is treated as
            an empty cache.
        """
        empty = {"etag": None, "content": None, "last_modified": None}
        if not self.path.exists():
            return empty
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable backup cache %s: %s", self.path, exc)
            return empty
        if not isinstance(data, dict):
            return empty
        return {key: data.get(key) for key in empty}

    def save(
        self, etag: str, content: str, last_modified: str | None = None
    ) -> None:
        """Persist the cache entry atomically."""
        self._state_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self._state_dir), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(
                    {
                        "etag": etag,
                        "content": content,
                        "last_modified": last_modified,
                    },
                    fh,
                )
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def clear(self) -> None:
        """Forget the cached backup.  No-op if there is none."""
        self.path.unlink(missing_ok=True)
