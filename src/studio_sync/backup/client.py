"""HTTP client for the remote backup API.

Endpoints, relative to ``{backup_url}/apps/{app_id}/backups``:

* ``POST ""``           -- multipart upload of one file (``file`` field).
* ``GET /latest``       -- metadata of ``latest.json`` (ETag aware); the
  body carries a ``download_url`` for the content.
* ``GET /list``         -- ``{"backups": [{filename, modified, size}]}``.
* ``GET /{filename}``   -- raw content of one stored file.
* ``DELETE /{filename}``

Every request sends the ``X-API-Key`` header.  Transport errors and
unexpected statuses raise ``FetchError``; a 404 on read endpoints means
"no backup yet" and is not an error.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Protocol

import requests

from ..config import Config
from ..errors import FetchError
from ..snapshot.serializer import Snapshot, content_timestamp, parse_payload
from .cache import BackupCache
from .models import BackupRecord, ServerBackup

logger = logging.getLogger(__name__)

LATEST_FILENAME = "latest.json"
DAILY_PREFIX = "daily_"
_TIMEOUT = (10, 60)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class BackupProvider(Protocol):
    """The two remote operations the sync engine relies on."""

    def fetch_latest(self, force: bool = False) -> BackupRecord | None:
        """Return the latest backup, or ``None`` when there is none.

        Raises:
            FetchError: If the provider cannot be reached.
        """
        ...  # pragma: no cover

    def push(self, snapshot: Snapshot, content_timestamp: int) -> None:
        """Overwrite the latest backup with *snapshot*."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_timestamp(value: str | None) -> int | None:
    """Parse an HTTP date or ISO 8601 string into epoch milliseconds."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable timestamp %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def daily_filename(day: datetime | None = None) -> str:
    """Return the daily snapshot filename for *day* (UTC today by default)."""
    day = day or datetime.now(timezone.utc)
    return f"{DAILY_PREFIX}{day.date().isoformat()}.json"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RemoteBackupClient:
    """Backup API client.

    Args:
        config: Runtime config; ``backup_url`` and ``backup_api_key`` must
            be set.
        cache: ETag cache for ``fetch_latest()``.
    """

    def __init__(self, config: Config, cache: BackupCache) -> None:
        if not config.backup_url:
            raise ValueError("RemoteBackupClient requires a backup URL")
        self.config = config
        self.cache = cache
        self._thread_local = threading.local()
        self.backups_url = (
            f"{config.backup_url.rstrip('/')}/apps/{config.app_id}/backups"
        )

    @property
    def session(self) -> requests.Session:
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            session = requests.Session()
            session.headers["X-API-Key"] = self.config.backup_api_key or ""
            self._thread_local.session = session
        return self._thread_local.session

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self._get_session().request(
                method, url, timeout=_TIMEOUT, **kwargs
            )
        except requests.RequestException as exc:
            raise FetchError(
                f"Could not connect to the backup server: {exc}"
            ) from exc

    @staticmethod
    def _check(response: requests.Response, action: str) -> None:
        if not response.ok:
            raise FetchError(
                f"Failed to {action}: {response.status_code} "
                f"{response.reason} - {response.text[:200]}",
                status_code=response.status_code,
            )

    def _file_url(self, filename: str) -> str:
        return f"{self.backups_url}/{requests.utils.quote(filename, safe='')}"

    # ------------------------------------------------------------------
    # Latest backup
    # ------------------------------------------------------------------

    def fetch_latest(self, force: bool = False) -> BackupRecord | None:
        """Fetch the latest backup, using the ETag cache unless *force*.

        Returns:
            The backup, or ``None`` when the server has no backup or the
            backup holds no books and no documents.

        Raises:
            FetchError: On transport errors or unexpected statuses.
            CorruptPayloadError: If the backup content cannot be parsed.
        """
        cached = self.cache.load()
        headers = {}
        if not force and cached["etag"] and cached["content"]:
            headers["If-None-Match"] = cached["etag"]

        response = self._request(
            "GET",
            f"{self.backups_url}/latest",
            params={"t": int(time.time() * 1000)},
            headers=headers,
        )

        if response.status_code == 304:
            logger.debug("Latest backup not modified; using cache")
            return self._record(cached["content"], cached["last_modified"])

        if response.status_code == 404:
            logger.debug("No remote backup found; clearing cache")
            self.cache.clear()
            return None

        self._check(response, "fetch backup metadata")
        try:
            metadata = response.json()
        except ValueError as exc:
            raise FetchError("Backup metadata is not valid JSON") from exc
        download_url = metadata.get("download_url") if isinstance(metadata, dict) else None
        if not download_url:
            raise FetchError("Backup metadata is missing the download_url")

        content_response = self._request("GET", download_url)
        self._check(content_response, "download backup content")
        content = content_response.text

        etag = response.headers.get("ETag")
        last_modified = response.headers.get("Last-Modified") or metadata.get("modified")
        if etag:
            self.cache.save(etag, content, last_modified)

        return self._record(content, last_modified)

    def _record(
        self, content: str | None, last_modified: str | None
    ) -> BackupRecord | None:
        if not content:
            return None
        data = parse_payload(content)
        if not data["tables"]["books"] and not data["tables"]["documents"]:
            return None
        content_ts = content_timestamp(data)
        backup_ts = parse_timestamp(last_modified) or content_ts
        return BackupRecord(
            content=content,
            content_timestamp=content_ts,
            backup_timestamp=backup_ts,
        )

    def push(self, snapshot: Snapshot, content_timestamp: int | None = None) -> None:
        """Upload *snapshot* as ``latest.json``, replacing the previous one."""
        self._upload(LATEST_FILENAME, snapshot)
        logger.info(
            "Pushed latest backup (%d bytes, content timestamp %s)",
            len(snapshot),
            content_timestamp,
        )

    def _upload(self, filename: str, snapshot: Snapshot) -> None:
        response = self._request(
            "POST",
            self.backups_url,
            files={
                "file": (filename, snapshot.encode("utf-8"), "application/json")
            },
        )
        self._check(response, f"upload {filename}")

    # ------------------------------------------------------------------
    # Daily snapshots
    # ------------------------------------------------------------------

    def _list_raw(self) -> list[dict]:
        response = self._request("GET", f"{self.backups_url}/list")
        if response.status_code == 404:
            return []
        self._check(response, "list backups")
        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError("Backup list is not valid JSON") from exc
        backups = data.get("backups") if isinstance(data, dict) else None
        return [b for b in backups or [] if isinstance(b, dict) and b.get("filename")]

    def list_backups(self) -> list[ServerBackup]:
        """Return the daily snapshots on the server, newest first."""
        backups = [
            ServerBackup(
                id=item["filename"],
                created_at=str(item.get("modified") or ""),
                size=int(item.get("size") or 0),
            )
            for item in self._list_raw()
            if item["filename"].startswith(DAILY_PREFIX)
        ]
        backups.sort(
            key=lambda b: parse_timestamp(b.created_at) or 0, reverse=True
        )
        return backups

    def upload_daily_snapshot(
        self, snapshot: Snapshot, day: datetime | None = None
    ) -> str | None:
        """Store today's daily snapshot if absent, then prune old ones.

        Best-effort: failures are logged and never raised.

        Returns:
            The filename uploaded, or ``None`` if nothing was uploaded.
        """
        filename = daily_filename(day)
        uploaded = None
        try:
            existing = self.list_backups()
            if not any(b.id == filename for b in existing):
                self._upload(filename, snapshot)
                uploaded = filename
                logger.info("Created daily snapshot %s", filename)

            keep = self.config.max_daily_backups - (1 if uploaded else 0)
            for backup in existing[max(keep, 0):]:
                try:
                    self.delete_backup(backup.id)
                except FetchError as exc:
                    logger.warning("Failed to delete old snapshot %s: %s", backup.id, exc)
        except FetchError as exc:
            logger.warning("Failed to create daily snapshot: %s", exc)
        return uploaded

    def fetch_backup_content(self, backup_id: str) -> str | None:
        """Return the content of a stored backup, or ``None`` if missing."""
        response = self._request("GET", self._file_url(backup_id))
        if response.status_code == 404:
            return None
        self._check(response, f"fetch backup {backup_id}")
        return response.text

    def delete_backup(self, backup_id: str) -> None:
        response = self._request("DELETE", self._file_url(backup_id))
        self._check(response, f"delete backup {backup_id}")
        logger.debug("Deleted backup %s", backup_id)
