"""Tests for backup/client.py and backup/cache.py.

The HTTP layer is mocked at the thread-local requests.Session.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import make_book, make_document, make_payload
from studio_sync.backup.cache import CACHE_FILENAME, BackupCache
from studio_sync.backup.client import (
    RemoteBackupClient,
    daily_filename,
    parse_timestamp,
)
from studio_sync.errors import CorruptPayloadError, FetchError

LAST_MODIFIED = "Wed, 01 May 2024 12:00:00 GMT"
LAST_MODIFIED_MS = 1714564800000

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _response(status_code=200, json_data=None, text="", headers=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    resp.reason = "OK" if resp.ok else "Error"
    resp.text = text
    resp.headers = headers or {}
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp


@pytest.fixture
def cache(tmp_path):
    return BackupCache(tmp_path / "state")


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(backup_config, cache, session):
    c = RemoteBackupClient(backup_config, cache)
    with patch.object(c, "_get_session", return_value=session):
        yield c


REMOTE = make_payload(
    books=[make_book("b1", 1000)], documents=[make_document("d1", "b1", 1500)]
)
BASE = "https://backup.example.com/apps/test-app/backups"


# ---------------------------------------------------------------------------
# Helpers under test
# ---------------------------------------------------------------------------


class TestParseTimestamp:
    def test_http_date(self):
        assert parse_timestamp(LAST_MODIFIED) == LAST_MODIFIED_MS

    def test_iso_date(self):
        assert parse_timestamp("2024-05-01T12:00:00Z") == LAST_MODIFIED_MS

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2024-05-01T12:00:00") == LAST_MODIFIED_MS

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None


def test_daily_filename():
    day = datetime(2024, 5, 1, 23, 59, tzinfo=timezone.utc)
    assert daily_filename(day) == "daily_2024-05-01.json"


# ---------------------------------------------------------------------------
# BackupCache
# ---------------------------------------------------------------------------


class TestBackupCache:
    def test_empty_when_missing(self, cache):
        assert cache.load() == {"etag": None, "content": None, "last_modified": None}

    def test_save_and_load(self, cache):
        cache.save('"abc"', REMOTE, LAST_MODIFIED)
        assert cache.path.name == CACHE_FILENAME
        assert cache.load() == {
            "etag": '"abc"',
            "content": REMOTE,
            "last_modified": LAST_MODIFIED,
        }

    def test_no_temp_files_left(self, cache):
        cache.save('"abc"', REMOTE)
        assert [p.name for p in cache.path.parent.iterdir()] == [CACHE_FILENAME]

    def test_unreadable_file_is_empty(self, cache):
        cache.path.parent.mkdir(parents=True)
        cache.path.write_text("{truncated")
        assert cache.load()["etag"] is None

    def test_clear(self, cache):
        cache.save('"abc"', REMOTE)
        cache.clear()
        cache.clear()
        assert not cache.path.exists()


# ---------------------------------------------------------------------------
# RemoteBackupClient
# ---------------------------------------------------------------------------


class TestClientSetup:
    def test_requires_url(self, config, cache):
        with pytest.raises(ValueError, match="backup URL"):
            RemoteBackupClient(config, cache)

    def test_session_sends_api_key(self, backup_config, cache):
        c = RemoteBackupClient(backup_config, cache)
        assert c.session.headers["X-API-Key"] == "secret-key"
        assert c.session is c.session

    def test_backups_url(self, client):
        assert client.backups_url == BASE


class TestFetchLatest:
    def test_downloads_and_caches(self, client, session, cache):
        session.request.side_effect = [
            _response(
                json_data={"download_url": "https://cdn.example.com/latest.json"},
                headers={"ETag": '"v1"', "Last-Modified": LAST_MODIFIED},
            ),
            _response(text=REMOTE),
        ]

        record = client.fetch_latest()

        assert record.content == REMOTE
        assert record.content_timestamp == 1500
        assert record.backup_timestamp == LAST_MODIFIED_MS
        assert cache.load()["etag"] == '"v1"'
        first_call = session.request.call_args_list[0]
        assert first_call.args == ("GET", f"{BASE}/latest")
        assert first_call.kwargs["timeout"] == (10, 60)
        assert session.request.call_args_list[1].args == (
            "GET",
            "https://cdn.example.com/latest.json",
        )

    def test_not_modified_uses_cache(self, client, session, cache):
        cache.save('"v1"', REMOTE, LAST_MODIFIED)
        session.request.return_value = _response(status_code=304)

        record = client.fetch_latest()

        assert record.content == REMOTE
        assert session.request.call_count == 1
        headers = session.request.call_args.kwargs["headers"]
        assert headers == {"If-None-Match": '"v1"'}

    def test_force_skips_etag(self, client, session, cache):
        cache.save('"v1"', REMOTE, LAST_MODIFIED)
        session.request.side_effect = [
            _response(json_data={"download_url": "https://cdn/x"}),
            _response(text=REMOTE),
        ]
        client.fetch_latest(force=True)
        assert session.request.call_args_list[0].kwargs["headers"] == {}

    def test_not_found_clears_cache(self, client, session, cache):
        cache.save('"v1"', REMOTE)
        session.request.return_value = _response(status_code=404)
        assert client.fetch_latest() is None
        assert not cache.path.exists()

    def test_empty_backup_is_none(self, client, session):
        session.request.side_effect = [
            _response(json_data={"download_url": "https://cdn/x"}),
            _response(text=make_payload()),
        ]
        assert client.fetch_latest() is None

    def test_backup_timestamp_falls_back_to_metadata(self, client, session):
        session.request.side_effect = [
            _response(
                json_data={
                    "download_url": "https://cdn/x",
                    "modified": "2024-05-01T12:00:00Z",
                }
            ),
            _response(text=REMOTE),
        ]
        assert client.fetch_latest().backup_timestamp == LAST_MODIFIED_MS

    def test_backup_timestamp_falls_back_to_content(self, client, session):
        session.request.side_effect = [
            _response(json_data={"download_url": "https://cdn/x"}),
            _response(text=REMOTE),
        ]
        assert client.fetch_latest().backup_timestamp == 1500

    def test_missing_download_url(self, client, session):
        session.request.return_value = _response(json_data={})
        with pytest.raises(FetchError, match="download_url"):
            client.fetch_latest()

    def test_server_error(self, client, session):
        session.request.return_value = _response(status_code=500, text="boom")
        with pytest.raises(FetchError) as exc_info:
            client.fetch_latest()
        assert exc_info.value.status_code == 500

    def test_connection_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(FetchError, match="Could not connect"):
            client.fetch_latest()

    def test_corrupt_content(self, client, session):
        session.request.side_effect = [
            _response(json_data={"download_url": "https://cdn/x"}),
            _response(text="<html>maintenance</html>"),
        ]
        with pytest.raises(CorruptPayloadError):
            client.fetch_latest()


class TestPush:
    def test_uploads_latest_as_multipart(self, client, session):
        session.request.return_value = _response()
        client.push(REMOTE, 1500)

        method, url = session.request.call_args.args
        assert (method, url) == ("POST", BASE)
        name, body, content_type = session.request.call_args.kwargs["files"]["file"]
        assert name == "latest.json"
        assert body == REMOTE.encode("utf-8")
        assert content_type == "application/json"

    def test_rejected_upload_raises(self, client, session):
        session.request.return_value = _response(status_code=413)
        with pytest.raises(FetchError, match="upload latest.json"):
            client.push(REMOTE, 1500)


class TestDailySnapshots:
    def _listing(self, *days):
        return _response(
            json_data={
                "backups": [
                    {"filename": "latest.json", "modified": "2024-06-01T00:00:00Z"},
                    *[
                        {
                            "filename": f"daily_{day}.json",
                            "modified": f"{day}T01:00:00Z",
                            "size": 10,
                        }
                        for day in days
                    ],
                ]
            }
        )

    def test_list_newest_first_and_daily_only(self, client, session):
        session.request.return_value = self._listing("2024-04-01", "2024-04-03", "2024-04-02")
        ids = [b.id for b in client.list_backups()]
        assert ids == [
            "daily_2024-04-03.json",
            "daily_2024-04-02.json",
            "daily_2024-04-01.json",
        ]

    def test_list_not_found_is_empty(self, client, session):
        session.request.return_value = _response(status_code=404)
        assert client.list_backups() == []

    def test_upload_today_and_prune(self, client, session):
        session.request.side_effect = [
            self._listing("2024-04-01", "2024-04-02", "2024-04-03"),
            _response(),  # upload
            _response(),  # delete oldest
        ]
        day = datetime(2024, 4, 4, tzinfo=timezone.utc)

        uploaded = client.upload_daily_snapshot(REMOTE, day)

        assert uploaded == "daily_2024-04-04.json"
        upload = session.request.call_args_list[1]
        assert upload.kwargs["files"]["file"][0] == "daily_2024-04-04.json"
        delete = session.request.call_args_list[2]
        assert delete.args == ("DELETE", f"{BASE}/daily_2024-04-01.json")

    def test_existing_today_not_uploaded(self, client, session):
        session.request.return_value = self._listing("2024-04-04")
        day = datetime(2024, 4, 4, tzinfo=timezone.utc)
        assert client.upload_daily_snapshot(REMOTE, day) is None
        assert session.request.call_count == 1

    def test_failures_are_swallowed(self, client, session, caplog):
        session.request.side_effect = requests.Timeout("slow")
        assert client.upload_daily_snapshot(REMOTE) is None
        assert "Failed to create daily snapshot" in caplog.text

    def test_fetch_backup_content(self, client, session):
        session.request.return_value = _response(text=REMOTE)
        assert client.fetch_backup_content("daily_2024-04-01.json") == REMOTE
        assert session.request.call_args.args == (
            "GET",
            f"{BASE}/daily_2024-04-01.json",
        )

    def test_fetch_missing_backup(self, client, session):
        session.request.return_value = _response(status_code=404)
        assert client.fetch_backup_content("daily_2000-01-01.json") is None
