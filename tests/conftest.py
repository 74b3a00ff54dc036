"""Shared pytest fixtures for studio-sync tests."""

import json

import pytest
from dotenv import load_dotenv

from studio_sync.config import Config
from studio_sync.store.local import LocalStore

load_dotenv()


def make_book(book_id: str, updated_at: int, **extra) -> dict:
    """Build a minimal book record."""
    record = {"id": book_id, "topic": f"Book {book_id}", "updatedAt": updated_at}
    record.update(extra)
    return record


def make_document(doc_id: str, book_id: str, updated_at: int) -> dict:
    """Build a minimal document record."""
    return {
        "id": doc_id,
        "bookId": book_id,
        "content": f"text of {doc_id}",
        "updatedAt": updated_at,
    }


def make_payload(books=(), documents=(), version: int = 2, **tables) -> str:
    """Encode a snapshot payload by hand, as a remote server would store it."""
    data = {
        "format": "studio-sync",
        "version": version,
        "tables": {"books": list(books), "documents": list(documents), **tables},
        "readerSettings": None,
    }
    return json.dumps(data)


@pytest.fixture
def config(tmp_path):
    """Config with a tmp_path database and no remote backup."""
    return Config(
        db_path=str(tmp_path / "studio.db"),
        state_dir=str(tmp_path / "state"),
        history_size=5,
    )


@pytest.fixture
def backup_config(tmp_path):
    """Config with a remote backup endpoint."""
    return Config(
        db_path=str(tmp_path / "studio.db"),
        state_dir=str(tmp_path / "state"),
        history_size=5,
        backup_url="https://backup.example.com",
        backup_api_key="secret-key",
        app_id="test-app",
        debounce_seconds=0.01,
        max_daily_backups=3,
    )


@pytest.fixture
def store(tmp_path):
    """An opened, empty LocalStore."""
    s = LocalStore(tmp_path / "studio.db")
    s.open()
    return s


@pytest.fixture
def seeded_store(store):
    """A store holding two books and one document."""
    store.put_record("books", make_book("b1", 100))
    store.put_record("books", make_book("b2", 200))
    store.put_record("documents", make_document("d1", "b1", 150))
    return store


@pytest.fixture
async def studio(config):
    """An opened Studio without remote backup."""
    from studio_sync.studio import Studio

    s = Studio(config)
    await s.open()
    yield s
    await s.close()


@pytest.fixture
async def backup_studio(backup_config):
    """An opened Studio whose remote backup client is a MagicMock."""
    from unittest.mock import MagicMock

    from studio_sync.backup.client import RemoteBackupClient
    from studio_sync.studio import Studio

    client = MagicMock(spec=RemoteBackupClient)
    client.fetch_latest.return_value = None
    client.list_backups.return_value = []
    s = Studio(backup_config, backup_client=client)
    await s.open()
    yield s
    await s.close()
