"""Named versions: explicit, user-created snapshots of a single book.

Unlike the undo/redo stacks these are never evicted.  They live in the
``snapshots`` content table, so they travel with full-state snapshots
and remote backups.
"""

from __future__ import annotations

import json
import logging
import time
import uuid

from ..errors import CorruptPayloadError
from ..store.local import LocalStore

logger = logging.getLogger(__name__)


class NamedVersionStore:
    """Create, list and restore named versions of books.

    Args:
        store: The opened local store.
    """

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    def create(self, book_id: str, name: str) -> dict:
        """Save the current state of *book_id* under *name*.

        Raises:
            ValueError: If the name is blank or the book does not exist.
        """
        name = name.strip()
        if not name:
            raise ValueError("Version name cannot be empty")
        book = self.store.get_record("books", book_id)
        if book is None:
            raise ValueError(f"Book '{book_id}' not found")

        version = {
            "id": str(uuid.uuid4()),
            "bookId": book_id,
            "name": name,
            "bookData": json.dumps(book, sort_keys=True, ensure_ascii=False),
            "createdAt": int(time.time() * 1000),
        }
        self.store.put_record("snapshots", version)
        logger.info("Saved version '%s' of book %s", name, book_id)
        return version

    def list_for_book(self, book_id: str) -> list[dict]:
        """Return the versions of *book_id*, newest first."""
        versions = [
            v for v in self.store.all_records("snapshots")
            if v.get("bookId") == book_id
        ]
        return sorted(versions, key=lambda v: v.get("createdAt", 0), reverse=True)

    def get(self, version_id: str) -> dict | None:
        return self.store.get_record("snapshots", version_id)

    def delete(self, version_id: str) -> bool:
        return self.store.delete_record("snapshots", version_id)

    def restore(self, version_id: str) -> dict:
        """Write the saved book record back into the books table.

        The caller is expected to checkpoint history first so the
        restore can be undone.

        Returns:
            The restored book record.

        Raises:
            ValueError: If the version does not exist.
            CorruptPayloadError: If the saved book data cannot be parsed.
        """
        version = self.get(version_id)
        if version is None:
            raise ValueError(f"Version '{version_id}' not found")
        try:
            book = json.loads(version["bookData"])
        except (KeyError, TypeError, json.JSONDecodeError) as exc:
            raise CorruptPayloadError(
                f"Version '{version_id}' holds unreadable book data"
            ) from exc
        if not isinstance(book, dict) or "id" not in book:
            raise CorruptPayloadError(
                f"Version '{version_id}' holds unreadable book data"
            )
        self.store.put_record("books", book)
        logger.info(
            "Restored book %s from version '%s'", book["id"], version.get("name")
        )
        return book
