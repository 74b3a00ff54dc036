"""Embedded local store backed by SQLite.

Every content table holds JSON records keyed by their primary key.  The
store exposes exactly what the synchronization engine needs:

* ``dump_all()`` -- every content table read inside one transaction.
* ``load_all()`` -- every content table replaced inside one
  ``BEGIN IMMEDIATE`` transaction; readers never see a partial state.
* ``get_latest_update_timestamp()`` -- newest ``updatedAt`` of books and
  documents.
* ``wipe()`` -- destructive last-resort recovery.

Two tables never travel in a snapshot: ``settings`` (device preferences,
except the ``readerSettings`` entry) and ``history`` (the undo/redo
stacks, which must survive the restores they describe).

Connections are opened per operation so calls are safe from the worker
threads used by ``run_sync()``.
"""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ..errors import StoreUnavailableError, StoreWriteError

logger = logging.getLogger(__name__)

# Payload name -> (SQL table, primary key field of the record)
CONTENT_TABLES: dict[str, tuple[str, str]] = {
    "books": ("books", "id"),
    "documents": ("documents", "id"),
    "instructions": ("instructions", "id"),
    "styles": ("styles", "id"),
    "snapshots": ("snapshots", "id"),
    "macros": ("macros", "id"),
    "series": ("series", "id"),
    "readingProgress": ("reading_progress", "bookId"),
}

# Tables whose records carry the ``updatedAt`` used for divergence checks
TIMESTAMP_TABLES = ("books", "documents")

READER_SETTINGS_KEY = "readerSettings"
AUTO_BACKUP_ENABLED_KEY = "autoBackupEnabled"
LAST_BACKUP_TIMESTAMP_KEY = "lastBackupTimestamp"

_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def _encode(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


class LocalStore:
    """SQLite-backed store for all studio content.

    Args:
        db_path: Path of the database file.  ``open()`` must be called
            before any other operation.
    """

    def __init__(self, db_path: Path | str, timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self._timeout = timeout
        self._opened = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Create the schema if needed and verify the file is readable.

        Raises:
            StoreUnavailableError: If the file is not a database or the
                directory cannot be created.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._transaction("IMMEDIATE", check_open=False) as conn:
                for table, _ in CONTENT_TABLES.values():
                    conn.execute(
                        f"CREATE TABLE IF NOT EXISTS {table} "
                        "(id TEXT PRIMARY KEY, data TEXT NOT NULL)"
                    )
                conn.execute(
                    "CREATE TABLE IF NOT EXISTS settings "
                    "(id TEXT PRIMARY KEY, value TEXT NOT NULL)"
                )
                conn.execute(
                    "CREATE TABLE IF NOT EXISTS history "
                    "(id TEXT PRIMARY KEY, value TEXT NOT NULL)"
                )
        except (sqlite3.Error, OSError) as exc:
            logger.error("Local store %s failed to open: %s", self.db_path, exc)
            raise StoreUnavailableError(
                f"Local store at {self.db_path} is unavailable: {exc}"
            ) from exc
        self._opened = True
        logger.debug("Local store opened: %s", self.db_path)

    @property
    def is_open(self) -> bool:
        return self._opened

    def wipe(self) -> None:
        """Delete the database files and recreate an empty store.

        Destructive.  Only ever called on an explicit user request.
        """
        logger.warning("Wiping local store %s", self.db_path)
        self._opened = False
        for path in [self.db_path] + [
            self.db_path.with_name(self.db_path.name + suffix)
            for suffix in _SIDECAR_SUFFIXES
        ]:
            path.unlink(missing_ok=True)
        self.open()

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def dump_all(self) -> dict[str, Any]:
        """Read every content table inside a single read transaction.

        Returns:
            ``{"tables": {name: [records...]}, "readerSettings": value}``
            with rows ordered by primary key.
        """
        with self._read() as conn:
            tables = {
                name: [
                    json.loads(row[0])
                    for row in conn.execute(
                        f"SELECT data FROM {table} ORDER BY id"
                    )
                ]
                for name, (table, _) in CONTENT_TABLES.items()
            }
            row = conn.execute(
                "SELECT value FROM settings WHERE id = ?",
                (READER_SETTINGS_KEY,),
            ).fetchone()
        return {
            "tables": tables,
            READER_SETTINGS_KEY: json.loads(row[0]) if row else None,
        }

    def load_all(
        self,
        tables: dict[str, list[dict]],
        reader_settings: Any = None,
    ) -> None:
        """Replace every content table wholesale in one transaction.

        Tables absent from *tables* are emptied.  ``readerSettings`` is
        only overwritten when a value is supplied.

        Raises:
            StoreWriteError: If SQLite rejects the write; nothing is
                committed in that case.
        """
        rows: dict[str, list[tuple[str, str]]] = {}
        for name, (table, key) in CONTENT_TABLES.items():
            rows[table] = [
                (str(record[key]), _encode(record))
                for record in tables.get(name, [])
            ]

        try:
            with self._transaction("IMMEDIATE") as conn:
                for table, values in rows.items():
                    conn.execute(f"DELETE FROM {table}")
                    conn.executemany(
                        f"INSERT OR REPLACE INTO {table} (id, data) VALUES (?, ?)",
                        values,
                    )
                if reader_settings is not None:
                    conn.execute(
                        "INSERT OR REPLACE INTO settings (id, value) VALUES (?, ?)",
                        (READER_SETTINGS_KEY, _encode(reader_settings)),
                    )
        except sqlite3.Error as exc:
            raise StoreWriteError(
                f"Could not overwrite local store: {exc}"
            ) from exc

    def get_latest_update_timestamp(self) -> int:
        """Return the newest ``updatedAt`` (epoch ms) of books and documents.

        Returns 0 for an empty store.
        """
        latest = 0
        with self._read() as conn:
            for name in TIMESTAMP_TABLES:
                table, _ = CONTENT_TABLES[name]
                (value,) = conn.execute(
                    f"SELECT MAX(json_extract(data, '$.updatedAt')) FROM {table}"
                ).fetchone()
                if value is not None:
                    latest = max(latest, int(value))
        return latest

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get_record(self, name: str, record_id: str) -> dict | None:
        table, _ = self._table(name)
        with self._read() as conn:
            row = conn.execute(
                f"SELECT data FROM {table} WHERE id = ?", (str(record_id),)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def all_records(self, name: str) -> list[dict]:
        table, _ = self._table(name)
        with self._read() as conn:
            return [
                json.loads(row[0])
                for row in conn.execute(f"SELECT data FROM {table} ORDER BY id")
            ]

    def put_record(self, name: str, record: dict) -> None:
        """Insert or replace *record* in the content table *name*."""
        table, key = self._table(name)
        if key not in record:
            raise ValueError(f"Record for '{name}' is missing key '{key}'")
        self._write(
            f"INSERT OR REPLACE INTO {table} (id, data) VALUES (?, ?)",
            (str(record[key]), _encode(record)),
        )

    def delete_record(self, name: str, record_id: str) -> bool:
        """Delete a record.  Returns False when it did not exist."""
        table, _ = self._table(name)
        return self._write(
            f"DELETE FROM {table} WHERE id = ?", (str(record_id),)
        ) > 0

    # ------------------------------------------------------------------
    # Settings and history
    # ------------------------------------------------------------------

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self._get_value("settings", key, default)

    def put_setting(self, key: str, value: Any) -> None:
        self._write(
            "INSERT OR REPLACE INTO settings (id, value) VALUES (?, ?)",
            (key, _encode(value)),
        )

    def get_history(self, key: str) -> Any:
        """Return the stored history entry *key*, or ``None``."""
        return self._get_value("history", key, None)

    def put_history(self, entries: dict[str, Any]) -> None:
        """Write several history entries in one transaction."""
        try:
            with self._transaction("IMMEDIATE") as conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO history (id, value) VALUES (?, ?)",
                    [(key, _encode(value)) for key, value in entries.items()],
                )
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Could not save history: {exc}") from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _table(self, name: str) -> tuple[str, str]:
        try:
            return CONTENT_TABLES[name]
        except KeyError:
            raise ValueError(
                f"Unknown table '{name}'. Valid tables: {sorted(CONTENT_TABLES)}"
            ) from None

    def _get_value(self, table: str, key: str, default: Any) -> Any:
        with self._read() as conn:
            row = conn.execute(
                f"SELECT value FROM {table} WHERE id = ?", (key,)
            ).fetchone()
        return json.loads(row[0]) if row else default

    def _write(self, sql: str, params: tuple) -> int:
        try:
            with self._transaction("IMMEDIATE") as conn:
                return conn.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Local store write failed: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly below.
        conn = sqlite3.connect(
            self.db_path, timeout=self._timeout, isolation_level=None
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextlib.contextmanager
    def _transaction(
        self, mode: str = "DEFERRED", check_open: bool = True
    ) -> Iterator[sqlite3.Connection]:
        """Open a connection, run the body in one transaction, close.

        Commits on success, rolls back on any exception.
        """
        if check_open and not self._opened:
            raise StoreUnavailableError(
                "Local store not initialized. Call open() first."
            )
        conn = self._connect()
        try:
            conn.execute(f"BEGIN {mode}")
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.rollback()
            raise
        finally:
            conn.close()

    @contextlib.contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._transaction("DEFERRED") as conn:
                yield conn
        except sqlite3.DatabaseError as exc:
            raise StoreUnavailableError(
                f"Local store at {self.db_path} is unreadable: {exc}"
            ) from exc
