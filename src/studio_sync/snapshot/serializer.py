"""State serializer: the whole store as one opaque, versioned blob.

Payload format (version 2)::

    {
      "format": "studio-sync",
      "version": 2,
      "tables": {"books": [...], "documents": [...], ...},
      "readerSettings": {...} | null
    }

Encoding uses sorted keys and a fixed indent, and the store returns rows
ordered by primary key, so ``encode(parse(blob)) == blob`` for any blob
produced by ``capture()``.

Version 1 is the flat export written by the earlier web application
(``{"books": [...], "documents": [...], "readerSettings": ...}``, no
``version`` key).  It is upgraded on the fly; tables it does not carry
become empty.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..errors import CorruptPayloadError
from ..store.local import (
    CONTENT_TABLES,
    READER_SETTINGS_KEY,
    TIMESTAMP_TABLES,
    LocalStore,
)

logger = logging.getLogger(__name__)

PAYLOAD_FORMAT = "studio-sync"
PAYLOAD_VERSION = 2

Snapshot = str
"""A serialized snapshot.  Opaque to everything except this module."""


def encode_payload(data: dict[str, Any]) -> Snapshot:
    """Encode a payload dict deterministically."""
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False)


def parse_payload(snapshot: Snapshot) -> dict[str, Any]:
    """Parse *snapshot* and upgrade it to the current payload version.

    Raises:
        CorruptPayloadError: If the text is not JSON, has the wrong shape,
            or was written by a newer engine.
    """
    if not isinstance(snapshot, str) or not snapshot.strip():
        raise CorruptPayloadError("Snapshot payload is empty")
    try:
        data = json.loads(snapshot)
    except json.JSONDecodeError as exc:
        raise CorruptPayloadError(
            f"Snapshot is not valid JSON (line {exc.lineno}, column {exc.colno})"
        ) from exc
    if not isinstance(data, dict):
        raise CorruptPayloadError(
            f"Snapshot root must be an object, got {type(data).__name__}"
        )
    return _validate(_upgrade(data))


def content_timestamp(data: dict[str, Any]) -> int:
    """Return the newest ``updatedAt`` of books and documents in *data*.

    *data* is a parsed payload.  Returns 0 when there is nothing dated.
    """
    latest = 0
    for name in TIMESTAMP_TABLES:
        for record in data["tables"].get(name, []):
            updated = record.get("updatedAt")
            if isinstance(updated, (int, float)):
                latest = max(latest, int(updated))
    return latest


def _upgrade(data: dict[str, Any]) -> dict[str, Any]:
    version = data.get("version")
    if version is None or version == 1:
        logger.debug("Upgrading legacy flat snapshot to version %d", PAYLOAD_VERSION)
        return {
            "format": PAYLOAD_FORMAT,
            "version": PAYLOAD_VERSION,
            "tables": {name: data.get(name) or [] for name in CONTENT_TABLES},
            READER_SETTINGS_KEY: data.get(READER_SETTINGS_KEY),
        }
    if not isinstance(version, int) or isinstance(version, bool):
        raise CorruptPayloadError(f"Snapshot version {version!r} is not an integer")
    if version > PAYLOAD_VERSION:
        raise CorruptPayloadError(
            f"Snapshot version {version} is newer than supported version {PAYLOAD_VERSION}"
        )
    return data


def _validate(data: dict[str, Any]) -> dict[str, Any]:
    tables = data.get("tables")
    if not isinstance(tables, dict):
        raise CorruptPayloadError("Snapshot is missing its 'tables' object")

    unknown = sorted(set(tables) - set(CONTENT_TABLES))
    if unknown:
        logger.debug("Ignoring unknown snapshot tables: %s", unknown)

    normalized: dict[str, list[dict]] = {}
    for name, (_, key) in CONTENT_TABLES.items():
        records = tables.get(name) or []
        if not isinstance(records, list):
            raise CorruptPayloadError(f"Table '{name}' must be a list")
        for index, record in enumerate(records):
            if not isinstance(record, dict) or key not in record:
                raise CorruptPayloadError(
                    f"Record {index} of table '{name}' has no '{key}'"
                )
        normalized[name] = records

    return {
        "format": data.get("format", PAYLOAD_FORMAT),
        "version": PAYLOAD_VERSION,
        "tables": normalized,
        READER_SETTINGS_KEY: data.get(READER_SETTINGS_KEY),
    }


class StateSerializer:
    """Capture the whole store as a snapshot, or replace it from one.

    Both operations are blocking; async callers go through ``run_sync()``.

    Args:
        store: The opened local store.
    """

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    def capture(self) -> Snapshot:
        """Dump every content table into one payload.

        The dump runs inside a single read transaction, so no table can
        change mid-capture.
        """
        dump = self.store.dump_all()
        return encode_payload(
            {
                "format": PAYLOAD_FORMAT,
                "version": PAYLOAD_VERSION,
                "tables": dump["tables"],
                READER_SETTINGS_KEY: dump[READER_SETTINGS_KEY],
            }
        )

    def apply(self, snapshot: Snapshot) -> None:
        """Replace every content table with the contents of *snapshot*.

        The payload is fully parsed before the store is touched.

        Raises:
            CorruptPayloadError: If the payload cannot be parsed.
            StoreWriteError: If the store rejects the write; the store is
                left in its pre-apply state.
        """
        data = parse_payload(snapshot)
        self.store.load_all(data["tables"], data[READER_SETTINGS_KEY])
        logger.info(
            "Applied snapshot (%s)",
            ", ".join(
                f"{name}={len(records)}"
                for name, records in data["tables"].items()
                if records
            )
            or "empty",
        )
