"""Snapshot capture/apply and named versions."""

from .serializer import (
    PAYLOAD_VERSION,
    Snapshot,
    StateSerializer,
    content_timestamp,
    encode_payload,
    parse_payload,
)
from .versions import NamedVersionStore

__all__ = [
    "PAYLOAD_VERSION",
    "NamedVersionStore",
    "Snapshot",
    "StateSerializer",
    "content_timestamp",
    "encode_payload",
    "parse_payload",
]
