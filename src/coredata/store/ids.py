"""Identifier and timestamp helpers shared by the client and backends."""

from __future__ import annotations

from datetime import datetime, timezone

from bson import ObjectId

OBJECT_ID_HEX_LENGTH = 24


def is_valid_id(value: object) -> bool:
    """Return True when ``value`` is the hex form of a bson ObjectId.

    This is a purely syntactic check and never touches the store.
    """

    if not isinstance(value, str) or len(value) != OBJECT_ID_HEX_LENGTH:
        return False
    return ObjectId.is_valid(value)


def new_id() -> str:
    """Return a freshly generated identifier."""

    return str(ObjectId())


def now_ms() -> int:
    """Current UTC time in milliseconds since the epoch."""

    return int(datetime.now(timezone.utc).timestamp() * 1000)


__all__ = ["is_valid_id", "new_id", "now_ms", "OBJECT_ID_HEX_LENGTH"]
