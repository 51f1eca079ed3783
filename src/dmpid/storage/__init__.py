"""Key-value gateway implementations for DMP records."""

from ._key_value import (
    PK,
    SK,
    Item,
    ItemFilter,
    KeyValueStore,
    MemoryKeyValueStore,
    SQLiteKeyValueStore,
)

__all__ = [
    "PK",
    "SK",
    "Item",
    "ItemFilter",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
]
