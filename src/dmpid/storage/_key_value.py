# pyright: reportAny=false, reportExplicitAny=false
"""Key-value store implementations for DMP records.

Items are JSON-compatible dicts addressed by their ``PK`` (partition key) and
``SK`` (sort key) fields. The store is schemaless: it only requires that both
key fields are present strings.

Two implementations share the ``KeyValueStore`` protocol:

- ``MemoryKeyValueStore`` keeps items in a dict. Useful for tests and dry runs.
- ``SQLiteKeyValueStore`` persists items as JSON text in a SQLite table.
"""

from __future__ import annotations

import copy
import sqlite3
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import orjson
from pydantic import BaseModel

from dmpid.exceptions import StorageError
from dmpid.utils.database import (
    connect,
    delete,
    fetch_all,
    fetch_one,
    json_path,
    safe_identifier,
    upsert,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from structlog.typing import FilteringBoundLogger

type Item = dict[str, Any]
type ItemFilter = Callable[[Item], bool]

PK: str = "PK"
SK: str = "SK"

# Pre-computed safe identifiers for the items table/columns
_TABLE = safe_identifier("items")
_PK_COL = safe_identifier("pk")
_SK_COL = safe_identifier("sk")


def _item_keys(item: Item) -> tuple[str, str]:
    pk = item.get(PK)
    sk = item.get(SK)
    if not isinstance(pk, str) or not pk or not isinstance(sk, str) or not sk:
        msg = "Items must carry string PK and SK fields"
        raise ValueError(msg)
    return pk, sk


def _project(item: Item, projection: Iterable[str] | None) -> Item:
    if projection is None:
        return item
    wanted = {PK, SK, *projection}
    return {k: v for k, v in item.items() if k in wanted}


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for key-value store implementations.

    Items are addressed by ``(partition_key, sort_key)``. Every method returns
    copies: mutating a returned item never changes stored state.
    """

    def get(self, partition_key: str, sort_key: str) -> Item | None:
        """Get the item stored at a key.

        Args:
            partition_key: The partition key.
            sort_key: The sort key.

        Returns:
            The item, or None if nothing is stored there.
        """
        ...

    def put(self, item: Item) -> None:
        """Store an item, replacing any item with the same keys.

        Args:
            item: The item to store; must carry ``PK`` and ``SK``.

        Raises:
            ValueError: If the item has no usable keys.
        """
        ...

    def delete(self, partition_key: str, sort_key: str) -> bool:
        """Delete the item stored at a key.

        Returns:
            True if an item was deleted, False if none existed.
        """
        ...

    def exists(self, partition_key: str, sort_key: str | None = None) -> bool:
        """Check whether an item exists.

        Args:
            partition_key: The partition key.
            sort_key: The sort key, or None to match any item in the partition.

        Returns:
            True if a matching item exists.
        """
        ...

    def query(
        self,
        partition_key: str,
        *,
        sort_key_prefix: str | None = None,
        filter: ItemFilter | None = None,  # noqa: A002
        projection: Iterable[str] | None = None,
    ) -> list[Item]:
        """Query the items in one partition.

        Args:
            partition_key: The partition to read.
            sort_key_prefix: Only return items whose sort key starts with this.
            filter: Only return items for which this predicate is true.
            projection: Attribute names to return (keys are always returned).

        Returns:
            Matching items, ordered by sort key.
        """
        ...

    def query_index(
        self,
        attribute: str,
        values: Iterable[str],
        *,
        sort_key: str | None = None,
    ) -> list[Item]:
        """Find items by the value of a top-level attribute.

        Args:
            attribute: The attribute to match.
            values: Accepted attribute values.
            sort_key: Only return items with this sort key.

        Returns:
            Matching items, ordered by partition and sort key.
        """
        ...


class MemoryKeyValueStore:
    """In-memory implementation of the key-value store.

    Useful for testing and development. Data is not persisted.
    Can be used as a drop-in replacement for SQLiteKeyValueStore in tests.
    """

    _items: dict[tuple[str, str], Item]
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(self, *, logger: FilteringBoundLogger | None = None) -> None:
        """Initialize an empty in-memory store.

        Args:
            logger: Optional logger for debug-level operation logging.
                If None, no logging is performed.
        """
        self._items = {}
        self._logger = logger

    def __len__(self) -> int:
        return len(self._items)

    def get(self, partition_key: str, sort_key: str) -> Item | None:
        item = self._items.get((partition_key, sort_key))
        if self._logger:
            self._logger.debug(
                "store_get", pk=partition_key, sk=sort_key, found=item is not None
            )
        return copy.deepcopy(item) if item is not None else None

    def put(self, item: Item) -> None:
        pk, sk = _item_keys(item)
        is_update = (pk, sk) in self._items
        self._items[pk, sk] = copy.deepcopy(item)
        if self._logger:
            self._logger.debug("store_put", pk=pk, sk=sk, is_update=is_update)

    def delete(self, partition_key: str, sort_key: str) -> bool:
        deleted = self._items.pop((partition_key, sort_key), None) is not None
        if self._logger:
            self._logger.debug(
                "store_delete", pk=partition_key, sk=sort_key, deleted=deleted
            )
        return deleted

    def exists(self, partition_key: str, sort_key: str | None = None) -> bool:
        if sort_key is not None:
            exists = (partition_key, sort_key) in self._items
        else:
            exists = any(pk == partition_key for pk, _ in self._items)
        if self._logger:
            self._logger.debug(
                "store_exists", pk=partition_key, sk=sort_key, exists=exists
            )
        return exists

    def query(
        self,
        partition_key: str,
        *,
        sort_key_prefix: str | None = None,
        filter: ItemFilter | None = None,  # noqa: A002
        projection: Iterable[str] | None = None,
    ) -> list[Item]:
        keys = sorted(
            key
            for key in self._items
            if key[0] == partition_key
            and (sort_key_prefix is None or key[1].startswith(sort_key_prefix))
        )
        items = [copy.deepcopy(self._items[key]) for key in keys]
        if filter is not None:
            items = [item for item in items if filter(item)]
        if self._logger:
            self._logger.debug(
                "store_query",
                pk=partition_key,
                sort_key_prefix=sort_key_prefix,
                count=len(items),
            )
        return [_project(item, projection) for item in items]

    def query_index(
        self,
        attribute: str,
        values: Iterable[str],
        *,
        sort_key: str | None = None,
    ) -> list[Item]:
        wanted = set(values)
        items = [
            copy.deepcopy(item)
            for key, item in sorted(self._items.items())
            if (sort_key is None or key[1] == sort_key)
            and isinstance(item.get(attribute), str)
            and item[attribute] in wanted
        ]
        if self._logger:
            self._logger.debug(
                "store_query_index",
                attribute=attribute,
                values=sorted(wanted),
                count=len(items),
            )
        return items


class ItemRow(BaseModel):
    """A row of the ``items`` table."""

    pk: str
    sk: str
    data: str


_SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    pk TEXT NOT NULL,
    sk TEXT NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (pk, sk)
);

CREATE INDEX IF NOT EXISTS idx_items_sk ON items (sk);
"""

# Pre-computed SQL queries using safe identifiers
# S608 is safe: safe_identifier validates all table/column names
_SQL_SELECT_BY_KEY = (
    f"SELECT * FROM {_TABLE} WHERE {_PK_COL} = ? AND {_SK_COL} = ?"  # noqa: S608
)
_SQL_SELECT_PARTITION = (
    f"SELECT * FROM {_TABLE} WHERE {_PK_COL} = ? ORDER BY {_SK_COL}"  # noqa: S608
)
_SQL_SELECT_PARTITION_PREFIX = (
    f"SELECT * FROM {_TABLE} WHERE {_PK_COL} = ? "  # noqa: S608
    f"AND substr({_SK_COL}, 1, length(?)) = ? ORDER BY {_SK_COL}"
)
_SQL_EXISTS_KEY = f"SELECT 1 FROM {_TABLE} WHERE {_PK_COL} = ? AND {_SK_COL} = ?"  # noqa: S608
_SQL_EXISTS_PARTITION = f"SELECT 1 FROM {_TABLE} WHERE {_PK_COL} = ? LIMIT 1"  # noqa: S608


class SQLiteKeyValueStore:
    """SQLite-backed implementation of the key-value store.

    Persists items as JSON text in a single ``items`` table keyed by
    ``(pk, sk)``. Secondary lookups use ``json_extract``. Thread-safe for
    single-process access; every call opens its own transaction.
    """

    _db_path: str
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(
        self,
        db_path: str | Path,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize a SQLite key-value store.

        Creates the database file and schema if they don't exist.

        Args:
            db_path: Path to the SQLite database file.
            logger: Optional logger for debug-level operation logging.
                If None, no logging is performed.

        Raises:
            StorageError: If the database cannot be opened or initialized.
        """
        self._db_path = str(db_path)
        self._logger = logger
        self._ensure_schema()

    @property
    def db_path(self) -> str:
        """Get the path of the backing database file."""
        return self._db_path

    def _ensure_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        try:
            with connect(self._db_path) as conn:
                _ = conn.executescript(_SQLITE_SCHEMA)
        except sqlite3.Error as e:
            msg = f"Failed to initialize key-value store at {self._db_path}: {e}"
            raise StorageError(msg, operation="init", cause=e) from e

    def _fail(self, operation: str, error: sqlite3.Error) -> StorageError:
        if self._logger:
            self._logger.error("store_error", operation=operation, error=str(error))
        msg = f"Key-value store {operation} failed: {error}"
        return StorageError(msg, operation=operation, cause=error)

    @staticmethod
    def _decode(row: ItemRow) -> Item:
        item: Item = orjson.loads(row.data)
        return item

    def get(self, partition_key: str, sort_key: str) -> Item | None:
        try:
            with connect(self._db_path) as conn:
                row = fetch_one(
                    conn, ItemRow, _SQL_SELECT_BY_KEY, (partition_key, sort_key)
                )
        except sqlite3.Error as e:
            raise self._fail("get", e) from e
        if self._logger:
            self._logger.debug(
                "store_get", pk=partition_key, sk=sort_key, found=row is not None
            )
        return self._decode(row) if row is not None else None

    def put(self, item: Item) -> None:
        pk, sk = _item_keys(item)
        row = ItemRow(pk=pk, sk=sk, data=orjson.dumps(item).decode("utf-8"))
        try:
            with connect(self._db_path) as conn:
                _ = upsert(conn, "items", row, conflict_columns=["pk", "sk"])
        except sqlite3.Error as e:
            raise self._fail("put", e) from e
        if self._logger:
            self._logger.debug("store_put", pk=pk, sk=sk)

    def delete(self, partition_key: str, sort_key: str) -> bool:
        try:
            with connect(self._db_path) as conn:
                count = delete(conn, "items", {"pk": partition_key, "sk": sort_key})
        except sqlite3.Error as e:
            raise self._fail("delete", e) from e
        if self._logger:
            self._logger.debug(
                "store_delete", pk=partition_key, sk=sort_key, deleted=count > 0
            )
        return count > 0

    def exists(self, partition_key: str, sort_key: str | None = None) -> bool:
        try:
            with connect(self._db_path) as conn:
                if sort_key is None:
                    cursor = conn.execute(_SQL_EXISTS_PARTITION, (partition_key,))
                else:
                    cursor = conn.execute(_SQL_EXISTS_KEY, (partition_key, sort_key))
                exists = cursor.fetchone() is not None
        except sqlite3.Error as e:
            raise self._fail("exists", e) from e
        if self._logger:
            self._logger.debug(
                "store_exists", pk=partition_key, sk=sort_key, exists=exists
            )
        return exists

    def query(
        self,
        partition_key: str,
        *,
        sort_key_prefix: str | None = None,
        filter: ItemFilter | None = None,  # noqa: A002
        projection: Iterable[str] | None = None,
    ) -> list[Item]:
        try:
            with connect(self._db_path) as conn:
                if sort_key_prefix is None:
                    rows = fetch_all(
                        conn, ItemRow, _SQL_SELECT_PARTITION, (partition_key,)
                    )
                else:
                    rows = fetch_all(
                        conn,
                        ItemRow,
                        _SQL_SELECT_PARTITION_PREFIX,
                        (partition_key, sort_key_prefix, sort_key_prefix),
                    )
        except sqlite3.Error as e:
            raise self._fail("query", e) from e

        items = [self._decode(row) for row in rows]
        if filter is not None:
            items = [item for item in items if filter(item)]
        if self._logger:
            self._logger.debug(
                "store_query",
                pk=partition_key,
                sort_key_prefix=sort_key_prefix,
                count=len(items),
            )
        return [_project(item, projection) for item in items]

    def query_index(
        self,
        attribute: str,
        values: Iterable[str],
        *,
        sort_key: str | None = None,
    ) -> list[Item]:
        wanted = sorted(set(values))
        if not wanted:
            return []

        placeholders = ", ".join("?" for _ in wanted)
        sql = (
            f"SELECT * FROM {_TABLE} "  # noqa: S608
            f"WHERE json_extract(data, ?) IN ({placeholders})"
        )
        params: list[str] = [json_path(attribute), *wanted]
        if sort_key is not None:
            sql += f" AND {_SK_COL} = ?"
            params.append(sort_key)
        sql += f" ORDER BY {_PK_COL}, {_SK_COL}"

        try:
            with connect(self._db_path) as conn:
                rows = fetch_all(conn, ItemRow, sql, tuple(params))
        except sqlite3.Error as e:
            raise self._fail("query_index", e) from e

        items = [self._decode(row) for row in rows]
        if self._logger:
            self._logger.debug(
                "store_query_index",
                attribute=attribute,
                values=wanted,
                count=len(items),
            )
        return items
