"""SQLite database utilities for Pydantic row models.

This module provides the small set of SQLite operations the key-value store
needs, using Pydantic models for row serialization/deserialization.

Note:
    Fields with ``None`` values are excluded from upserts via
    ``exclude_none=True``. Columns that must be NULL should be left out of
    the row model instead.
"""

from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager, suppress
from typing import TYPE_CHECKING, Literal, cast

from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

# Valid SQL identifier pattern (alphanumeric and underscores, not starting with digit)
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# SQLite-compatible value types
type SQLValue = str | int | float | bytes | None

# SQLite transaction isolation levels
type IsolationLevel = Literal["DEFERRED", "EXCLUSIVE", "IMMEDIATE"] | None


@contextmanager
def connect(
    path: str | bytes,
    *,
    timeout: float = 30.0,
    isolation_level: IsolationLevel = "IMMEDIATE",
    check_same_thread: bool = True,
    uri: bool = False,
    wal_mode: bool = True,
) -> Iterator[sqlite3.Connection]:
    """Context manager for SQLite connections with automatic transaction handling.

    Opens a connection, yields it for use, and handles cleanup. On successful
    completion, commits the transaction. On any exception, rolls back and re-raises.
    The connection is always closed on exit.

    Args:
        path: Database file path, or ``:memory:`` for in-memory database.
        timeout: Seconds to wait for lock before raising OperationalError.
        isolation_level: Transaction isolation level (DEFERRED, IMMEDIATE, EXCLUSIVE).
        check_same_thread: If True, only the creating thread may use the connection.
        uri: If True, interpret path as a URI.
        wal_mode: If True, enable WAL journal mode for better concurrency.

    Yields:
        SQLite connection with row_factory set to sqlite3.Row.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened.
        Any exception raised within the context block (after rollback).

    Examples:
        >>> with connect("registry.db") as conn:
        ...     conn.execute("DELETE FROM items WHERE pk = ?", ("DMP#doi.org/10.80030/X",))
        >>> # Transaction is committed automatically on successful exit
    """
    conn = sqlite3.connect(
        path,
        timeout=timeout,
        isolation_level=isolation_level,
        check_same_thread=check_same_thread,
        uri=uri,
    )
    conn.row_factory = sqlite3.Row

    # Enable WAL mode for better concurrency (skip for :memory: databases)
    if wal_mode and str(path) != ":memory:" and not str(path).startswith("file:"):
        with suppress(sqlite3.OperationalError):
            _ = conn.execute("PRAGMA journal_mode=WAL")
        # Set busy timeout for handling concurrent access
        _ = conn.execute("PRAGMA busy_timeout=10000")

    try:
        yield conn
        conn.commit()
    except BaseException:
        with suppress(Exception):
            conn.rollback()
        raise
    finally:
        conn.close()


def safe_identifier(name: str) -> str:
    """Validate and quote a SQL identifier.

    Validates that the identifier contains only safe characters (letters,
    digits, underscores), then quotes it to handle SQL reserved words.

    Args:
        name: The identifier to validate and quote.

    Returns:
        The quoted identifier (e.g., ``"items"``).

    Raises:
        ValueError: If the identifier contains invalid characters.

    Examples:
        >>> safe_identifier("items")
        '"items"'
        >>> safe_identifier("dmphub_owner_id")
        '"dmphub_owner_id"'
        >>> safe_identifier("owner-id")
        Traceback (most recent call last):
            ...
        ValueError: Invalid SQL identifier: 'owner-id'
    """
    if not _IDENTIFIER_RE.match(name):
        msg = f"Invalid SQL identifier: {name!r}"
        raise ValueError(msg)
    return f'"{name}"'


def json_path(attribute: str) -> str:
    """Build a ``json_extract`` path for a top-level attribute.

    Args:
        attribute: The attribute name; validated like a SQL identifier.

    Returns:
        A JSON path such as ``$."dmphub_owner_id"``.

    Raises:
        ValueError: If the attribute contains invalid characters.
    """
    return f"$.{safe_identifier(attribute)}"


def fetch_one[T: BaseModel](
    conn: sqlite3.Connection,
    model: type[T],
    sql: str,
    params: tuple[SQLValue, ...] = (),
) -> T | None:
    """Fetch a single row and return it as a Pydantic model.

    Args:
        conn: SQLite connection.
        model: Pydantic model class to deserialize into.
        sql: SQL query string.
        params: Query parameters.

    Returns:
        Model instance or None if no row found.
    """
    row = cast("sqlite3.Row | None", conn.execute(sql, params).fetchone())
    if row is None:
        return None
    return model.model_validate(dict(row))


def fetch_all[T: BaseModel](
    conn: sqlite3.Connection,
    model: type[T],
    sql: str,
    params: tuple[SQLValue, ...] = (),
) -> list[T]:
    """Fetch all rows and return them as Pydantic models.

    Args:
        conn: SQLite connection.
        model: Pydantic model class to deserialize into.
        sql: SQL query string.
        params: Query parameters.

    Returns:
        List of model instances (empty if no rows).
    """
    rows = cast("list[sqlite3.Row]", conn.execute(sql, params).fetchall())
    return [model.model_validate(dict(row)) for row in rows]


def upsert(
    conn: sqlite3.Connection,
    table: str,
    obj: BaseModel,
    conflict_columns: list[str],
) -> int:
    """Insert a row, replacing the non-key columns on conflict.

    If all data columns are conflict columns, uses DO NOTHING.

    Args:
        conn: SQLite connection.
        table: Table name.
        obj: Pydantic model to upsert.
        conflict_columns: Columns that identify the row.

    Returns:
        Number of rows written.

    Examples:
        >>> row = ItemRow(pk="DMP#doi.org/10.80030/X", sk="VERSION#latest", data="{}")
        >>> upsert(conn, "items", row, conflict_columns=["pk", "sk"])
        1
    """
    table = safe_identifier(table)
    conflict = ", ".join(safe_identifier(col) for col in conflict_columns)
    data = obj.model_dump(exclude_none=True)
    cols = ", ".join(safe_identifier(k) for k in data)
    placeholders = ", ".join(f":{k}" for k in data)
    updates = ", ".join(
        f"{safe_identifier(k)} = excluded.{safe_identifier(k)}"
        for k in data
        if k not in conflict_columns
    )
    action = f"DO UPDATE SET {updates}" if updates else "DO NOTHING"

    cursor = conn.execute(
        f"INSERT INTO {table} ({cols}) VALUES ({placeholders}) "  # noqa: S608
        f"ON CONFLICT ({conflict}) {action}",
        data,
    )
    return cursor.rowcount


def delete(
    conn: sqlite3.Connection,
    table: str,
    keys: Mapping[str, SQLValue],
) -> int:
    """Delete the rows matching every key column.

    Args:
        conn: SQLite connection.
        table: Table name.
        keys: Column values that must all match.

    Returns:
        Number of rows affected.

    Raises:
        ValueError: If no key columns are given.

    Examples:
        >>> delete(conn, "items", {"pk": "DMP#doi.org/10.80030/X", "sk": "VERSION#latest"})
        1
    """
    if not keys:
        msg = "delete requires at least one key column"
        raise ValueError(msg)

    table = safe_identifier(table)
    where = " AND ".join(f"{safe_identifier(k)} = :{k}" for k in keys)
    cursor = conn.execute(
        f"DELETE FROM {table} WHERE {where}",  # noqa: S608
        dict(keys),
    )
    return cursor.rowcount
