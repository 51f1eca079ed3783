# pyright: reportExplicitAny=false
"""Shared CLI utilities for commands.

This module provides common utilities used across CLI command implementations:
- Standardized exit codes and the mapping from registry errors to them
- JSON and table output
- Access to the registry and the registered provenance systems
"""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Never

import orjson
from rich.console import Console
from rich.table import Table

from dmpid._registry import DmpIdRegistry
from dmpid.exceptions import (
    AlreadyExistsError,
    ConfigError,
    DmpIdError,
    DmpValidationError,
    ForbiddenError,
    InvalidIdentifierError,
    NoHistoricalMutationError,
    NoOwnerOrganizationError,
    NotFoundError,
)

from ._context import CLIContext

if TYPE_CHECKING:
    from dmpid._finder import VersionEntry
    from dmpid._provenance import Provenance
    from dmpid._records import Record

__all__ = [
    "ExitCode",
    "exit_code_for",
    "exit_with_error",
    "fail",
    "format_json",
    "get_error_console",
    "open_registry",
    "print_json",
    "read_document",
    "records_table",
    "require_provenance",
    "versions_table",
]


class ExitCode(IntEnum):
    """Standard exit codes for dmpid CLI commands."""

    SUCCESS = 0
    LOAD_ERROR = 1
    VALIDATION_ERROR = 2
    NOT_FOUND = 3
    FORBIDDEN = 4
    INTERNAL_ERROR = 5


def exit_code_for(error: DmpIdError) -> ExitCode:
    """Map a registry error to the exit code that reports it."""
    match error:
        case ConfigError():
            return ExitCode.LOAD_ERROR
        case (
            DmpValidationError()
            | InvalidIdentifierError()
            | NoHistoricalMutationError()
            | NoOwnerOrganizationError()
            | AlreadyExistsError()
        ):
            return ExitCode.VALIDATION_ERROR
        case NotFoundError():
            return ExitCode.NOT_FOUND
        case ForbiddenError():
            return ExitCode.FORBIDDEN
        case _:
            return ExitCode.INTERNAL_ERROR


def format_json(data: Any, *, indent: bool = True) -> str:
    """Format data as JSON.

    Args:
        data: JSON-compatible data.
        indent: Whether to pretty-print with indentation.

    Returns:
        JSON-formatted string representation.
    """
    options = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=options).decode("utf-8")


def print_json(data: Any) -> None:
    print(format_json(data))  # noqa: T201


def get_error_console() -> Console:
    """Get a Rich console configured for error output to stderr."""
    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.INTERNAL_ERROR,
    *,
    console: Console | None = None,
) -> Never:
    """Print an error message and exit with the specified code.

    Raises:
        SystemExit: Always raised with the specified exit code.
    """
    if console is None:
        console = get_error_console()

    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(code)


def fail(error: DmpIdError) -> Never:
    """Report a registry error and exit with its exit code.

    Validation errors list each violation below the message.
    """
    console = get_error_console()
    if isinstance(error, DmpValidationError):
        for issue in error.issues:
            console.print(f"  - {issue}", markup=False)
    exit_with_error(str(error), exit_code_for(error), console=console)


def open_registry() -> DmpIdRegistry:
    """Build the registry for the current CLI invocation."""
    ctx = CLIContext.get_current()
    return DmpIdRegistry.from_config(ctx.config, logger=ctx.logger)


def require_provenance(registry: DmpIdRegistry, name: str) -> Provenance:
    """Look up a registered provenance by name, exiting if it is unknown."""
    provenance = registry.resolver.by_name(name)
    if provenance is None:
        exit_with_error(f"Unknown provenance: {name}", ExitCode.FORBIDDEN)
    return provenance


def read_document(path: Path) -> Any:
    """Read a JSON document from a file, exiting on failure."""
    try:
        return orjson.loads(path.read_bytes())
    except OSError as e:
        exit_with_error(f"Cannot read {path}: {e}", ExitCode.LOAD_ERROR)
    except orjson.JSONDecodeError as e:
        exit_with_error(f"Invalid JSON in {path}: {e}", ExitCode.LOAD_ERROR)


def versions_table(entries: list[VersionEntry]) -> Table:
    """Render a version history as a table."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Timestamp")
    table.add_column("URL")
    for entry in entries:
        table.add_row(entry.timestamp, entry.access_url)
    return table


def records_table(records: list[Record]) -> Table:
    """Render a list of records as a table."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("DMP ID")
    table.add_column("Title")
    table.add_column("Modified")
    for record in records:
        dmp_id = record.get("dmp_id")
        identifier = dmp_id.get("identifier", "") if isinstance(dmp_id, dict) else ""
        table.add_row(
            str(identifier), str(record.get("title", "")), str(record.get("modified", ""))
        )
    return table
