# pyright: reportUnusedCallResult=false, reportUnusedFunction=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""Commands that read and change DMP records."""

from pathlib import Path
from typing import Annotated

from cyclopts import Parameter
from rich.console import Console

from dmpid.exceptions import DmpIdError

from ._shared import (
    fail,
    open_registry,
    print_json,
    read_document,
    records_table,
    require_provenance,
    versions_table,
)

_ProvenanceOption = Annotated[
    str,
    Parameter(
        name=["--provenance", "-p"],
        help="Registered provenance the change is made as",
    ),
]


def get_record(
    identifier: str,
    /,
    *,
    version: Annotated[
        str | None,
        Parameter(
            name=["--version", "-v"],
            help="Snapshot timestamp, or 'tombstone' (defaults to latest)",
        ),
    ] = None,
) -> None:
    """Print a DMP record as JSON

    Args:
        identifier: The DMP ID, with or without protocol.
        version: Version to fetch instead of the latest.
    """
    with open_registry() as registry:
        try:
            record = registry.get(identifier, version)
        except DmpIdError as e:
            fail(e)
    print_json(record)


def list_versions(identifier: str, /) -> None:
    """Show the version history of a DMP

    Args:
        identifier: The DMP ID, with or without protocol.
    """
    with open_registry() as registry:
        try:
            entries = registry.versions(identifier)
        except DmpIdError as e:
            fail(e)

    console = Console()
    if not entries:
        console.print("No historical versions.")
        return
    console.print(versions_table(entries))


def list_records(
    owner: str,
    /,
    *,
    page: Annotated[int, Parameter(name=["--page"], help="Page number")] = 1,
    per_page: Annotated[
        int | None, Parameter(name=["--per-page"], help="Records per page")
    ] = None,
    json: Annotated[
        bool, Parameter(name=["--json"], help="Print records as JSON")
    ] = False,
) -> None:
    """List the DMPs of a person or organization

    Args:
        owner: ORCID or ROR identifier, bare or as a URL.
        page: Page number, starting at 1.
        per_page: Records per page.
        json: Print the records as JSON instead of a table.
    """
    with open_registry() as registry:
        try:
            records = registry.list_by_owner(owner, page, per_page)
        except DmpIdError as e:
            fail(e)

    if json:
        print_json(records)
        return
    Console().print(records_table(records))


def create_record(path: Path, /, *, provenance: _ProvenanceOption) -> None:
    """Register a new DMP from a JSON file

    Args:
        path: JSON file holding the DMP document.
        provenance: Registered provenance that will own the DMP.
    """
    document = read_document(path)
    with open_registry() as registry:
        caller = require_provenance(registry, provenance)
        try:
            record = registry.create(caller, document)
        except DmpIdError as e:
            fail(e)
    print_json(record)


def update_record(
    identifier: str, path: Path, /, *, provenance: _ProvenanceOption
) -> None:
    """Update a DMP from a JSON file

    Args:
        identifier: The DMP ID to update.
        path: JSON file holding the updated document.
        provenance: Registered provenance the update is made as.
    """
    document = read_document(path)
    with open_registry() as registry:
        caller = require_provenance(registry, provenance)
        try:
            record = registry.update(caller, identifier, document)
        except DmpIdError as e:
            fail(e)
    print_json(record)


def tombstone_record(identifier: str, /, *, provenance: _ProvenanceOption) -> None:
    """Retire a DMP

    Args:
        identifier: The DMP ID to retire.
        provenance: Registered provenance that owns the DMP.
    """
    with open_registry() as registry:
        caller = require_provenance(registry, provenance)
        try:
            record = registry.tombstone(caller, identifier)
        except DmpIdError as e:
            fail(e)
    print_json(record)


def attach_narrative(
    identifier: str, url: str, /, *, provenance: _ProvenanceOption
) -> None:
    """Link a DMP to its narrative document

    Args:
        identifier: The DMP ID.
        url: Where the narrative document can be downloaded.
        provenance: Registered provenance that owns the DMP.
    """
    with open_registry() as registry:
        caller = require_provenance(registry, provenance)
        try:
            record = registry.attach_narrative(caller, identifier, url)
        except DmpIdError as e:
            fail(e)
    print_json(record)
