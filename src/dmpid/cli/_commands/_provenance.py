# pyright: reportUnusedCallResult=false, reportUnusedFunction=false
# ruff: noqa: D415
"""Commands for managing registered provenance systems.

Provenance records are maintained by operators; the registry itself only
reads them.
"""

from typing import Annotated

from cyclopts import App, Parameter

from dmpid._provenance import Provenance
from dmpid.exceptions import DmpIdError

from ._shared import ExitCode, exit_with_error, fail, open_registry, print_json

app = App(
    name="provenance",
    help="Manage registered provenance systems",
    help_on_error=True,
)


@app.command(name="add")
def _add(
    name: str,
    /,
    *,
    seeding: Annotated[
        bool,
        Parameter(
            name=["--seeding"],
            help="Allow registering DMP IDs minted elsewhere",
        ),
    ] = False,
    callback_uri: Annotated[
        str | None, Parameter(name=["--callback-uri"], help="Notification endpoint")
    ] = None,
    homepage: Annotated[
        str | None, Parameter(name=["--homepage"], help="System homepage")
    ] = None,
    description: Annotated[
        str | None, Parameter(name=["--description"], help="Display description")
    ] = None,
) -> None:
    """Register or replace a provenance system

    Args:
        name: The provenance name.
        seeding: Allow the system to register DMP IDs minted elsewhere.
        callback_uri: Endpoint notified about changes.
        homepage: The system's homepage.
        description: Display description.
    """
    provenance = Provenance(
        name=name,
        seeding_with_live_dmp_ids=seeding,
        callback_uri=callback_uri,
        homepage=homepage,
        description=description,
    )
    with open_registry() as registry:
        try:
            registry.store.put(provenance.to_item())
        except DmpIdError as e:
            fail(e)
    print_json(provenance.to_item())


@app.command(name="show")
def _show(name: str, /) -> None:
    """Print a registered provenance system

    Args:
        name: The provenance name.
    """
    with open_registry() as registry:
        provenance = registry.resolver.by_name(name)
    if provenance is None:
        exit_with_error(f"Unknown provenance: {name}", ExitCode.NOT_FOUND)
    print_json(provenance.to_item())
