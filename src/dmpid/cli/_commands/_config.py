# pyright: reportUnusedCallResult=false, reportUnusedFunction=false
# ruff: noqa: D415
"""Commands for viewing the registry configuration."""

from typing import Annotated

from cyclopts import App, Parameter

from dmpid.config import config_to_toml, get_config_schema

from ._context import CLIContext
from ._shared import format_json

app = App(name="config", help="View the registry configuration", help_on_error=True)


@app.command(name="show")
def _show(
    *,
    json: Annotated[
        bool, Parameter(name=["--json"], help="Print JSON instead of TOML")
    ] = False,
) -> None:
    """Display the merged configuration

    Shows the configuration after defaults, the config file, DMPID_
    environment variables and command line options have been applied.

    Args:
        json: Print JSON instead of TOML.
    """
    config = CLIContext.get_current().config
    if json:
        print(format_json(config.model_dump(mode="json")))  # noqa: T201
        return
    print(config_to_toml(config).rstrip())  # noqa: T201


@app.command(name="schema")
def _schema(
    *,
    strict: Annotated[
        bool,
        Parameter(name=["--strict"], help="Reject unknown top-level keys"),
    ] = False,
) -> None:
    """Print the JSON Schema of the configuration

    Args:
        strict: Emit the schema that rejects unknown top-level keys.
    """
    print(format_json(get_config_schema(strict=strict)))  # noqa: T201
