"""dmpid CLI commands."""
# pyright: reportUnusedCallResult=false

from __future__ import annotations

from typing import TYPE_CHECKING

from ._config import app as config_app
from ._context import CLIContext
from ._provenance import app as provenance_app
from ._records import (
    attach_narrative,
    create_record,
    get_record,
    list_records,
    list_versions,
    tombstone_record,
    update_record,
)
from ._shared import ExitCode, exit_with_error, format_json, get_error_console

if TYPE_CHECKING:
    from cyclopts import App

__all__ = [
    "CLIContext",
    "ExitCode",
    "config_app",
    "exit_with_error",
    "format_json",
    "get_error_console",
    "provenance_app",
    "register_commands",
]


def register_commands(app: App) -> None:
    app.command(get_record, name="get")
    app.command(list_versions, name="versions")
    app.command(list_records, name="list")
    app.command(create_record, name="create")
    app.command(update_record, name="update")
    app.command(tombstone_record, name="tombstone")
    app.command(attach_narrative, name="narrative")
    app.command(config_app)
    app.command(provenance_app)
