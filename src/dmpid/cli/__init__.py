"""Command line interface for the DMP ID registry."""

from ._app import create_app, main
from ._commands._context import CLIContext

__all__ = ["CLIContext", "create_app", "main"]
