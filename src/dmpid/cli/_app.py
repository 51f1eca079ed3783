"""The command-line interface for the DMP ID registry."""
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing

from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter
from rich.console import Console

from dmpid.config import load_config
from dmpid.exceptions import ConfigError
from dmpid.utils import create_registry_logger

from ._commands import register_commands
from ._commands._context import CLIContext
from ._commands._shared import ExitCode, exit_with_error

_HELP = "Mint, version and retire DMP IDs."


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="dmpid",
        help=_HELP,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )

    @app.meta.default
    def _default(  # pyright: ignore[reportUnusedFunction]
        *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
        config: Annotated[
            Path | None, Parameter(name="--config", help="Path to config file")
        ] = None,
        database: Annotated[
            Path | None,
            Parameter(name="--database", help="Path to the SQLite database"),
        ] = None,
    ) -> None:
        """Run dmpid with global options.

        Args:
            tokens: Command tokens to pass to subcommands.
            config: Explicit path to a TOML config file.
            database: SQLite database to use instead of the configured one.
        """
        overrides: dict[str, object] | None = None
        if database is not None:
            overrides = {"storage": {"database": str(database)}}

        try:
            loaded_config = load_config(config, overrides=overrides)
        except ConfigError as e:
            exit_with_error(str(e), ExitCode.LOAD_ERROR, console=error_console)
        except FileNotFoundError:
            exit_with_error(
                f"Config file not found: {config}",
                ExitCode.LOAD_ERROR,
                console=error_console,
            )

        logger = create_registry_logger(
            level=loaded_config.logging.level.value,
            log_format=loaded_config.logging.format.value,  # pyright: ignore[reportArgumentType]
            log_file=loaded_config.logging.file,
            component="cli",
        )

        CLIContext.set_current(CLIContext(config=loaded_config, logger=logger))
        try:
            app(tokens)
        finally:
            CLIContext.reset()

    register_commands(app)
    return app


def main() -> None:
    """Default entrypoint for the `dmpid` CLI."""
    app = create_app()
    app.meta()
