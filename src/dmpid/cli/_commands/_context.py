# pyright: reportUnusedCallResult=false
"""CLI context for global state management.

The CLIContext is set once per invocation by the root command and read by
subcommands through a context variable.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from dmpid.config import RegistryConfig

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

_current_cli_context: contextvars.ContextVar[CLIContext | None] = (
    contextvars.ContextVar("cli_context", default=None)
)


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Global CLI context with configuration and options.

    Attributes:
        config: Loaded configuration, with ``--database`` already applied.
        logger: Structured logger for the registry.
    """

    config: RegistryConfig = field(repr=False)
    logger: FilteringBoundLogger | None = field(default=None, repr=False)

    @classmethod
    def get_current(cls) -> CLIContext:
        """Get the active CLIContext, or a default one if none is set."""
        ctx = _current_cli_context.get()
        if ctx is not None:
            return ctx
        return cls(config=RegistryConfig())

    @classmethod
    def set_current(cls, ctx: CLIContext) -> None:
        _current_cli_context.set(ctx)

    @classmethod
    def reset(cls) -> None:
        """Reset to the default context."""
        _current_cli_context.set(None)
