"""Shared utilities for the DMP ID registry."""

from ._logging import LogFormatType, create_registry_logger

__all__ = [
    "LogFormatType",
    "create_registry_logger",
]
