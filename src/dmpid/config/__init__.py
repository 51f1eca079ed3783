"""DMP ID registry configuration.

This module provides the public API for configuration management,
including loading, validation, and typed access to configuration values.

Example:
    >>> from dmpid.config import load_config
    >>> config = load_config()
    >>> config.versioning.quiescence_window
    3600
"""

from dmpid.exceptions import ConfigError, ConfigLoadError, ConfigValidationError

from ._defaults import DEFAULT_CONFIG, ENV_PREFIX
from ._load import config_to_toml, load_config
from ._loader import deep_merge, parse_env_vars, read_toml_file, set_nested_key
from ._models import (
    EventsConfig,
    IdentifierConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    PaginationConfig,
    ProvenanceClient,
    ProvenanceConfig,
    RegistryConfig,
    StorageConfig,
    VersioningConfig,
)
from ._validation import (
    ConfigIssue,
    get_config_schema,
    raise_if_validation_errors,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "ENV_PREFIX",
    "ConfigError",
    "ConfigIssue",
    "ConfigLoadError",
    "ConfigValidationError",
    "EventsConfig",
    "IdentifierConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PaginationConfig",
    "ProvenanceClient",
    "ProvenanceConfig",
    "RegistryConfig",
    "StorageConfig",
    "VersioningConfig",
    "config_to_toml",
    "deep_merge",
    "get_config_schema",
    "load_config",
    "parse_env_vars",
    "raise_if_validation_errors",
    "read_toml_file",
    "set_nested_key",
    "validate_config",
]
