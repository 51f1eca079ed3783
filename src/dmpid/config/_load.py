# pyright: reportAny=false, reportExplicitAny=false
"""Configuration loading.

Sources are merged lowest to highest precedence: built-in defaults, an
optional TOML file, ``DMPID_`` environment variables, explicit overrides.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import tomli_w

from dmpid.config._defaults import DEFAULT_CONFIG, ENV_PREFIX
from dmpid.config._loader import copy_value, deep_merge, parse_env_vars, read_toml_file
from dmpid.config._models import RegistryConfig
from dmpid.config._validation import raise_if_validation_errors, validate_config

if TYPE_CHECKING:
    from pathlib import Path


def load_config(
    path: Path | None = None,
    *,
    include_env: bool = True,
    overrides: dict[str, Any] | None = None,
    strict: bool = False,
) -> RegistryConfig:
    """Load the registry configuration.

    Args:
        path: Optional TOML file to read.
        include_env: Whether to apply ``DMPID_`` environment variables.
        overrides: Values applied last, e.g. from CLI flags.
        strict: If True, unknown top-level keys are errors.

    Returns:
        The validated configuration.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ConfigLoadError: If the TOML file cannot be parsed.
        ConfigValidationError: If the merged configuration is invalid.
    """
    data = copy_value(DEFAULT_CONFIG)
    if path is not None:
        data = deep_merge(data, read_toml_file(path))
    if include_env:
        data = deep_merge(data, parse_env_vars(ENV_PREFIX))
    if overrides:
        data = deep_merge(data, overrides)

    issues = validate_config(data, strict=strict)
    raise_if_validation_errors(issues, source=str(path) if path is not None else None)
    return RegistryConfig.model_validate(data)


def config_to_toml(config: RegistryConfig) -> str:
    """Render a configuration as TOML."""
    return tomli_w.dumps(config.model_dump(mode="json"))
