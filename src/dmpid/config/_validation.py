# pyright: reportAny=false, reportExplicitAny=false
"""Configuration validation using Pydantic schemas."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from dmpid.config._models import RegistryConfig, RegistryConfigStrict
from dmpid.exceptions import ConfigValidationError

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails


@dataclass(frozen=True, slots=True)
class ConfigIssue:
    """Represents a configuration validation issue.

    Attributes:
        key: Dotted path to the configuration key (e.g., "logging.level").
        message: Human-readable description of the issue.
        expected: Description of expected value or type, if available.
        actual: The actual value that caused the issue.
        severity: Whether this is an error or warning.
    """

    key: str
    message: str
    expected: str | None
    actual: Any
    severity: Literal["error", "warning"] = "error"


def _pydantic_error_to_issue(error: ErrorDetails) -> ConfigIssue:
    loc = error.get("loc", ())
    ctx = error.get("ctx") or {}
    expected: str | None = None
    if "expected" in ctx:
        expected = str(ctx["expected"])
    elif "ge" in ctx:
        expected = f">= {ctx['ge']}"
    elif "le" in ctx:
        expected = f"<= {ctx['le']}"

    return ConfigIssue(
        key=".".join(str(part) for part in loc),
        message=str(error.get("msg", "Validation error")),
        expected=expected,
        actual=error.get("input"),
    )


def validate_config(
    config: dict[str, Any],
    *,
    strict: bool = False,
) -> list[ConfigIssue]:
    """Validate a merged configuration dictionary.

    Args:
        config: The merged configuration dictionary to validate.
        strict: If True, unknown top-level keys are errors.

    Returns:
        List of ConfigIssue objects. Empty list indicates valid config.
    """
    schema_class = RegistryConfigStrict if strict else RegistryConfig

    try:
        _ = schema_class.model_validate(config)
    except ValidationError as e:
        return [_pydantic_error_to_issue(err) for err in e.errors()]
    else:
        return []


def raise_if_validation_errors(
    issues: list[ConfigIssue],
    source: str | None = None,
) -> None:
    """Raise ConfigValidationError for the first error-level issue.

    Raises:
        ConfigValidationError: If any issues have severity="error".
    """
    errors = [i for i in issues if i.severity == "error"]
    if errors:
        issue = errors[0]
        msg = f"Invalid configuration value for '{issue.key}': {issue.message}"
        raise ConfigValidationError(
            msg,
            key=issue.key,
            value=issue.actual,
            expected=issue.expected or issue.message,
            source=source,
        )


def get_config_schema(*, strict: bool = False) -> dict[str, Any]:
    """Get the JSON Schema for registry configuration.

    Examples:
        >>> schema = get_config_schema()
        >>> "versioning" in schema["properties"]
        True
    """
    schema_class = RegistryConfigStrict if strict else RegistryConfig
    return schema_class.model_json_schema()
