"""DMP ID registry exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

    from dmpid._contracts import ValidationIssue


class DmpIdError(Exception):
    """Base exception for DMP ID registry errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigError(DmpIdError):
    """Base exception for configuration errors."""


class ConfigLoadError(ConfigError):
    """Raised when configuration cannot be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class ConfigValidationError(ConfigError):
    """Raised when configuration fails validation."""

    def __init__(
        self,
        message: str,
        *,
        key: str,
        value: Any,  # pyright: ignore[reportAny,reportExplicitAny]
        expected: str,
        source: str | None = None,
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str = key
        self.value: Any = value  # pyright: ignore[reportExplicitAny]
        self.expected: str = expected
        self.source: str | None = source


# =============================================================================
# Request Exceptions
# =============================================================================


class DmpValidationError(DmpIdError, ValueError):
    """Raised when a document fails its schema contract.

    Attributes:
        mode: The contract the document was checked against.
        issues: Every violation found in the document.
    """

    def __init__(
        self,
        message: str,
        *,
        mode: str,
        issues: list[ValidationIssue] | None = None,
    ) -> None:
        """Initialize with error message and the contract violations.

        Args:
            message: Human-readable error message.
            mode: The contract name (author, amend or delete).
            issues: The violations reported by the validator.
        """
        super().__init__(message)
        self.mode: str = mode
        self.issues: list[ValidationIssue] = list(issues or [])


class ForbiddenError(DmpIdError):
    """Raised when the caller may not perform the requested operation.

    Attributes:
        provenance: Key of the calling provenance, if one was resolved.
        partition_key: The record the caller tried to act on.
    """

    def __init__(
        self,
        message: str,
        *,
        provenance: str | None = None,
        partition_key: str | None = None,
    ) -> None:
        """Initialize with error message and caller context."""
        super().__init__(message)
        self.provenance: str | None = provenance
        self.partition_key: str | None = partition_key


class NotFoundError(DmpIdError, KeyError):
    """Raised when no record exists for the requested key.

    Attributes:
        partition_key: The partition key that was looked up.
        sort_key: The sort key that was looked up.
    """

    def __init__(
        self,
        message: str,
        *,
        partition_key: str | None = None,
        sort_key: str | None = None,
    ) -> None:
        """Initialize with error message and key context."""
        super().__init__(message)
        self.partition_key: str | None = partition_key
        self.sort_key: str | None = sort_key

    def __str__(self) -> str:
        # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class InvalidIdentifierError(DmpIdError, ValueError):
    """Raised when an identifier does not have the DOI shape.

    Attributes:
        identifier: The rejected value.
    """

    def __init__(self, message: str, *, identifier: str | None = None) -> None:
        """Initialize with error message and the rejected identifier."""
        super().__init__(message)
        self.identifier: str | None = identifier


class AlreadyExistsError(DmpIdError):
    """Raised when a creation request matches an existing record.

    Attributes:
        partition_key: Key of the record that already exists.
    """

    def __init__(self, message: str, *, partition_key: str | None = None) -> None:
        """Initialize with error message and the conflicting key."""
        super().__init__(message)
        self.partition_key: str | None = partition_key


class MintingExhaustedError(DmpIdError):
    """Raised when no free identifier was found within the attempt budget.

    Attributes:
        attempts: Number of candidates that were tried.
    """

    def __init__(self, message: str, *, attempts: int) -> None:
        """Initialize with error message and attempt count."""
        super().__init__(message)
        self.attempts: int = attempts


class NoOwnerOrganizationError(DmpIdError, ValueError):
    """Raised when no owning organization can be inferred for a new record."""


class NoChangeError(DmpIdError):
    """Raised when an update would leave the latest record unchanged.

    This is a benign signal, not a failure.

    Attributes:
        partition_key: The record that was left untouched.
    """

    def __init__(self, message: str, *, partition_key: str | None = None) -> None:
        """Initialize with error message and key context."""
        super().__init__(message)
        self.partition_key: str | None = partition_key


class NoHistoricalMutationError(DmpIdError, ValueError):
    """Raised when a caller tries to mutate a snapshot or tombstone.

    Attributes:
        partition_key: The record that was targeted.
        sort_key: The sort key that was targeted, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        partition_key: str | None = None,
        sort_key: str | None = None,
    ) -> None:
        """Initialize with error message and key context."""
        super().__init__(message)
        self.partition_key: str | None = partition_key
        self.sort_key: str | None = sort_key


# =============================================================================
# Collaborator Exceptions
# =============================================================================


class StorageError(DmpIdError):
    """Raised when the key-value store fails."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and failing operation."""
        super().__init__(message)
        self.operation: str = operation
        self.cause: Exception | None = cause


class NotificationError(DmpIdError):
    """Raised when a change event cannot be published.

    Attributes:
        detail_type: Type of the event that failed.
        partition_key: Record the event was about.
    """

    def __init__(
        self,
        message: str,
        *,
        detail_type: str | None = None,
        partition_key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and event context."""
        super().__init__(message)
        self.detail_type: str | None = detail_type
        self.partition_key: str | None = partition_key
        self.cause: Exception | None = cause
