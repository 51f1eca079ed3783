"""A registry that mints, versions and retires DMP IDs.

Example:
    >>> from dmpid import DmpIdRegistry, MemoryKeyValueStore, RegistryConfig
    >>> registry = DmpIdRegistry(MemoryKeyValueStore(), RegistryConfig())
    >>> registry.partition_key("https://doi.org/10.80030/ab12cd34")
    'DMP#doi.org/10.80030/ab12cd34'
"""

from ._contracts import (
    AmendDocument,
    AuthorDocument,
    ContractMode,
    DeleteDocument,
    ValidationIssue,
    get_contract_schema,
    validate,
)
from ._creator import Creator
from ._events import (
    CITATION_FETCH,
    EZID_UPDATE,
    ChangeEvent,
    EventNotifier,
    EventPublisher,
    HttpEventPublisher,
    RecordingEventPublisher,
)
from ._finder import Finder, VersionEntry
from ._keys import (
    from_partition_key,
    from_sort_key,
    to_partition_key,
    to_sort_key,
)
from ._mutations import MutationAuthority
from ._provenance import CallerIdentity, Provenance, ProvenanceResolver
from ._records import Record, project_public
from ._registry import DmpIdRegistry
from ._versioning import VersionManager
from .config import RegistryConfig, load_config
from .exceptions import (
    AlreadyExistsError,
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
    DmpIdError,
    DmpValidationError,
    ForbiddenError,
    InvalidIdentifierError,
    MintingExhaustedError,
    NoChangeError,
    NoHistoricalMutationError,
    NoOwnerOrganizationError,
    NotFoundError,
    NotificationError,
    StorageError,
)
from .storage import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore

__all__ = [
    "CITATION_FETCH",
    "EZID_UPDATE",
    "AlreadyExistsError",
    "AmendDocument",
    "AuthorDocument",
    "CallerIdentity",
    "ChangeEvent",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ContractMode",
    "Creator",
    "DeleteDocument",
    "DmpIdError",
    "DmpIdRegistry",
    "DmpValidationError",
    "EventNotifier",
    "EventPublisher",
    "Finder",
    "ForbiddenError",
    "HttpEventPublisher",
    "InvalidIdentifierError",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "MintingExhaustedError",
    "MutationAuthority",
    "NoChangeError",
    "NoHistoricalMutationError",
    "NoOwnerOrganizationError",
    "NotFoundError",
    "NotificationError",
    "Provenance",
    "ProvenanceResolver",
    "Record",
    "RecordingEventPublisher",
    "RegistryConfig",
    "SQLiteKeyValueStore",
    "StorageError",
    "ValidationIssue",
    "VersionEntry",
    "VersionManager",
    "from_partition_key",
    "from_sort_key",
    "get_contract_schema",
    "load_config",
    "project_public",
    "to_partition_key",
    "to_sort_key",
    "validate",
]
