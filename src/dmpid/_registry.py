# pyright: reportAny=false, reportExplicitAny=false
"""The DMP ID registry facade.

Wires the components into the request flow: resolve the caller's provenance,
validate the document, find the target, apply the change, persist it and
notify. Every record returned here has been through the public projection.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Self

from dmpid._contracts import parse_delete, unwrap
from dmpid._creator import Creator, random_suffix
from dmpid._events import EventNotifier, HttpEventPublisher
from dmpid._finder import Finder
from dmpid._keys import SK_LATEST, to_partition_key
from dmpid._mutations import MutationAuthority
from dmpid._provenance import CallerIdentity, Provenance, ProvenanceResolver
from dmpid._versioning import VersionManager
from dmpid.exceptions import NoChangeError, NotFoundError
from dmpid.storage import SQLiteKeyValueStore
from dmpid.utils import create_registry_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    from structlog.typing import FilteringBoundLogger

    from dmpid._events import EventPublisher
    from dmpid._finder import VersionEntry
    from dmpid._records import Record
    from dmpid.config import RegistryConfig
    from dmpid.storage import KeyValueStore

type Caller = Provenance | CallerIdentity | Mapping[str, Any] | None


class DmpIdRegistry:
    """Entry point for reading and changing DMP records.

    Callers are given either as a resolved Provenance, a CallerIdentity, or
    the raw token claims; anything but a Provenance is resolved first.
    """

    __slots__: Final = (
        "_config",
        "_creator",
        "_finder",
        "_logger",
        "_mutations",
        "_owned_publisher",
        "_resolver",
        "_store",
    )

    _store: KeyValueStore
    _config: RegistryConfig
    _resolver: ProvenanceResolver
    _finder: Finder
    _creator: Creator
    _mutations: MutationAuthority
    _owned_publisher: HttpEventPublisher | None
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(
        self,
        store: KeyValueStore,
        config: RegistryConfig,
        *,
        publisher: EventPublisher | None = None,
        suffix_factory: Callable[[], str] = random_suffix,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Key-value store holding DMP and provenance records.
            config: Registry configuration.
            publisher: Where change events go. None disables publication.
            suffix_factory: Generates candidate identifier suffixes.
            logger: Optional logger shared by all components.
        """
        self._store = store
        self._config = config
        self._logger = logger
        self._owned_publisher = None

        notifier = EventNotifier(publisher, source=config.events.source, logger=logger)
        versions = VersionManager(store, config, logger=logger)
        self._resolver = ProvenanceResolver(
            store, config.provenance.clients, logger=logger
        )
        self._finder = Finder(store, config, logger=logger)
        self._creator = Creator(
            store,
            config,
            notifier=notifier,
            suffix_factory=suffix_factory,
            logger=logger,
        )
        self._mutations = MutationAuthority(
            store, config, versions, notifier=notifier, logger=logger
        )

    @classmethod
    def from_config(
        cls,
        config: RegistryConfig,
        *,
        store: KeyValueStore | None = None,
        publisher: EventPublisher | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> DmpIdRegistry:
        """Build a registry from configuration alone.

        Defaults to the SQLite store at ``storage.database``, an HTTP
        publisher when ``events.endpoint`` is set, and a logger built from
        the ``logging`` section.

        The HTTP publisher is closed by ``close`` or on leaving a ``with``
        block.
        """
        if logger is None:
            logger = create_registry_logger(
                level=config.logging.level.value,
                log_format=config.logging.format.value,
                log_file=config.logging.file,
                component="registry",
            )
        if store is None:
            store = SQLiteKeyValueStore(Path(config.storage.database), logger=logger)
        owned: HttpEventPublisher | None = None
        if publisher is None and config.events.endpoint:
            owned = HttpEventPublisher(
                config.events.endpoint, timeout=config.events.timeout, logger=logger
            )
            publisher = owned
        registry = cls(store, config, publisher=publisher, logger=logger)
        registry._owned_publisher = owned  # noqa: SLF001
        return registry

    def close(self) -> None:
        """Close the event publisher if ``from_config`` created it."""
        if self._owned_publisher is not None:
            self._owned_publisher.close()
            self._owned_publisher = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def finder(self) -> Finder:
        return self._finder

    @property
    def resolver(self) -> ProvenanceResolver:
        return self._resolver

    def partition_key(self, identifier: str) -> str:
        """Convert a DMP ID in any accepted spelling into its partition key."""
        return to_partition_key(identifier, base_url=self._config.identifiers.base_url)

    def _provenance(self, caller: Caller) -> Provenance:
        if isinstance(caller, Provenance):
            return caller
        return self._resolver.resolve(caller)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, identifier: str, version: str | None = None) -> Record:
        """Fetch a record, or one of its versions.

        Args:
            identifier: The DMP ID.
            version: ``latest`` (default), ``tombstone`` or a snapshot timestamp.

        Raises:
            InvalidIdentifierError: If the identifier or version is malformed.
            NotFoundError: If the record or version does not exist.
        """
        return self._finder.by_key(self.partition_key(identifier), version or SK_LATEST)

    def versions(self, identifier: str) -> list[VersionEntry]:
        """List the snapshots of a record, newest first.

        Raises:
            NotFoundError: If nothing was ever stored under the identifier.
        """
        partition_key = self.partition_key(identifier)
        if not self._store.exists(partition_key):
            msg = f"DMP does not exist: {identifier}"
            raise NotFoundError(msg, partition_key=partition_key)
        return self._finder.assemble_version_history(partition_key)

    def list_by_owner(
        self, owner: str, page: int = 1, per_page: int | None = None
    ) -> list[Record]:
        """List the latest records of a person or organization."""
        return self._finder.by_owner(owner, page, per_page)

    def list_by_modification_day(self, day: str) -> list[Record]:
        """List the latest records last modified on a day."""
        return self._finder.by_modification_day(day)

    def find_by_external_identifier(self, identifier: str, caller: Caller = None) -> Record:
        """Find a record by the identifier a provenance system uses for it.

        Args:
            identifier: The provenance system's own identifier.
            caller: When given, its provenance-specific spelling is matched too.
        """
        provenance = self._provenance(caller) if caller is not None else None
        return self._finder.by_external_identifier(identifier, provenance=provenance)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create(self, caller: Caller, document: object) -> Record:
        """Register a new DMP and return the stored record.

        Raises:
            ForbiddenError: If the caller has no registered provenance.
            DmpValidationError: If the document violates the ``author`` contract.
            AlreadyExistsError: If the DMP is already registered.
            NoOwnerOrganizationError: If no owning organization can be found.
            MintingExhaustedError: If no free identifier was found.
        """
        provenance = self._provenance(caller)
        item = self._creator.create(provenance, document)
        return self._finder.present(item)

    def update(self, caller: Caller, identifier: str, document: object) -> Record:
        """Update a record and return its new state.

        An update that changes nothing returns the current record.

        Raises:
            ForbiddenError: If the caller has no registered provenance.
            NoHistoricalMutationError: If the record is tombstoned.
            NotFoundError: If the record does not exist.
            DmpValidationError: If the document violates its contract.
        """
        provenance = self._provenance(caller)
        partition_key = self.partition_key(identifier)
        try:
            item = self._mutations.update(provenance, partition_key, document)
        except NoChangeError:
            if self._logger:
                self._logger.info(
                    "update_no_change",
                    partition_key=partition_key,
                    provenance=provenance.key,
                )
            return self._finder.by_key(partition_key)
        return self._finder.present(item)

    def tombstone(self, caller: Caller, identifier: str) -> Record:
        """Retire a record and return its tombstone.

        Raises:
            ForbiddenError: If the caller does not own the record.
            NoHistoricalMutationError: If the record is already tombstoned.
            NotFoundError: If the record does not exist.
        """
        provenance = self._provenance(caller)
        item = self._mutations.tombstone(provenance, self.partition_key(identifier))
        return self._finder.present(item)

    def delete(self, caller: Caller, document: object) -> Record:
        """Retire the record named by a ``delete`` document.

        Raises:
            DmpValidationError: If the document violates the ``delete`` contract.
            ForbiddenError: If the caller does not own the record.
        """
        provenance = self._provenance(caller)
        request = parse_delete(unwrap(document))
        return self.tombstone(provenance, request.dmp_id.identifier)

    def attach_narrative(self, caller: Caller, identifier: str, url: str) -> Record:
        """Link a record to its narrative document.

        Raises:
            ForbiddenError: If the caller does not own the record.
            NotFoundError: If the record has no latest item.
        """
        provenance = self._provenance(caller)
        item = self._mutations.attach_narrative(
            provenance, self.partition_key(identifier), url
        )
        return self._finder.present(item)
