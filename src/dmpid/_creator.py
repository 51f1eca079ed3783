# pyright: reportAny=false, reportExplicitAny=false
"""Registration of new DMP IDs."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Any, Final

import pendulum

from dmpid._contracts import parse_author, unwrap
from dmpid._keys import (
    SK_LATEST,
    format_provenance_identifier,
    is_valid_identifier,
    strip_partition_prefix,
    to_dmp_id,
    to_partition_key,
)
from dmpid._records import (
    MODIFICATIONS,
    extract_owner_id,
    extract_owner_org,
    featured_flag,
    fingerprint,
    strip_submitted,
)
from dmpid.exceptions import (
    AlreadyExistsError,
    MintingExhaustedError,
    NoOwnerOrganizationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import FilteringBoundLogger

    from dmpid._events import EventNotifier
    from dmpid._provenance import Provenance
    from dmpid._records import Record
    from dmpid.config import RegistryConfig
    from dmpid.storage import Item, KeyValueStore

FINGERPRINT_ATTRIBUTE: Final = "dmphub_fingerprint"

# Minting never tries more candidates than this, whatever the configuration
MAX_MINT_ATTEMPTS: Final = 10


def random_suffix() -> str:
    """Generate a candidate identifier suffix (8 uppercase hex characters)."""
    return secrets.token_hex(4).upper()


def _supplied_identifier(document: Record) -> str | None:
    dmp_id = document.get("dmp_id")
    if not isinstance(dmp_id, dict):
        return None
    identifier = dmp_id.get("identifier")
    return identifier if isinstance(identifier, str) and identifier.strip() else None


def _created_timestamp(document: Record, fallback: str) -> str:
    created = document.get("created")
    if isinstance(created, str):
        try:
            _ = pendulum.parse(created)
        except ValueError:
            return fallback
        return created
    return fallback


class Creator:
    """Validates, identifies and stores new DMP records."""

    __slots__: Final = ("_config", "_logger", "_notifier", "_store", "_suffix_factory")

    _store: KeyValueStore
    _config: RegistryConfig
    _notifier: EventNotifier | None
    _suffix_factory: Callable[[], str]
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(
        self,
        store: KeyValueStore,
        config: RegistryConfig,
        *,
        notifier: EventNotifier | None = None,
        suffix_factory: Callable[[], str] = random_suffix,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the creator.

        Args:
            store: Key-value store holding DMP records.
            config: Registry configuration (shoulder, base URLs, attempts).
            notifier: Publishes the creation events.
            suffix_factory: Generates candidate identifier suffixes.
            logger: Optional logger.
        """
        self._store = store
        self._config = config
        self._notifier = notifier
        self._suffix_factory = suffix_factory
        self._logger = logger

    def create(self, provenance: Provenance, document: object) -> Item:
        """Register a new DMP.

        Args:
            provenance: The creating provenance; it becomes the owner.
            document: The DMP document, bare or wrapped in ``{"dmp": ...}``.

        Returns:
            The stored latest item, internal fields included.

        Raises:
            DmpValidationError: If the document violates the ``author`` contract.
            AlreadyExistsError: If the supplied identifier is taken, or an
                equivalent DMP (same contact and title) is registered.
            NoOwnerOrganizationError: If no owning organization can be found.
            MintingExhaustedError: If no free identifier was found.
            StorageError: If the store fails.
        """
        _ = parse_author(document)
        body = strip_submitted(dict(unwrap(document)))  # pyright: ignore[reportArgumentType]

        self._check_not_registered(body)

        owner_org = extract_owner_org(body)
        if owner_org is None:
            msg = "Unable to determine the organization that owns the DMP"
            raise NoOwnerOrganizationError(msg)

        partition_key = self._assign_partition_key(provenance, body)
        item = self.annotate(provenance, partition_key, body, owner_org=owner_org)
        self._store.put(item)

        if self._logger:
            self._logger.info(
                "dmp_created",
                partition_key=partition_key,
                provenance=provenance.key,
                owner_org=owner_org,
            )
        if self._notifier is not None:
            _ = self._notifier.record_changed(
                item, component="creator", updater_is_owner=True
            )
        return item

    def _check_not_registered(self, body: Record) -> None:
        base_url = self._config.identifiers.base_url
        supplied = _supplied_identifier(body)
        if supplied is not None and is_valid_identifier(supplied):
            partition_key = to_partition_key(supplied, base_url=base_url)
            if self._store.exists(partition_key):
                msg = f"DMP already exists: {strip_partition_prefix(partition_key)}"
                raise AlreadyExistsError(msg, partition_key=partition_key)

        digest = fingerprint(body)
        if digest is None:
            return
        matches = self._store.query_index(FINGERPRINT_ATTRIBUTE, [digest], sort_key=SK_LATEST)
        if matches:
            partition_key = str(matches[0]["PK"])
            msg = (
                "An equivalent DMP is already registered: "
                f"{strip_partition_prefix(partition_key)}"
            )
            raise AlreadyExistsError(msg, partition_key=partition_key)

    def _assign_partition_key(self, provenance: Provenance, body: Record) -> str:
        base_url = self._config.identifiers.base_url
        supplied = _supplied_identifier(body)
        if (
            provenance.seeding_with_live_dmp_ids
            and supplied is not None
            and is_valid_identifier(supplied)
        ):
            # Existence was already ruled out by _check_not_registered
            return to_partition_key(supplied, base_url=base_url)
        return self.mint()

    def mint(self) -> str:
        """Find an unused partition key under the configured shoulder.

        Returns:
            The new partition key.

        Raises:
            MintingExhaustedError: If every candidate was taken.
        """
        identifiers = self._config.identifiers
        attempts = min(identifiers.max_mint_attempts, MAX_MINT_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            candidate = to_partition_key(
                f"{identifiers.shoulder}{self._suffix_factory()}",
                base_url=identifiers.base_url,
            )
            if not self._store.exists(candidate):
                if self._logger:
                    self._logger.debug(
                        "dmp_id_minted", partition_key=candidate, attempt=attempt
                    )
                return candidate

        if self._logger:
            self._logger.error("dmp_id_minting_exhausted", attempts=attempts)
        msg = f"Unable to mint a unique DMP ID after {attempts} attempts"
        raise MintingExhaustedError(msg, attempts=attempts)

    def annotate(
        self,
        provenance: Provenance,
        partition_key: str,
        body: Record,
        *,
        owner_org: str,
    ) -> Item:
        """Add the registry's bookkeeping fields to a new record.

        Args:
            provenance: The creating provenance.
            partition_key: The assigned partition key.
            body: The submitted document without internal fields.
            owner_org: The inferred owning organization.

        Returns:
            The item to store.
        """
        identifiers = self._config.identifiers
        now = pendulum.now("UTC")
        timestamp = now.to_iso8601_string()

        item: dict[str, Any] = dict(body)
        item["PK"] = partition_key
        item["SK"] = SK_LATEST
        item["dmp_id"] = to_dmp_id(partition_key, base_url=identifiers.base_url)
        item["dmphub_provenance_id"] = provenance.key
        item["dmphub_owner_org"] = owner_org
        item["dmphub_modification_day"] = now.to_date_string()
        item["created"] = _created_timestamp(body, timestamp)
        item["modified"] = timestamp
        item["registered"] = body.get("registered") or timestamp
        item["dmproadmap_featured"] = featured_flag(body.get("dmproadmap_featured", "0"))
        _ = item.pop(MODIFICATIONS, None)

        owner_id = extract_owner_id(body)
        if owner_id:
            item["dmphub_owner_id"] = owner_id
        digest = fingerprint(body)
        if digest:
            item["dmphub_fingerprint"] = digest

        provenance_identifier = self._provenance_identifier(provenance, body)
        if provenance_identifier:
            item["dmphub_provenance_identifier"] = provenance_identifier

        links = body.get("dmproadmap_links")
        links = dict(links) if isinstance(links, dict) else {}
        if "get" not in links:
            links["get"] = (
                f"{identifiers.landing_page_url}{strip_partition_prefix(partition_key)}"
            )
        item["dmproadmap_links"] = links
        return item

    def _provenance_identifier(self, provenance: Provenance, body: Record) -> str | None:
        links = body.get("dmproadmap_links")
        landing_page = links.get("get") if isinstance(links, dict) else None
        if provenance.seeding_with_live_dmp_ids and isinstance(landing_page, str):
            return landing_page

        supplied = _supplied_identifier(body)
        if supplied is None:
            return None
        return format_provenance_identifier(
            supplied,
            name=provenance.name,
            homepage=provenance.homepage,
            callback_uri=provenance.callback_uri,
        )
