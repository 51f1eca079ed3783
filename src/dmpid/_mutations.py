# pyright: reportAny=false, reportExplicitAny=false
"""Updates, tombstones and narrative attachment for existing records."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Final

import pendulum

from dmpid._contracts import (
    ContractMode,
    ValidationIssue,
    parse_amend,
    parse_author,
    unwrap,
)
from dmpid._keys import (
    SK_LATEST,
    SK_TOMBSTONE,
    from_partition_key,
    is_valid_identifier,
    strip_partition_prefix,
    to_partition_key,
)
from dmpid._records import RELATED_IDENTIFIERS, related_identifiers, strip_submitted
from dmpid.exceptions import (
    DmpValidationError,
    ForbiddenError,
    NoHistoricalMutationError,
    NotFoundError,
)

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from dmpid._events import EventNotifier
    from dmpid._provenance import Provenance
    from dmpid._versioning import VersionManager
    from dmpid.config import RegistryConfig
    from dmpid.storage import Item, KeyValueStore

OBSOLETE_PREFIX: Final = "OBSOLETE: "

NARRATIVE_DESCRIPTOR: Final = "is_metadata_for"
NARRATIVE_WORK_TYPE: Final = "output_management_plan"


def narrative_entry(url: str) -> dict[str, str]:
    """Build the related identifier that links a record to its narrative."""
    return {
        "descriptor": NARRATIVE_DESCRIPTOR,
        "work_type": NARRATIVE_WORK_TYPE,
        "type": "url",
        "identifier": url,
    }


class MutationAuthority:
    """Authorizes and performs changes to existing records.

    Updates are delegated to the VersionManager so that every write of the
    latest item goes through the same snapshot-then-latest sequence.
    """

    __slots__: Final = ("_config", "_logger", "_notifier", "_store", "_versions")

    _store: KeyValueStore
    _config: RegistryConfig
    _versions: VersionManager
    _notifier: EventNotifier | None
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(
        self,
        store: KeyValueStore,
        config: RegistryConfig,
        versions: VersionManager,
        *,
        notifier: EventNotifier | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the mutation authority.

        Args:
            store: Key-value store holding DMP records.
            config: Registry configuration.
            versions: Applies updates to the latest item.
            notifier: Publishes change events.
            logger: Optional logger.
        """
        self._store = store
        self._config = config
        self._versions = versions
        self._notifier = notifier
        self._logger = logger

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def _require_provenance(
        self, provenance: Provenance | None, partition_key: str
    ) -> Provenance:
        if provenance is None:
            msg = "A registered provenance is required to change a DMP."
            raise ForbiddenError(msg, partition_key=partition_key)
        return provenance

    def _require_latest(self, partition_key: str, sort_key: str = SK_LATEST) -> Item:
        if sort_key != SK_LATEST:
            msg = "Only the latest version of a DMP can be changed."
            raise NoHistoricalMutationError(
                msg, partition_key=partition_key, sort_key=sort_key
            )

        current = self._store.get(partition_key, SK_LATEST)
        if current is not None:
            return current
        if self._store.exists(partition_key):
            # Only snapshots or a tombstone are left
            msg = "The DMP has been tombstoned and can no longer be changed."
            raise NoHistoricalMutationError(
                msg, partition_key=partition_key, sort_key=SK_TOMBSTONE
            )
        msg = f"DMP does not exist: {strip_partition_prefix(partition_key)}"
        raise NotFoundError(msg, partition_key=partition_key, sort_key=SK_LATEST)

    def _require_owner(
        self, provenance: Provenance, current: Item, partition_key: str
    ) -> None:
        if current.get("dmphub_provenance_id") != provenance.key:
            if self._logger:
                self._logger.warning(
                    "mutation_forbidden",
                    partition_key=partition_key,
                    provenance=provenance.key,
                )
            msg = "Only the provenance that owns the DMP may do this."
            raise ForbiddenError(
                msg, provenance=provenance.key, partition_key=partition_key
            )

    def _check_target(self, mode: ContractMode, body: dict[str, Any], partition_key: str) -> None:
        dmp_id = body.get("dmp_id")
        identifier = dmp_id.get("identifier") if isinstance(dmp_id, dict) else None
        if identifier is None:
            return

        base_url = self._config.identifiers.base_url
        if (
            isinstance(identifier, str)
            and is_valid_identifier(identifier)
            and to_partition_key(identifier, base_url=base_url) == partition_key
        ):
            return

        expected = from_partition_key(partition_key, base_url=base_url)
        issue = ValidationIssue(
            key="dmp_id.identifier",
            message="dmp_id does not match the DMP being updated",
            expected=expected,
            actual=identifier,
        )
        msg = f"Document does not satisfy the {mode} contract: {issue}"
        raise DmpValidationError(msg, mode=mode.value, issues=[issue])

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def update(
        self,
        provenance: Provenance | None,
        partition_key: str,
        document: object,
        *,
        sort_key: str = SK_LATEST,
    ) -> Item:
        """Update the latest item of a record.

        The owning provenance submits a full ``author`` document; any other
        provenance submits an ``amend`` document.

        Args:
            provenance: The calling provenance.
            partition_key: The record to update.
            document: The update, bare or wrapped in ``{"dmp": ...}``.
            sort_key: The targeted sort key; anything but latest is refused.

        Returns:
            The new latest item, internal fields included.

        Raises:
            ForbiddenError: If there is no calling provenance.
            NoHistoricalMutationError: If a snapshot or tombstone is targeted.
            NotFoundError: If the record does not exist.
            DmpValidationError: If the document violates its contract or
                names another DMP.
            NoChangeError: If the update changes nothing.
        """
        caller = self._require_provenance(provenance, partition_key)
        current = self._require_latest(partition_key, sort_key)
        is_owner = current.get("dmphub_provenance_id") == caller.key

        if is_owner:
            _ = parse_author(document)
            mode = ContractMode.AUTHOR
        else:
            _ = parse_amend(document)
            mode = ContractMode.AMEND
        body: dict[str, Any] = dict(unwrap(document))  # pyright: ignore[reportArgumentType]
        self._check_target(mode, body, partition_key)

        item = self._versions.apply_update(caller, partition_key, strip_submitted(body))
        if self._notifier is not None:
            _ = self._notifier.record_changed(
                item, component="updater", updater_is_owner=is_owner
            )
        return item

    def tombstone(self, provenance: Provenance | None, partition_key: str) -> Item:
        """Retire a record.

        Writes a tombstone item holding the final state, then removes the
        latest item. Snapshots are kept.

        Args:
            provenance: The calling provenance; must own the record.
            partition_key: The record to retire.

        Returns:
            The tombstone item.

        Raises:
            ForbiddenError: If the caller does not own the record.
            NoHistoricalMutationError: If the record is already tombstoned.
            NotFoundError: If the record does not exist.
        """
        caller = self._require_provenance(provenance, partition_key)
        current = self._require_latest(partition_key)
        self._require_owner(caller, current, partition_key)

        now = pendulum.now("UTC")
        tombstone = copy.deepcopy(current)
        tombstone["SK"] = SK_TOMBSTONE
        tombstone["title"] = f"{OBSOLETE_PREFIX}{current.get('title', '')}"
        tombstone["dmphub_tombstoned_at"] = now.to_iso8601_string()
        tombstone["modified"] = now.to_iso8601_string()
        tombstone["dmphub_modification_day"] = now.to_date_string()

        self._store.put(tombstone)
        _ = self._store.delete(partition_key, SK_LATEST)

        if self._logger:
            self._logger.info(
                "dmp_tombstoned", partition_key=partition_key, provenance=caller.key
            )
        if self._notifier is not None:
            _ = self._notifier.record_changed(
                tombstone,
                component="deleter",
                updater_is_owner=True,
                sort_key=SK_TOMBSTONE,
            )
        return tombstone

    def attach_narrative(
        self, provenance: Provenance | None, partition_key: str, url: str
    ) -> Item:
        """Link a record to its narrative document.

        The latest item is changed in place; no snapshot is produced.

        Args:
            provenance: The calling provenance; must own the record.
            partition_key: The record to link.
            url: Where the narrative document can be retrieved.

        Returns:
            The latest item.

        Raises:
            ForbiddenError: If the caller does not own the record.
            NotFoundError: If the record has no latest item.
            DmpValidationError: If the URL is empty.
        """
        caller = self._require_provenance(provenance, partition_key)
        if not isinstance(url, str) or not url.strip():  # pyright: ignore[reportUnnecessaryIsInstance]
            issue = ValidationIssue(
                key="identifier",
                message="Narrative URL must not be empty",
                expected="URL",
                actual=url,
            )
            msg = f"Invalid narrative URL: {issue}"
            raise DmpValidationError(msg, mode=ContractMode.AMEND.value, issues=[issue])

        current = self._store.get(partition_key, SK_LATEST)
        if current is None:
            msg = f"DMP does not exist: {strip_partition_prefix(partition_key)}"
            raise NotFoundError(msg, partition_key=partition_key, sort_key=SK_LATEST)
        self._require_owner(caller, current, partition_key)

        entry = narrative_entry(url.strip())
        for existing in related_identifiers(current):
            if all(existing.get(key) == value for key, value in entry.items()):
                return current

        now = pendulum.now("UTC")
        updated = copy.deepcopy(current)
        updated[RELATED_IDENTIFIERS] = [*related_identifiers(current), entry]
        updated["modified"] = now.to_iso8601_string()
        updated["dmphub_modification_day"] = now.to_date_string()
        self._store.put(updated)

        if self._logger:
            self._logger.info(
                "narrative_attached", partition_key=partition_key, url=entry["identifier"]
            )
        return updated
