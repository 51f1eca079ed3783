# pyright: reportAny=false, reportExplicitAny=false
"""Version lifecycle of DMP records.

The latest item is the only mutable item of a record. Before it is replaced,
its current state may be preserved as an immutable snapshot under
``VERSION#<its modified timestamp>``:

- updates by another provenance always produce a snapshot
- updates by the owning provenance produce one only when the latest item
  has been quiet for longer than the quiescence window; quicker edits
  coalesce into the latest item

The snapshot is written before the new latest item, so the prior state is
never lost if the second write fails.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Final

import pendulum

from dmpid._keys import (
    SK_HARVESTER_MODS,
    SK_LATEST,
    is_valid_identifier,
    to_partition_key,
    to_sort_key,
)
from dmpid._records import (
    INTERNAL_FIELDS,
    MODIFICATIONS,
    RELATED_IDENTIFIERS,
    VERSIONS,
    extract_owner_id,
    featured_flag,
    fingerprint,
    related_identifiers,
    related_key,
    same_content,
    strip_submitted,
)
from dmpid.exceptions import InvalidIdentifierError, NoChangeError, NotFoundError

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from dmpid._provenance import Provenance
    from dmpid._records import Record
    from dmpid.config import RegistryConfig
    from dmpid.storage import Item, KeyValueStore

# Fields the registry assigns at creation; an owner update never replaces them
_REGISTRY_FIELDS: Final = ("created", "registered")

# Fields carried forward when an owner update omits them
_CARRIED_FIELDS: Final = ("dmproadmap_featured", "dmproadmap_links")


def now_iso() -> str:
    """Return the current UTC time as an RFC3339 string."""
    return pendulum.now("UTC").to_iso8601_string()


def _parse_instant(value: Any) -> pendulum.DateTime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = pendulum.parse(value)
    except ValueError:
        return None
    return parsed if isinstance(parsed, pendulum.DateTime) else None


# =============================================================================
# Splicing
# =============================================================================


def owner_splice(current: Item, incoming: Record, provenance: Provenance) -> Item:
    """Merge an update from the owning provenance.

    The incoming document becomes the new state. Related identifiers other
    provenance systems contributed are carried forward unless the owner
    restates them.

    Args:
        current: The current latest item.
        incoming: The validated ``author`` document.
        provenance: The owning provenance.

    Returns:
        The merged item. ``current`` is not modified.
    """
    merged = strip_submitted(incoming)
    for key in INTERNAL_FIELDS:
        if key in current:
            merged[key] = copy.deepcopy(current[key])
    for key in _REGISTRY_FIELDS:
        if key in current:
            merged[key] = copy.deepcopy(current[key])
    for key in _CARRIED_FIELDS:
        if key not in merged and key in current:
            merged[key] = copy.deepcopy(current[key])
    _ = merged.pop(MODIFICATIONS, None)
    merged["dmp_id"] = copy.deepcopy(current.get("dmp_id"))
    if "dmproadmap_featured" in merged:
        merged["dmproadmap_featured"] = featured_flag(merged["dmproadmap_featured"])

    restated = {related_key(entry) for entry in related_identifiers(merged)}
    carried = [
        copy.deepcopy(entry)
        for entry in related_identifiers(current)
        if entry.get("dmphub_provenance_id") not in (None, provenance.key)
        and related_key(entry) not in restated
    ]
    if carried:
        merged[RELATED_IDENTIFIERS] = [*related_identifiers(merged), *carried]

    owner_id = extract_owner_id(merged)
    if owner_id:
        merged["dmphub_owner_id"] = owner_id
    digest = fingerprint(merged)
    if digest:
        merged["dmphub_fingerprint"] = digest
    return merged


def non_owner_splice(
    current: Item, incoming: Record, provenance: Provenance, *, timestamp: str
) -> Item:
    """Merge an update from a provenance that does not own the record.

    Only related identifiers are taken from the incoming document. Each
    contribution is tagged with the contributing provenance; a repeat update
    replaces that provenance's earlier contributions. An entry that restates
    one already on the record only fills in its missing ``citation``.

    Args:
        current: The current latest item.
        incoming: The validated ``amend`` document.
        provenance: The contributing provenance.
        timestamp: Creation time recorded on new contributions.

    Returns:
        The merged item. ``current`` is not modified.
    """
    merged = copy.deepcopy(current)
    if RELATED_IDENTIFIERS not in incoming:
        return merged

    previous = {
        related_key(entry): entry
        for entry in related_identifiers(current)
        if entry.get("dmphub_provenance_id") == provenance.key
    }
    kept = [
        entry
        for entry in related_identifiers(merged)
        if entry.get("dmphub_provenance_id") != provenance.key
    ]
    by_key = {related_key(entry): entry for entry in kept}

    for entry in related_identifiers(strip_submitted(incoming)):
        key = related_key(entry)
        existing = by_key.get(key)
        if existing is not None:
            if entry.get("citation") and not existing.get("citation"):
                existing["citation"] = entry["citation"]
            continue

        earlier = previous.get(key)
        tagged = {
            **entry,
            "dmphub_provenance_id": provenance.key,
            "dmphub_created_at": earlier.get("dmphub_created_at", timestamp)
            if earlier is not None
            else timestamp,
        }
        kept.append(tagged)
        by_key[key] = tagged

    merged[RELATED_IDENTIFIERS] = kept
    return merged


# =============================================================================
# Harvester Review
# =============================================================================

RELATED_WORKS: Final = "related_works"
APPROVED: Final = "approved"
REJECTED: Final = "rejected"

_APPROVED_FIELDS: Final = ("work_type", "type", "descriptor", "citation")


def related_work_key(related: dict[str, Any]) -> str:
    """Key of a harvested work: its domain joined to its identifier."""
    domain = str(related.get("domain") or "")
    identifier = str(related.get("identifier") or "")
    if not domain:
        return identifier
    return f"{domain.removesuffix('/')}/{identifier}"


def review_harvester_mods(
    merged: Item, modifications: Any, related_works: dict[str, Any]
) -> list[str]:
    """Apply the owner's decisions on related works a harvester found.

    Only works the harvester recorded are reviewed; anything else in
    ``modifications`` is ignored. An approved work missing from the record
    is appended to its related identifiers. A rejected work on the record
    is removed.

    Args:
        merged: The merged latest item, updated in place.
        modifications: The ``dmphub_modifications`` the owner submitted.
        related_works: The harvester's works keyed by ``related_work_key``.
            Each reviewed work gets the owner's status, in place.

    Returns:
        Keys of the reviewed works.
    """
    reviewed: list[str] = []
    if not isinstance(modifications, list):
        return reviewed

    for modification in modifications:
        related_list = (
            modification.get(RELATED_IDENTIFIERS)
            if isinstance(modification, dict)
            else None
        )
        if not isinstance(related_list, list):
            continue
        for related in related_list:
            if not isinstance(related, dict):
                continue
            key = related_work_key(related)
            work = related_works.get(key)
            if not isinstance(work, dict):
                continue

            status = related.get("status")
            work["status"] = status
            reviewed.append(key)

            entries = related_identifiers(merged)
            existing = next(
                (entry for entry in entries if entry.get("identifier") == key), None
            )
            if status == APPROVED and existing is None:
                approved = {
                    field: related[field]
                    for field in _APPROVED_FIELDS
                    if related.get(field) is not None
                }
                entries.append({"identifier": key, **approved})
                merged[RELATED_IDENTIFIERS] = entries
            elif status == REJECTED and existing is not None:
                merged[RELATED_IDENTIFIERS] = [
                    entry for entry in entries if entry is not existing
                ]
    return reviewed


# =============================================================================
# Version Manager
# =============================================================================


class VersionManager:
    """Applies updates to the latest item of a record."""

    __slots__: Final = ("_config", "_logger", "_store")

    _store: KeyValueStore
    _config: RegistryConfig
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(
        self,
        store: KeyValueStore,
        config: RegistryConfig,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the version manager.

        Args:
            store: Key-value store holding DMP records.
            config: Registry configuration (quiescence window, base URL).
            logger: Optional logger.
        """
        self._store = store
        self._config = config
        self._logger = logger

    def is_versionable(self, item: Item, partition_key: str) -> bool:
        """Check that an item carries a DMP ID matching the partition key."""
        dmp_id = item.get("dmp_id")
        identifier = dmp_id.get("identifier") if isinstance(dmp_id, dict) else None
        if not isinstance(identifier, str) or not is_valid_identifier(identifier):
            return False
        try:
            return (
                to_partition_key(identifier, base_url=self._config.identifiers.base_url)
                == partition_key
            )
        except InvalidIdentifierError:
            return False

    def should_snapshot(
        self, item: Item, provenance: Provenance, now: pendulum.DateTime
    ) -> bool:
        """Decide whether the current latest item must be preserved.

        Args:
            item: The current latest item.
            provenance: The provenance making the update.
            now: The time of the update.

        Returns:
            True if the updater is not the owner, or if the latest item was
            last modified longer ago than the quiescence window.
        """
        if item.get("dmphub_provenance_id") != provenance.key:
            return True
        modified = _parse_instant(item.get("modified"))
        if modified is None:
            return True
        elapsed = (now - modified).total_seconds()
        return elapsed > self._config.versioning.quiescence_window

    def apply_update(
        self, provenance: Provenance, partition_key: str, incoming: Record
    ) -> Item:
        """Merge an update into the latest item, snapshotting first if needed.

        Args:
            provenance: The provenance making the update.
            partition_key: The record to update.
            incoming: The validated document: an ``author`` document from the
                owner, an ``amend`` document from anyone else.
                An owner document may carry ``dmphub_modifications`` that
                approve or reject related works a harvester found.

        Returns:
            The new latest item, internal fields included.

        Raises:
            NotFoundError: If the record has no latest item.
            NoChangeError: If the merge leaves the record unchanged.
            StorageError: If the store fails.
        """
        current = self._store.get(partition_key, SK_LATEST)
        if current is None:
            msg = "DMP does not exist"
            raise NotFoundError(msg, partition_key=partition_key, sort_key=SK_LATEST)

        now = pendulum.now("UTC")
        timestamp = now.to_iso8601_string()
        is_owner = current.get("dmphub_provenance_id") == provenance.key

        merged = (
            owner_splice(current, incoming, provenance)
            if is_owner
            else non_owner_splice(current, incoming, provenance, timestamp=timestamp)
        )
        modifications = incoming.get(MODIFICATIONS)
        if is_owner and modifications:
            self._review_harvester_mods(partition_key, modifications, merged)

        if same_content(current, merged):
            if self._logger:
                self._logger.debug(
                    "update_no_change",
                    partition_key=partition_key,
                    provenance=provenance.key,
                )
            msg = "The update does not change the DMP"
            raise NoChangeError(msg, partition_key=partition_key)

        if self.is_versionable(current, partition_key):
            if self.should_snapshot(current, provenance, now):
                self._write_snapshot(current, fallback=timestamp)
        elif self._logger:
            self._logger.warning("dmp_not_versionable", partition_key=partition_key)

        merged["PK"] = partition_key
        merged["SK"] = SK_LATEST
        merged["modified"] = timestamp
        merged["dmphub_modification_day"] = now.to_date_string()
        _ = merged.pop(VERSIONS, None)
        self._store.put(merged)

        if self._logger:
            self._logger.info(
                "latest_updated",
                partition_key=partition_key,
                provenance=provenance.key,
                updater_is_owner=is_owner,
            )
        return merged

    def _review_harvester_mods(
        self, partition_key: str, modifications: Any, merged: Item
    ) -> None:
        mods = self._store.get(partition_key, SK_HARVESTER_MODS)
        works = mods.get(RELATED_WORKS) if mods is not None else None
        if mods is None or not isinstance(works, dict):
            if self._logger:
                self._logger.debug(
                    "harvester_mods_missing", partition_key=partition_key
                )
            return

        reviewed = review_harvester_mods(merged, modifications, works)
        if not reviewed:
            return
        self._store.put(mods)

        if self._logger:
            self._logger.info(
                "harvester_mods_reviewed",
                partition_key=partition_key,
                reviewed=reviewed,
            )

    def _write_snapshot(self, current: Item, *, fallback: str) -> str:
        modified = current.get("modified")
        label = modified if _parse_instant(modified) is not None else fallback
        snapshot = copy.deepcopy(current)
        snapshot["SK"] = to_sort_key(str(label))
        _ = snapshot.pop(VERSIONS, None)
        self._store.put(snapshot)

        if self._logger:
            self._logger.info(
                "snapshot_written",
                partition_key=snapshot.get("PK"),
                sort_key=snapshot["SK"],
            )
        return snapshot["SK"]
