# pyright: reportAny=false, reportExplicitAny=false
"""Read path for DMP records.

Every record handed to a caller goes through ``project_public`` and, when the
record has history, carries a ``dmphub_versions`` list of its snapshots.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import pendulum

from dmpid._keys import (
    SK_LATEST,
    SK_PREFIX,
    format_provenance_identifier,
    from_sort_key,
    is_snapshot_key,
    strip_partition_prefix,
    to_sort_key,
)
from dmpid._records import VERSIONS, Record, project_public
from dmpid.exceptions import InvalidIdentifierError, NotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from structlog.typing import FilteringBoundLogger

    from dmpid._provenance import Provenance
    from dmpid.config import RegistryConfig
    from dmpid.storage import Item, KeyValueStore

OWNER_ID_ATTRIBUTE: Final = "dmphub_owner_id"
OWNER_ORG_ATTRIBUTE: Final = "dmphub_owner_org"
PROVENANCE_IDENTIFIER_ATTRIBUTE: Final = "dmphub_provenance_identifier"
MODIFICATION_DAY_ATTRIBUTE: Final = "dmphub_modification_day"

_ORCID_RE: Final = re.compile(r"^[0-9]{4}-[0-9]{4}-[0-9]{4}-[0-9]{3}[0-9X]$")
_ROR_RE: Final = re.compile(r"^0[a-z0-9]{6}[0-9]{2}$")
_PROTOCOL_RE: Final = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class VersionEntry:
    """One historical snapshot of a record.

    Attributes:
        timestamp: The snapshot's RFC3339 timestamp (its sort key label).
        access_url: API URL that returns the snapshot.
    """

    timestamp: str
    access_url: str

    def to_dict(self) -> dict[str, str]:
        """Serialize the entry for the ``dmphub_versions`` field."""
        return {"timestamp": self.timestamp, "access_url": self.access_url}


def _instant(value: Any) -> pendulum.DateTime:
    """Parse a stored timestamp for ordering; unparseable values sort first."""
    if isinstance(value, str):
        try:
            parsed = pendulum.parse(value)
        except ValueError:
            pass
        else:
            if isinstance(parsed, pendulum.DateTime):
                return parsed
    return pendulum.DateTime.min.replace(tzinfo=pendulum.UTC)


def owner_reference_variants(reference: str) -> list[str]:
    """Expand an owner reference into the spellings stored on records.

    Bare ORCID and ROR identifiers are expanded to their ``https`` and
    ``http`` URLs; URLs are matched with either protocol.

    Examples:
        >>> owner_reference_variants("0000-0002-1825-0097")
        ['https://orcid.org/0000-0002-1825-0097', 'http://orcid.org/0000-0002-1825-0097']
        >>> owner_reference_variants("https://ror.org/03yrm5c26")
        ['https://ror.org/03yrm5c26', 'http://ror.org/03yrm5c26']
    """
    value = reference.strip()
    bare = _PROTOCOL_RE.sub("", value)
    if _ORCID_RE.match(bare):
        bare = f"orcid.org/{bare}"
    elif _ROR_RE.match(bare):
        bare = f"ror.org/{bare}"
    elif bare == value:
        # Not a URL and not a known identifier scheme
        return [value]
    return [f"https://{bare}", f"http://{bare}"]


class Finder:
    """Looks up DMP records and assembles their version history."""

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
        """Initialize the finder.

        Args:
            store: Key-value store holding DMP records.
            config: Registry configuration.
            logger: Optional logger.
        """
        self._store = store
        self._config = config
        self._logger = logger

    # -------------------------------------------------------------------------
    # Point Lookups
    # -------------------------------------------------------------------------

    def get_item(self, partition_key: str, sort_key: str = SK_LATEST) -> Item | None:
        """Fetch the stored item, internal fields included.

        Used by the write path; never hand the result to a caller.
        """
        return self._store.get(partition_key, to_sort_key(sort_key))

    def exists(self, partition_key: str) -> bool:
        """Check whether a latest record exists for the partition key."""
        return self._store.exists(partition_key, SK_LATEST)

    def by_key(self, partition_key: str, sort_key: str = SK_LATEST) -> Record:
        """Fetch a record by its keys.

        Args:
            partition_key: The record's partition key.
            sort_key: ``latest``, ``tombstone`` or a snapshot timestamp, with
                or without the ``VERSION#`` prefix.

        Returns:
            The public record.

        Raises:
            NotFoundError: If nothing is stored at the keys.
            InvalidIdentifierError: If the sort key is malformed.
        """
        resolved_sk = to_sort_key(sort_key)
        item = self._store.get(partition_key, resolved_sk)
        if item is None:
            if self._logger:
                self._logger.debug(
                    "dmp_not_found", partition_key=partition_key, sort_key=resolved_sk
                )
            msg = f"DMP does not exist: {strip_partition_prefix(partition_key)}"
            raise NotFoundError(msg, partition_key=partition_key, sort_key=resolved_sk)
        return self.present(item)

    def present(self, item: Item) -> Record:
        """Project a stored item for a caller and attach its version history."""
        record = project_public(item)
        partition_key = item.get("PK")
        if not isinstance(partition_key, str):
            return record

        keys = self._version_keys(partition_key)
        if len(keys) > 1:
            record[VERSIONS] = [
                entry.to_dict()
                for entry in self._history_from_keys(partition_key, keys)
            ]
        else:
            _ = record.pop(VERSIONS, None)
        return record

    # -------------------------------------------------------------------------
    # Version History
    # -------------------------------------------------------------------------

    def _version_keys(self, partition_key: str) -> list[str]:
        items = self._store.query(
            partition_key, sort_key_prefix=SK_PREFIX, projection=("modified",)
        )
        return [str(item["SK"]) for item in items]

    def _history_from_keys(
        self, partition_key: str, sort_keys: Iterable[str]
    ) -> list[VersionEntry]:
        api_base = self._config.identifiers.api_base_url
        identifier = strip_partition_prefix(partition_key)
        timestamps = [from_sort_key(sk) for sk in sort_keys if is_snapshot_key(sk)]
        timestamps.sort(key=_instant, reverse=True)
        return [
            VersionEntry(
                timestamp=ts,
                access_url=f"{api_base}dmps/{identifier}?version={ts}",
            )
            for ts in timestamps
        ]

    def assemble_version_history(self, partition_key: str) -> list[VersionEntry]:
        """List the snapshots of a record, newest first.

        The latest and tombstone items are not part of the history; they stay
        addressable through ``by_key``.

        Args:
            partition_key: The record's partition key.

        Returns:
            Snapshot entries sorted by timestamp, descending.
        """
        return self._history_from_keys(partition_key, self._version_keys(partition_key))

    # -------------------------------------------------------------------------
    # Secondary Lookups
    # -------------------------------------------------------------------------

    def by_external_identifier(
        self, identifier: str, *, provenance: Provenance | None = None
    ) -> Record:
        """Find a record by the identifier its provenance system uses for it.

        Args:
            identifier: The provenance system's own identifier for the DMP.
            provenance: The calling provenance; its formatted identifier
                spelling is matched as well.

        Returns:
            The public latest record.

        Raises:
            NotFoundError: If no latest record carries the identifier.
        """
        values = [identifier]
        if provenance is not None:
            values.append(
                format_provenance_identifier(
                    identifier,
                    name=provenance.name,
                    homepage=provenance.homepage,
                    callback_uri=provenance.callback_uri,
                )
            )

        items = self._store.query_index(
            PROVENANCE_IDENTIFIER_ATTRIBUTE, values, sort_key=SK_LATEST
        )
        if not items:
            msg = f"No DMP is registered for {identifier!r}"
            raise NotFoundError(msg)
        items.sort(key=lambda item: _instant(item.get("modified")), reverse=True)
        return self.present(items[0])

    def by_owner(
        self,
        owner_reference: str,
        page: int = 1,
        per_page: int | None = None,
    ) -> list[Record]:
        """List the latest records of a person or organization.

        Matches the person identifier (``dmphub_owner_id``) and the
        organization identifier (``dmphub_owner_org``). Out-of-range
        pagination values fall back to the defaults.

        Args:
            owner_reference: An ORCID or ROR identifier, bare or as a URL.
            page: 1-based page number.
            per_page: Page size, at most the configured maximum.

        Returns:
            One page of public records, most recently modified first.
        """
        page, per_page = self.clamp_pagination(page, per_page)
        variants = owner_reference_variants(owner_reference)

        found: dict[str, Item] = {}
        for attribute in (OWNER_ID_ATTRIBUTE, OWNER_ORG_ATTRIBUTE):
            for item in self._store.query_index(attribute, variants, sort_key=SK_LATEST):
                found.setdefault(str(item["PK"]), item)

        items = sorted(
            found.values(),
            key=lambda item: _instant(item.get("modified")),
            reverse=True,
        )
        start = (page - 1) * per_page
        if self._logger:
            self._logger.debug(
                "dmps_by_owner",
                owner=owner_reference,
                total=len(items),
                page=page,
                per_page=per_page,
            )
        return [self.present(item) for item in items[start : start + per_page]]

    def by_modification_day(self, day: str) -> list[Record]:
        """List the latest records last modified on a calendar day.

        Args:
            day: A date (``YYYY-MM-DD``) or any timestamp on that day.

        Raises:
            InvalidIdentifierError: If the day cannot be parsed.
        """
        try:
            parsed = pendulum.parse(day)
        except ValueError as e:
            msg = f"Invalid modification day: {day!r}"
            raise InvalidIdentifierError(msg, identifier=day) from e
        if not isinstance(parsed, pendulum.Date):
            msg = f"Invalid modification day: {day!r}"
            raise InvalidIdentifierError(msg, identifier=day)

        items = self._store.query_index(
            MODIFICATION_DAY_ATTRIBUTE, [parsed.to_date_string()], sort_key=SK_LATEST
        )
        return [self.present(item) for item in items]

    def clamp_pagination(self, page: object, per_page: object) -> tuple[int, int]:
        """Replace out-of-range pagination values with the defaults."""
        default_size = self._config.pagination.default_per_page
        max_size = self._config.pagination.max_per_page

        valid_page = (
            page if isinstance(page, int) and not isinstance(page, bool) and page >= 1 else 1
        )
        valid_size = (
            per_page
            if isinstance(per_page, int)
            and not isinstance(per_page, bool)
            and 1 <= per_page <= max_size
            else default_size
        )
        return valid_page, valid_size
