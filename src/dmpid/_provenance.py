# pyright: reportAny=false, reportExplicitAny=false
"""Provenance resolution.

A provenance is a registered client system allowed to create and amend DMP
IDs. Provenance records are written out-of-band; the registry only reads
them. Callers are identified by the ``iss`` and ``client_id`` claims of
their authenticated identity, which the configured client directory maps to
a provenance name.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from dmpid._keys import provenance_key, provenance_name
from dmpid._records import is_truthy_flag
from dmpid.exceptions import ForbiddenError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from structlog.typing import FilteringBoundLogger

    from dmpid.config import ProvenanceClient
    from dmpid.storage import Item, KeyValueStore

PROFILE_SK: Final = "PROFILE"


@dataclass(frozen=True, slots=True)
class Provenance:
    """A registered client system.

    Attributes:
        name: The registered provenance name.
        seeding_with_live_dmp_ids: Whether the system may register DMP IDs it
            already minted elsewhere instead of receiving new ones.
        callback_uri: Endpoint notified about changes to the system's records.
        homepage: The system's homepage.
        description: Display description.
    """

    name: str
    seeding_with_live_dmp_ids: bool = False
    callback_uri: str | None = None
    homepage: str | None = None
    description: str | None = None

    @property
    def key(self) -> str:
        """Partition key of the provenance record (``PROVENANCE#<name>``)."""
        return provenance_key(self.name)

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> Provenance:
        """Build a Provenance from its stored item."""
        name = item.get("name") or provenance_name(str(item.get("PK", "")))
        return cls(
            name=str(name),
            seeding_with_live_dmp_ids=is_truthy_flag(
                item.get("seedingWithLiveDmpIds", False)
            ),
            callback_uri=item.get("callbackUri") or None,
            homepage=item.get("homepage") or None,
            description=item.get("description") or None,
        )

    def to_item(self) -> Item:
        """Serialize the provenance to its stored item."""
        item: Item = {
            "PK": self.key,
            "SK": PROFILE_SK,
            "name": self.name,
            "seedingWithLiveDmpIds": self.seeding_with_live_dmp_ids,
        }
        if self.callback_uri:
            item["callbackUri"] = self.callback_uri
        if self.homepage:
            item["homepage"] = self.homepage
        if self.description:
            item["description"] = self.description
        return item


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """The authenticated identity of a caller.

    Attributes:
        issuer: The ``iss`` claim of the caller's token.
        client_id: The ``client_id`` claim of the caller's token.
    """

    issuer: str
    client_id: str

    @classmethod
    def from_claims(cls, claims: object) -> CallerIdentity | None:
        """Build an identity from token claims.

        Returns:
            The identity, or None if the claims are not a mapping or either
            claim is missing or not a string.
        """
        if not isinstance(claims, Mapping):
            return None
        issuer = claims.get("iss")
        client_id = claims.get("client_id")
        if not isinstance(issuer, str) or not issuer.strip():
            return None
        if not isinstance(client_id, str) or not client_id.strip():
            return None
        return cls(issuer=issuer.strip(), client_id=client_id.strip())


class ProvenanceResolver:
    """Resolves callers to their registered provenance.

    The resolver never writes to the store.
    """

    __slots__: Final = ("_clients", "_logger", "_store")

    _store: KeyValueStore
    _clients: dict[tuple[str, str], str]
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(
        self,
        store: KeyValueStore,
        clients: Iterable[ProvenanceClient] = (),
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Key-value store holding provenance records.
            clients: Directory mapping (issuer, client_id) to provenance names.
            logger: Optional logger.
        """
        self._store = store
        self._clients = {
            (client.issuer, client.client_id): client.name for client in clients
        }
        self._logger = logger

    def by_name(self, name: str) -> Provenance | None:
        """Look up a provenance by its registered name.

        Args:
            name: The provenance name, with or without the ``PROVENANCE#`` prefix.

        Returns:
            The provenance, or None if it is not registered.
        """
        item = self._store.get(provenance_key(name), PROFILE_SK)
        return Provenance.from_item(item) if item is not None else None

    def resolve(self, identity: object) -> Provenance:
        """Resolve a caller to its provenance.

        Args:
            identity: The caller identity, or the raw token claims.

        Returns:
            The caller's provenance.

        Raises:
            ForbiddenError: If the identity is absent or malformed, or does not
                map to a registered provenance.
        """
        if identity is None:
            msg = "No caller identity was supplied."
            raise ForbiddenError(msg)

        caller = (
            identity
            if isinstance(identity, CallerIdentity)
            else CallerIdentity.from_claims(identity)
        )
        if caller is None:
            if self._logger:
                self._logger.warning("provenance_identity_malformed")
            msg = "The caller identity is malformed."
            raise ForbiddenError(msg)

        name = self._clients.get((caller.issuer, caller.client_id))
        provenance = self.by_name(name) if name is not None else None
        if provenance is None:
            if self._logger:
                self._logger.warning(
                    "provenance_unknown",
                    issuer=caller.issuer,
                    client_id=caller.client_id,
                )
            msg = "The caller is not a registered provenance."
            raise ForbiddenError(msg)

        if self._logger:
            self._logger.debug("provenance_resolved", provenance=provenance.key)
        return provenance
