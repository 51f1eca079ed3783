"""Unit tests for provenance resolution."""

import pytest

from dmpid import (
    CallerIdentity,
    ForbiddenError,
    MemoryKeyValueStore,
    Provenance,
    ProvenanceResolver,
)
from dmpid._provenance import PROFILE_SK
from dmpid.config import ProvenanceClient

ISSUER = "https://auth.dmphub.example.org"

CLIENTS = (
    ProvenanceClient(issuer=ISSUER, client_id="client-dmptool", name="dmptool"),
    ProvenanceClient(issuer=ISSUER, client_id="client-ghost", name="ghost"),
)


@pytest.fixture
def resolver(store: MemoryKeyValueStore, owner: Provenance) -> ProvenanceResolver:
    return ProvenanceResolver(store, CLIENTS)


class TestProvenance:
    def test_key(self) -> None:
        assert Provenance(name="dmptool").key == "PROVENANCE#dmptool"

    def test_item_round_trip(self) -> None:
        provenance = Provenance(
            name="dmptool",
            seeding_with_live_dmp_ids=True,
            callback_uri="https://dmptool.org/api/v2/callbacks",
            homepage="https://dmptool.org",
            description="The DMP Tool",
        )

        assert Provenance.from_item(provenance.to_item()) == provenance

    def test_to_item_omits_empty_fields(self) -> None:
        assert Provenance(name="bare").to_item() == {
            "PK": "PROVENANCE#bare",
            "SK": PROFILE_SK,
            "name": "bare",
            "seedingWithLiveDmpIds": False,
        }

    def test_from_item_falls_back_to_partition_key(self) -> None:
        item = {"PK": "PROVENANCE#legacy", "SK": PROFILE_SK, "seedingWithLiveDmpIds": "true"}

        provenance = Provenance.from_item(item)

        assert provenance.name == "legacy"
        assert provenance.seeding_with_live_dmp_ids


class TestCallerIdentity:
    def test_from_claims(self) -> None:
        identity = CallerIdentity.from_claims({"iss": ISSUER, "client_id": " abc "})

        assert identity == CallerIdentity(issuer=ISSUER, client_id="abc")

    @pytest.mark.parametrize(
        "claims",
        [
            {},
            {"iss": ISSUER},
            {"client_id": "abc"},
            {"iss": "", "client_id": "abc"},
            {"iss": ISSUER, "client_id": 42},
            "token",
            [],
            42,
        ],
    )
    def test_malformed_claims(self, claims: object) -> None:
        assert CallerIdentity.from_claims(claims) is None


class TestProvenanceResolver:
    def test_by_name(self, resolver: ProvenanceResolver, owner: Provenance) -> None:
        assert resolver.by_name("dmptool") == owner
        assert resolver.by_name("PROVENANCE#dmptool") == owner

    def test_by_name_unknown(self, resolver: ProvenanceResolver) -> None:
        assert resolver.by_name("nobody") is None

    def test_resolves_identity(
        self, resolver: ProvenanceResolver, owner: Provenance
    ) -> None:
        identity = CallerIdentity(issuer=ISSUER, client_id="client-dmptool")

        assert resolver.resolve(identity) == owner

    def test_resolves_raw_claims(
        self, resolver: ProvenanceResolver, owner: Provenance
    ) -> None:
        claims = {"iss": ISSUER, "client_id": "client-dmptool", "scope": "write"}

        assert resolver.resolve(claims) == owner

    def test_missing_identity(self, resolver: ProvenanceResolver) -> None:
        with pytest.raises(ForbiddenError, match="No caller identity"):
            _ = resolver.resolve(None)

    @pytest.mark.parametrize("identity", [{"iss": ISSUER}, "token", [], 42])
    def test_malformed_identity(
        self, resolver: ProvenanceResolver, identity: object
    ) -> None:
        with pytest.raises(ForbiddenError, match="malformed"):
            _ = resolver.resolve(identity)

    def test_unmapped_client(self, resolver: ProvenanceResolver) -> None:
        with pytest.raises(ForbiddenError, match="not a registered provenance"):
            _ = resolver.resolve(CallerIdentity(issuer=ISSUER, client_id="stranger"))

    def test_mapped_but_unregistered(self, resolver: ProvenanceResolver) -> None:
        with pytest.raises(ForbiddenError):
            _ = resolver.resolve(CallerIdentity(issuer=ISSUER, client_id="client-ghost"))

    def test_never_writes(
        self, store: MemoryKeyValueStore, resolver: ProvenanceResolver
    ) -> None:
        before = len(store)

        with pytest.raises(ForbiddenError):
            _ = resolver.resolve(CallerIdentity(issuer=ISSUER, client_id="client-ghost"))

        assert len(store) == before
