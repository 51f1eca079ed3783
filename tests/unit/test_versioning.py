"""Unit tests for the version lifecycle."""

from collections.abc import Callable
from typing import Any

import pendulum
import pytest

from dmpid import (
    MemoryKeyValueStore,
    NoChangeError,
    NotFoundError,
    Provenance,
    RegistryConfig,
    VersionManager,
)
from dmpid._records import extract_owner_id, fingerprint
from dmpid._versioning import (
    non_owner_splice,
    now_iso,
    owner_splice,
    related_work_key,
    review_harvester_mods,
)

PK = "DMP#doi.org/10.80030/AB12CD34"
MODIFIED = "2024-03-01T10:00:00Z"
HARVESTED = "https://doi.org/10.5061/dryad.h1"

FreezeTime = Callable[..., pendulum.DateTime]


def _related(identifier: str, **extra: Any) -> dict[str, Any]:
    return {
        "descriptor": "references",
        "type": "doi",
        "identifier": identifier,
        "work_type": "dataset",
        **extra,
    }


def _review(status: str) -> list[dict[str, Any]]:
    return [
        {
            "id": "datacite-1",
            "provenance": "datacite",
            "dmproadmap_related_identifiers": [
                {
                    "domain": "https://doi.org/",
                    "identifier": "10.5061/dryad.h1",
                    "status": status,
                    "descriptor": "references",
                    "type": "doi",
                    "work_type": "dataset",
                }
            ],
        }
    ]


def _harvester_mods() -> dict[str, Any]:
    return {
        "PK": PK,
        "SK": "HARVESTER_MODS",
        "related_works": {HARVESTED: {"provenance": "datacite", "status": "pending"}},
    }


@pytest.fixture
def make_current(
    owner: Provenance, make_document: Callable[..., dict[str, Any]]
) -> Callable[..., dict[str, Any]]:
    """Return a factory for stored latest items owned by ``owner``."""

    def _make(**overrides: Any) -> dict[str, Any]:
        document = make_document(**overrides)
        item = {
            **document,
            "PK": PK,
            "SK": "VERSION#latest",
            "dmp_id": {"type": "doi", "identifier": "https://doi.org/10.80030/AB12CD34"},
            "dmphub_provenance_id": owner.key,
            "dmphub_owner_org": "https://ror.org/03yrm5c26",
            "dmphub_modification_day": "2024-03-01",
            "created": "2024-01-01T00:00:00Z",
            "registered": "2024-01-01T00:00:00Z",
            "modified": MODIFIED,
            "dmproadmap_featured": "0",
            "dmproadmap_links": {"get": "https://dmphub.example.org/dmps/doi.org/10.80030/AB12CD34"},
        }
        item["dmphub_owner_id"] = extract_owner_id(item)
        item["dmphub_fingerprint"] = fingerprint(item)
        return item

    return _make


@pytest.fixture
def versions(store: MemoryKeyValueStore, config: RegistryConfig) -> VersionManager:
    return VersionManager(store, config)


class TestNowIso:
    def test_uses_utc(self, freeze_time: FreezeTime) -> None:
        _ = freeze_time(2024, 3, 1, 10, 30)

        assert now_iso() == "2024-03-01T10:30:00Z"


class TestOwnerSplice:
    def test_incoming_replaces_content(
        self,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
    ) -> None:
        current = make_current(description="Old description")

        merged = owner_splice(current, make_document(title="Revised"), owner)

        assert merged["title"] == "Revised"
        assert merged["description"] == make_document()["description"]

    def test_keeps_registry_fields(
        self,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
    ) -> None:
        current = make_current()
        incoming = make_document(
            dmp_id={"type": "doi", "identifier": "https://doi.org/10.80030/FORGED"},
            dmphub_owner_org="https://ror.org/forged",
            created="2030-01-01T00:00:00Z",
            registered="2030-01-01T00:00:00Z",
        )

        merged = owner_splice(current, incoming, owner)

        assert merged["dmp_id"] == current["dmp_id"]
        assert merged["dmphub_owner_org"] == current["dmphub_owner_org"]
        assert merged["created"] == current["created"]
        assert merged["registered"] == current["registered"]
        assert merged["dmproadmap_links"] == current["dmproadmap_links"]

    def test_normalizes_featured(
        self,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
    ) -> None:
        merged = owner_splice(
            make_current(), make_document(dmproadmap_featured="yes"), owner
        )

        assert merged["dmproadmap_featured"] == "1"

    def test_carries_other_provenance_contributions(
        self,
        owner: Provenance,
        other: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
    ) -> None:
        contributed = _related(
            "https://doi.org/10.5061/dryad.abc",
            dmphub_provenance_id=other.key,
            dmphub_created_at=MODIFIED,
        )
        own = _related("https://doi.org/10.5061/dryad.own")
        current = make_current(dmproadmap_related_identifiers=[own, contributed])

        merged = owner_splice(current, make_document(), owner)

        assert merged["dmproadmap_related_identifiers"] == [contributed]

    def test_restated_contribution_is_not_duplicated(
        self,
        owner: Provenance,
        other: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
    ) -> None:
        contributed = _related(
            "https://doi.org/10.5061/dryad.abc", dmphub_provenance_id=other.key
        )
        current = make_current(dmproadmap_related_identifiers=[contributed])
        restated = _related("http://doi.org/10.5061/DRYAD.ABC")

        merged = owner_splice(
            current, make_document(dmproadmap_related_identifiers=[restated]), owner
        )

        assert merged["dmproadmap_related_identifiers"] == [restated]

    def test_recomputes_owner_id(
        self,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
    ) -> None:
        document = make_document()
        document["contact"]["contact_id"]["identifier"] = "https://orcid.org/0000-0001-0000-0001"

        merged = owner_splice(make_current(), document, owner)

        assert merged["dmphub_owner_id"] == "https://orcid.org/0000-0001-0000-0001"
        assert merged["dmphub_fingerprint"] != make_current()["dmphub_fingerprint"]


class TestNonOwnerSplice:
    def test_without_related_identifiers_changes_nothing(
        self, other: Provenance, make_current: Callable[..., dict[str, Any]]
    ) -> None:
        current = make_current()

        merged = non_owner_splice(
            current, {"title": "Ignored"}, other, timestamp="2024-03-02T00:00:00Z"
        )

        assert merged == current
        assert merged is not current

    def test_tags_new_entries(
        self, other: Provenance, make_current: Callable[..., dict[str, Any]]
    ) -> None:
        incoming = {"dmproadmap_related_identifiers": [_related("https://doi.org/10.5061/x")]}

        merged = non_owner_splice(
            make_current(), incoming, other, timestamp="2024-03-02T00:00:00Z"
        )

        assert merged["dmproadmap_related_identifiers"] == [
            _related(
                "https://doi.org/10.5061/x",
                dmphub_provenance_id=other.key,
                dmphub_created_at="2024-03-02T00:00:00Z",
            )
        ]

    def test_only_related_identifiers_are_taken(
        self, other: Provenance, make_current: Callable[..., dict[str, Any]]
    ) -> None:
        current = make_current()
        incoming = {
            "title": "Hijacked",
            "dmproadmap_related_identifiers": [_related("https://doi.org/10.5061/x")],
        }

        merged = non_owner_splice(current, incoming, other, timestamp=MODIFIED)

        assert merged["title"] == current["title"]

    def test_repeat_update_replaces_earlier_contributions(
        self, other: Provenance, make_current: Callable[..., dict[str, Any]]
    ) -> None:
        current = make_current(
            dmproadmap_related_identifiers=[
                _related(
                    "https://doi.org/10.5061/kept",
                    dmphub_provenance_id=other.key,
                    dmphub_created_at="2024-01-01T00:00:00Z",
                ),
                _related(
                    "https://doi.org/10.5061/dropped",
                    dmphub_provenance_id=other.key,
                    dmphub_created_at="2024-01-01T00:00:00Z",
                ),
            ]
        )
        incoming = {
            "dmproadmap_related_identifiers": [_related("https://doi.org/10.5061/kept")]
        }

        merged = non_owner_splice(current, incoming, other, timestamp=MODIFIED)

        assert merged["dmproadmap_related_identifiers"] == [
            _related(
                "https://doi.org/10.5061/kept",
                dmphub_provenance_id=other.key,
                dmphub_created_at="2024-01-01T00:00:00Z",
            )
        ]

    def test_leaves_owner_entries_alone(
        self, other: Provenance, make_current: Callable[..., dict[str, Any]]
    ) -> None:
        own = _related("https://doi.org/10.5061/own")
        current = make_current(dmproadmap_related_identifiers=[own])
        incoming = {"dmproadmap_related_identifiers": [_related("https://doi.org/10.5061/x")]}

        merged = non_owner_splice(current, incoming, other, timestamp=MODIFIED)

        assert merged["dmproadmap_related_identifiers"][0] == own
        assert len(merged["dmproadmap_related_identifiers"]) == 2

    def test_fills_in_missing_citation(
        self, other: Provenance, make_current: Callable[..., dict[str, Any]]
    ) -> None:
        own = _related("https://doi.org/10.5061/own")
        current = make_current(dmproadmap_related_identifiers=[own])
        incoming = {
            "dmproadmap_related_identifiers": [
                _related("https://doi.org/10.5061/own", citation="Doe, J. (2024)")
            ]
        }

        merged = non_owner_splice(current, incoming, other, timestamp=MODIFIED)

        assert merged["dmproadmap_related_identifiers"] == [
            {**own, "citation": "Doe, J. (2024)"}
        ]

    def test_never_overwrites_citation(
        self, other: Provenance, make_current: Callable[..., dict[str, Any]]
    ) -> None:
        own = _related("https://doi.org/10.5061/own", citation="Original")
        current = make_current(dmproadmap_related_identifiers=[own])
        incoming = {
            "dmproadmap_related_identifiers": [
                _related("https://doi.org/10.5061/own", citation="Replacement")
            ]
        }

        merged = non_owner_splice(current, incoming, other, timestamp=MODIFIED)

        assert merged["dmproadmap_related_identifiers"] == [own]


class TestShouldSnapshot:
    def test_non_owner_always_snapshots(
        self,
        versions: VersionManager,
        other: Provenance,
        make_current: Callable[..., dict[str, Any]],
    ) -> None:
        now = pendulum.parse(MODIFIED)
        assert isinstance(now, pendulum.DateTime)

        assert versions.should_snapshot(make_current(), other, now)

    @pytest.mark.parametrize(
        ("elapsed", "expected"),
        [(0, False), (3600, False), (3601, True), (86400, True)],
    )
    def test_owner_snapshots_after_window(
        self,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        elapsed: int,
        expected: bool,
    ) -> None:
        modified = pendulum.parse(MODIFIED)
        assert isinstance(modified, pendulum.DateTime)

        now = modified.add(seconds=elapsed)

        assert versions.should_snapshot(make_current(), owner, now) is expected

    def test_unparseable_modified_snapshots(
        self,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
    ) -> None:
        item = make_current()
        item["modified"] = "last tuesday"

        assert versions.should_snapshot(item, owner, pendulum.now("UTC"))


class TestIsVersionable:
    def test_matching_dmp_id(
        self, versions: VersionManager, make_current: Callable[..., dict[str, Any]]
    ) -> None:
        assert versions.is_versionable(make_current(), PK)

    @pytest.mark.parametrize(
        "dmp_id",
        [
            None,
            "https://doi.org/10.80030/AB12CD34",
            {"type": "doi", "identifier": "https://doi.org/10.80030/OTHER"},
            {"type": "url", "identifier": "not a doi"},
        ],
    )
    def test_mismatched_dmp_id(
        self,
        versions: VersionManager,
        make_current: Callable[..., dict[str, Any]],
        dmp_id: object,
    ) -> None:
        item = make_current()
        item["dmp_id"] = dmp_id

        assert not versions.is_versionable(item, PK)


class TestApplyUpdate:
    def test_missing_record(
        self,
        versions: VersionManager,
        owner: Provenance,
        make_document: Callable[..., dict[str, Any]],
    ) -> None:
        with pytest.raises(NotFoundError):
            _ = versions.apply_update(owner, PK, make_document())

    def test_no_change(
        self,
        store: MemoryKeyValueStore,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
        freeze_time: FreezeTime,
    ) -> None:
        store.put(make_current())
        _ = freeze_time(2024, 3, 2)

        with pytest.raises(NoChangeError):
            _ = versions.apply_update(owner, PK, make_document())

        assert len(store) == 1

    def test_owner_edit_within_window_coalesces(
        self,
        store: MemoryKeyValueStore,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
        freeze_time: FreezeTime,
    ) -> None:
        store.put(make_current())
        _ = freeze_time(2024, 3, 1, 10, 30)

        item = versions.apply_update(owner, PK, make_document(title="Revised"))

        assert item["modified"] == "2024-03-01T10:30:00Z"
        assert [i["SK"] for i in store.query(PK)] == ["VERSION#latest"]

    def test_owner_edit_after_window_snapshots(
        self,
        store: MemoryKeyValueStore,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
        freeze_time: FreezeTime,
    ) -> None:
        current = make_current()
        store.put(current)
        _ = freeze_time(2024, 3, 2, 9)

        item = versions.apply_update(owner, PK, make_document(title="Revised"))

        snapshot = store.get(PK, f"VERSION#{MODIFIED}")
        assert snapshot == {**current, "SK": f"VERSION#{MODIFIED}"}
        assert item["title"] == "Revised"
        assert item["dmphub_modification_day"] == "2024-03-02"

    def test_non_owner_update_snapshots(
        self,
        store: MemoryKeyValueStore,
        versions: VersionManager,
        other: Provenance,
        make_current: Callable[..., dict[str, Any]],
        freeze_time: FreezeTime,
    ) -> None:
        store.put(make_current())
        _ = freeze_time(2024, 3, 1, 10, 5)
        incoming = {"dmproadmap_related_identifiers": [_related("https://doi.org/10.5061/x")]}

        item = versions.apply_update(other, PK, incoming)

        assert store.exists(PK, f"VERSION#{MODIFIED}")
        assert item["dmphub_provenance_id"] == "PROVENANCE#dmptool"
        assert item["dmproadmap_related_identifiers"][0]["dmphub_created_at"] == (
            "2024-03-01T10:05:00Z"
        )

    def test_non_versionable_updates_in_place(
        self,
        store: MemoryKeyValueStore,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
        freeze_time: FreezeTime,
    ) -> None:
        current = make_current()
        current["dmp_id"] = {"type": "url", "identifier": "https://dmptool.org/plans/1"}
        store.put(current)
        _ = freeze_time(2024, 6, 1)

        _ = versions.apply_update(owner, PK, make_document(title="Revised"))

        assert [i["SK"] for i in store.query(PK)] == ["VERSION#latest"]


class TestRelatedWorkKey:
    @pytest.mark.parametrize("domain", ["https://doi.org/", "https://doi.org"])
    def test_joins_domain_and_identifier(self, domain: str) -> None:
        related = {"domain": domain, "identifier": "10.5061/dryad.h1"}

        assert related_work_key(related) == HARVESTED

    def test_without_domain(self) -> None:
        assert related_work_key({"identifier": HARVESTED}) == HARVESTED


class TestReviewHarvesterMods:
    def test_approved_work_is_appended(self) -> None:
        merged: dict[str, Any] = {"title": "Plan"}
        works = _harvester_mods()["related_works"]

        reviewed = review_harvester_mods(merged, _review("approved"), works)

        assert reviewed == [HARVESTED]
        assert merged["dmproadmap_related_identifiers"] == [
            {
                "identifier": HARVESTED,
                "work_type": "dataset",
                "type": "doi",
                "descriptor": "references",
            }
        ]
        assert works[HARVESTED]["status"] == "approved"

    def test_approved_work_already_present(self) -> None:
        merged = {"dmproadmap_related_identifiers": [_related(HARVESTED)]}
        works = _harvester_mods()["related_works"]

        _ = review_harvester_mods(merged, _review("approved"), works)

        assert merged["dmproadmap_related_identifiers"] == [_related(HARVESTED)]

    def test_rejected_work_is_removed(self) -> None:
        other = _related("https://doi.org/10.5061/kept")
        merged = {"dmproadmap_related_identifiers": [_related(HARVESTED), other]}
        works = _harvester_mods()["related_works"]

        reviewed = review_harvester_mods(merged, _review("rejected"), works)

        assert reviewed == [HARVESTED]
        assert merged["dmproadmap_related_identifiers"] == [other]
        assert works[HARVESTED]["status"] == "rejected"

    def test_unknown_work_is_ignored(self) -> None:
        merged: dict[str, Any] = {"title": "Plan"}

        reviewed = review_harvester_mods(merged, _review("approved"), {})

        assert reviewed == []
        assert merged == {"title": "Plan"}

    @pytest.mark.parametrize("modifications", [None, "approved", [42], [{"id": "x"}]])
    def test_malformed_modifications(self, modifications: object) -> None:
        merged: dict[str, Any] = {"title": "Plan"}

        reviewed = review_harvester_mods(
            merged, modifications, _harvester_mods()["related_works"]
        )

        assert reviewed == []
        assert merged == {"title": "Plan"}


class TestApplyUpdateHarvesterReview:
    def test_owner_approves_harvested_work(
        self,
        store: MemoryKeyValueStore,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
        freeze_time: FreezeTime,
    ) -> None:
        store.put(make_current())
        store.put(_harvester_mods())
        _ = freeze_time(2024, 3, 1, 10, 30)

        item = versions.apply_update(
            owner, PK, make_document(dmphub_modifications=_review("approved"))
        )

        assert [e["identifier"] for e in item["dmproadmap_related_identifiers"]] == [
            HARVESTED
        ]
        assert "dmphub_modifications" not in item
        assert "dmphub_modifications" not in store.get(PK, "VERSION#latest")
        mods = store.get(PK, "HARVESTER_MODS")
        assert mods is not None
        assert mods["related_works"][HARVESTED]["status"] == "approved"

    def test_owner_rejects_harvested_work(
        self,
        store: MemoryKeyValueStore,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
        freeze_time: FreezeTime,
    ) -> None:
        store.put(make_current(dmproadmap_related_identifiers=[_related(HARVESTED)]))
        store.put(_harvester_mods())
        _ = freeze_time(2024, 3, 1, 10, 30)

        item = versions.apply_update(
            owner,
            PK,
            make_document(
                dmproadmap_related_identifiers=[_related(HARVESTED)],
                dmphub_modifications=_review("rejected"),
            ),
        )

        assert item["dmproadmap_related_identifiers"] == []
        mods = store.get(PK, "HARVESTER_MODS")
        assert mods is not None
        assert mods["related_works"][HARVESTED]["status"] == "rejected"

    def test_without_harvester_record(
        self,
        store: MemoryKeyValueStore,
        versions: VersionManager,
        owner: Provenance,
        make_current: Callable[..., dict[str, Any]],
        make_document: Callable[..., dict[str, Any]],
        freeze_time: FreezeTime,
    ) -> None:
        store.put(make_current())
        _ = freeze_time(2024, 3, 1, 10, 30)

        item = versions.apply_update(
            owner,
            PK,
            make_document(title="Revised", dmphub_modifications=_review("approved")),
        )

        assert item["title"] == "Revised"
        assert "dmproadmap_related_identifiers" not in item
        assert not store.exists(PK, "HARVESTER_MODS")
