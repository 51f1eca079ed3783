"""Shared test fixtures for dmpid tests."""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest
from rich.console import Console

from dmpid import (
    DmpIdRegistry,
    MemoryKeyValueStore,
    Provenance,
    RecordingEventPublisher,
    RegistryConfig,
)

if TYPE_CHECKING:
    from pendulum import DateTime

ORCID = "https://orcid.org/0000-0002-1825-0097"
ROR = "https://ror.org/03yrm5c26"

BASE_DOCUMENT: dict[str, Any] = {
    "title": "Coral reef resilience under warming oceans",
    "description": "How survey data from three reef systems is managed.",
    "contact": {
        "name": "Jane Doe",
        "mbox": "jane.doe@example.edu",
        "contact_id": {"type": "orcid", "identifier": ORCID},
        "dmproadmap_affiliation": {
            "name": "Example University",
            "affiliation_id": {"type": "ror", "identifier": ROR},
        },
    },
    "contributor": [
        {
            "name": "Jane Doe",
            "role": ["http://credit.niso.org/contributor-roles/investigation"],
            "contributor_id": {"type": "orcid", "identifier": ORCID},
        }
    ],
    "dataset": [{"title": "Reef survey transects"}],
    "project": [{"title": "Reef resilience"}],
}

FreezeTimeFunc = Callable[..., "DateTime"]


@pytest.fixture
def freeze_time(monkeypatch: pytest.MonkeyPatch) -> FreezeTimeFunc:
    """Return a function to freeze pendulum.now() to a fixed time.

    Call it again to move the clock.
    """
    import pendulum

    def _freeze(
        year: int,
        month: int,
        day: int,
        hour: int = 0,
        minute: int = 0,
        second: int = 0,
    ) -> DateTime:
        fixed = pendulum.datetime(year, month, day, hour, minute, second, tz="UTC")

        def mock_now(tz: str | None = None) -> DateTime:
            return fixed if tz in (None, "UTC") else fixed.in_timezone(tz)

        monkeypatch.setattr("pendulum.now", mock_now)
        return fixed

    return _freeze


@pytest.fixture
def console() -> Console:
    return Console(
        width=70,
        force_terminal=True,
        highlight=False,
        color_system=None,
        legacy_windows=False,
    )


@pytest.fixture
def make_document() -> Callable[..., dict[str, Any]]:
    """Return a factory for valid author documents."""

    def _make(**overrides: Any) -> dict[str, Any]:
        document = copy.deepcopy(BASE_DOCUMENT)
        document.update(overrides)
        return document

    return _make


@pytest.fixture
def config() -> RegistryConfig:
    return RegistryConfig()


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def owner(store: MemoryKeyValueStore) -> Provenance:
    """A registered provenance that creates records."""
    provenance = Provenance(
        name="dmptool",
        homepage="https://dmptool.org",
        callback_uri="https://dmptool.org/api/v2/callbacks",
    )
    store.put(provenance.to_item())
    return provenance


@pytest.fixture
def other(store: MemoryKeyValueStore) -> Provenance:
    """A registered provenance that does not own the test records."""
    provenance = Provenance(name="datacite-harvester")
    store.put(provenance.to_item())
    return provenance


@pytest.fixture
def seeder(store: MemoryKeyValueStore) -> Provenance:
    """A registered provenance allowed to register existing DMP IDs."""
    provenance = Provenance(name="seeder", seeding_with_live_dmp_ids=True)
    store.put(provenance.to_item())
    return provenance


@pytest.fixture
def publisher() -> RecordingEventPublisher:
    return RecordingEventPublisher()


@pytest.fixture
def registry(
    store: MemoryKeyValueStore,
    config: RegistryConfig,
    publisher: RecordingEventPublisher,
) -> DmpIdRegistry:
    return DmpIdRegistry(store, config, publisher=publisher)
