"""Unit tests for change events and their publishers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import orjson
import pytest

from dmpid import (
    CITATION_FETCH,
    EZID_UPDATE,
    ChangeEvent,
    EventNotifier,
    EventPublisher,
    HttpEventPublisher,
    NotificationError,
    RecordingEventPublisher,
)
from dmpid._events import _post_event, build_change_event, build_citation_event

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

ENDPOINT = "https://events.dmphub.example.org/bus"
PK = "DMP#doi.org/10.80030/AB12CD34"


def _item(**fields: Any) -> dict[str, Any]:
    return {
        "PK": PK,
        "SK": "VERSION#latest",
        "title": "Plan",
        "dmphub_provenance_id": "PROVENANCE#dmptool",
        "dmproadmap_links": {"get": "https://dmptool.org/plans/12"},
        **fields,
    }


def _dataset(identifier: str, **fields: Any) -> dict[str, Any]:
    return {
        "descriptor": "references",
        "work_type": "dataset",
        "type": "doi",
        "identifier": identifier,
        **fields,
    }


class _FailingPublisher:
    def __init__(self) -> None:
        self.attempts = 0

    def publish(self, event: ChangeEvent) -> None:
        self.attempts += 1
        msg = "bus unavailable"
        raise NotificationError(msg, detail_type=event.detail_type)


@pytest.fixture
def no_retry_wait(mocker: MockerFixture) -> None:
    _ = mocker.patch.object(_post_event.retry, "sleep")  # pyright: ignore[reportFunctionMemberAccess]


class TestChangeEvent:
    def test_to_dict(self) -> None:
        event = ChangeEvent(EZID_UPDATE, "dmpid.creator", {"partition_key": PK})

        assert event.to_dict() == {
            "source": "dmpid.creator",
            "detail-type": "EZID update",
            "detail": {"partition_key": PK},
        }

    def test_partition_key(self) -> None:
        assert ChangeEvent(EZID_UPDATE, "x", {"partition_key": PK}).partition_key == PK
        assert ChangeEvent(EZID_UPDATE, "x").partition_key is None


class TestBuildChangeEvent:
    def test_detail(self) -> None:
        event = build_change_event(_item(), source="dmpid.updater", updater_is_owner=False)

        assert event.detail_type == EZID_UPDATE
        assert event.source == "dmpid.updater"
        assert event.detail == {
            "partition_key": PK,
            "sort_key": "VERSION#latest",
            "owning_provenance": "PROVENANCE#dmptool",
            "related_links": {"get": "https://dmptool.org/plans/12"},
            "updater_is_owner": False,
        }

    def test_without_links(self) -> None:
        item = _item()
        del item["dmproadmap_links"]

        event = build_change_event(
            item, source="dmpid.deleter", updater_is_owner=True, sort_key="VERSION#tombstone"
        )

        assert event.detail["related_links"] == {}
        assert event.detail["sort_key"] == "VERSION#tombstone"


class TestBuildCitationEvent:
    def test_lists_uncited_identifiers(self) -> None:
        uncited = _dataset("https://doi.org/10.5061/dryad.1")
        item = _item(
            dmproadmap_related_identifiers=[
                uncited,
                _dataset("https://doi.org/10.5061/dryad.2", citation="Doe (2024)"),
                {
                    "descriptor": "is_metadata_for",
                    "work_type": "output_management_plan",
                    "type": "url",
                    "identifier": "https://example.org/plan.pdf",
                },
            ]
        )

        event = build_citation_event(item, source="dmpid.updater")

        assert event is not None
        assert event.detail_type == CITATION_FETCH
        assert event.detail["dmproadmap_related_identifiers"] == [uncited]

    def test_nothing_to_cite(self) -> None:
        assert build_citation_event(_item(), source="dmpid.updater") is None


class TestRecordingEventPublisher:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(RecordingEventPublisher(), EventPublisher)

    def test_records_and_filters(self) -> None:
        publisher = RecordingEventPublisher()
        publisher.publish(ChangeEvent(EZID_UPDATE, "a"))
        publisher.publish(ChangeEvent(CITATION_FETCH, "b"))

        assert [event.source for event in publisher.of_type(CITATION_FETCH)] == ["b"]

        publisher.clear()

        assert publisher.events == []


class TestHttpEventPublisher:
    def test_posts_json(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        publisher = HttpEventPublisher(ENDPOINT, client=client)
        event = ChangeEvent(EZID_UPDATE, "dmpid.creator", {"partition_key": PK})

        publisher.publish(event)

        assert len(requests) == 1
        assert str(requests[0].url) == ENDPOINT
        assert requests[0].headers["Content-Type"] == "application/json"
        assert orjson.loads(requests[0].content) == event.to_dict()

    def test_error_status(self) -> None:
        client = httpx.Client(
            transport=httpx.MockTransport(lambda _: httpx.Response(500))
        )
        publisher = HttpEventPublisher(ENDPOINT, client=client)

        with pytest.raises(NotificationError) as exc_info:
            publisher.publish(ChangeEvent(EZID_UPDATE, "x", {"partition_key": PK}))

        assert exc_info.value.detail_type == EZID_UPDATE
        assert exc_info.value.partition_key == PK
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    def test_invalid_endpoint(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        publisher = HttpEventPublisher("http://exa\x00mple.com/", client=client)
        notifier = EventNotifier(publisher)

        with pytest.raises(NotificationError) as exc_info:
            publisher.publish(ChangeEvent(EZID_UPDATE, "x", {"partition_key": PK}))

        assert isinstance(exc_info.value.cause, httpx.InvalidURL)
        assert not notifier.notify(ChangeEvent(EZID_UPDATE, "x"))
        assert requests == []

    @pytest.mark.usefixtures("no_retry_wait")
    def test_retries_connection_failures(self) -> None:
        attempts: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            msg = "connection refused"
            raise httpx.ConnectError(msg, request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        publisher = HttpEventPublisher(ENDPOINT, client=client)

        with pytest.raises(NotificationError):
            publisher.publish(ChangeEvent(EZID_UPDATE, "x"))

        assert len(attempts) == 3

    @pytest.mark.usefixtures("no_retry_wait")
    def test_recovers_after_transient_failure(self) -> None:
        attempts: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                msg = "timed out"
                raise httpx.ReadTimeout(msg, request=request)
            return httpx.Response(200)

        client = httpx.Client(transport=httpx.MockTransport(handler))

        HttpEventPublisher(ENDPOINT, client=client).publish(ChangeEvent(EZID_UPDATE, "x"))

        assert len(attempts) == 2

    def test_does_not_close_borrowed_client(self) -> None:
        client = httpx.Client(
            transport=httpx.MockTransport(lambda _: httpx.Response(200))
        )

        with HttpEventPublisher(ENDPOINT, client=client):
            pass

        assert not client.is_closed

    def test_closes_own_client(self, mocker: MockerFixture) -> None:
        publisher = HttpEventPublisher(ENDPOINT, timeout=1.0)
        close = mocker.spy(httpx.Client, "close")

        publisher.close()

        close.assert_called_once()


class TestEventNotifier:
    def test_prefixes_source(self) -> None:
        publisher = RecordingEventPublisher()
        notifier = EventNotifier(publisher, source="hub")

        delivered = notifier.record_changed(
            _item(), component="creator", updater_is_owner=True
        )

        assert [event.source for event in delivered] == ["hub.creator"]
        assert publisher.events == delivered

    def test_adds_citation_event_for_latest(self) -> None:
        publisher = RecordingEventPublisher()
        item = _item(
            dmproadmap_related_identifiers=[_dataset("https://doi.org/10.5061/x")]
        )

        _ = EventNotifier(publisher).record_changed(
            item, component="updater", updater_is_owner=False
        )

        assert [event.detail_type for event in publisher.events] == [
            EZID_UPDATE,
            CITATION_FETCH,
        ]

    def test_no_citation_event_for_tombstone(self) -> None:
        publisher = RecordingEventPublisher()
        item = _item(
            SK="VERSION#tombstone",
            dmproadmap_related_identifiers=[_dataset("https://doi.org/10.5061/x")],
        )

        _ = EventNotifier(publisher).record_changed(
            item,
            component="deleter",
            updater_is_owner=True,
            sort_key="VERSION#tombstone",
        )

        assert [event.detail_type for event in publisher.events] == [EZID_UPDATE]

    def test_swallows_publish_failures(self) -> None:
        publisher = _FailingPublisher()

        delivered = EventNotifier(publisher).record_changed(
            _item(), component="creator", updater_is_owner=True
        )

        assert delivered == []
        assert publisher.attempts == 1

    def test_without_publisher(self) -> None:
        notifier = EventNotifier(None)

        assert not notifier.notify(ChangeEvent(EZID_UPDATE, "x"))
