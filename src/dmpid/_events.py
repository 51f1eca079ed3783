# pyright: reportAny=false, reportExplicitAny=false
"""Change notifications.

Every successful create, update and tombstone publishes an ``EZID update``
event; records with related identifiers that still need a citation also
publish a ``Citation Fetch`` event. Publication is best-effort: the store
write is the durability boundary, so failures are logged and never undo a
mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final, Protocol, Self, runtime_checkable

import httpx
import orjson
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dmpid._keys import SK_LATEST
from dmpid._records import citable_related_identifiers
from dmpid.exceptions import NotificationError

if TYPE_CHECKING:
    from types import TracebackType

    from structlog.typing import FilteringBoundLogger

    from dmpid._records import Record

EZID_UPDATE: Final = "EZID update"
CITATION_FETCH: Final = "Citation Fetch"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """An event describing a change to a DMP record.

    Attributes:
        detail_type: ``EZID update`` or ``Citation Fetch``.
        source: The component that emitted the event.
        detail: The event payload.
    """

    detail_type: str
    source: str
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def partition_key(self) -> str | None:
        """Partition key of the record the event is about."""
        value = self.detail.get("partition_key")
        return value if isinstance(value, str) else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event for transport."""
        return {
            "source": self.source,
            "detail-type": self.detail_type,
            "detail": self.detail,
        }


def build_change_event(
    item: Record,
    *,
    source: str,
    updater_is_owner: bool,
    sort_key: str = SK_LATEST,
) -> ChangeEvent:
    """Build the ``EZID update`` event for a stored item.

    Args:
        item: The stored item, internal fields included.
        source: The emitting component.
        updater_is_owner: Whether the owning provenance made the change.
        sort_key: Sort key of the item the event points at.

    Returns:
        The change event.
    """
    links = item.get("dmproadmap_links")
    return ChangeEvent(
        detail_type=EZID_UPDATE,
        source=source,
        detail={
            "partition_key": item.get("PK"),
            "sort_key": sort_key,
            "owning_provenance": item.get("dmphub_provenance_id"),
            "related_links": dict(links) if isinstance(links, dict) else {},
            "updater_is_owner": updater_is_owner,
        },
    )


def build_citation_event(item: Record, *, source: str) -> ChangeEvent | None:
    """Build the ``Citation Fetch`` event for a stored item.

    Returns:
        The event, or None if the item has no citable related identifiers.
    """
    citable = citable_related_identifiers(item)
    if not citable:
        return None
    return ChangeEvent(
        detail_type=CITATION_FETCH,
        source=source,
        detail={
            "partition_key": item.get("PK"),
            "sort_key": item.get("SK", SK_LATEST),
            "dmproadmap_related_identifiers": citable,
        },
    )


# =============================================================================
# Publishers
# =============================================================================


@runtime_checkable
class EventPublisher(Protocol):
    """Delivers change events to the external event bus."""

    def publish(self, event: ChangeEvent) -> None:
        """Publish one event.

        Raises:
            NotificationError: If the event could not be delivered.
        """
        ...


class RecordingEventPublisher:
    """Keeps published events in memory."""

    def __init__(self) -> None:
        self.events: list[ChangeEvent] = []

    def publish(self, event: ChangeEvent) -> None:
        self.events.append(event)

    def of_type(self, detail_type: str) -> list[ChangeEvent]:
        """Return the recorded events of one type, oldest first."""
        return [event for event in self.events if event.detail_type == detail_type]

    def clear(self) -> None:
        self.events.clear()


@retry(
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
    reraise=True,
)
def _post_event(client: httpx.Client, url: str, content: bytes) -> httpx.Response:
    """POST an encoded event, retrying connection failures and timeouts.

    Raises:
        httpx.ConnectError: If connection fails after retries.
        httpx.TimeoutException: If the request times out after retries.
    """
    return client.post(
        url, content=content, headers={"Content-Type": "application/json"}
    )


class HttpEventPublisher:
    """Publishes events as JSON to an HTTP endpoint."""

    __slots__: Final = ("_client", "_endpoint", "_logger", "_owns_client")

    _client: httpx.Client
    _endpoint: str
    _owns_client: bool
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the publisher.

        Args:
            endpoint: URL events are POSTed to.
            timeout: Request timeout in seconds, used when no client is given.
            client: Optional preconfigured client; the caller keeps ownership.
            logger: Optional logger.
        """
        self._endpoint = endpoint
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)
        self._logger = logger

    def publish(self, event: ChangeEvent) -> None:
        """POST the event to the endpoint.

        Raises:
            NotificationError: If the request fails or returns an error status.
        """
        content = orjson.dumps(event.to_dict())
        try:
            response = _post_event(self._client, self._endpoint, content)
            _ = response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            msg = f"Failed to publish {event.detail_type!r} event: {e}"
            raise NotificationError(
                msg,
                detail_type=event.detail_type,
                partition_key=event.partition_key,
                cause=e,
            ) from e

        if self._logger:
            self._logger.debug(
                "event_published",
                detail_type=event.detail_type,
                partition_key=event.partition_key,
                status_code=response.status_code,
            )

    def close(self) -> None:
        """Close the underlying client if this publisher created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


# =============================================================================
# Notifier
# =============================================================================


class EventNotifier:
    """Publishes the events that follow a successful mutation.

    Failures are logged and swallowed; a mutation is never reported as failed
    because its notification could not be delivered.
    """

    __slots__: Final = ("_logger", "_publisher", "_source")

    _publisher: EventPublisher | None
    _source: str
    _logger: "FilteringBoundLogger | None"  # noqa: UP037

    def __init__(
        self,
        publisher: EventPublisher | None,
        *,
        source: str = "dmpid",
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the notifier.

        Args:
            publisher: Where events go. None disables publication.
            source: Prefix for the ``source`` of every event.
            logger: Optional logger.
        """
        self._publisher = publisher
        self._source = source
        self._logger = logger

    def record_changed(
        self,
        item: Record,
        *,
        component: str,
        updater_is_owner: bool,
        sort_key: str = SK_LATEST,
    ) -> list[ChangeEvent]:
        """Publish the events for a stored item.

        Args:
            item: The stored item, internal fields included.
            component: Name of the emitting component (``creator``, ...).
            updater_is_owner: Whether the owning provenance made the change.
            sort_key: Sort key of the item the change produced.

        Returns:
            The events that were delivered.
        """
        source = f"{self._source}.{component}"
        events = [
            build_change_event(
                item,
                source=source,
                updater_is_owner=updater_is_owner,
                sort_key=sort_key,
            )
        ]
        if sort_key == SK_LATEST:
            citation = build_citation_event(item, source=source)
            if citation is not None:
                events.append(citation)

        return [event for event in events if self.notify(event)]

    def notify(self, event: ChangeEvent) -> bool:
        """Publish one event, logging any failure.

        Returns:
            True if the event was delivered.
        """
        if self._publisher is None:
            return False
        try:
            self._publisher.publish(event)
        except NotificationError as e:
            if self._logger:
                self._logger.warning(
                    "event_publish_failed",
                    detail_type=event.detail_type,
                    partition_key=event.partition_key,
                    error=str(e),
                )
            return False
        return True
