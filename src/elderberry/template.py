# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""High-level TAXII 1.0 and 1.1 clients.

Templates build a request message, wrap it in the binding headers, post it
through the shared :class:`~elderberry.connection.TaxiiConnection` and
unwrap the response. Failures come through two separate channels:

* anything that prevents the request from being sent (bad URL, bad
  credentials, unreachable server) raises an
  :class:`~elderberry.core.exceptions.ElderberryError`;
* a server that answers with a non-200 status or with the wrong message
  type is logged and the operation returns ``None``.

Example::

    conn = TaxiiConnection(discovery_url="http://hailataxii.com/taxii-discovery-service")
    taxii = Taxii11Template(conn)
    discovery = taxii.discover()
    cm = taxii.find_service(discovery.service_instances, ServiceType.COLLECTION_MANAGEMENT)
    info = taxii.collection_information(cm)
    poll = taxii.poll(taxii.find_collection(info.collection_informations, "system.Default"))
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar, TypeVar

import httpx
import libtaxii.messages_10 as tm10
import libtaxii.messages_11 as tm11

from elderberry.codec import DecodedMessage, XmlCodec
from elderberry.connection import TaxiiConnection, parse_url
from elderberry.core.constants import (
    DEFAULT_POLL_WINDOW_HOURS,
    MESSAGE_ID_GRANULARITY_MS,
    TaxiiVersion,
)
from elderberry.core.exceptions import ConfigurationError, MessageDecodeError
from elderberry.envelope import Envelope, wrap

logger = logging.getLogger("elderberry.template")

T = TypeVar("T")


def generate_message_id() -> str:
    """Time-based message id, coarsened to 100-second buckets.

    Servers only echo the id back in ``in_response_to``, so two requests in
    the same bucket sharing an id is acceptable.
    """
    return str(int(time.time() * 1000) // MESSAGE_ID_GRANULARITY_MS)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def poll_window(
    exclusive_begin: datetime | None = None,
    inclusive_end: datetime | None = None,
) -> tuple[datetime, datetime]:
    """Resolve a poll time window; defaults to the last 24 hours."""
    now = datetime.now(UTC)
    if exclusive_begin is None:
        begin = now - timedelta(hours=DEFAULT_POLL_WINDOW_HOURS)
    else:
        begin = _as_utc(exclusive_begin)
    end = _as_utc(inclusive_end) if inclusive_end is not None else now
    return begin, end


def _first(items: Iterable[T] | None, attr: str, value: Any) -> T | None:
    for item in items or ():
        if getattr(item, attr, None) == value:
            return item
    return None


def _format_details(detail: Any) -> str:
    if not detail:
        return ""
    if isinstance(detail, dict):
        return ", ".join(f"{k}={v}" for k, v in detail.items())
    if isinstance(detail, (list, tuple)):
        return ", ".join(str(d) for d in detail)
    return str(detail)


def _log_http_error(response: httpx.Response) -> None:
    logger.error(
        "error in TAXII request: %s",
        response.status_code,
        extra={"taxii_url": str(response.request.url), "status_code": response.status_code},
    )


class TaxiiTemplate:
    """Operations shared by both TAXII versions."""

    version: ClassVar[TaxiiVersion]

    def __init__(self, connection: TaxiiConnection) -> None:
        self.conn = connection

    @property
    def codec(self) -> XmlCodec:
        return self.conn.get_codec(self.version)

    @property
    def messages(self) -> Any:
        return self.codec.messages

    @staticmethod
    def generate_message_id() -> str:
        return generate_message_id()

    @staticmethod
    def find_service(services: Iterable[Any] | None, service_type: str) -> Any | None:
        """First service instance of the given type, or ``None``."""
        return _first(services, "service_type", service_type)

    def wrap(self, message: Any) -> Envelope:
        return wrap(message, self.codec, self.conn.discovery_url)

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    def _exchange(self, url: str | httpx.URL, message: Any) -> httpx.Response:
        return self.conn.post(url, self.wrap(message))

    def _decode(self, response: httpx.Response) -> DecodedMessage:
        return self.codec.decode(response.content, response.headers.get("content-type"))

    def _respond(self, response: httpx.Response, expected: type[T]) -> T | None:
        if response.status_code != httpx.codes.OK:
            _log_http_error(response)
            return None

        decoded = self._decode(response)
        if decoded.is_a(expected):
            return decoded.message
        self._log_unexpected(decoded, expected, response.status_code)
        return None

    def _log_unexpected(
        self,
        decoded: DecodedMessage,
        expected: type,
        status_code: int | None = None,
    ) -> None:
        if decoded.is_status:
            self._log_status(decoded.message, status_code)
            return
        logger.error(
            "unexpected TAXII response, expected %s but received %s",
            expected.__name__,
            decoded.kind,
        )

    @staticmethod
    def _log_status(status: Any, status_code: int | None = None) -> None:
        logger.error(
            "error in TAXII request,\n status: %s,\n message id: %s,\n in response to: %s,"
            "\n status type: %s,\n message: %s,\n details: %s",
            status_code if status_code is not None else "n/a",
            status.message_id,
            status.in_response_to,
            status.status_type,
            status.message,
            _format_details(status.status_detail),
            extra={
                "status_code": status_code,
                "message_id": status.message_id,
                "in_response_to": status.in_response_to,
                "status_type": status.status_type,
            },
        )

    @staticmethod
    def _address(service_or_url: Any) -> str:
        address = getattr(service_or_url, "service_address", service_or_url)
        if not isinstance(address, (str, httpx.URL)):
            raise ConfigurationError(f"not a service or URL: {service_or_url!r}")
        return str(address)

    @staticmethod
    def _poll_address(record: Any, name: str) -> str:
        instances = getattr(record, "polling_service_instances", None)
        if not instances:
            raise ConfigurationError(f"{name} does not advertise a polling service")
        return instances[0].poll_address

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def discover(self) -> Any | None:
        """Run a discovery request against the configured discovery URL.

        Returns the ``DiscoveryResponse``, or ``None`` when the server
        answered with an error.
        """
        request = self.messages.DiscoveryRequest(message_id=self.generate_message_id())
        response = self._exchange(self.conn.discovery_url, request)
        return self._respond(response, self.messages.DiscoveryResponse)


class Taxii11Template(TaxiiTemplate):
    """TAXII 1.1 client: discovery, collection information and poll."""

    version = TaxiiVersion.V11

    @staticmethod
    def find_collection(
        collections: Iterable[tm11.CollectionInformation] | None,
        name: str,
    ) -> tm11.CollectionInformation | None:
        return _first(collections, "collection_name", name)

    def collection_information(
        self,
        service_or_url: tm11.ServiceInstance | str,
    ) -> tm11.CollectionInformationResponse | None:
        """Ask a collection management service which collections it offers."""
        url = parse_url(self._address(service_or_url))
        request = tm11.CollectionInformationRequest(message_id=self.generate_message_id())
        return self._respond(self._exchange(url, request), tm11.CollectionInformationResponse)

    def poll(
        self,
        collection: tm11.CollectionInformation,
        subscription_id: str = "",
        exclusive_begin: datetime | None = None,
        inclusive_end: datetime | None = None,
    ) -> tm11.PollResponse | None:
        """Poll a collection through its first advertised polling service."""
        url = self._poll_address(collection, f"collection {collection.collection_name}")
        return self.poll_url(
            url,
            collection.collection_name,
            subscription_id,
            exclusive_begin,
            inclusive_end,
        )

    def poll_url(
        self,
        url: str,
        collection_name: str,
        subscription_id: str = "",
        exclusive_begin: datetime | None = None,
        inclusive_end: datetime | None = None,
    ) -> tm11.PollResponse | None:
        """Poll ``collection_name`` at ``url`` over a time window.

        When the server answers with a ``StatusMessage`` instead of a
        ``PollResponse``, the identical request is sent once more only to
        log the status details, and ``None`` is returned.
        """
        target = parse_url(url)
        begin, end = poll_window(exclusive_begin, inclusive_end)

        # TAXII 1.1 requires either a subscription or poll parameters
        selector: dict[str, Any]
        if subscription_id:
            selector = {"subscription_id": subscription_id}
        else:
            selector = {"poll_parameters": tm11.PollRequest.PollParameters()}

        request = tm11.PollRequest(
            message_id=self.generate_message_id(),
            collection_name=collection_name,
            exclusive_begin_timestamp_label=begin,
            inclusive_end_timestamp_label=end,
            **selector,
        )
        envelope = self.wrap(request)

        response = self.conn.post(target, envelope)
        if response.status_code != httpx.codes.OK:
            _log_http_error(response)
            return None

        decoded = self._decode(response)
        if decoded.is_a(tm11.PollResponse):
            return decoded.message

        if not decoded.is_status:
            self._log_unexpected(decoded, tm11.PollResponse, response.status_code)
            return None

        logger.error(
            "poll request failed, response contained a status message instead of a "
            "poll response, requesting again to retrieve the status message"
        )
        self._fetch_and_log_status(target, envelope)
        return None

    def _fetch_and_log_status(self, url: httpx.URL, envelope: Envelope) -> None:
        response = self.conn.post(url, envelope)
        try:
            decoded = self._decode(response)
        except MessageDecodeError as exc:
            logger.error(
                "error polling, status: %s, unreadable status message: %s",
                response.status_code,
                exc,
            )
            return
        if decoded.is_status:
            self._log_status(decoded.message, response.status_code)
        else:
            logger.error(
                "error polling, status: %s, expected a status message but received %s",
                response.status_code,
                decoded.kind,
            )


class Taxii10Template(TaxiiTemplate):
    """TAXII 1.0 client: discovery, feed information and poll."""

    version = TaxiiVersion.V10

    @staticmethod
    def find_feed(
        feeds: Iterable[tm10.FeedInformation] | None,
        name: str,
    ) -> tm10.FeedInformation | None:
        return _first(feeds, "feed_name", name)

    def feed_information(
        self,
        service_or_url: tm10.ServiceInstance | str,
    ) -> tm10.FeedInformationResponse | None:
        """Ask a feed management service which feeds it offers."""
        url = parse_url(self._address(service_or_url))
        request = tm10.FeedInformationRequest(message_id=self.generate_message_id())
        return self._respond(self._exchange(url, request), tm10.FeedInformationResponse)

    def poll(
        self,
        feed: tm10.FeedInformation,
        subscription_id: str = "",
        exclusive_begin: datetime | None = None,
        inclusive_end: datetime | None = None,
    ) -> tm10.PollResponse | None:
        """Poll a feed through its first advertised polling service."""
        url = self._poll_address(feed, f"feed {feed.feed_name}")
        return self.poll_url(url, feed.feed_name, subscription_id, exclusive_begin, inclusive_end)

    def poll_url(
        self,
        url: str,
        feed_name: str,
        subscription_id: str = "",
        exclusive_begin: datetime | None = None,
        inclusive_end: datetime | None = None,
    ) -> tm10.PollResponse | None:
        target = parse_url(url)
        begin, end = poll_window(exclusive_begin, inclusive_end)
        request = tm10.PollRequest(
            message_id=self.generate_message_id(),
            feed_name=feed_name,
            exclusive_begin_timestamp_label=begin,
            inclusive_end_timestamp_label=end,
            subscription_id=subscription_id or None,
        )
        return self._respond(self._exchange(target, request), tm10.PollResponse)
