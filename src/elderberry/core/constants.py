# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Enumerations, header names, and TAXII binding identifiers."""

from enum import StrEnum

from libtaxii import constants as tc


class TaxiiVersion(StrEnum):
    V10 = "1.0"
    V11 = "1.1"


class ServiceType(StrEnum):
    DISCOVERY = tc.SVC_DISCOVERY
    COLLECTION_MANAGEMENT = tc.SVC_COLLECTION_MANAGEMENT
    FEED_MANAGEMENT = tc.SVC_FEED_MANAGEMENT
    POLL = tc.SVC_POLL
    INBOX = tc.SVC_INBOX


XML_MEDIA_TYPE = "application/xml"

HEADER_CONTENT_TYPE = "Content-Type"
HEADER_ACCEPT = "Accept"
HEADER_TAXII_SERVICES = "X-TAXII-Services"
HEADER_TAXII_CONTENT_TYPE = "X-TAXII-Content-Type"
HEADER_TAXII_PROTOCOL = "X-TAXII-Protocol"

# Both TAXII versions share the 1.0 HTTP(S) protocol bindings
PROTOCOL_HTTP = tc.VID_TAXII_HTTP_10
PROTOCOL_HTTPS = tc.VID_TAXII_HTTPS_10

SERVICES_VERSION: dict[TaxiiVersion, str] = {
    TaxiiVersion.V10: tc.VID_TAXII_SERVICES_10,
    TaxiiVersion.V11: tc.VID_TAXII_SERVICES_11,
}

MESSAGE_BINDING: dict[TaxiiVersion, str] = {
    TaxiiVersion.V10: tc.VID_TAXII_XML_10,
    TaxiiVersion.V11: tc.VID_TAXII_XML_11,
}

# Message IDs are the epoch millis divided down to this granularity
MESSAGE_ID_GRANULARITY_MS = 100_000

DEFAULT_POLL_WINDOW_HOURS = 24
