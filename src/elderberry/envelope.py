# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Request envelopes: a serialized TAXII message plus its binding headers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from elderberry.codec import XmlCodec
from elderberry.core.constants import (
    HEADER_ACCEPT,
    HEADER_CONTENT_TYPE,
    HEADER_TAXII_CONTENT_TYPE,
    HEADER_TAXII_PROTOCOL,
    HEADER_TAXII_SERVICES,
    MESSAGE_BINDING,
    PROTOCOL_HTTP,
    PROTOCOL_HTTPS,
    SERVICES_VERSION,
    XML_MEDIA_TYPE,
)


@dataclass(frozen=True)
class Envelope:
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)


def protocol_binding(discovery_url: str | httpx.URL) -> str:
    """HTTPS binding id when the URL scheme ends in ``s``, else HTTP."""
    scheme = httpx.URL(str(discovery_url)).scheme
    return PROTOCOL_HTTPS if scheme.endswith("s") else PROTOCOL_HTTP


def wrap(message: Any, codec: XmlCodec, discovery_url: str | httpx.URL) -> Envelope:
    headers = {
        HEADER_CONTENT_TYPE: XML_MEDIA_TYPE,
        HEADER_ACCEPT: XML_MEDIA_TYPE,
        HEADER_TAXII_SERVICES: SERVICES_VERSION[codec.version],
        HEADER_TAXII_CONTENT_TYPE: MESSAGE_BINDING[codec.version],
        HEADER_TAXII_PROTOCOL: protocol_binding(discovery_url),
    }
    return Envelope(body=codec.encode(message), headers=headers)
