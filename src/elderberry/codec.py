# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""XML codec bound to one TAXII message schema version.

Decoding never raises for well-formed TAXII XML of an unexpected message
type. It returns a :class:`DecodedMessage` tagged with the message type it
actually found, so callers can tell "malformed XML" apart from "valid XML of
the other message type".
"""

from __future__ import annotations

from dataclasses import dataclass
from types import ModuleType
from typing import Any

import libtaxii.messages_10 as tm10
import libtaxii.messages_11 as tm11
from libtaxii import constants as tc
from lxml import etree

from elderberry.core.constants import XML_MEDIA_TYPE, TaxiiVersion
from elderberry.core.exceptions import MessageDecodeError

_MESSAGE_MODULES: dict[TaxiiVersion, ModuleType] = {
    TaxiiVersion.V10: tm10,
    TaxiiVersion.V11: tm11,
}


def is_xml_media_type(content_type: str | None) -> bool:
    """True for ``application/xml``, with or without parameters."""
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() == XML_MEDIA_TYPE


@dataclass(frozen=True)
class DecodedMessage:
    """A decoded TAXII message tagged with its message type."""

    kind: str
    message: Any

    @property
    def is_status(self) -> bool:
        return self.kind == tc.MSG_STATUS_MESSAGE

    def is_a(self, message_class: type) -> bool:
        return isinstance(self.message, message_class)


class XmlCodec:
    """Marshals TAXII messages of a single schema version."""

    def __init__(self, version: TaxiiVersion | str = TaxiiVersion.V11) -> None:
        self.version = TaxiiVersion(version)
        self._messages = _MESSAGE_MODULES[self.version]

    @property
    def messages(self) -> ModuleType:
        """The libtaxii messages module for this version."""
        return self._messages

    @property
    def media_type(self) -> str:
        return XML_MEDIA_TYPE

    def encode(self, message: Any) -> bytes:
        xml = message.to_xml()
        return xml if isinstance(xml, bytes) else xml.encode("utf-8")

    def decode(self, content: bytes | str, content_type: str | None = None) -> DecodedMessage:
        """Parse a response body into a tagged TAXII message.

        Raises
        ------
        MessageDecodeError
            If the content type is present and not application/xml, the body is not
            well-formed XML, or the root element is not a TAXII message of
            this version.
        """
        if content_type is not None and not is_xml_media_type(content_type):
            raise MessageDecodeError(f"unsupported content type: {content_type}")
        if not content:
            raise MessageDecodeError("empty response body")

        try:
            message = self._messages.get_message_from_xml(content)
        except etree.XMLSyntaxError as exc:
            raise MessageDecodeError(f"malformed XML: {exc}") from exc
        except (ValueError, KeyError) as exc:
            raise MessageDecodeError(
                f"not a TAXII {self.version} message: {exc}"
            ) from exc

        return DecodedMessage(kind=message.message_type, message=message)
