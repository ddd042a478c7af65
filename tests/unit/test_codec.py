# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the tagged XML codec."""

from __future__ import annotations

import libtaxii.messages_10 as tm10
import libtaxii.messages_11 as tm11
import pytest
from conftest import discovery_response_10, discovery_response_11, status_message_11
from libtaxii import constants as tc

from elderberry.codec import XmlCodec, is_xml_media_type
from elderberry.core.exceptions import MessageDecodeError


class TestMediaType:
    """Tests for is_xml_media_type()."""

    @pytest.mark.parametrize(
        "value",
        ["application/xml", "Application/XML", "application/xml; charset=utf-8"],
    )
    def test_xml_types(self, value):
        assert is_xml_media_type(value)

    @pytest.mark.parametrize(
        "value",
        [None, "", "application/json", "text/html", "text/xml", "application/taxii+xml"],
    )
    def test_other_types(self, value):
        assert not is_xml_media_type(value)


class TestXmlCodec:
    """Tests for XmlCodec.decode()."""

    def test_messages_module_per_version(self):
        assert XmlCodec("1.1").messages is tm11
        assert XmlCodec("1.0").messages is tm10
        assert XmlCodec().media_type == "application/xml"

    def test_decodes_expected_type(self):
        decoded = XmlCodec().decode(discovery_response_11(), "application/xml")
        assert decoded.kind == tc.MSG_DISCOVERY_RESPONSE
        assert decoded.is_a(tm11.DiscoveryResponse)
        assert not decoded.is_status

    def test_status_message_is_tagged_not_raised(self):
        decoded = XmlCodec().decode(status_message_11("nope"), "application/xml")
        assert decoded.is_status
        assert not decoded.is_a(tm11.PollResponse)
        assert decoded.message.message == "nope"

    def test_missing_content_type_is_accepted(self):
        assert XmlCodec().decode(discovery_response_11()).is_a(tm11.DiscoveryResponse)

    def test_version_10(self):
        decoded = XmlCodec("1.0").decode(discovery_response_10())
        assert decoded.is_a(tm10.DiscoveryResponse)

    def test_non_xml_content_type_raises(self):
        with pytest.raises(MessageDecodeError, match="unsupported content type"):
            XmlCodec().decode(discovery_response_11(), "text/html")

    def test_text_xml_is_rejected(self):
        with pytest.raises(MessageDecodeError, match="unsupported content type"):
            XmlCodec().decode(discovery_response_11(), "text/xml")

    def test_empty_body_raises(self):
        with pytest.raises(MessageDecodeError, match="empty"):
            XmlCodec().decode(b"", "application/xml")

    def test_malformed_xml_raises(self):
        with pytest.raises(MessageDecodeError):
            XmlCodec().decode(b"<Discovery_Response", "application/xml")

    def test_other_version_raises(self):
        with pytest.raises(MessageDecodeError):
            XmlCodec("1.1").decode(discovery_response_10())

    def test_non_taxii_root_raises(self):
        with pytest.raises(MessageDecodeError):
            XmlCodec().decode(b"<html><body>maintenance</body></html>")

    def test_encode_returns_bytes(self):
        body = XmlCodec().encode(tm11.DiscoveryRequest(message_id="7"))
        assert isinstance(body, bytes)
        assert b"Discovery_Request" in body
