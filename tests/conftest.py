# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared test fixtures: throwaway PKI material and canned TAXII messages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import libtaxii.messages_10 as tm10
import libtaxii.messages_11 as tm11
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from libtaxii import constants as tc

BASE_URL = "http://taxii.example.com"
DISCOVERY_URL = f"{BASE_URL}/taxii-discovery-service"
COLLECTION_MANAGEMENT_URL = f"{BASE_URL}/taxii-collection-management-service"
FEED_MANAGEMENT_URL = f"{BASE_URL}/taxii-feed-management-service"
POLL_URL = f"{BASE_URL}/taxii-poll-service"

XML_HEADERS = {"Content-Type": "application/xml"}


# ---------------------------------------------------------------------------
# PKI helpers
# ---------------------------------------------------------------------------


def new_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def make_certificate(
    common_name: str,
    key: rsa.RSAPrivateKey,
    *,
    issuer: x509.Certificate | None = None,
    issuer_key: rsa.RSAPrivateKey | None = None,
    ca: bool = False,
    dns_name: str | None = None,
    usage: x509.ObjectIdentifier | None = None,
) -> x509.Certificate:
    now = datetime.now(UTC)
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    signing_key = issuer_key or key

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.subject if issuer else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(signing_key.public_key()),
            critical=False,
        )
    )
    if ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    if dns_name:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(dns_name)]), critical=False
        )
    if usage:
        builder = builder.add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
    return builder.sign(signing_key, hashes.SHA256())


def cert_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def key_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


@dataclass(frozen=True)
class Pki:
    ca_key: rsa.RSAPrivateKey
    ca_cert: x509.Certificate
    server_key: rsa.RSAPrivateKey
    server_cert: x509.Certificate
    client_key: rsa.RSAPrivateKey
    client_cert: x509.Certificate
    other_ca_cert: x509.Certificate
    self_signed_key: rsa.RSAPrivateKey
    self_signed_cert: x509.Certificate
    forged_cert: x509.Certificate


@pytest.fixture(scope="session")
def pki() -> Pki:
    ca_key = new_key()
    ca_cert = make_certificate("elderberry test CA", ca_key, ca=True)

    server_key = new_key()
    server_cert = make_certificate(
        "localhost",
        server_key,
        issuer=ca_cert,
        issuer_key=ca_key,
        dns_name="localhost",
        usage=ExtendedKeyUsageOID.SERVER_AUTH,
    )

    client_key = new_key()
    client_cert = make_certificate(
        "elderberry client",
        client_key,
        issuer=ca_cert,
        issuer_key=ca_key,
        usage=ExtendedKeyUsageOID.CLIENT_AUTH,
    )

    other_ca_key = new_key()
    other_ca_cert = make_certificate("unrelated CA", other_ca_key, ca=True)

    self_signed_key = new_key()
    self_signed_cert = make_certificate(
        "localhost",
        self_signed_key,
        dns_name="localhost",
        usage=ExtendedKeyUsageOID.SERVER_AUTH,
    )
    # names itself as issuer, but signed by the unrelated CA key
    forged_cert = make_certificate(
        "localhost",
        self_signed_key,
        issuer_key=other_ca_key,
        dns_name="localhost",
        usage=ExtendedKeyUsageOID.SERVER_AUTH,
    )

    return Pki(
        ca_key=ca_key,
        ca_cert=ca_cert,
        server_key=server_key,
        server_cert=server_cert,
        client_key=client_key,
        client_cert=client_cert,
        other_ca_cert=other_ca_cert,
        self_signed_key=self_signed_key,
        self_signed_cert=self_signed_cert,
        forged_cert=forged_cert,
    )


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clear_proxy_environment(monkeypatch):
    """Make sure no proxy properties leak in from the host environment."""
    for scheme in ("http", "https"):
        monkeypatch.delenv(f"{scheme}.proxyHost", raising=False)
        monkeypatch.delenv(f"{scheme}.proxyPort", raising=False)


# ---------------------------------------------------------------------------
# Canned TAXII 1.1 messages
# ---------------------------------------------------------------------------


def _service_11(service_type: str, address: str) -> tm11.ServiceInstance:
    return tm11.ServiceInstance(
        service_type=service_type,
        services_version=tc.VID_TAXII_SERVICES_11,
        protocol_binding=tc.VID_TAXII_HTTP_10,
        service_address=address,
        message_bindings=[tc.VID_TAXII_XML_11],
        available=True,
    )


def discovery_response_11() -> bytes:
    return tm11.DiscoveryResponse(
        message_id="100",
        in_response_to="1",
        service_instances=[
            _service_11(tc.SVC_DISCOVERY, DISCOVERY_URL),
            _service_11(tc.SVC_COLLECTION_MANAGEMENT, COLLECTION_MANAGEMENT_URL),
            _service_11(tc.SVC_POLL, POLL_URL),
        ],
    ).to_xml()


def collection_information_response_11(names: tuple[str, ...] = ("system.Default",)) -> bytes:
    collections = [
        tm11.CollectionInformation(
            collection_name=name,
            collection_description=f"{name} collection",
            supported_contents=[],
            available=True,
            polling_service_instances=[
                tm11.PollingServiceInstance(
                    poll_protocol=tc.VID_TAXII_HTTP_10,
                    poll_address=POLL_URL,
                    poll_message_bindings=[tc.VID_TAXII_XML_11],
                )
            ],
        )
        for name in names
    ]
    return tm11.CollectionInformationResponse(
        message_id="101",
        in_response_to="1",
        collection_informations=collections,
    ).to_xml()


def poll_response_11(collection_name: str = "system.Default", blocks: int = 2) -> bytes:
    return tm11.PollResponse(
        message_id="102",
        in_response_to="1",
        collection_name=collection_name,
        inclusive_end_timestamp_label=datetime.now(UTC),
        content_blocks=[
            tm11.ContentBlock(content_binding=tc.CB_STIX_XML_111, content=f"indicator-{i}")
            for i in range(blocks)
        ],
    ).to_xml()


def status_message_11(message: str = "collection is unavailable") -> bytes:
    return tm11.StatusMessage(
        message_id="103",
        in_response_to="1",
        status_type=tc.ST_FAILURE,
        message=message,
    ).to_xml()


# ---------------------------------------------------------------------------
# Canned TAXII 1.0 messages
# ---------------------------------------------------------------------------


def _service_10(service_type: str, address: str) -> tm10.ServiceInstance:
    return tm10.ServiceInstance(
        service_type=service_type,
        services_version=tc.VID_TAXII_SERVICES_10,
        protocol_binding=tc.VID_TAXII_HTTP_10,
        service_address=address,
        message_bindings=[tc.VID_TAXII_XML_10],
        available=True,
    )


def discovery_response_10() -> bytes:
    return tm10.DiscoveryResponse(
        message_id="200",
        in_response_to="1",
        service_instances=[
            _service_10(tc.SVC_DISCOVERY, DISCOVERY_URL),
            _service_10(tc.SVC_FEED_MANAGEMENT, FEED_MANAGEMENT_URL),
            _service_10(tc.SVC_POLL, POLL_URL),
        ],
    ).to_xml()


def feed_information_response_10(names: tuple[str, ...] = ("default",)) -> bytes:
    feeds = [
        tm10.FeedInformation(
            feed_name=name,
            feed_description=f"{name} feed",
            supported_contents=[tc.CB_STIX_XML_10],
            available=True,
            polling_service_instances=[
                tm10.PollingServiceInstance(
                    poll_protocol=tc.VID_TAXII_HTTP_10,
                    poll_address=POLL_URL,
                    poll_message_bindings=[tc.VID_TAXII_XML_10],
                )
            ],
        )
        for name in names
    ]
    return tm10.FeedInformationResponse(
        message_id="201",
        in_response_to="1",
        feed_informations=feeds,
    ).to_xml()


def poll_response_10(feed_name: str = "default", blocks: int = 1) -> bytes:
    return tm10.PollResponse(
        message_id="202",
        in_response_to="1",
        feed_name=feed_name,
        inclusive_end_timestamp_label=datetime.now(UTC),
        content_blocks=[
            tm10.ContentBlock(content_binding=tc.CB_STIX_XML_10, content=f"indicator-{i}")
            for i in range(blocks)
        ],
    ).to_xml()


def status_message_10(message: str = "feed is unavailable") -> bytes:
    return tm10.StatusMessage(
        message_id="203",
        in_response_to="1",
        status_type=tc.ST_FAILURE,
        message=message,
    ).to_xml()
