# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""In-memory credential stores for TLS client authentication and trust.

A :class:`CredentialStore` is an ordered collection of certificate and
private-key entries, each stored under a freshly generated ``uuid4`` alias.
Stores are built from PEM text (:func:`load_key_material`,
:func:`load_trust_material`) or from a PKCS#12 file (:func:`load_from_file`)
and are turned into an :class:`ssl.SSLContext` by :func:`build_ssl_context`.

Every loading or parsing failure is raised as
:class:`~elderberry.core.exceptions.ConfigurationError`; a bad credential is
a caller misconfiguration and is never retried.
"""

from __future__ import annotations

import base64
import binascii
import ipaddress
import logging
import re
import ssl
import tempfile
import uuid
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import certifi
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.verification import PolicyBuilder, Store, VerificationError

from elderberry.core.exceptions import ConfigurationError

logger = logging.getLogger("elderberry.keystore")

_PEM_DELIMITER = re.compile(r"-+.*-+")


@dataclass(frozen=True)
class CertificateEntry:
    """A trusted certificate."""

    certificate: x509.Certificate


@dataclass(frozen=True)
class KeyEntry:
    """A private key together with its certificate chain, leaf first."""

    private_key: rsa.RSAPrivateKey
    chain: tuple[x509.Certificate, ...] = ()


Entry = CertificateEntry | KeyEntry


class CredentialStore:
    """Ordered ``alias -> entry`` mapping with an optional key password."""

    def __init__(self, key_password: str | None = None) -> None:
        self._entries: dict[str, Entry] = {}
        self._key_password = key_password

    @property
    def key_password(self) -> str | None:
        return self._key_password

    @property
    def entries(self) -> dict[str, Entry]:
        return dict(self._entries)

    def add_certificate(self, certificate: x509.Certificate) -> str:
        alias = str(uuid.uuid4())
        self._entries[alias] = CertificateEntry(certificate)
        return alias

    def add_key(
        self,
        private_key: rsa.RSAPrivateKey,
        chain: Sequence[x509.Certificate] = (),
    ) -> str:
        alias = str(uuid.uuid4())
        self._entries[alias] = KeyEntry(private_key, tuple(chain))
        return alias

    def certificates(self) -> list[x509.Certificate]:
        """Certificates registered as standalone entries, in insertion order."""
        return [e.certificate for e in self._entries.values() if isinstance(e, CertificateEntry)]

    def key_entries(self) -> list[KeyEntry]:
        return [e for e in self._entries.values() if isinstance(e, KeyEntry)]

    def size(self) -> int:
        return len(self._entries)

    def is_empty(self) -> bool:
        return not self._entries

    def to_pem_bundle(self) -> str:
        return "".join(
            cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
            for cert in self.certificates()
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __contains__(self, alias: object) -> bool:
        return alias in self._entries

    def __repr__(self) -> str:
        return (
            f"CredentialStore(entries={len(self._entries)}, "
            f"keys={len(self.key_entries())})"
        )


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


def _parse_certificates(pems: Sequence[str]) -> list[x509.Certificate]:
    """Parse each PEM independently; one bad certificate fails the whole set."""
    result: list[x509.Certificate] = []
    for pem in pems:
        try:
            result.append(x509.load_pem_x509_certificate(pem.encode("ascii")))
        except (ValueError, UnicodeEncodeError) as exc:
            raise ConfigurationError(f"unable to load PEM: {pem}, {exc}") from exc
    return result


def _parse_private_key(private_key_pem: str) -> rsa.RSAPrivateKey:
    body = _PEM_DELIMITER.sub("", private_key_pem)
    try:
        der = base64.b64decode("".join(body.split()), validate=True)
        key = serialization.load_der_private_key(der, password=None)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise ConfigurationError(f"unable to create key store, {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError(
            f"unable to create key store, expected an RSA key, got {type(key).__name__}"
        )
    return key


def load_key_material(
    private_key_pem: str,
    certificate_chain_pems: Sequence[str] | None = None,
) -> CredentialStore:
    """Build a key store from a PKCS#8 RSA key and an optional chain.

    Every chain certificate is registered as its own entry and the key entry
    is backed by the same chain, in the given order. The key is protected by
    a freshly generated random password, available as
    :attr:`CredentialStore.key_password`.
    """
    private_key = _parse_private_key(private_key_pem)
    chain = _parse_certificates(certificate_chain_pems or [])

    store = CredentialStore(key_password=str(uuid.uuid4()))
    for cert in chain:
        store.add_certificate(cert)
    store.add_key(private_key, chain)
    logger.debug("Loaded key store from PEM with %d chain certificate(s)", len(chain))
    return store


def load_trust_material(trusted_certificate_pems: Sequence[str]) -> CredentialStore:
    """Build a trust store holding one entry per PEM certificate."""
    store = CredentialStore()
    for cert in _parse_certificates(trusted_certificate_pems):
        store.add_certificate(cert)
    logger.debug("Loaded trust store from %d PEM certificate(s)", len(store))
    return store


def load_from_file(path: str | Path, password: str | None = None) -> CredentialStore:
    """Read a PKCS#12 keystore file.

    Certificates become standalone entries; a private key, when present,
    becomes a key entry backed by the leaf certificate and the additional
    certificates. The file password doubles as the key password.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
        bundle = pkcs12.load_pkcs12(data, password.encode("utf-8") if password else None)
    except (OSError, ValueError) as exc:
        raise ConfigurationError(
            f"a key store file was set, but it could not be read, {exc}"
        ) from exc

    store = CredentialStore(key_password=password or "")
    chain: list[x509.Certificate] = []
    if bundle.cert is not None:
        chain.append(bundle.cert.certificate)
    chain.extend(c.certificate for c in bundle.additional_certs)
    for cert in chain:
        store.add_certificate(cert)

    if bundle.key is not None:
        if not isinstance(bundle.key, rsa.RSAPrivateKey):
            raise ConfigurationError(
                f"unsupported key type in {path}: {type(bundle.key).__name__}"
            )
        store.add_key(bundle.key, chain)

    logger.debug("Loaded %d entries from %s", len(store), path)
    return store


# ---------------------------------------------------------------------------
# TLS context
# ---------------------------------------------------------------------------


def _load_key_entry(
    context: ssl.SSLContext,
    store: CredentialStore,
    key_password: str | None,
) -> None:
    entry = store.key_entries()[0]
    if not entry.chain:
        raise ConfigurationError("the key store holds a private key without a certificate chain")

    password = key_password if key_password is not None else (store.key_password or "")
    encryption: serialization.KeySerializationEncryption
    if password:
        encryption = serialization.BestAvailableEncryption(password.encode("utf-8"))
    else:
        encryption = serialization.NoEncryption()

    key_pem = entry.private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        encryption,
    )
    chain_pem = b"".join(c.public_bytes(serialization.Encoding.PEM) for c in entry.chain)

    # load_cert_chain only reads from the filesystem
    with tempfile.TemporaryDirectory(prefix="elderberry-") as tmp:
        key_path = Path(tmp) / "key.pem"
        cert_path = Path(tmp) / "chain.pem"
        key_path.write_bytes(key_pem)
        cert_path.write_bytes(chain_pem)
        context.load_cert_chain(
            certfile=cert_path,
            keyfile=key_path,
            password=password or None,
        )


# ---------------------------------------------------------------------------
# Self-signed server trust
# ---------------------------------------------------------------------------


def is_self_signed(certificate: x509.Certificate) -> bool:
    """True when the certificate is its own issuer and its signature
    verifies against its own public key."""
    if certificate.issuer != certificate.subject:
        return False
    try:
        certificate.verify_directly_issued_by(certificate)
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True


def _server_name(hostname: str) -> x509.DNSName | x509.IPAddress:
    try:
        return x509.IPAddress(ipaddress.ip_address(hostname))
    except ValueError:
        return x509.DNSName(hostname)


def _matches_hostname(certificate: x509.Certificate, hostname: str) -> bool:
    try:
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return False

    name = _server_name(hostname)
    if isinstance(name, x509.IPAddress):
        return name.value in san.get_values_for_type(x509.IPAddress)

    host = hostname.lower().rstrip(".")
    for pattern in san.get_values_for_type(x509.DNSName):
        pattern = pattern.lower().rstrip(".")
        if pattern == host:
            return True
        # a wildcard covers exactly one leftmost label
        if pattern.startswith("*.") and host.partition(".")[2] == pattern[2:]:
            return True
    return False


def verify_server_chain(
    chain: Sequence[x509.Certificate],
    hostname: str | None,
    anchors: Store,
) -> None:
    """Check the chain a server presented, leaf first.

    A self-signed leaf is accepted on its own, provided it is currently
    valid and names ``hostname``. Any other chain must lead to one of
    ``anchors`` and its leaf must name ``hostname``.

    Raises
    ------
    ssl.SSLCertVerificationError
        If the chain is not trusted.
    """
    if not chain:
        raise ssl.SSLCertVerificationError("certificate verify failed: no server certificate")
    if not hostname:
        raise ssl.SSLCertVerificationError("certificate verify failed: no server hostname")

    leaf = chain[0]
    if is_self_signed(leaf):
        now = datetime.now(UTC)
        if not leaf.not_valid_before_utc <= now <= leaf.not_valid_after_utc:
            raise ssl.SSLCertVerificationError(
                "certificate verify failed: self-signed certificate is outside its validity period"
            )
        if not _matches_hostname(leaf, hostname):
            raise ssl.SSLCertVerificationError(
                f"certificate verify failed: self-signed certificate is not valid for {hostname!r}"
            )
        logger.info("trusting self-signed server certificate for %s", hostname)
        return

    verifier = PolicyBuilder().store(anchors).build_server_verifier(_server_name(hostname))
    try:
        verifier.verify(leaf, list(chain[1:]))
    except VerificationError as exc:
        raise ssl.SSLCertVerificationError(f"certificate verify failed: {exc}") from exc


def _presented_chain(connection: ssl.SSLSocket | ssl.SSLObject) -> list[x509.Certificate]:
    # get_unverified_chain() is public from Python 3.13; before that only the leaf is exposed
    get_chain = getattr(connection, "get_unverified_chain", None)
    if get_chain is not None:
        chain = get_chain() or []
        if chain:
            return [x509.load_der_x509_certificate(der) for der in chain]
    der = connection.getpeercert(binary_form=True)
    return [x509.load_der_x509_certificate(der)] if der else []


class _SelfSignedTrustSocket(ssl.SSLSocket):
    def do_handshake(self, block: bool = False) -> None:
        super().do_handshake(block)
        self.context.verify_peer(self)


class _SelfSignedTrustObject(ssl.SSLObject):
    def do_handshake(self) -> None:
        super().do_handshake()
        self.context.verify_peer(self)


class SelfSignedTrustContext(ssl.SSLContext):
    """Client context that accepts self-signed servers besides its anchors.

    OpenSSL cannot trust a self-signed leaf selectively, so its own peer
    verification is off and :func:`verify_server_chain` runs as soon as a
    handshake completes. A failed check aborts the handshake with
    :class:`ssl.SSLCertVerificationError`.
    """

    sslsocket_class = _SelfSignedTrustSocket
    sslobject_class = _SelfSignedTrustObject

    trust_anchors: Store

    def verify_peer(self, connection: ssl.SSLSocket | ssl.SSLObject) -> None:
        verify_server_chain(
            _presented_chain(connection),
            connection.server_hostname,
            self.trust_anchors,
        )


def _certifi_anchors() -> list[x509.Certificate]:
    return x509.load_pem_x509_certificates(Path(certifi.where()).read_bytes())


def _self_signed_trust_context(trust_store: CredentialStore | None) -> SelfSignedTrustContext:
    anchors = trust_store.certificates() if trust_store is not None else []
    context = SelfSignedTrustContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    context.trust_anchors = Store(anchors or _certifi_anchors())
    return context


def build_ssl_context(
    key_store: CredentialStore | None,
    trust_store: CredentialStore | None,
    key_password: str | None = None,
    trust_self_signed: bool = False,
) -> ssl.SSLContext:
    """Create a client TLS context from the resolved stores.

    With a non-empty trust store only its certificates are trust anchors;
    otherwise the certifi bundle is used. ``trust_self_signed`` additionally
    accepts a server whose certificate is self-signed, see
    :class:`SelfSignedTrustContext`. The first key entry of the key store,
    if any, is presented for client authentication, unlocked with
    ``key_password`` or else the store's own key password.
    """
    try:
        if trust_self_signed:
            logger.warning("trust_self_signed is enabled, self-signed servers will be accepted")
            context: ssl.SSLContext = _self_signed_trust_context(trust_store)
        elif trust_store is not None and not trust_store.is_empty():
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            context.load_verify_locations(cadata=trust_store.to_pem_bundle())
        else:
            context = ssl.create_default_context(cafile=certifi.where())

        if key_store is not None and key_store.key_entries():
            _load_key_entry(context, key_store, key_password)
    except (ssl.SSLError, OSError, ValueError) as exc:
        logger.error("unable to create SSL context, %s", exc, exc_info=True)
        raise ConfigurationError(f"unable to create SSL context, {exc}") from exc

    return context
