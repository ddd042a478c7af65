# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""TAXII connection: proxy resolution, credentials and the shared HTTP client.

A :class:`TaxiiConnection` is built once from a
:class:`~elderberry.core.config.ConnectionSettings` and is read-only
afterwards except for its lazily initialised state. The key store, the
trust store and the ``httpx.Client`` are each built at most once, under a
lock, and the same instances are handed out for the lifetime of the
connection. Changing the settings after the first request has no effect.
"""

from __future__ import annotations

import base64
import logging
import os
import ssl
import threading
from collections.abc import Generator
from typing import Any

import httpx
from pydantic import ValidationError

from elderberry import __version__
from elderberry.codec import XmlCodec
from elderberry.core.config import ConnectionSettings
from elderberry.core.constants import TaxiiVersion
from elderberry.core.exceptions import ConfigurationError, TaxiiTransportError
from elderberry.envelope import Envelope
from elderberry.keystore import (
    CredentialStore,
    build_ssl_context,
    load_from_file,
    load_key_material,
    load_trust_material,
)

logger = logging.getLogger("elderberry.connection")

_USER_AGENT = f"elderberry/{__version__}"
_UNSET: Any = object()


def parse_url(url: str | httpx.URL) -> httpx.URL:
    """Validate an absolute http(s) URL.

    Raises
    ------
    ConfigurationError
        If the URL cannot be parsed, is relative, or uses another scheme.
    """
    try:
        parsed = httpx.URL(str(url))
    except (httpx.InvalidURL, TypeError) as exc:
        raise ConfigurationError(f"invalid TAXII URL {url!r}: {exc}") from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ConfigurationError(f"invalid TAXII URL {url!r}: expected an absolute http(s) URL")
    return parsed


class PreemptiveBasicAuth(httpx.Auth):
    """Attach HTTP Basic credentials to every request up front.

    The header is set before the request is sent instead of waiting for a
    401 challenge, saving a round trip per request. The same credentials go
    to every host the client talks to.
    """

    def __init__(self, username: str, password: str | None = "") -> None:
        self.username = username
        token = f"{username}:{password or ''}".encode("utf-8")
        self._header = "Basic " + base64.b64encode(token).decode("ascii")

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        logger.debug("Attaching basic credentials for %s to %s", self.username, request.url.host)
        request.headers["Authorization"] = self._header
        yield request


class TaxiiConnection:
    """Connection configuration shared by the TAXII templates.

    Parameters
    ----------
    settings:
        Connection settings. Keyword ``overrides`` are applied on top, or
        used on their own when ``settings`` is omitted.
    key_store:
        An in-memory key store. Takes precedence over a key store file and
        over PEM key material.
    key_password:
        Password protecting the key of ``key_store``.
    trust_store:
        An in-memory trust store. Takes precedence over a trust store file
        and over trusted PEM certificates.
    codec:
        A pre-built XML codec, used for its own TAXII version.
    http_client:
        A pre-built ``httpx.Client``. It is used as is, so proxy, TLS,
        timeout and authentication settings do not apply to it, and
        :meth:`close` leaves it open for its owner.
    """

    def __init__(
        self,
        settings: ConnectionSettings | None = None,
        *,
        key_store: CredentialStore | None = None,
        key_password: str | None = None,
        trust_store: CredentialStore | None = None,
        codec: XmlCodec | None = None,
        http_client: httpx.Client | None = None,
        **overrides: Any,
    ) -> None:
        if settings is None:
            try:
                settings = ConnectionSettings(**overrides)
            except ValidationError as exc:
                raise ConfigurationError(f"invalid connection settings: {exc}") from exc
        elif overrides:
            settings = settings.model_copy(update=overrides)
        self.settings = settings
        self.discovery_url = parse_url(settings.discovery_url)

        self._supplied_key_store = key_store
        self._supplied_key_password = key_password
        self._supplied_trust_store = trust_store

        self._lock = threading.RLock()
        self._key_store: CredentialStore | None = _UNSET
        self._trust_store: CredentialStore | None = _UNSET
        self._http_client: httpx.Client | None = http_client
        self._owns_http_client = http_client is None
        self._codecs: dict[TaxiiVersion, XmlCodec] = {}
        self._default_version = TaxiiVersion.V11
        if codec is not None:
            self._codecs[codec.version] = codec
            self._default_version = codec.version

    # ------------------------------------------------------------------
    # Credential stores
    # ------------------------------------------------------------------

    @property
    def key_store(self) -> CredentialStore | None:
        """The effective key store, resolved once and memoized."""
        with self._lock:
            if self._key_store is _UNSET:
                self._key_store = self._resolve_key_store()
            return self._key_store

    @property
    def trust_store(self) -> CredentialStore | None:
        """The effective trust store, resolved once and memoized."""
        with self._lock:
            if self._trust_store is _UNSET:
                self._trust_store = self._resolve_trust_store()
            return self._trust_store

    @property
    def key_password(self) -> str | None:
        if self._supplied_key_store is not None and self._supplied_key_password is not None:
            return self._supplied_key_password
        store = self.key_store
        return store.key_password if store is not None else None

    def _resolve_key_store(self) -> CredentialStore | None:
        s = self.settings
        if self._supplied_key_store is not None:
            return self._supplied_key_store
        if s.key_store_file is not None:
            return load_from_file(s.key_store_file, s.key_store_password)
        if s.private_key_pem:
            return load_key_material(s.private_key_pem, s.client_certificate_pem_chain or None)
        return None

    def _resolve_trust_store(self) -> CredentialStore | None:
        s = self.settings
        if self._supplied_trust_store is not None:
            return self._supplied_trust_store
        if s.trust_store_file is not None:
            return load_from_file(s.trust_store_file, s.trust_store_password)
        if s.trusted_pem_certificates:
            return load_trust_material(s.trusted_pem_certificates)
        return None

    # ------------------------------------------------------------------
    # Proxy
    # ------------------------------------------------------------------

    def resolve_proxy(self) -> str | None:
        """Return the proxy URL to use, or ``None`` for a direct connection.

        Unset host or port fall back to the ``<scheme>.proxyHost`` and
        ``<scheme>.proxyPort`` environment variables of the discovery URL's
        scheme. An incomplete proxy setup is logged and ignored.
        """
        s = self.settings
        if not s.use_proxy:
            return None

        scheme = self.discovery_url.scheme
        host = s.proxy_host or os.environ.get(f"{scheme}.proxyHost", "")
        port = s.proxy_port
        if not port:
            raw_port = os.environ.get(f"{scheme}.proxyPort", "0")
            try:
                port = int(raw_port)
            except ValueError:
                logger.warning("ignoring non-numeric %s.proxyPort: %r", scheme, raw_port)
                port = 0

        if not host or not port:
            logger.warning("proxy requested, but not setup, not using a proxy")
            return None

        logger.info("using %s proxy: %s:%d", scheme, host, port)
        return f"http://{host}:{port}"

    # ------------------------------------------------------------------
    # HTTP client
    # ------------------------------------------------------------------

    def _build_ssl_context(self) -> ssl.SSLContext | None:
        key_store = self.key_store
        trust_store = self.trust_store
        if key_store is None and trust_store is None and not self.settings.trust_self_signed:
            return None
        return build_ssl_context(
            key_store,
            trust_store,
            key_password=self.key_password,
            trust_self_signed=self.settings.trust_self_signed,
        )

    def _build_http_client(self) -> httpx.Client:
        s = self.settings
        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(s.timeout),
            "headers": {"User-Agent": _USER_AGENT},
            "trust_env": False,
        }

        proxy = self.resolve_proxy()
        if proxy:
            kwargs["proxy"] = proxy

        ssl_context = self._build_ssl_context()
        if ssl_context is not None:
            kwargs["verify"] = ssl_context

        if s.username:
            kwargs["auth"] = PreemptiveBasicAuth(s.username, s.password)

        logger.debug("Built HTTP client for %s", self.discovery_url)
        return httpx.Client(**kwargs)

    def get_http_client(self) -> httpx.Client:
        """Build the HTTP client on first use and return the cached instance."""
        with self._lock:
            if self._http_client is None:
                self._http_client = self._build_http_client()
            return self._http_client

    @property
    def http_client(self) -> httpx.Client:
        return self.get_http_client()

    @property
    def codec(self) -> XmlCodec:
        """The codec passed at construction, else the TAXII 1.1 codec."""
        return self.get_codec(self._default_version)

    def get_codec(self, version: TaxiiVersion | str) -> XmlCodec:
        version = TaxiiVersion(version)
        with self._lock:
            codec = self._codecs.get(version)
            if codec is None:
                codec = self._codecs[version] = XmlCodec(version)
            return codec

    def post(self, url: str | httpx.URL, envelope: Envelope) -> httpx.Response:
        """POST an envelope; unreachable servers raise :class:`TaxiiTransportError`."""
        target = parse_url(url)
        client = self.get_http_client()
        try:
            return client.post(target, content=envelope.body, headers=envelope.headers)
        except httpx.TransportError as exc:
            raise TaxiiTransportError(f"unable to reach {target}: {exc}", url=str(target)) from exc

    def close(self) -> None:
        with self._lock:
            if self._http_client is not None and self._owns_http_client:
                self._http_client.close()
                self._http_client = None

    def __enter__(self) -> TaxiiConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"TaxiiConnection(discovery_url={str(self.discovery_url)!r})"
