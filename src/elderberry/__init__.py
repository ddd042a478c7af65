# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""elderberry - TAXII 1.0/1.1 client binding."""

__version__ = "1.0.0"

from elderberry.codec import DecodedMessage, XmlCodec
from elderberry.connection import PreemptiveBasicAuth, TaxiiConnection
from elderberry.core.config import ConnectionSettings, Settings, get_settings
from elderberry.core.constants import ServiceType, TaxiiVersion
from elderberry.core.exceptions import (
    ConfigurationError,
    ElderberryError,
    MessageDecodeError,
    TaxiiTransportError,
)
from elderberry.envelope import Envelope, wrap
from elderberry.keystore import (
    CredentialStore,
    build_ssl_context,
    load_from_file,
    load_key_material,
    load_trust_material,
)
from elderberry.template import Taxii10Template, Taxii11Template, TaxiiTemplate

__all__ = [
    "ConfigurationError",
    "ConnectionSettings",
    "CredentialStore",
    "DecodedMessage",
    "ElderberryError",
    "Envelope",
    "MessageDecodeError",
    "PreemptiveBasicAuth",
    "ServiceType",
    "Settings",
    "Taxii10Template",
    "Taxii11Template",
    "TaxiiConnection",
    "TaxiiTemplate",
    "TaxiiTransportError",
    "TaxiiVersion",
    "XmlCodec",
    "__version__",
    "build_ssl_context",
    "get_settings",
    "load_from_file",
    "load_key_material",
    "load_trust_material",
    "wrap",
]
