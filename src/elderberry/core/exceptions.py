# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Custom exception hierarchy for elderberry."""


class ElderberryError(Exception):
    """Base exception for all elderberry errors."""


class ConfigurationError(ElderberryError):
    """Invalid or missing configuration (bad URL, unreadable key material, TLS setup)."""


class TaxiiTransportError(ElderberryError):
    """The TAXII server could not be reached."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class MessageDecodeError(ElderberryError):
    """A response body is not a TAXII XML message."""
