# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Logging setup for the elderberry client.

Records from the ``elderberry.*`` loggers are written to stderr either as
single-line JSON or as plain text. Both formats pass through
:func:`redact_sensitive`, which masks HTTP Basic credentials, ``password=``
values and PEM private-key bodies before anything leaves the process.
"""

import json
import logging
import re
import sys
from typing import Any, TextIO

LOGGER_NAME = "elderberry"

# Attributes the templates attach with ``extra=`` when logging TAXII failures
TAXII_FIELDS = ("taxii_url", "status_code", "message_id", "in_response_to", "status_type")

REDACT_PATTERNS = [
    re.compile(r"(Basic\s+[A-Za-z0-9+/]{4})[A-Za-z0-9+/=]*"),
    re.compile(r"(password=)[^\s,;&]+", re.IGNORECASE),
    re.compile(
        r"(-----BEGIN (?:RSA |ENCRYPTED )?PRIVATE KEY-----)[\s\S]*?(?=-----END)",
    ),
]


def redact_sensitive(text: str) -> str:
    for pattern in REDACT_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


def _taxii_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for name in TAXII_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            fields[name] = value
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including any TAXII fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_sensitive(record.getMessage()),
        }
        entry.update(_taxii_fields(record))
        if record.exc_info:
            entry["exception"] = redact_sensitive(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    default_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    def __init__(self, fmt: str | None = None) -> None:
        super().__init__(fmt or self.default_format)

    def format(self, record: logging.LogRecord) -> str:
        return redact_sensitive(super().format(record))


def setup_logging(
    level: str = "INFO",
    fmt: str = "text",
    stream: TextIO | None = None,
) -> logging.Logger:
    """Route ``elderberry`` logs to ``stream`` (stderr by default).

    Replaces any handlers installed by an earlier call.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else TextFormatter())
    logger.addHandler(handler)
    return logger
