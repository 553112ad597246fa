"""
Base64 payload decoding with a nested JSON attempt.
"""

from __future__ import annotations

import base64
import binascii
import json
import re

from adflow.models.payloads import DecodedPayload

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")

# Shorter strings are too likely to be plain identifiers.
MIN_AUTODETECT_LENGTH = 20


def _padded(text: str) -> str:
    """Restore the trailing ``=`` padding that URL-embedded payloads often drop."""
    return text + "=" * (-len(text) % 4)


def is_valid_base64(text: str) -> bool:
    """Check that *text* uses only the base64 alphabet and decodes cleanly."""
    if not text or not _BASE64_RE.match(text):
        return False
    try:
        base64.b64decode(_padded(text), validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def decode_base64(raw: str) -> DecodedPayload:
    """Decode *raw* as base64; the decoded text is parsed as JSON when possible.

    Bytes are decoded as Latin-1 when they are not valid UTF-8, so
    binary content still yields a string.
    """
    try:
        decoded_bytes = base64.b64decode(_padded(raw.strip()), validate=True)
    except (binascii.Error, ValueError):
        return DecodedPayload(type="unknown", data=raw, raw=raw)
    try:
        text = decoded_bytes.decode("utf-8")
    except UnicodeDecodeError:
        text = decoded_bytes.decode("latin-1")
    try:
        return DecodedPayload(type="base64", data=json.loads(text), raw=raw)
    except ValueError:
        return DecodedPayload(type="base64", data=text, raw=raw)
