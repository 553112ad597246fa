"""
JSON payload decoding with a single repair attempt.
"""

from __future__ import annotations

import json
import re

from adflow.models.payloads import DecodedPayload

_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def repair_json(text: str) -> str:
    """Strip trailing commas before a closing ``}`` or ``]``."""
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def decode_json(raw: str) -> DecodedPayload:
    """Parse *raw* as JSON, retrying once after :func:`repair_json`.

    Unparseable input is tagged ``unknown`` with the text as data.
    """
    try:
        return DecodedPayload(type="json", data=json.loads(raw), raw=raw)
    except ValueError:
        pass
    try:
        return DecodedPayload(type="json", data=json.loads(repair_json(raw)), raw=raw)
    except ValueError:
        return DecodedPayload(type="unknown", data=raw, raw=raw)
