"""
Query-string decoding.

Each parameter value is tried as JSON and otherwise kept verbatim.
Values are never base64-decoded: many ordinary identifiers satisfy
the base64 alphabet and decode to garbage.
"""

from __future__ import annotations

import json
from typing import Any

from adflow.models.payloads import DecodedPayload
from adflow.utils import url as url_utils


def _coerce_value(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


def decode_url_params(raw: str) -> DecodedPayload:
    """Decode the query string of *raw* into a parameter mapping.

    A repeated parameter keeps its last value.  Input without any
    query parameters is tagged ``unknown``.
    """
    pairs = url_utils.query_pairs(raw)
    if not pairs:
        return DecodedPayload(type="unknown", data=raw, raw=raw)
    params: dict[str, Any] = {}
    for key, value in pairs:
        params[key] = _coerce_value(value)
    return DecodedPayload(type="url_params", data=params, raw=raw)
