"""
Full-text search over decoded payloads.
"""

from __future__ import annotations

import json

from adflow.models.payloads import DecodedPayload
from adflow.models.requests import RequestRecord
from adflow.search.query import text_matches


def serialize_payload(payload: DecodedPayload | None) -> str:
    """Render a decoded payload as one searchable string."""
    if payload is None:
        return ""
    data = payload.data
    if not data:
        return payload.raw or ""

    if payload.type in ("json", "openrtb"):
        try:
            return json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            return payload.raw or ""

    if payload.type == "url_params" and isinstance(data, dict):
        parts = []
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
            parts.append(f"{key}={value}")
        return "&".join(parts)

    if payload.type in ("base64", "text") and isinstance(data, str):
        return data
    return payload.raw or ""


def payload_strings(record: RequestRecord) -> list[str]:
    """Serialised URL payload, request body and response, skipping empty ones."""
    strings = (
        serialize_payload(record.decoded_payload),
        serialize_payload(record.request_body),
        serialize_payload(record.response_payload),
    )
    return [s for s in strings if s]


def matches_payload_search(record: RequestRecord, query: str, use_regex: bool = False) -> bool:
    """Search a record's payloads.

    An empty query matches every record; a record with no payloads
    never matches a non-empty query.
    """
    if not query.strip():
        return True
    strings = payload_strings(record)
    if not strings:
        return False
    return text_matches("\n".join(strings), query, use_regex)
