"""
Search query language for request lists.

A query is free text plus optional ``operator:value`` terms; values
may be quoted to include spaces::

    vendor:rubicon status:4xx type:bid_request url:"/openrtb2" has:issues leaderboard

Unknown operators are removed from the free text and ignored.
"""

from __future__ import annotations

import re

import pydantic

from adflow.models.requests import RequestRecord

_OPERATOR_RE = re.compile(r'(\w+):("([^"]+)"|(\S+))')

OPERATOR_NAMES = ("vendor", "status", "type", "url", "has")
STATUS_GROUPS = {"2xx": 200, "3xx": 300, "4xx": 400, "5xx": 500}


class QueryOperators(pydantic.BaseModel):
    vendor: str | None = None
    status: str | None = None
    type: str | None = None
    url: str | None = None
    has: str | None = None


class ParsedQuery(pydantic.BaseModel):
    operators: QueryOperators = pydantic.Field(default_factory=QueryOperators)
    free_text: str = ""


def parse_query(query: str) -> ParsedQuery:
    """Split *query* into recognised operators and remaining free text.

    Examples:
        ``"vendor:rubicon test"`` gives ``vendor="rubicon"`` and free
        text ``"test"``.
    """
    values: dict[str, str] = {}
    free_text = query
    for match in _OPERATOR_RE.finditer(query):
        operator = match.group(1).lower()
        if operator in OPERATOR_NAMES:
            values[operator] = match.group(3) or match.group(4)
        free_text = free_text.replace(match.group(0), "", 1).strip()
    return ParsedQuery(operators=QueryOperators(**values), free_text=" ".join(free_text.split()))


def _matches_status(record: RequestRecord, status: str) -> bool:
    code = record.status_code or 0
    wanted = status.lower()
    if wanted in STATUS_GROUPS:
        low = STATUS_GROUPS[wanted]
        return low <= code < low + 100
    try:
        return code == int(wanted)
    except ValueError:
        return True


def _matches_has(record: RequestRecord, has: str) -> bool:
    wanted = has.lower()
    if wanted == "payload":
        return any(p is not None for p in (record.decoded_payload, record.request_body, record.response_payload))
    if wanted in ("requestbody", "request_body"):
        return record.request_body is not None
    if wanted in ("responsepayload", "response_payload"):
        return record.response_payload is not None
    if wanted == "issues":
        return bool(record.issues)
    return True


def matches_query_operators(record: RequestRecord, operators: QueryOperators) -> bool:
    """Check *record* against every operator that is set."""
    if operators.vendor:
        term = operators.vendor.lower()
        name = record.vendor.name.lower() if record.vendor else ""
        vendor_id = record.vendor.id.lower() if record.vendor else ""
        if term not in name and term not in vendor_id:
            return False
    if operators.status and not _matches_status(record, operators.status):
        return False
    if operators.type and record.request_type != operators.type.lower():
        return False
    if operators.url and operators.url.lower() not in record.url.lower():
        return False
    if operators.has and not _matches_has(record, operators.has):
        return False
    return True


def text_matches(haystack: str, needle: str, use_regex: bool = False) -> bool:
    """Case-insensitive substring or regex search.

    An invalid regex falls back to substring search.
    """
    if use_regex:
        try:
            return re.search(needle, haystack, re.I) is not None
        except re.error:
            pass
    return needle.lower() in haystack.lower()


def matches_free_text(record: RequestRecord, free_text: str, use_regex: bool = False) -> bool:
    """Search the URL and vendor name; empty text matches everything."""
    if not free_text.strip():
        return True
    haystack = f"{record.url} {record.vendor.name if record.vendor else ''}"
    return text_matches(haystack, free_text, use_regex)
