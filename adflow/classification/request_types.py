"""
Request-type classification.

A four-stage cascade evaluated highest priority first:

1. vendor-declared URL substrings,
2. type-bearing query parameters (``type``, ``action``, ``event``, ...),
3. the same lookup over a JSON or form-encoded request body,
4. URL path heuristics (``/impression``, ``/click``, ``/auction``, ...).

The same generic parameter name means different things across vendors,
so vendor-declared substrings are checked before it.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any

from adflow.classification import patterns
from adflow.classification.vendors import declared_request_type
from adflow.models.vendors import RequestType, Vendor
from adflow.utils import url as url_utils

Body = str | Mapping[str, Any] | None
TypeRule = Callable[[str, Vendor | None, Body], RequestType | None]


def _from_vendor_patterns(url: str, vendor: Vendor | None, _body: Body) -> RequestType | None:
    if vendor is None:
        return None
    return declared_request_type(url, vendor)


def _from_query_params(url: str, _vendor: Vendor | None, _body: Body) -> RequestType | None:
    return patterns.lookup_type_value(url_utils.parse_query_params(url))


def _from_body(_url: str, _vendor: Vendor | None, body: Body) -> RequestType | None:
    if not body:
        return None
    if isinstance(body, Mapping):
        return patterns.lookup_type_value(dict(body))
    try:
        parsed = json.loads(body)
    except ValueError:
        return patterns.lookup_type_value(url_utils.parse_form_body(body))
    if isinstance(parsed, dict):
        return patterns.lookup_type_value(parsed)
    return None


def _from_url_path(url: str, _vendor: Vendor | None, _body: Body) -> RequestType | None:
    lowered = url.lower()
    for fragments, request_type in patterns.PATH_TYPE_RULES:
        if any(fragment in lowered for fragment in fragments):
            return request_type
    return None


TYPE_RULES: list[TypeRule] = [
    _from_vendor_patterns,
    _from_query_params,
    _from_body,
    _from_url_path,
]


def classify_request_type(url: str, vendor: Vendor | None = None, raw_body: Body = None) -> RequestType:
    """Classify *url* into a request type.

    Args:
        url: Full request URL.
        vendor: Matched vendor, or ``None`` for unclassified traffic.
        raw_body: Request body as text or an already-parsed mapping.

    Returns:
        The first type produced by the cascade, or ``"unknown"``.
    """
    for rule in TYPE_RULES:
        result = rule(url, vendor, raw_body)
        if result:
            return result
    return "unknown"
