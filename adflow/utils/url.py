"""
URL helpers shared by the classifiers, decoders and slot extraction.
"""

from __future__ import annotations

import re
from urllib import parse

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.I)


def strip_scheme(url: str) -> str:
    """Remove a leading ``scheme://`` so host-anchored globs can match."""
    return _SCHEME_RE.sub("", url, count=1)


def _split_pairs(query: str) -> list[tuple[str, str]]:
    """Split ``a=1&b=2`` leniently, skipping pairs with an empty key or value."""
    pairs: list[tuple[str, str]] = []
    for pair in query.split("&"):
        key, _, value = pair.partition("=")
        if key and value:
            pairs.append((parse.unquote_plus(key), parse.unquote_plus(value)))
    return pairs


def query_pairs(url: str) -> list[tuple[str, str]]:
    """Return the query-string pairs of *url* in order of appearance.

    Values are percent-decoded.  Malformed URLs fall back to a
    manual split of everything after the first ``?``.
    """
    try:
        query = parse.urlsplit(url).query
        return parse.parse_qsl(query, keep_blank_values=False)
    except ValueError:
        start = url.find("?")
        if start == -1:
            return []
        return _split_pairs(url[start + 1:].split("#", 1)[0])


def parse_query_params(url: str) -> dict[str, str]:
    """Return lower-cased query parameters of *url*.

    Both names and values are lower-cased; the first occurrence
    of a repeated name wins.
    """
    params: dict[str, str] = {}
    for key, value in query_pairs(url):
        params.setdefault(key.lower(), value.lower())
    return params


def parse_form_body(body: str) -> dict[str, str]:
    """Parse a form-encoded body into lower-cased name/value pairs."""
    params: dict[str, str] = {}
    for key, value in _split_pairs(body):
        params.setdefault(key.lower(), value.lower())
    return params


def get_query_param(url: str, name: str) -> str | None:
    """Return the first value of query parameter *name* (case-insensitive)."""
    wanted = name.lower()
    for key, value in query_pairs(url):
        if key.lower() == wanted and value:
            return value
    return None


def url_path(url: str) -> str:
    """Return the path component of *url*, or ``""`` when unparseable."""
    try:
        return parse.urlsplit(url).path
    except ValueError:
        return ""
