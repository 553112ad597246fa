"""
Pattern tables for vendor and request-type classification.

URL globs from the vendor catalogue are compiled into anchored,
case-insensitive regular expressions.  The request-type tables map
generic parameter values and URL path fragments onto request types;
they are consulted only after vendor-declared patterns.
"""

from __future__ import annotations

import functools
import re

from adflow.models.vendors import RequestType

# ============================================================================
# Glob Compilation
# ============================================================================


@functools.lru_cache(maxsize=1024)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a URL glob into an anchored regex.

    ``**`` matches any run of characters including ``/``; ``*``
    matches any run except ``/``.  Everything else is literal.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$", re.I | re.S)


# ============================================================================
# Parameter / Body Value Lookup
# ============================================================================

TYPE_VALUE_MAP: dict[str, RequestType] = {
    # Impression variants
    "impression": "impression",
    "imp": "impression",
    "impr": "impression",
    "pixel": "impression",
    "track": "impression",
    "beacon": "impression",
    "log": "impression",
    "fired": "impression",
    # Click variants
    "click": "click",
    "clk": "click",
    "clicked": "click",
    "redirect": "click",
    # Viewability variants
    "viewability": "viewability",
    "viewable": "viewability",
    "visible": "viewability",
    "inview": "viewability",
    "view": "viewability",
    "jload": "viewability",
    "exposure": "viewability",
    # Sync variants
    "sync": "sync",
    "usync": "sync",
    "idsync": "sync",
    "cookie": "sync",
    "match": "sync",
    "cm": "sync",
    "uid": "sync",
    # Bid request variants
    "bid": "bid_request",
    "auction": "bid_request",
    "openrtb": "bid_request",
    "request": "bid_request",
    "prebid": "bid_request",
    # Bid response variants
    "response": "bid_response",
    "win": "bid_response",
    "won": "bid_response",
    "notify": "bid_response",
    # Creative variants
    "creative": "creative",
    "ad": "creative",
    "render": "creative",
    "display": "creative",
    "banner": "creative",
    "video": "creative",
    "native": "creative",
    # Config variants
    "config": "config",
    "settings": "config",
    "init": "config",
    "setup": "config",
}

# Parameter names checked in this order.
TYPE_PARAM_NAMES: tuple[str, ...] = (
    "type",
    "action",
    "event",
    "eventtype",
    "event_type",
    "evt",
    "ev",
    "t",
    "act",
    "a",
    "reqtype",
    "req_type",
    "request_type",
    "trackingtype",
    "tracking_type",
)

# ============================================================================
# URL Path Heuristics
# ============================================================================

# Checked in order against the lower-cased URL; the first match wins.
PATH_TYPE_RULES: list[tuple[tuple[str, ...], RequestType]] = [
    (("/impression", "/imp", "/pixel"), "impression"),
    (("/click", "/clk"), "click"),
    (("/viewability", "/visible", "/jload"), "viewability"),
    (("/sync", "/usync", "/idsync"), "sync"),
    (("/auction", "/bid", "/openrtb"), "bid_request"),
    (("/creative", "/ad/", "/ads/"), "creative"),
]


def lookup_type_value(params: dict[str, object]) -> RequestType | None:
    """Map the first recognised type-bearing parameter to a request type.

    Only string values are considered; lookup is case-insensitive.
    """
    for name in TYPE_PARAM_NAMES:
        value = params.get(name)
        if isinstance(value, str) and value:
            mapped = TYPE_VALUE_MAP.get(value.lower())
            if mapped:
                return mapped
    return None
