"""
Vendor classification.

Matches a request URL against the ordered vendor catalogue.  The first
vendor with a matching pattern wins; there is no scoring, so catalogue
order is the only tie-break between overlapping patterns.
"""

from __future__ import annotations

from collections.abc import Sequence

from adflow.classification import patterns
from adflow.data import loader
from adflow.models.vendors import DecoderHint, RequestType, Vendor
from adflow.utils import url as url_utils


def matches_glob(url: str, pattern: str) -> bool:
    """Check whether the scheme-less *url* matches glob *pattern*."""
    return patterns.glob_to_regex(pattern).match(url_utils.strip_scheme(url)) is not None


def classify_vendor(url: str, catalogue: Sequence[Vendor] | None = None) -> Vendor | None:
    """Return the first vendor in *catalogue* whose patterns match *url*.

    Args:
        url: Full request URL.
        catalogue: Vendors to match against, in priority order.
            Defaults to the bundled catalogue.

    Returns:
        The matching vendor, or ``None`` for unclassified traffic.
    """
    if not url:
        return None
    bare = url_utils.strip_scheme(url)
    for vendor in catalogue if catalogue is not None else loader.get_vendors():
        for pattern in vendor.patterns:
            if patterns.glob_to_regex(pattern).match(bare):
                return vendor
    return None


def declared_request_type(url: str, vendor: Vendor) -> RequestType | None:
    """Return the vendor-declared request type whose substring occurs in *url*."""
    for request_type, declared in vendor.request_types.items():
        if declared.pattern in url:
            return request_type
    return None


def get_decoder_hint(url: str, vendor: Vendor | None) -> DecoderHint | None:
    """Return the decoder the vendor declares for this URL, if any."""
    if vendor is None:
        return None
    for declared in vendor.request_types.values():
        if declared.pattern in url:
            return declared.decoder
    return None
