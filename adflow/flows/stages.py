"""
Ad-flow stage detection and slot identifier extraction.

Stage detection is an ordered chain: the vendor category decides first,
then the resolved request type, then URL and resource-kind heuristics.
Slot extraction walks from the most specific placement signal to the
least specific, so a global placement id beats a vendor tag id even
when both are present.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any
from urllib import parse

from adflow.models.requests import AdFlowStage, RequestRecord
from adflow.models.vendors import RequestType, VendorCategory
from adflow.utils import url as url_utils

StageRule = Callable[[RequestRecord], AdFlowStage | None]

# ============================================================================
# Stage Detection
# ============================================================================


def _hb_wrapper_stage(record: RequestRecord) -> AdFlowStage:
    url = record.url.lower()
    return "auction" if "prebid" in url or "auction" in url else "bid_request"


_SSP_TYPE_STAGES: dict[RequestType, AdFlowStage] = {
    "bid_request": "bid_request",
    "bid_response": "bid_response",
    "impression": "impression",
    "viewability": "viewability",
    "sync": "identity_sync",
}


def _ssp_stage(record: RequestRecord) -> AdFlowStage:
    if record.request_type in _SSP_TYPE_STAGES:
        return _SSP_TYPE_STAGES[record.request_type]
    url = record.url.lower()
    if "bid" in url or "auction" in url:
        return "bid_request"
    return "other"


def _dsp_stage(record: RequestRecord) -> AdFlowStage:
    return "bid_request" if record.request_type == "bid_request" else "creative_render"


def _measurement_stage(record: RequestRecord) -> AdFlowStage:
    if record.request_type == "viewability":
        return "viewability"
    if record.request_type == "impression":
        return "impression"
    return "verification"


def _cdn_stage(record: RequestRecord) -> AdFlowStage:
    return "creative_render" if record.resource_type in ("image", "media") else "other"


CATEGORY_STAGES: dict[VendorCategory, Callable[[RequestRecord], AdFlowStage]] = {
    "hb_wrapper": _hb_wrapper_stage,
    "ssp": _ssp_stage,
    "dsp": _dsp_stage,
    "ad_server": lambda _record: "ad_server",
    "verification": lambda _record: "verification",
    "measurement": _measurement_stage,
    "identity": lambda _record: "identity_sync",
    "cdn": _cdn_stage,
}

TYPE_STAGES: dict[RequestType, AdFlowStage] = {
    "bid_request": "bid_request",
    "bid_response": "bid_response",
    "impression": "impression",
    "viewability": "viewability",
    "click": "click",
    "sync": "identity_sync",
    "creative": "creative_render",
}

AD_SERVER_URL_MARKERS = ("doubleclick.net/gampad", "googlesyndication.com/pagead")
CREATIVE_RESOURCE_TYPES = ("image", "media", "sub_frame")
CREATIVE_URL_MARKERS = ("creative", "ad", "banner")


def _by_vendor_category(record: RequestRecord) -> AdFlowStage | None:
    if record.vendor is None:
        return None
    rule = CATEGORY_STAGES.get(record.vendor.category)
    return rule(record) if rule else None


def _by_request_type(record: RequestRecord) -> AdFlowStage | None:
    if record.request_type is None:
        return None
    return TYPE_STAGES.get(record.request_type)


def _by_ad_server_url(record: RequestRecord) -> AdFlowStage | None:
    if any(marker in record.url for marker in AD_SERVER_URL_MARKERS):
        return "ad_server"
    return None


def _by_creative_resource(record: RequestRecord) -> AdFlowStage | None:
    if record.resource_type not in CREATIVE_RESOURCE_TYPES:
        return None
    url = record.url.lower()
    if any(marker in url for marker in CREATIVE_URL_MARKERS):
        return "creative_render"
    return None


STAGE_RULES: list[StageRule] = [
    _by_vendor_category,
    _by_request_type,
    _by_ad_server_url,
    _by_creative_resource,
]


def detect_stage(record: RequestRecord) -> AdFlowStage:
    """Map a classified record onto its ad-serving lifecycle stage.

    Returns ``"other"`` when no rule applies.
    """
    for rule in STAGE_RULES:
        stage = rule(record)
        if stage:
            return stage
    return "other"


# ============================================================================
# Slot Extraction
# ============================================================================

SLOT_PARAMS = (
    "slot",
    "slotname",
    "ad_slot",
    "adslot",
    "iu",
    "ad_unit",
    "adunit",
    "div",
    "divid",
    "placement",
)

SLOT_ROOT_FIELDS = ("slotId", "slot", "adSlot", "adUnitCode", "placementId", "tagId")

_IU_RE = re.compile(r"[?&]iu=([^&]+)")
_AD_UNIT_CODE_RE = re.compile(r"adUnitCode[=:]([^&,]+)", re.I)


def extract_ad_unit_path(url: str) -> str | None:
    """Return the GAM ``iu=`` ad-unit path of *url*, percent-decoded."""
    match = _IU_RE.search(url)
    return parse.unquote(match.group(1)) if match else None


def _slot_from_url(url: str) -> str | None:
    for name in SLOT_PARAMS:
        value = url_utils.get_query_param(url, name)
        if value:
            return value
    path = extract_ad_unit_path(url)
    if path:
        return path
    match = _AD_UNIT_CODE_RE.search(url)
    return match.group(1) if match else None


def _nested(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


# Most specific first: a global placement id, then Prebid's ad-slot
# and ad-unit codes, then the vendor-local tag id.
_IMP_SLOT_PATHS: tuple[tuple[str, ...], ...] = (
    ("ext", "gpid"),
    ("ext", "data", "pbadslot"),
    ("ext", "prebid", "adunitcode"),
    ("tagid",),
)


def _slot_from_payload(data: dict[str, Any]) -> str | None:
    imps = data.get("imp")
    if isinstance(imps, list) and imps:
        for path in _IMP_SLOT_PATHS:
            value = _nested(imps[0], *path)
            if value:
                return str(value)
    for field in SLOT_ROOT_FIELDS:
        if data.get(field):
            return str(data[field])
    return None


def extract_slot_id(record: RequestRecord) -> str | None:
    """Find the placement identifier a record refers to.

    Tries, in order: slot-bearing query parameters, the GAM ``iu=``
    path, a Prebid ``adUnitCode``, then the decoded URL payload and
    request body (OpenRTB ``imp[0]`` fields before flat root fields).
    """
    slot = _slot_from_url(record.url)
    if slot:
        return slot
    for payload in (record.decoded_payload, record.request_body):
        if payload is not None and payload.is_structured:
            slot = _slot_from_payload(payload.data)
            if slot:
                return slot
    return None
