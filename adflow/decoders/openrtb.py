"""
OpenRTB bid request/response decoding.

Bid requests get a derived ``_summary`` (impression count, ad format
labels, bid floors, site and privacy flags) added to a shallow copy of
the parsed object.  No original field is touched, so serialising the
annotated data and dropping ``_summary`` yields the input structure.
"""

from __future__ import annotations

from typing import Any

from adflow.decoders.json_payload import decode_json
from adflow.models.payloads import SUMMARY_KEY, DecodedPayload, OpenRtbSummary, PrivacyFlags


def looks_like_openrtb(data: Any) -> bool:
    """Whether parsed JSON carries an ``imp`` or ``seatbid`` field."""
    return isinstance(data, dict) and ("imp" in data or "seatbid" in data)


def _is_bid_request(data: dict[str, Any]) -> bool:
    return "imp" in data or ("id" in data and ("site" in data or "app" in data))


def _format_label(imp: Any) -> str:
    if not isinstance(imp, dict):
        return "Unknown"
    banner = imp.get("banner")
    if isinstance(banner, dict):
        formats = banner.get("format")
        if isinstance(formats, list) and formats:
            sizes = ", ".join(
                f"{f.get('w')}x{f.get('h')}" for f in formats if isinstance(f, dict)
            )
        else:
            sizes = f"{banner.get('w')}x{banner.get('h')}"
        return f"Banner ({sizes})"
    video = imp.get("video")
    if isinstance(video, dict):
        return f"Video ({video.get('w')}x{video.get('h')})"
    return "Unknown"


def summarize_bid_request(data: dict[str, Any]) -> OpenRtbSummary:
    """Build the human-oriented summary of an OpenRTB bid request."""
    summary = OpenRtbSummary()
    imps = data.get("imp")
    if isinstance(imps, list) and imps:
        summary.impression_count = len(imps)
        summary.ad_formats = [_format_label(imp) for imp in imps]
        summary.bid_floors = [
            float(imp["bidfloor"])
            for imp in imps
            if isinstance(imp, dict) and isinstance(imp.get("bidfloor"), (int, float)) and imp["bidfloor"]
        ]

    site = data.get("site")
    if isinstance(site, dict):
        summary.site = site.get("domain") or site.get("page")

    regs = data.get("regs")
    if isinstance(regs, dict):
        summary.privacy = PrivacyFlags(gdpr=regs.get("gdpr") == 1, us_privacy=regs.get("us_privacy"))

    return summary


def annotate(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *data* with the ``_summary`` key added."""
    annotated = dict(data)
    annotated[SUMMARY_KEY] = summarize_bid_request(data).model_dump(by_alias=True, exclude_none=True)
    return annotated


def tag_openrtb(decoded: DecodedPayload) -> DecodedPayload:
    """Re-tag an already-parsed JSON payload as OpenRTB."""
    data = decoded.data
    if isinstance(data, dict) and _is_bid_request(data):
        data = annotate(data)
    return DecodedPayload(type="openrtb", data=data, raw=decoded.raw)


def decode_openrtb(raw: str) -> DecodedPayload:
    """Parse *raw* as JSON and tag it as OpenRTB.

    Unparseable input degrades to ``unknown`` exactly as
    :func:`decode_json` does.
    """
    decoded = decode_json(raw)
    if decoded.type == "unknown":
        return decoded
    return tag_openrtb(decoded)
