"""
Header-bidding / waterfall conflict detection over correlated flows.
"""

from __future__ import annotations

from collections.abc import Iterable

from adflow.models.analysis import Conflict
from adflow.models.flows import AdFlow

RACE_MARGIN_MS = 100


def _check_flow(flow: AdFlow) -> list[Conflict]:
    hb_members = flow.stage_members("auction", "bid_request")
    ad_server = flow.stages.get("ad_server", [])
    if not hb_members or not ad_server:
        return []

    hb_end = max(r.end_time for r in hb_members)
    waterfall_start = min(r.timestamp for r in ad_server)
    hb_ids = [r.id for r in hb_members]
    ad_ids = [r.id for r in ad_server]
    conflicts: list[Conflict] = []

    if hb_end > 0 and waterfall_start < hb_end:
        conflicts.append(
            Conflict(
                type="waterfall_before_hb",
                severity="error",
                message="Waterfall ad server called before header bidding completed",
                flow_id=flow.id,
                slot_id=flow.slot_id,
                details=(
                    f"Ad server request started {round(hb_end - waterfall_start)}ms before header "
                    "bidding completed. This may cause header bidding bids to be ignored."
                ),
                related_request_ids=ad_ids + hb_ids,
            )
        )

    bid_responses = flow.stages.get("bid_response", [])
    if bid_responses:
        hb_slots = {r.slot_id for r in hb_members + bid_responses if r.slot_id}
        ad_slots = {r.slot_id for r in ad_server if r.slot_id}
        if hb_slots & ad_slots or flow.slot_id:
            conflicts.append(
                Conflict(
                    type="duplicate_serving",
                    severity="warning",
                    message="Both header bidding and waterfall serving same ad slot",
                    flow_id=flow.id,
                    slot_id=flow.slot_id,
                    details=(
                        f"This ad slot appears to be served by both header bidding "
                        f"({len(bid_responses)} bid response(s)) and waterfall "
                        f"({len(ad_server)} ad server request(s)). This may cause duplicate impressions."
                    ),
                    related_request_ids=[r.id for r in bid_responses] + ad_ids,
                )
            )

    gap = waterfall_start - hb_end
    if hb_end > 0 and 0 < gap < RACE_MARGIN_MS:
        conflicts.append(
            Conflict(
                type="timing_conflict",
                severity="warning",
                message="Potential timing race condition between header bidding and waterfall",
                flow_id=flow.id,
                slot_id=flow.slot_id,
                details=(
                    f"Waterfall ad server request started {round(gap)}ms after header bidding "
                    "completed. This tight timing may cause race conditions."
                ),
                related_request_ids=ad_ids + hb_ids,
            )
        )

    return conflicts


def detect_conflicts(flows: Iterable[AdFlow]) -> list[Conflict]:
    """Report conflicts for every flow holding both bidding and ad-server members."""
    conflicts: list[Conflict] = []
    for flow in flows:
        conflicts.extend(_check_flow(flow))
    return conflicts
