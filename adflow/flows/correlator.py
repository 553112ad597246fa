"""
Flow correlation: groups a session's records into ad flows.

Correlation is a pure fold over the records sorted by timestamp.  It
keeps no state between calls, so re-running it on the same input
yields flows with identical ids, membership and ordering.

Grouping rules:

- A record with a slot identifier joins the open flow for that slot
  while it is within :data:`FLOW_WINDOW_MS` of the flow's start and
  causally plausible; otherwise it opens a new flow for the slot.  A
  slotted record arriving before any flow for its slot exists may
  instead claim the rolling unassigned flow it fits into.
- A record without a slot scans flows newest-first and joins the first
  one within the window that it can causally belong to, falling back
  to a single rolling unassigned flow subject to the same window.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from adflow.flows import stages as stage_mod
from adflow.models.flows import AdFlow, FlowSummary, WinningBid
from adflow.models.requests import AdFlowStage, RequestRecord
from adflow.utils import logger

log = logger.create_logger("Correlator")

FLOW_WINDOW_MS = 5000

# Stages that imply ad serving already happened for the flow.
POST_SERVING_STAGES: frozenset[AdFlowStage] = frozenset(
    {"ad_server", "creative_render", "impression", "viewability"}
)

# Stages that may attach to any flow within the time window.
UNCONSTRAINED_STAGES: frozenset[AdFlowStage] = frozenset({"identity_sync", "verification", "other"})

_PRICE_RE = re.compile(r"(?:price|cpm|bid)[=:]([0-9.]+)", re.I)
_CURRENCY_RE = re.compile(r"(?:cur|currency)[=:]([A-Z]{3})", re.I)


# ============================================================================
# Flow Construction
# ============================================================================


def _prepare(record: RequestRecord) -> RequestRecord:
    """Fill in stage and slot on a copy when a record lacks them."""
    updates: dict[str, object] = {}
    if record.stage is None:
        updates["stage"] = stage_mod.detect_stage(record)
    if record.slot_id is None:
        slot = stage_mod.extract_slot_id(record)
        if slot:
            updates["slot_id"] = slot
    return record.model_copy(update=updates) if updates else record


def _add_to_flow(flow: AdFlow, record: RequestRecord) -> None:
    flow.requests.append(record)
    flow.end_time = max(flow.end_time, record.end_time)
    stage = record.stage or "other"
    flow.stages.setdefault(stage, []).append(record)
    if stage == "ad_server" and not flow.ad_unit_path:
        flow.ad_unit_path = stage_mod.extract_ad_unit_path(record.url)


def _new_flow(index: int, slot_id: str | None, first: RequestRecord) -> AdFlow:
    flow = AdFlow(
        id=f"flow-{index}",
        slot_id=slot_id,
        start_time=first.timestamp,
        end_time=first.timestamp,
    )
    _add_to_flow(flow, first)
    return flow


def _within_window(record: RequestRecord, flow: AdFlow) -> bool:
    return record.timestamp - flow.start_time < FLOW_WINDOW_MS


def can_belong_to_flow(record: RequestRecord, flow: AdFlow) -> bool:
    """Check whether attaching *record* to *flow* is causally plausible.

    A bid request cannot follow ad serving: it never joins a flow that
    already holds an ad-server, creative, impression or viewability
    member.  Sync, verification and uncategorised traffic may join any
    flow.
    """
    stage = record.stage or "other"
    if stage in UNCONSTRAINED_STAGES:
        return True
    if stage == "bid_request":
        return not any(s in POST_SERVING_STAGES for s in flow.stages)
    return True


# ============================================================================
# Winning Bid & Issues
# ============================================================================


def extract_winning_bid(record: RequestRecord) -> WinningBid | None:
    """Read a price (and currency) signal from an ad-server or impression URL.

    Returns ``None`` unless the record has a vendor and either carries
    a price or is itself the ad-server call.
    """
    price_match = _PRICE_RE.search(record.url)
    price: float | None = None
    if price_match:
        try:
            price = float(price_match.group(1))
        except ValueError:
            price = None
    currency_match = _CURRENCY_RE.search(record.url)
    currency = currency_match.group(1) if currency_match else None

    if record.vendor and (price is not None or record.stage == "ad_server"):
        return WinningBid(vendor=record.vendor.name, price=price, currency=currency)
    return None


def _detect_winner(flow: AdFlow) -> WinningBid | None:
    for record in flow.stage_members("ad_server", "impression"):
        bid = extract_winning_bid(record)
        if bid and bid.price:
            return bid
    for record in flow.stages.get("creative_render", []):
        if record.vendor and record.vendor.category != "cdn":
            return WinningBid(vendor=record.vendor.name)
    return None


def _finalize(flow: AdFlow) -> None:
    flow.winning_bid = _detect_winner(flow)
    flow.issues = [issue for record in flow.requests for issue in record.issues]


# ============================================================================
# Correlation
# ============================================================================


def group_into_flows(records: Iterable[RequestRecord]) -> list[AdFlow]:
    """Group records into ad flows.

    Args:
        records: Snapshot of a tab's records, in any order.  Records
            without a stage or slot get them computed on a copy; the
            inputs are never modified.

    Returns:
        Flows ordered by start time, each with its winning bid and
        aggregated member issues filled in.
    """
    prepared = sorted((_prepare(r) for r in records), key=lambda r: r.timestamp)
    if not prepared:
        return []

    flows: list[AdFlow] = []
    open_by_slot: dict[str, AdFlow] = {}
    unassigned: AdFlow | None = None

    def start_flow(slot_id: str | None, record: RequestRecord) -> AdFlow:
        flow = _new_flow(len(flows) + 1, slot_id, record)
        flows.append(flow)
        return flow

    for record in prepared:
        slot_id = record.slot_id

        if slot_id:
            existing = open_by_slot.get(slot_id)
            if existing is not None:
                if _within_window(record, existing) and can_belong_to_flow(record, existing):
                    _add_to_flow(existing, record)
                else:
                    open_by_slot[slot_id] = start_flow(slot_id, record)
                continue

            if (
                unassigned is not None
                and unassigned.slot_id is None
                and _within_window(record, unassigned)
                and can_belong_to_flow(record, unassigned)
            ):
                unassigned.slot_id = slot_id
                _add_to_flow(unassigned, record)
                open_by_slot[slot_id] = unassigned
                unassigned = None
            else:
                open_by_slot[slot_id] = start_flow(slot_id, record)
            continue

        matched = next(
            (
                flow
                for flow in reversed(flows)
                if _within_window(record, flow) and can_belong_to_flow(record, flow)
            ),
            None,
        )
        # The scan already offered the record to the unassigned flow.
        if matched is not None:
            _add_to_flow(matched, record)
        else:
            unassigned = start_flow(None, record)

    flows.sort(key=lambda f: f.start_time)
    for flow in flows:
        _finalize(flow)

    log.debug("Correlated records into flows", {"records": len(prepared), "flows": len(flows)})
    return flows


def summarize_flows(flows: Iterable[AdFlow]) -> FlowSummary:
    """Count flows, flows with issues / a winning bid, and flows per slot."""
    summary = FlowSummary()
    for flow in flows:
        summary.total += 1
        if flow.issues:
            summary.with_issues += 1
        if flow.winning_bid:
            summary.with_winning_bid += 1
        slot = flow.slot_id or "unknown"
        summary.by_slot[slot] = summary.by_slot.get(slot, 0) + 1
    return summary
