"""
Header-bidding analysis of a session.

Combines setup classification, bid latency statistics and
waterfall conflict detection.  Each part runs independently: one
that fails is logged and replaced by its empty default so the rest
of the analysis is still returned.
"""

from __future__ import annotations

from collections.abc import Sequence

from adflow.flows import correlator
from adflow.headerbidding import conflicts as conflicts_mod
from adflow.headerbidding import latency as latency_mod
from adflow.headerbidding import setup as setup_mod
from adflow.models.analysis import BidLatencyAnalysis, Conflict, HeaderBiddingAnalysis, HeaderBiddingSetup
from adflow.models.flows import AdFlow
from adflow.models.requests import RequestRecord
from adflow.utils import logger
from adflow.utils.errors import get_error_message

log = logger.create_logger("HeaderBidding")


def analyze(
    records: Sequence[RequestRecord],
    flows: Sequence[AdFlow] | None = None,
    now_ms: float | None = None,
) -> HeaderBiddingAnalysis:
    """Build the header-bidding analysis for a session.

    Args:
        records: All records of the session, already classified.
        flows: Correlated flows; computed from *records* when omitted.
        now_ms: Current time for pending-request timeout counting.

    Returns:
        Setup label, wrapper flags, latency statistics and conflicts.
    """
    log.start_timer("header-bidding")

    signals: set[str] = set()
    setup: HeaderBiddingSetup = "unknown"
    try:
        signals = setup_mod.collect_signals(records)
        setup = setup_mod.resolve_setup(signals)
    except Exception as err:
        log.warn("Setup detection failed", {"error": get_error_message(err)})

    latency = BidLatencyAnalysis()
    try:
        latency = latency_mod.analyze_latency(records, now_ms)
    except Exception as err:
        log.warn("Latency analysis failed", {"error": get_error_message(err)})

    conflicts: list[Conflict] = []
    try:
        if flows is None:
            flows = correlator.group_into_flows(records)
        conflicts = conflicts_mod.detect_conflicts(flows)
    except Exception as err:
        log.warn("Conflict detection failed", {"error": get_error_message(err)})

    analysis = HeaderBiddingAnalysis(
        setup=setup,
        client_wrapper_detected=setup_mod.CLIENT in signals,
        server_wrapper_detected=setup_mod.SERVER in signals,
        latency=latency,
        conflicts=conflicts,
    )
    log.end_timer("header-bidding", "Header bidding analysis complete")
    log.debug(
        "Header bidding summary",
        {"setup": setup, "vendors": len(latency.by_vendor), "conflicts": len(conflicts)},
    )
    return analysis
