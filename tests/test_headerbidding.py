"""Tests for adflow.headerbidding: setup, latency and waterfall conflicts."""

from __future__ import annotations

from unittest import mock

import pytest

from adflow.flows.correlator import group_into_flows
from adflow.headerbidding import analyze
from adflow.headerbidding import latency as latency_mod
from adflow.headerbidding import setup as setup_mod
from adflow.headerbidding.conflicts import detect_conflicts
from adflow.headerbidding.latency import analyze_latency, percentile
from adflow.utils import logger

XANDR_BID = "https://ib.adnxs.com/ut/v3/prebid"
GAM = "https://securepubads.g.doubleclick.net/gampad/ads?iu=/1/top"
RUBICON_BID = "https://fastlane.rubiconproject.com/openrtb2/auction?slot=/1/top"


# ── percentile ──────────────────────────────────────────────────


class TestPercentile:
    def test_p95_of_five(self) -> None:
        assert percentile([100, 200, 300, 400, 500], 0.95) == 500

    def test_median(self) -> None:
        assert percentile([1, 2, 3], 0.5) == 2

    def test_single(self) -> None:
        assert percentile([42], 0.95) == 42

    def test_empty(self) -> None:
        assert percentile([], 0.95) == 0.0


# ── Setup classification ────────────────────────────────────────


class TestDetectSetup:
    def test_client_wrapper(self, make_enriched) -> None:
        records = [make_enriched("https://www.publisher.com/js/prebid8.js", resource_type="script")]
        assert setup_mod.detect_setup(records) == "client-wrapper"

    def test_server_wrapper(self, make_enriched) -> None:
        records = [make_enriched("https://prebid.publisher.com/openrtb2/auction")]
        assert setup_mod.detect_setup(records) == "server-wrapper"

    def test_mixed(self, make_enriched) -> None:
        records = [
            make_enriched("https://www.publisher.com/js/prebid8.js", resource_type="script"),
            make_enriched("https://pbs.publisher.com/pbs/v1/openrtb2/auction"),
        ]
        assert setup_mod.detect_setup(records) == "mixed"

    def test_other_wrapper(self, make_enriched) -> None:
        assert setup_mod.detect_setup([make_enriched("https://aax.amazon-adsystem.com/e/dtb/bid")]) == "other-wrapper"

    def test_waterfall_only(self, gam_request) -> None:
        assert setup_mod.detect_setup([gam_request]) == "waterfall-only"

    def test_unknown(self, make_enriched) -> None:
        assert setup_mod.detect_setup([]) == "unknown"
        assert setup_mod.detect_setup([make_enriched("https://www.example.com/")]) == "unknown"

    @pytest.mark.parametrize(
        ("signals", "expected"),
        [
            ({"client", "server", "waterfall"}, "mixed"),
            ({"client", "other", "waterfall"}, "client-wrapper"),
            ({"server", "other"}, "server-wrapper"),
            ({"other", "waterfall"}, "other-wrapper"),
            ({"waterfall"}, "waterfall-only"),
            (set(), "unknown"),
        ],
    )
    def test_resolution_order(self, signals: set[str], expected: str) -> None:
        assert setup_mod.resolve_setup(signals) == expected

    def test_failing_rule_is_isolated(self, gam_request) -> None:
        def broken_rule(_record):
            raise RuntimeError("rule crashed")

        rules = [broken_rule, *setup_mod.SIGNAL_RULES]
        with mock.patch.object(setup_mod, "SIGNAL_RULES", rules):
            assert setup_mod.detect_setup([gam_request]) == "waterfall-only"
        assert any("Setup signal rule failed" in line for line in logger.get_log_buffer())


# ── Latency ─────────────────────────────────────────────────────


class TestAnalyzeLatency:
    def test_vendor_statistics(self, make_enriched) -> None:
        records = [
            make_enriched(XANDR_BID, timestamp=float(i * 10), duration=float(d))
            for i, d in enumerate([300, 100, 500, 200, 400])
        ]
        result = analyze_latency(records)
        assert len(result.by_vendor) == 1
        metrics = result.by_vendor[0]
        assert metrics.vendor == "Xandr (AppNexus)"
        assert metrics.request_count == 5
        assert metrics.response_count == 5
        assert metrics.avg_latency == 300
        assert metrics.min_latency == 100
        assert metrics.max_latency == 500
        assert metrics.p95_latency == 500
        assert result.overall.p95_latency == 500
        assert result.overall.response_rate == 1.0

    def test_sorted_by_request_count(self, make_enriched) -> None:
        records = [
            make_enriched(XANDR_BID, duration=100.0),
            make_enriched(RUBICON_BID, duration=100.0),
            make_enriched(RUBICON_BID, duration=120.0),
        ]
        names = [m.vendor for m in analyze_latency(records).by_vendor]
        assert names == ["Magnite (Rubicon)", "Xandr (AppNexus)"]

    def test_slow_vendor(self, make_enriched) -> None:
        records = [make_enriched(XANDR_BID, duration=4000.0)]
        assert analyze_latency(records).slow_vendors == ["Xandr (AppNexus)"]

    def test_timeouts(self, make_enriched) -> None:
        records = [
            make_enriched(XANDR_BID, timestamp=0.0, duration=100.0),
            make_enriched(XANDR_BID, timestamp=10.0, state="error", status_code=None, error="net::ERR_TIMED_OUT"),
            make_enriched(XANDR_BID, timestamp=20.0, state="pending"),
        ]
        result = analyze_latency(records, now_ms=15000.0)
        metrics = result.by_vendor[0]
        assert metrics.timeout_count == 2
        assert metrics.timeout_rate == pytest.approx(2 / 3)
        assert result.timeout_vendors == ["Xandr (AppNexus)"]
        assert result.overall.timeout_count == 2

    def test_pending_not_timed_out_without_clock(self, make_enriched) -> None:
        records = [make_enriched(XANDR_BID, state="pending")]
        assert analyze_latency(records).by_vendor[0].timeout_count == 0

    def test_response_paired_with_request(self, make_enriched) -> None:
        request = make_enriched(RUBICON_BID, timestamp=100.0, state="pending")
        response = make_enriched(
            "https://fastlane.rubiconproject.com/a/api/win?type=win", timestamp=350.0, duration=0.0
        )
        metrics = analyze_latency([request, response]).by_vendor[0]
        assert metrics.response_count == 1
        assert metrics.avg_latency == 250

    def test_response_paired_with_nearest_request(self, make_enriched) -> None:
        earlier = make_enriched(RUBICON_BID, timestamp=0.0, state="pending")
        later = make_enriched(RUBICON_BID, timestamp=3000.0, state="pending")
        response = make_enriched(
            "https://fastlane.rubiconproject.com/a/api/win?type=win", timestamp=3100.0, duration=None
        )
        metrics = analyze_latency([earlier, later, response]).by_vendor[0]
        assert metrics.request_count == 2
        assert metrics.avg_latency == 100

    def test_same_url_request_preferred(self, make_enriched) -> None:
        same_url = make_enriched(RUBICON_BID, timestamp=1000.0, state="pending")
        closer = make_enriched(
            "https://fastlane.rubiconproject.com/openrtb2/auction?slot=/2/side", timestamp=1900.0, state="pending"
        )
        response = make_enriched(RUBICON_BID, timestamp=2000.0, duration=None)
        metrics = analyze_latency([same_url, closer, response]).by_vendor[0]
        assert metrics.response_count == 1
        assert metrics.avg_latency == 1000

    def test_no_bid_traffic(self, gam_request) -> None:
        result = analyze_latency([gam_request])
        assert result.by_vendor == []
        assert result.overall.total_bid_requests == 0
        assert result.overall.response_rate == 0.0


# ── Conflicts ───────────────────────────────────────────────────


class TestDetectConflicts:
    def test_waterfall_before_header_bidding(self, make_enriched) -> None:
        bid = make_enriched(RUBICON_BID, timestamp=0.0, duration=1000.0)
        serve = make_enriched(GAM, timestamp=500.0)
        conflicts = detect_conflicts(group_into_flows([bid, serve]))
        assert [c.type for c in conflicts] == ["waterfall_before_hb"]
        assert conflicts[0].severity == "error"
        assert conflicts[0].related_request_ids == [serve.id, bid.id]
        assert "500ms before header bidding completed" in conflicts[0].details

    def test_timing_race(self, make_enriched) -> None:
        bid = make_enriched(RUBICON_BID, timestamp=0.0, duration=450.0)
        serve = make_enriched(GAM, timestamp=500.0)
        conflicts = detect_conflicts(group_into_flows([bid, serve]))
        assert [c.type for c in conflicts] == ["timing_conflict"]
        assert conflicts[0].slot_id == "/1/top"

    def test_clean_sequence(self, make_enriched) -> None:
        bid = make_enriched(RUBICON_BID, timestamp=0.0, duration=100.0)
        serve = make_enriched(GAM, timestamp=500.0)
        assert detect_conflicts(group_into_flows([bid, serve])) == []

    def test_requires_both_sides(self, gam_request) -> None:
        assert detect_conflicts(group_into_flows([gam_request])) == []


# ── Full analysis ───────────────────────────────────────────────


class TestAnalyze:
    def test_header_bidding_auction(self, auction_records) -> None:
        analysis = analyze(auction_records)
        assert analysis.setup == "client-wrapper"
        assert analysis.client_wrapper_detected is True
        assert analysis.server_wrapper_detected is False
        assert [c.type for c in analysis.conflicts] == ["duplicate_serving", "timing_conflict"]
        timing = analysis.conflicts[1]
        assert "50ms after header bidding completed" in timing.details
        names = {m.vendor for m in analysis.latency.by_vendor}
        assert {"Xandr (AppNexus)", "Index Exchange", "PubMatic"} <= names

    def test_waterfall_only(self, gam_request) -> None:
        analysis = analyze([gam_request])
        assert analysis.setup == "waterfall-only"
        assert analysis.conflicts == []

    def test_precomputed_flows_used(self, auction_records) -> None:
        assert analyze(auction_records, flows=[]).conflicts == []

    def test_failed_part_falls_back_to_default(self, auction_records) -> None:
        with mock.patch.object(latency_mod, "analyze_latency", side_effect=RuntimeError("boom")):
            analysis = analyze(auction_records)
        assert analysis.latency.by_vendor == []
        assert analysis.setup == "client-wrapper"
        assert len(analysis.conflicts) == 2
        assert any("Latency analysis failed" in line for line in logger.get_log_buffer())

    def test_serialises_camel_case(self, gam_request) -> None:
        dumped = analyze([gam_request]).model_dump(by_alias=True)
        assert "clientWrapperDetected" in dumped
        assert "byVendor" in dumped["latency"]
