"""Tests for adflow.search: query language, payload search and filters."""

from __future__ import annotations

import pytest

from adflow.models.payloads import DecodedPayload
from adflow.models.requests import Issue
from adflow.models.slots import SlotHint
from adflow.search.filters import (
    RequestFilter,
    filter_records,
    matches_filter,
    matches_placement,
    slot_ids_related,
    status_group,
)
from adflow.search.payload_search import matches_payload_search, serialize_payload
from adflow.search.query import (
    QueryOperators,
    matches_free_text,
    matches_query_operators,
    parse_query,
    text_matches,
)

RUBICON_BID = "https://fastlane.rubiconproject.com/openrtb2/auction"
PIXEL = "https://fastlane.rubiconproject.com/a/api/impression?nid=1"
GAM = "https://securepubads.g.doubleclick.net/gampad/ads?iu=%2F1234%2Fleaderboard"


# ── parse_query ─────────────────────────────────────────────────


class TestParseQuery:
    def test_operators_and_free_text(self) -> None:
        parsed = parse_query("vendor:rubicon  leaderboard   status:4xx")
        assert parsed.operators.vendor == "rubicon"
        assert parsed.operators.status == "4xx"
        assert parsed.free_text == "leaderboard"

    def test_quoted_value(self) -> None:
        parsed = parse_query('url:"/openrtb2/auction" has:issues')
        assert parsed.operators.url == "/openrtb2/auction"
        assert parsed.operators.has == "issues"
        assert parsed.free_text == ""

    def test_unknown_operator_dropped(self) -> None:
        parsed = parse_query("colour:red banner")
        assert parsed.operators == QueryOperators()
        assert parsed.free_text == "banner"

    def test_plain_text(self) -> None:
        assert parse_query("  hello   world ").free_text == "hello world"


# ── Operators ───────────────────────────────────────────────────


class TestQueryOperators:
    def test_vendor_by_name_or_id(self, make_enriched) -> None:
        record = make_enriched(RUBICON_BID)
        assert matches_query_operators(record, QueryOperators(vendor="magnite"))
        assert matches_query_operators(record, QueryOperators(vendor="RUBICON"))
        assert not matches_query_operators(record, QueryOperators(vendor="xandr"))

    @pytest.mark.parametrize(
        ("status", "expected"),
        [("4xx", True), ("404", True), ("5xx", False), ("500", False), ("abc", True)],
    )
    def test_status(self, make_enriched, status: str, expected: bool) -> None:
        record = make_enriched(RUBICON_BID, status_code=404)
        assert matches_query_operators(record, QueryOperators(status=status)) is expected

    def test_type(self, make_enriched) -> None:
        record = make_enriched(RUBICON_BID)
        assert matches_query_operators(record, QueryOperators(type="BID_REQUEST"))
        assert not matches_query_operators(record, QueryOperators(type="impression"))

    def test_url(self, make_enriched) -> None:
        assert matches_query_operators(make_enriched(RUBICON_BID), QueryOperators(url="/OpenRTB2"))

    def test_has(self, make_enriched, make_record) -> None:
        bid = make_enriched(RUBICON_BID, body='{"imp": []}', content_type="application/json")
        bare = make_record("https://x.example.com/")
        assert matches_query_operators(bid, QueryOperators(has="requestBody"))
        assert matches_query_operators(bid, QueryOperators(has="payload"))
        assert not matches_query_operators(bare, QueryOperators(has="payload"))
        assert not matches_query_operators(bid, QueryOperators(has="issues"))
        assert matches_query_operators(bid, QueryOperators(has="anything"))


class TestFreeText:
    def test_url_and_vendor_name(self, make_enriched) -> None:
        record = make_enriched(RUBICON_BID)
        assert matches_free_text(record, "openrtb2")
        assert matches_free_text(record, "Magnite")
        assert not matches_free_text(record, "pubmatic")

    def test_empty_matches(self, make_record) -> None:
        assert matches_free_text(make_record("https://x.example.com/"), "  ")

    def test_regex(self) -> None:
        assert text_matches("https://x.example.com/bid/v2", r"bid/v\d", use_regex=True)

    def test_invalid_regex_falls_back_to_substring(self) -> None:
        assert text_matches("price=[1", "[1", use_regex=True)
        assert not text_matches("price=1", "[2", use_regex=True)


# ── Payload search ──────────────────────────────────────────────


class TestPayloadSearch:
    def test_request_body(self, make_enriched) -> None:
        record = make_enriched(RUBICON_BID, body='{"imp": [{"tagid": "sidebar-7"}]}', content_type="application/json")
        assert matches_payload_search(record, "sidebar-7")
        assert not matches_payload_search(record, "sidebar-8")

    def test_empty_query(self, make_record) -> None:
        assert matches_payload_search(make_record("https://x.example.com/"), "")

    def test_no_payloads(self, make_record) -> None:
        assert not matches_payload_search(make_record("https://x.example.com/"), "x")

    def test_url_params_serialised(self) -> None:
        payload = DecodedPayload(type="url_params", data={"a": 1, "b": {"c": 2}}, raw="")
        assert serialize_payload(payload) == 'a=1&b={"c":2}'

    def test_text_payload(self) -> None:
        assert serialize_payload(DecodedPayload(type="text", data="hello", raw=" hello ")) == "hello"

    def test_empty_data_uses_raw(self) -> None:
        assert serialize_payload(DecodedPayload(type="unknown", data="", raw="raw")) == "raw"


# ── Filters ─────────────────────────────────────────────────────


class TestStatusGroup:
    @pytest.mark.parametrize(
        ("fields", "expected"),
        [
            ({"status_code": 204}, "2xx"),
            ({"status_code": 302}, "3xx"),
            ({"status_code": 404}, "4xx"),
            ({"status_code": 503}, "5xx"),
            ({"error": "net::ERR_FAILED"}, "error"),
            ({}, None),
        ],
    )
    def test_groups(self, make_record, fields: dict, expected: str | None) -> None:
        assert status_group(make_record("https://x.example.com/", **fields)) == expected


class TestMatchesFilter:
    def test_empty_filter(self, make_record) -> None:
        assert RequestFilter().is_empty
        records = [make_record("https://x.example.com/")]
        assert filter_records(records, RequestFilter()) == records
        assert filter_records(records) == records

    def test_vendor_and_category(self, make_enriched) -> None:
        record = make_enriched(RUBICON_BID)
        assert matches_filter(record, RequestFilter(vendors=("rubicon",)))
        assert not matches_filter(record, RequestFilter(vendors=("xandr",)))
        assert matches_filter(record, RequestFilter(categories=("ssp",)))
        assert not matches_filter(record, RequestFilter(categories=("dsp",)))

    def test_vendorless_excluded_by_vendor_filter(self, make_record) -> None:
        assert not matches_filter(make_record("https://x.example.com/"), RequestFilter(vendors=("rubicon",)))

    def test_request_type_and_status(self, make_enriched) -> None:
        record = make_enriched(PIXEL, status_code=500)
        assert matches_filter(record, RequestFilter(request_types=("impression",), status_codes=("5xx",)))
        assert not matches_filter(record, RequestFilter(status_codes=("2xx",)))

    def test_issue_filters(self, make_enriched) -> None:
        issue = Issue(type="slow_response", severity="warning", message="Slow response time")
        clean = make_enriched(PIXEL)
        slow = make_enriched(PIXEL, issues=[issue])
        assert filter_records([clean, slow], RequestFilter(show_only_issues=True)) == [slow]
        assert filter_records([clean, slow], RequestFilter(issue_types=("slow_response",))) == [slow]
        assert filter_records([clean, slow], RequestFilter(issue_types=("failed",))) == []

    def test_search_query(self, make_enriched) -> None:
        bid = make_enriched(RUBICON_BID)
        pixel = make_enriched(PIXEL)
        assert filter_records([bid, pixel], RequestFilter(search_query="type:impression")) == [pixel]
        assert filter_records([bid, pixel], RequestFilter(search_query="vendor:rubicon openrtb2")) == [bid]

    def test_search_payloads(self, make_enriched) -> None:
        record = make_enriched(RUBICON_BID, body='{"imp": [{"tagid": "sidebar-7"}]}', content_type="application/json")
        assert not matches_filter(record, RequestFilter(search_query="sidebar-7"))
        assert matches_filter(record, RequestFilter(search_query="sidebar-7", search_payloads=True))

    def test_cache_key_distinguishes(self) -> None:
        assert RequestFilter(vendors=("a",)).cache_key() != RequestFilter(vendors=("b",)).cache_key()
        assert RequestFilter(vendors=("a",)).cache_key() == RequestFilter(vendors=("a",)).cache_key()


class TestPlacement:
    def test_slot_ids_related(self) -> None:
        assert slot_ids_related("/1234/leaderboard", "/1234/leaderboard")
        assert slot_ids_related("/1234/leaderboard", "leaderboard")
        assert slot_ids_related("/1/news/top", "/2/sport/top")
        assert not slot_ids_related("/1/top", "/1/side")

    def test_with_hint_related_slot(self, make_record) -> None:
        hint = SlotHint(element_id="div-gpt-top", slot_id="/1234/leaderboard")
        record = make_record("https://x.example.com/bid", slot_id="leaderboard")
        assert matches_placement(record, "div-gpt-top", [hint])

    def test_with_hint_encoded_slot_in_url(self, make_record) -> None:
        hint = SlotHint(element_id="div-gpt-top", slot_id="/1234/leaderboard")
        assert matches_placement(make_record(GAM), "div-gpt-top", [hint])

    def test_with_hint_element_id(self, make_record) -> None:
        hint = SlotHint(element_id="div-gpt-top", slot_id="/1234/leaderboard")
        record = make_record("https://x.example.com/", element_id="div-gpt-top")
        assert matches_placement(record, "div-gpt-top", [hint])

    def test_with_hint_no_match(self, make_record) -> None:
        hint = SlotHint(element_id="div-gpt-top", slot_id="/1234/leaderboard")
        record = make_record("https://x.example.com/", slot_id="/1234/sidebar")
        assert not matches_placement(record, "div-gpt-top", [hint])

    def test_without_hint_slot_containment(self, make_record) -> None:
        record = make_record("https://x.example.com/", slot_id="/1234/leaderboard")
        assert matches_placement(record, "leaderboard")
        assert not matches_placement(record, "sidebar")

    def test_filter_uses_hints(self, make_record) -> None:
        hint = SlotHint(element_id="div-gpt-top", slot_id="/1234/leaderboard")
        records = [make_record(GAM), make_record("https://x.example.com/", slot_id="/1234/sidebar")]
        assert filter_records(records, RequestFilter(placement="div-gpt-top"), [hint]) == records[:1]
