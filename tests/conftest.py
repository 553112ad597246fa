"""Shared fixtures for the test suite."""

from __future__ import annotations

import itertools
import json
from collections.abc import Callable
from typing import Any

import pytest

from adflow.config import EngineSettings
from adflow.data import loader
from adflow.models.requests import RequestRecord
from adflow.models.vendors import Vendor
from adflow.pipeline.enrich import enrich_record
from adflow.utils import logger

_ids = itertools.count(1)


def _record(url: str, **fields: Any) -> RequestRecord:
    fields.setdefault("id", f"req-{next(_ids)}")
    fields.setdefault("timestamp", 0.0)
    return RequestRecord(url=url, **fields)


def _enriched(
    url: str,
    *,
    body: str | None = None,
    content_type: str | None = None,
    state: str = "completed",
    status_code: int | None = 200,
    duration: float | None = None,
    error: str | None = None,
    **fields: Any,
) -> RequestRecord:
    record = enrich_record(_record(url, **fields), body, content_type)
    return record.model_copy(
        update={
            "state": state,
            "status_code": status_code if state == "completed" else None,
            "duration": duration,
            "error": error,
        }
    )


# ── Record Factories ────────────────────────────────────────────


@pytest.fixture()
def make_record() -> Callable[..., RequestRecord]:
    """Build a bare, unclassified record."""
    return _record


@pytest.fixture()
def make_enriched() -> Callable[..., RequestRecord]:
    """Build a classified record, completed with HTTP 200 unless told otherwise."""
    return _enriched


# ── Scenarios ───────────────────────────────────────────────────

SLOT = "/1234/leaderboard"

BID_REQUEST_BODY = json.dumps(
    {
        "id": "auction-1",
        "imp": [
            {
                "id": "1",
                "banner": {"format": [{"w": 728, "h": 90}]},
                "bidfloor": 0.25,
                "ext": {"gpid": SLOT},
            }
        ],
        "site": {"domain": "news.example.com"},
    }
)


@pytest.fixture()
def gam_request() -> RequestRecord:
    """A single GAM ad-server call for the leaderboard slot."""
    return _enriched(
        f"https://securepubads.g.doubleclick.net/gampad/ads?iu={SLOT}&sz=728x90",
        timestamp=600.0,
        duration=80.0,
    )


@pytest.fixture()
def auction_records(gam_request: RequestRecord) -> list[RequestRecord]:
    """Prebid.js loads, three bidders are asked, one responds, then GAM is called."""

    def bid(url: str, timestamp: float, duration: float) -> RequestRecord:
        return _enriched(
            url,
            body=BID_REQUEST_BODY,
            content_type="application/json",
            method="POST",
            resource_type="xmlhttprequest",
            timestamp=timestamp,
            duration=duration,
        )

    return [
        _enriched("https://www.publisher.com/js/prebid8.js", resource_type="script", timestamp=0.0, duration=100.0),
        bid("https://ib.adnxs.com/ut/v3/prebid", 200.0, 300.0),
        bid("https://htlb.casalemedia.com/openrtb/2.5?s=184", 210.0, 280.0),
        bid("https://hbopenbid.pubmatic.com/translator/openrtb2?source=pbjs", 220.0, 330.0),
        _enriched(
            "https://ads.pubmatic.com/bidresp?type=win&slot=%2F1234%2Fleaderboard",
            timestamp=400.0,
            duration=150.0,
        ),
        gam_request,
    ]


@pytest.fixture()
def vendor() -> Callable[[str], Vendor]:
    """Look a catalogue vendor up by id."""

    def _get(vendor_id: str) -> Vendor:
        found = loader.get_vendor(vendor_id)
        assert found is not None, vendor_id
        return found

    return _get


@pytest.fixture()
def settings() -> EngineSettings:
    """Settings with a zero debounce so detection runs promptly."""
    return EngineSettings(issue_debounce_ms=0, max_requests_per_tab=1000)


# ── Logger Isolation ────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _clean_log_buffer() -> None:
    logger.clear_log_buffer()
