"""Pydantic models for header-bidding analysis and issue summaries."""

from __future__ import annotations

from typing import Literal

import pydantic

from adflow.models import requests
from adflow.utils.serialization import snake_to_camel

HeaderBiddingSetup = Literal[
    "client-wrapper",
    "server-wrapper",
    "other-wrapper",
    "waterfall-only",
    "mixed",
    "unknown",
]

ConflictType = Literal["waterfall_before_hb", "duplicate_serving", "timing_conflict"]


class _CamelModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)


class BidLatencyMetrics(_CamelModel):
    """Latency statistics for one bidder (or for the whole session)."""

    vendor: str
    request_count: int = 0
    response_count: int = 0
    avg_latency: float = 0.0
    min_latency: float = 0.0
    max_latency: float = 0.0
    p95_latency: float = 0.0
    timeout_count: int = 0
    timeout_rate: float = 0.0


class LatencyOverview(_CamelModel):
    """Session-wide bid latency figures."""

    total_bid_requests: int = 0
    total_bid_responses: int = 0
    response_rate: float = 0.0
    avg_latency: float = 0.0
    min_latency: float = 0.0
    max_latency: float = 0.0
    p95_latency: float = 0.0
    timeout_count: int = 0
    timeout_rate: float = 0.0


class BidLatencyAnalysis(_CamelModel):
    """Per-vendor and overall bid latency."""

    overall: LatencyOverview = pydantic.Field(default_factory=LatencyOverview)
    by_vendor: list[BidLatencyMetrics] = pydantic.Field(default_factory=list)
    slow_vendors: list[str] = pydantic.Field(default_factory=list)
    timeout_vendors: list[str] = pydantic.Field(default_factory=list)


class Conflict(_CamelModel):
    """A header-bidding / waterfall conflict found in one flow."""

    type: ConflictType
    severity: requests.IssueSeverity
    message: str
    flow_id: str
    slot_id: str | None = None
    details: str = ""
    related_request_ids: list[str] = pydantic.Field(default_factory=list)


class HeaderBiddingAnalysis(_CamelModel):
    """Complete header-bidding view of a session."""

    setup: HeaderBiddingSetup = "unknown"
    client_wrapper_detected: bool = False
    server_wrapper_detected: bool = False
    latency: BidLatencyAnalysis = pydantic.Field(default_factory=BidLatencyAnalysis)
    conflicts: list[Conflict] = pydantic.Field(default_factory=list)


class IssueSummary(_CamelModel):
    """Counts of attached issues by type and severity."""

    total: int = 0
    by_type: dict[requests.IssueType, int] = pydantic.Field(
        default_factory=lambda: {
            "timeout": 0,
            "failed": 0,
            "duplicate_pixel": 0,
            "out_of_order": 0,
            "slow_response": 0,
        }
    )
    by_severity: dict[requests.IssueSeverity, int] = pydantic.Field(
        default_factory=lambda: {"warning": 0, "error": 0}
    )
