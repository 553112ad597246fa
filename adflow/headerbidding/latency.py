"""
Bid latency statistics per bidder and for the whole session.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from adflow.models.analysis import BidLatencyAnalysis, BidLatencyMetrics, LatencyOverview
from adflow.models.requests import RequestRecord

SLOW_VENDOR_MS = 3000
TIMEOUT_MS = 10000
TIMEOUT_RATE_WARNING = 0.1
MATCH_WINDOW_MS = 5000
MAX_PLAUSIBLE_LATENCY_MS = 60000


@dataclass
class _VendorSample:
    name: str
    requests: list[RequestRecord] = field(default_factory=list)
    responses: list[RequestRecord] = field(default_factory=list)
    latencies: list[float] = field(default_factory=list)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile over an ascending sample.

    Uses index ``ceil((n - 1) * p)``; an empty sample yields 0.
    """
    if not sorted_values:
        return 0.0
    index = math.ceil((len(sorted_values) - 1) * p)
    return float(sorted_values[min(index, len(sorted_values) - 1)])


def is_bid_request(record: RequestRecord) -> bool:
    return record.stage in ("bid_request", "auction") or record.request_type == "bid_request"


def is_bid_response(record: RequestRecord) -> bool:
    if record.stage == "bid_response" or record.request_type == "bid_response":
        return True
    return record.request_type == "bid_request" and record.state == "completed" and record.status_code == 200


def is_timed_out(record: RequestRecord, now_ms: float | None = None) -> bool:
    if record.error:
        return True
    if record.duration is not None and record.duration > TIMEOUT_MS:
        return True
    return record.state == "pending" and now_ms is not None and now_ms - record.timestamp > TIMEOUT_MS


def _matching_request(response: RequestRecord, requests: list[RequestRecord]) -> RequestRecord | None:
    """Nearest request to *response*, same-URL requests first."""
    others = [r for r in requests if r.id != response.id]
    candidates = [r for r in others if r.url == response.url] or [
        r for r in others if abs(r.timestamp - response.timestamp) < MATCH_WINDOW_MS
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda r: abs(response.timestamp - r.timestamp))


def _response_latency(response: RequestRecord, requests: list[RequestRecord]) -> float | None:
    """Prefer the response's own duration, else pair it with a request."""
    if response.duration is not None and response.duration > 0:
        return response.duration
    match = _matching_request(response, requests)
    if match is None:
        return None
    latency = response.timestamp - match.timestamp
    if 0 < latency < MAX_PLAUSIBLE_LATENCY_MS:
        return latency
    return None


def _stats(latencies: list[float]) -> tuple[float, float, float, float]:
    """Return (avg, min, max, p95) of an ascending sample."""
    if not latencies:
        return 0.0, 0.0, 0.0, 0.0
    return (
        sum(latencies) / len(latencies),
        float(latencies[0]),
        float(latencies[-1]),
        percentile(latencies, 0.95),
    )


def analyze_latency(records: Sequence[RequestRecord], now_ms: float | None = None) -> BidLatencyAnalysis:
    """Group bid traffic by vendor and compute latency statistics.

    Args:
        records: All records of the session.
        now_ms: Current time, used to count still-pending requests as
            timeouts once they exceed the ceiling.

    Returns:
        Per-vendor metrics (most requests first), the slow and
        high-timeout vendor names and the session-wide overview.
    """
    bid_requests = [r for r in records if is_bid_request(r)]
    bid_responses = [r for r in records if is_bid_response(r)]

    samples: dict[str, _VendorSample] = {}
    for request in bid_requests:
        if request.vendor is None:
            continue
        sample = samples.setdefault(request.vendor.id, _VendorSample(name=request.vendor.name))
        sample.requests.append(request)

    for response in bid_responses:
        if response.vendor is None or response.vendor.id not in samples:
            continue
        sample = samples[response.vendor.id]
        sample.responses.append(response)
        latency = _response_latency(response, sample.requests)
        if latency is not None:
            sample.latencies.append(latency)

    by_vendor: list[BidLatencyMetrics] = []
    slow_vendors: list[str] = []
    timeout_vendors: list[str] = []
    all_latencies: list[float] = []
    total_timeouts = 0

    for sample in samples.values():
        latencies = sorted(sample.latencies)
        all_latencies.extend(latencies)
        avg, low, high, p95 = _stats(latencies)
        timeouts = sum(1 for r in sample.requests if is_timed_out(r, now_ms))
        total_timeouts += timeouts
        rate = timeouts / len(sample.requests) if sample.requests else 0.0
        by_vendor.append(
            BidLatencyMetrics(
                vendor=sample.name,
                request_count=len(sample.requests),
                response_count=len(sample.responses),
                avg_latency=avg,
                min_latency=low,
                max_latency=high,
                p95_latency=p95,
                timeout_count=timeouts,
                timeout_rate=rate,
            )
        )
        if avg > SLOW_VENDOR_MS:
            slow_vendors.append(sample.name)
        if rate > TIMEOUT_RATE_WARNING:
            timeout_vendors.append(sample.name)

    all_latencies.sort()
    avg, low, high, p95 = _stats(all_latencies)
    attributed = sum(len(s.requests) for s in samples.values())
    overview = LatencyOverview(
        total_bid_requests=len(bid_requests),
        total_bid_responses=len(bid_responses),
        response_rate=len(bid_responses) / len(bid_requests) if bid_requests else 0.0,
        avg_latency=avg,
        min_latency=low,
        max_latency=high,
        p95_latency=p95,
        timeout_count=total_timeouts,
        timeout_rate=total_timeouts / attributed if attributed else 0.0,
    )

    by_vendor.sort(key=lambda m: m.request_count, reverse=True)
    return BidLatencyAnalysis(
        overall=overview,
        by_vendor=by_vendor,
        slow_vendors=slow_vendors,
        timeout_vendors=timeout_vendors,
    )
