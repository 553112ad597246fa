"""
Issue detection for request records.

Per-request rules (failed, timeout, slow response) look at one record.
Cross-request rules (duplicate pixel, out-of-order beacons) scan a
tab's full record set.  Every rule invocation is isolated: a rule that
raises on one record is logged and skipped for that record only, so
a single malformed record cannot blank out the rest of the batch.

Attaching issues is an idempotent union by issue type; re-running
detection never gives a record two issues of the same type.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from adflow.models.analysis import IssueSummary
from adflow.models.requests import Issue, RequestRecord
from adflow.utils import logger
from adflow.utils import url as url_utils
from adflow.utils.errors import get_error_message

log = logger.create_logger("Issues")

TIMEOUT_MS = 10000
SLOW_RESPONSE_MS = 3000
DUPLICATE_WINDOW_MS = 1000

_TIMEOUT_ERROR_MARKERS = ("timed out", "TIMED_OUT")

# Query parameters that identify a distinct placement or creative.
# Pixels that differ in any of these are not duplicates.
PLACEMENT_IDENTIFIER_PARAMS = (
    # Network / placement
    "nid",
    "v",
    "pid",
    "placement",
    "placement_id",
    "placementid",
    "slot",
    "slotid",
    "slot_id",
    "zone",
    "zoneid",
    "zone_id",
    "pos",
    # Creative
    "cid",
    "creative",
    "creative_id",
    "creativeid",
    "aid",
    "ad_id",
    "adid",
    # Line item / campaign
    "lid",
    "line_item_id",
    "lineitemid",
    "campaign",
    "campaign_id",
    "campaignid",
    # Tag
    "tag_id",
    "tagid",
    "tag",
    # Size
    "size",
    "sz",
)

RequestRule = Callable[[RequestRecord, float | None], Issue | None]

# ============================================================================
# Per-Request Rules
# ============================================================================


def detect_failed(record: RequestRecord, _now_ms: float | None = None) -> Issue | None:
    """Transport errors and HTTP status codes of 400 and above."""
    if record.error:
        return Issue(type="failed", severity="error", message="Request failed", details=record.error)
    if record.status_code is not None and record.status_code >= 400:
        return Issue(
            type="failed",
            severity="error" if record.status_code >= 500 else "warning",
            message=f"HTTP {record.status_code} error",
            details=f"Request returned status code {record.status_code}",
        )
    return None


def detect_timeout(record: RequestRecord, now_ms: float | None = None) -> Issue | None:
    """A network timeout error, or a record still pending past the ceiling.

    The pending check needs *now_ms*; without it only the error
    string is inspected.
    """
    if record.error and any(marker in record.error for marker in _TIMEOUT_ERROR_MARKERS):
        return Issue(type="timeout", severity="error", message="Request timed out", details=record.error)
    if record.state == "pending" and record.duration is None and now_ms is not None:
        elapsed = now_ms - record.timestamp
        if elapsed > TIMEOUT_MS:
            return Issue(
                type="timeout",
                severity="error",
                message="Request timed out",
                details=f"Request has been pending for {round(elapsed / 1000)}s",
            )
    return None


def detect_slow_response(record: RequestRecord, _now_ms: float | None = None) -> Issue | None:
    if record.completed and record.duration and record.duration > SLOW_RESPONSE_MS:
        return Issue(
            type="slow_response",
            severity="warning",
            message="Slow response time",
            details=f"Response took {round(record.duration)}ms (threshold: {SLOW_RESPONSE_MS}ms)",
        )
    return None


REQUEST_RULES: list[RequestRule] = [detect_timeout, detect_slow_response, detect_failed]


def detect_request_issues(record: RequestRecord, now_ms: float | None = None) -> list[Issue]:
    """Run every per-request rule against *record*."""
    issues: list[Issue] = []
    for rule in REQUEST_RULES:
        try:
            issue = rule(record, now_ms)
        except Exception as err:
            log.warn(
                "Issue rule failed, skipping record",
                {"rule": rule.__name__, "requestId": record.id, "error": get_error_message(err)},
            )
            continue
        if issue:
            issues.append(issue)
    return issues


# ============================================================================
# Cross-Request Rules
# ============================================================================


def pixel_signature(record: RequestRecord) -> str | None:
    """Signature of an impression/viewability pixel: vendor, path and placement ids.

    Returns ``None`` for records that are not pixels.
    """
    if record.request_type not in ("impression", "viewability"):
        return None
    vendor_id = record.vendor_id or "unknown"
    identifiers = sorted(
        f"{name}={value}"
        for name in PLACEMENT_IDENTIFIER_PARAMS
        if (value := _exact_query_param(record.url, name))
    )
    suffix = ":" + "&".join(identifiers) if identifiers else ""
    return f"{vendor_id}:{url_utils.url_path(record.url)}{suffix}"


def _exact_query_param(url: str, name: str) -> str | None:
    for key, value in url_utils.query_pairs(url):
        if key == name and value:
            return value
    return None


def detect_duplicate_pixels(records: Iterable[RequestRecord]) -> dict[str, Issue]:
    """Flag completed pixels fired within the duplicate window of an identical one.

    Only the later record of each close pair is flagged; the first
    firing is the legitimate one.
    """
    groups: dict[str, list[RequestRecord]] = {}
    for record in records:
        if record.state != "completed":
            continue
        try:
            signature = pixel_signature(record)
        except Exception as err:
            log.warn("Pixel signature failed", {"requestId": record.id, "error": get_error_message(err)})
            continue
        if signature:
            groups.setdefault(signature, []).append(record)

    issues: dict[str, Issue] = {}
    for group in groups.values():
        if len(group) < 2:
            continue
        group.sort(key=lambda r: r.timestamp)
        for previous, current in zip(group, group[1:]):
            gap = current.timestamp - previous.timestamp
            if gap < DUPLICATE_WINDOW_MS:
                vendor_name = current.vendor.name if current.vendor else "Unknown"
                issues[current.id] = Issue(
                    type="duplicate_pixel",
                    severity="warning",
                    message="Duplicate pixel detected",
                    details=(
                        f"{current.request_type} pixel fired {round(gap)}ms after previous "
                        f"(vendor: {vendor_name})"
                    ),
                    related_request_ids=[previous.id, current.id],
                )
    return issues


def _is_viewability(record: RequestRecord) -> bool:
    return record.stage == "viewability" or record.request_type == "viewability"


def _is_impression(record: RequestRecord) -> bool:
    return record.stage == "impression" or record.request_type == "impression"


def detect_out_of_order(records: Iterable[RequestRecord]) -> dict[str, Issue]:
    """Flag viewability beacons that fired before their impression.

    Beacons are keyed by vendor and slot.  A viewability beacon seen
    before any impression is remembered; when the impression then
    arrives, the viewability record gets the issue.
    """
    # (vendor id, slot) -> earliest unmatched viewability record
    early_viewability: dict[tuple[str, str], RequestRecord] = {}
    impression_seen: set[tuple[str, str]] = set()
    issues: dict[str, Issue] = {}

    for record in sorted(records, key=lambda r: r.timestamp):
        if record.vendor is None:
            continue
        try:
            key = (record.vendor.id, record.slot_id or "")
            if _is_impression(record):
                viewability = early_viewability.pop(key, None)
                if viewability is not None and viewability.timestamp < record.timestamp:
                    issues[viewability.id] = Issue(
                        type="out_of_order",
                        severity="error",
                        message="Viewability fired before impression",
                        details=(
                            f"{record.vendor.name}: Viewability beacon fired "
                            f"{round(record.timestamp - viewability.timestamp)}ms before impression pixel. "
                            "This may cause measurement discrepancies."
                        ),
                        related_request_ids=[viewability.id, record.id],
                    )
                impression_seen.add(key)
            elif _is_viewability(record) and key not in impression_seen:
                early_viewability.setdefault(key, record)
        except Exception as err:
            log.warn("Beacon ordering check failed", {"requestId": record.id, "error": get_error_message(err)})
    return issues


def detect_cross_request_issues(records: Sequence[RequestRecord]) -> dict[str, list[Issue]]:
    """Run every cross-request rule over a tab's records, keyed by request id."""
    by_request: dict[str, list[Issue]] = {}
    for rule in (detect_duplicate_pixels, detect_out_of_order):
        try:
            found = rule(records)
        except Exception as err:
            log.warn("Cross-request rule failed", {"rule": rule.__name__, "error": get_error_message(err)})
            continue
        for request_id, issue in found.items():
            by_request.setdefault(request_id, []).append(issue)
    return by_request


# ============================================================================
# Attachment & Summary
# ============================================================================


def attach_issues(record: RequestRecord, issues: Iterable[Issue]) -> RequestRecord:
    """Return *record* with any issue types it does not carry yet appended.

    The record is returned unchanged (same object) when nothing new
    was added.
    """
    present = record.issue_types
    added: list[Issue] = []
    for issue in issues:
        if issue.type not in present:
            added.append(issue)
            present.add(issue.type)
    if not added:
        return record
    return record.model_copy(update={"issues": [*record.issues, *added]})


def annotate_records(records: Sequence[RequestRecord], now_ms: float | None = None) -> list[RequestRecord]:
    """Run all rules and return the records with their issues attached."""
    cross = detect_cross_request_issues(records)
    annotated: list[RequestRecord] = []
    for record in records:
        found = detect_request_issues(record, now_ms) + cross.get(record.id, [])
        annotated.append(attach_issues(record, found))
    return annotated


def summarize_issues(records: Iterable[RequestRecord]) -> IssueSummary:
    """Count attached issues by type and by severity."""
    summary = IssueSummary()
    for record in records:
        for issue in record.issues:
            summary.total += 1
            summary.by_type[issue.type] = summary.by_type.get(issue.type, 0) + 1
            summary.by_severity[issue.severity] = summary.by_severity.get(issue.severity, 0) + 1
    return summary
