"""
Per-tab request collection driven by lifecycle events.

A :class:`TabSession` is the single owner of one tab's records: every
annotating pass (enrichment, issue rules, slot backfill) hands back an
updated copy and the session writes it into its map.  Correlation and
analysis run on snapshots and are memoised by the record identity set,
the mutation version and the filter in effect.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any
from urllib import parse

from adflow import decoders
from adflow.config import EngineSettings, get_settings
from adflow.flows import correlator
from adflow.headerbidding import analyze
from adflow.issues import detector
from adflow.models.analysis import HeaderBiddingAnalysis, IssueSummary
from adflow.models.flows import AdFlow, FlowSummary
from adflow.models.requests import RequestRecord
from adflow.models.slots import SlotHint
from adflow.pipeline.enrich import enrich_record
from adflow.search.filters import RequestFilter, filter_records
from adflow.session import events
from adflow.utils import logger
from adflow.utils.debounce import Debouncer

log = logger.create_logger("Session")


def find_element_id_for_slot(hints: Iterable[SlotHint], slot_id: str) -> str | None:
    """Resolve the page element showing *slot_id*.

    Tries an exact slot match, then containment either way (GAM paths
    vs. short codes), then a slot id that is itself an element id.
    """
    if not slot_id:
        return None
    hints = list(hints)
    for hint in hints:
        if hint.slot_id == slot_id:
            return hint.element_id
    for hint in hints:
        if hint.slot_id in slot_id or slot_id in hint.slot_id:
            return hint.element_id
    for hint in hints:
        if hint.element_id == slot_id:
            return hint.element_id
    return None


def _hint_for_url(hints: Iterable[SlotHint], url: str) -> SlotHint | None:
    for hint in hints:
        if hint.slot_id in url or parse.quote(hint.slot_id, safe="") in url or hint.element_id in url:
            return hint
    return None


class TabSession:
    """Owns the request records of a single browser tab."""

    def __init__(self, tab_id: int, settings: EngineSettings | None = None) -> None:
        self.tab_id = tab_id
        self._settings = settings or get_settings()
        self._records: dict[str, RequestRecord] = {}
        self._hints: list[SlotHint] = []
        self._page_load_ms: float | None = None
        self.log_path: str | None = None
        self._version = 0
        self._cache: dict[tuple[Any, ...], Any] = {}
        self._debouncer = Debouncer(self.run_cross_request_detection, self._settings.issue_debounce_ms)
        self._handlers: dict[type, Callable[[Any], None]] = {
            events.RequestStarted: self.request_started,
            events.HeadersSent: self.headers_sent,
            events.HeadersReceived: self.headers_received,
            events.RequestCompleted: self.request_completed,
            events.RequestFailed: self.request_failed,
            events.Navigated: lambda e: self.navigated(e.timestamp),
            events.SlotHintsUpdated: lambda e: self.update_slot_hints(e.hints),
        }

    # ── Read access ──────────────────────────────────────────────

    @property
    def records(self) -> list[RequestRecord]:
        """Snapshot of the records in arrival order."""
        return list(self._records.values())

    @property
    def slot_hints(self) -> list[SlotHint]:
        return list(self._hints)

    @property
    def version(self) -> int:
        return self._version

    @property
    def detection_pending(self) -> bool:
        return self._debouncer.pending

    def get(self, request_id: str) -> RequestRecord | None:
        return self._records.get(request_id)

    def __len__(self) -> int:
        return len(self._records)

    # ── Write-back ───────────────────────────────────────────────

    def _store(self, record: RequestRecord) -> None:
        self._records[record.id] = record
        self._touch()

    def _touch(self) -> None:
        self._version += 1
        self._cache.clear()

    # ── Lifecycle events ─────────────────────────────────────────

    def handle(self, event: events.LifecycleEvent) -> None:
        """Dispatch a lifecycle event to its handler."""
        handler = self._handlers.get(type(event))
        if handler is None:
            log.warn("Unhandled event type", {"type": type(event).__name__})
            return
        handler(event)

    def request_started(self, event: events.RequestStarted) -> RequestRecord:
        """Record and classify a new request, evicting the oldest at capacity."""
        if event.request_id not in self._records and len(self._records) >= self._settings.max_requests_per_tab:
            oldest = next(iter(self._records))
            del self._records[oldest]

        page_load = self._page_load_ms if self._page_load_ms is not None else event.timestamp
        record = RequestRecord(
            id=event.request_id,
            url=event.url,
            method=event.method,
            resource_type=event.resource_type,
            tab_id=event.tab_id,
            frame_id=event.frame_id,
            timestamp=event.timestamp,
            start_time=event.timestamp - page_load,
        )
        if event.content_type:
            record.request_headers["Content-Type"] = event.content_type
        record = enrich_record(record, event.body, event.content_type)
        updates = self._hint_updates(record)
        if updates:
            record = record.model_copy(update=updates)
        self._store(record)
        return record

    def headers_sent(self, event: events.HeadersSent) -> None:
        record = self._records.get(event.request_id)
        if record is not None:
            self._store(record.model_copy(update={"request_headers": dict(event.headers)}))

    def headers_received(self, event: events.HeadersReceived) -> None:
        record = self._records.get(event.request_id)
        if record is not None:
            updates: dict[str, object] = {"response_headers": dict(event.headers)}
            if event.status_code is not None:
                updates["status_code"] = event.status_code
            self._store(record.model_copy(update=updates))

    def request_completed(self, event: events.RequestCompleted) -> RequestRecord | None:
        """Resolve a request as completed; later terminal events are ignored."""
        record = self._records.get(event.request_id)
        if record is None or record.completed:
            return None
        updated = record.model_copy(
            update={
                "state": "completed",
                "status_code": event.status_code,
                "duration": event.timestamp - record.timestamp,
                "response_headers": dict(event.response_headers) or record.response_headers,
                "response_size": event.response_size,
                "response_payload": decoders.decode(event.response_body) if event.response_body else None,
            }
        )
        return self._resolve(updated)

    def request_failed(self, event: events.RequestFailed) -> RequestRecord | None:
        """Resolve a request as errored; later terminal events are ignored."""
        record = self._records.get(event.request_id)
        if record is None or record.completed:
            return None
        updated = record.model_copy(update={"state": "error", "error": event.error})
        return self._resolve(updated)

    def _resolve(self, record: RequestRecord) -> RequestRecord:
        record = detector.attach_issues(record, detector.detect_request_issues(record))
        self._store(record)
        self._debouncer.schedule()
        return record

    def navigated(self, timestamp: float | None = None) -> None:
        """Discard all records, hints and caches for a new page.

        With file logging enabled, the new page gets its own log file.
        """
        self.log_path = logger.start_log_file(f"tab {self.tab_id}", self._settings)
        self._reset(timestamp)

    def clear(self) -> None:
        self._reset(self._page_load_ms)

    def close(self) -> None:
        """Discard all state and close the tab's log file."""
        self._reset(None)
        if self.log_path is not None:
            logger.end_log_file()
            self.log_path = None

    def _reset(self, timestamp: float | None) -> None:
        self._debouncer.cancel()
        self._records.clear()
        self._hints = []
        self._page_load_ms = timestamp
        self._touch()
        log.info("Tab state cleared", {"tabId": self.tab_id})

    # ── Detection passes ─────────────────────────────────────────

    def run_cross_request_detection(self) -> int:
        """Attach duplicate-pixel and out-of-order issues; returns records changed."""
        found = detector.detect_cross_request_issues(self.records)
        changed = 0
        for request_id, issues in found.items():
            record = self._records.get(request_id)
            if record is None:
                continue
            updated = detector.attach_issues(record, issues)
            if updated is not record:
                self._records[request_id] = updated
                changed += 1
        if changed:
            self._touch()
            log.debug("Cross-request issues attached", {"tabId": self.tab_id, "records": changed})
        return changed

    def sweep_timeouts(self, now_ms: float) -> int:
        """Attach ``timeout`` to requests pending past the ceiling at *now_ms*."""
        changed = 0
        for record in self.records:
            if record.completed:
                continue
            issue = detector.detect_timeout(record, now_ms)
            if issue is None:
                continue
            updated = detector.attach_issues(record, [issue])
            if updated is not record:
                self._records[record.id] = updated
                changed += 1
        if changed:
            self._touch()
        return changed

    def update_slot_hints(self, hints: Iterable[SlotHint]) -> None:
        """Store element/slot pairs and backfill records that can use them.

        Records with a slot but no element get the element resolved;
        records without a slot get one only when their URL mentions a
        hinted slot or element.  An existing slot id is never replaced.
        Records started after this call are backfilled the same way.
        """
        self._hints = list(hints)
        for record in self.records:
            updates = self._hint_updates(record)
            if updates:
                self._records[record.id] = record.model_copy(update=updates)
        self._touch()

    def _hint_updates(self, record: RequestRecord) -> dict[str, object]:
        """Fields the current hints can fill on *record*, never replacing a slot."""
        updates: dict[str, object] = {}
        if not self._hints:
            return updates
        if record.slot_id:
            if not record.element_id:
                element_id = find_element_id_for_slot(self._hints, record.slot_id)
                if element_id:
                    updates["element_id"] = element_id
            return updates
        hint = _hint_for_url(self._hints, record.url)
        if hint is not None:
            updates["slot_id"] = hint.slot_id
            if not record.element_id:
                updates["element_id"] = hint.element_id
        return updates

    # ── Derived views (memoised) ─────────────────────────────────

    def _cached(
        self,
        kind: str,
        records: list[RequestRecord],
        request_filter: RequestFilter | None,
        extra: Any,
        build: Callable[[], Any],
    ) -> Any:
        key = (
            kind,
            self._version,
            tuple(r.id for r in records),
            request_filter.cache_key() if request_filter else "",
            extra,
        )
        if key not in self._cache:
            self._cache[key] = build()
        return self._cache[key]

    def filtered(self, request_filter: RequestFilter | None = None) -> list[RequestRecord]:
        return filter_records(self.records, request_filter, self._hints)

    def flows(self, request_filter: RequestFilter | None = None) -> list[AdFlow]:
        """Correlated flows over the (filtered) records."""
        records = self.filtered(request_filter)
        return self._cached("flows", records, request_filter, None, lambda: correlator.group_into_flows(records))

    def analysis(self, request_filter: RequestFilter | None = None, now_ms: float | None = None) -> HeaderBiddingAnalysis:
        """Header-bidding analysis over the (filtered) records."""
        records = self.filtered(request_filter)
        return self._cached(
            "analysis",
            records,
            request_filter,
            now_ms,
            lambda: analyze(records, self.flows(request_filter), now_ms),
        )

    def issue_summary(self) -> IssueSummary:
        return detector.summarize_issues(self.records)

    def flow_summary(self, request_filter: RequestFilter | None = None) -> FlowSummary:
        return correlator.summarize_flows(self.flows(request_filter))


class SessionStore:
    """Routes lifecycle events to per-tab sessions."""

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self._settings = settings
        self._tabs: dict[int, TabSession] = {}

    def tab(self, tab_id: int) -> TabSession:
        """Return the session for *tab_id*, creating it on first use."""
        session = self._tabs.get(tab_id)
        if session is None:
            session = TabSession(tab_id, self._settings)
            self._tabs[tab_id] = session
        return session

    def handle(self, event: events.LifecycleEvent) -> None:
        if event.tab_id < 0:
            return
        self.tab(event.tab_id).handle(event)

    def close_tab(self, tab_id: int) -> None:
        session = self._tabs.pop(tab_id, None)
        if session is not None:
            session.close()

    def clear(self) -> None:
        for session in self._tabs.values():
            session.clear()

    @property
    def tab_ids(self) -> list[int]:
        return list(self._tabs)
