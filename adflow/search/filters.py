"""
Record filtering for request lists, flows and analyses.

Placement matching is loose: a record matches a placement on exact
ids, on substring containment either way, or on the last path segment
of the slot.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Literal
from urllib import parse

import pydantic

from adflow.models.requests import IssueType, RequestRecord
from adflow.models.slots import SlotHint
from adflow.models.vendors import RequestType, VendorCategory
from adflow.search.payload_search import matches_payload_search
from adflow.search.query import matches_free_text, matches_query_operators, parse_query
from adflow.utils.serialization import snake_to_camel

StatusGroup = Literal["2xx", "3xx", "4xx", "5xx", "error"]


class RequestFilter(pydantic.BaseModel):
    """Filter settings; empty lists mean "no restriction"."""

    model_config = pydantic.ConfigDict(frozen=True, alias_generator=snake_to_camel, populate_by_name=True)

    vendors: tuple[str, ...] = ()
    categories: tuple[VendorCategory, ...] = ()
    request_types: tuple[RequestType, ...] = ()
    status_codes: tuple[StatusGroup, ...] = ()
    issue_types: tuple[IssueType, ...] = ()
    search_query: str = ""
    use_regex: bool = False
    search_payloads: bool = False
    show_only_issues: bool = False
    placement: str | None = None

    @property
    def is_empty(self) -> bool:
        return self == RequestFilter()

    def cache_key(self) -> str:
        return self.model_dump_json()


_STATUS_GROUPS: dict[int, StatusGroup] = {2: "2xx", 3: "3xx", 4: "4xx", 5: "5xx"}


def status_group(record: RequestRecord) -> StatusGroup | None:
    if record.error:
        return "error"
    if record.status_code:
        return _STATUS_GROUPS.get(record.status_code // 100)
    return None


def _last_segment(slot_id: str) -> str:
    return slot_id.rsplit("/", 1)[-1]


def slot_ids_related(a: str, b: str) -> bool:
    """Whether two slot identifiers plausibly name the same placement."""
    return a == b or a in b or b in a or _last_segment(a) == _last_segment(b)


def matches_placement(record: RequestRecord, placement: str, hints: Sequence[SlotHint] = ()) -> bool:
    """Check *record* against a placement element id.

    With a slot hint for the element the record may match on element
    id, a related slot id or the slot id appearing in its URL;
    without one only element-id equality and slot containment apply.
    """
    hint = next((h for h in hints if h.element_id == placement), None)
    if hint is None:
        if record.element_id == placement:
            return True
        slot = record.slot_id or ""
        return placement in slot or slot in placement

    if record.element_id == hint.element_id:
        return True
    if record.slot_id and slot_ids_related(record.slot_id, hint.slot_id):
        return True
    encoded = parse.quote(hint.slot_id, safe="")
    return (
        encoded in record.url
        or hint.element_id in record.url
        or f"iu={hint.slot_id.replace('/', '%2F')}" in record.url
    )


def _matches_search(record: RequestRecord, request_filter: RequestFilter) -> bool:
    parsed = parse_query(request_filter.search_query)
    if not matches_query_operators(record, parsed.operators):
        return False
    if matches_free_text(record, parsed.free_text, request_filter.use_regex):
        return True
    return request_filter.search_payloads and matches_payload_search(
        record, parsed.free_text, request_filter.use_regex
    )


def matches_filter(record: RequestRecord, request_filter: RequestFilter, hints: Sequence[SlotHint] = ()) -> bool:
    """Check one record against every restriction of *request_filter*."""
    f = request_filter
    if f.vendors and (record.vendor is None or record.vendor.id not in f.vendors):
        return False
    if f.categories and (record.vendor is None or record.vendor.category not in f.categories):
        return False
    if f.request_types and record.request_type not in f.request_types:
        return False
    if f.status_codes and status_group(record) not in f.status_codes:
        return False
    if f.show_only_issues and not record.issues:
        return False
    if f.issue_types and not record.issue_types & set(f.issue_types):
        return False
    if f.search_query and not _matches_search(record, f):
        return False
    if f.placement and not matches_placement(record, f.placement, hints):
        return False
    return True


def filter_records(
    records: Iterable[RequestRecord],
    request_filter: RequestFilter | None = None,
    hints: Sequence[SlotHint] = (),
) -> list[RequestRecord]:
    """Return the records matching *request_filter*, preserving order."""
    if request_filter is None or request_filter.is_empty:
        return list(records)
    return [r for r in records if matches_filter(r, request_filter, hints)]
