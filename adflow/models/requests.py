"""Pydantic models for observed network exchanges and their issues."""

from __future__ import annotations

from typing import Literal

import pydantic

from adflow.models import payloads, vendors
from adflow.utils.serialization import snake_to_camel

RequestState = Literal["pending", "completed", "error"]

AdFlowStage = Literal[
    "auction",
    "bid_request",
    "bid_response",
    "ad_server",
    "creative_render",
    "impression",
    "viewability",
    "verification",
    "click",
    "identity_sync",
    "other",
]

IssueType = Literal["timeout", "failed", "duplicate_pixel", "out_of_order", "slow_response"]

IssueSeverity = Literal["warning", "error"]


class Issue(pydantic.BaseModel):
    """A defect detected on one request (or a group of related requests)."""

    model_config = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)

    type: IssueType
    severity: IssueSeverity
    message: str
    details: str | None = None
    related_request_ids: list[str] = pydantic.Field(default_factory=list)


class RequestRecord(pydantic.BaseModel):
    """One observed network exchange plus its classification.

    Created when the request starts and updated as headers,
    completion or error arrive.  Annotating passes return an updated
    copy (``model_copy``); the owning collection writes it back.
    """

    model_config = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)

    id: str
    url: str
    method: str = "GET"
    resource_type: str = "other"
    tab_id: int = 0
    frame_id: int = 0
    timestamp: float
    start_time: float = 0.0
    state: RequestState = "pending"
    status_code: int | None = None
    error: str | None = None
    duration: float | None = None
    response_size: int | None = None

    request_headers: dict[str, str] = pydantic.Field(default_factory=dict)
    response_headers: dict[str, str] = pydantic.Field(default_factory=dict)

    decoded_payload: payloads.DecodedPayload | None = None
    request_body: payloads.DecodedPayload | None = None
    response_payload: payloads.DecodedPayload | None = None

    vendor: vendors.Vendor | None = None
    request_type: vendors.RequestType | None = None
    stage: AdFlowStage | None = None
    slot_id: str | None = None
    element_id: str | None = None

    issues: list[Issue] = pydantic.Field(default_factory=list)

    @property
    def completed(self) -> bool:
        """Whether the exchange reached a terminal state."""
        return self.state != "pending"

    @property
    def end_time(self) -> float:
        """Timestamp plus duration (duration counts as 0 while unknown)."""
        return self.timestamp + (self.duration or 0.0)

    @property
    def vendor_id(self) -> str | None:
        return self.vendor.id if self.vendor else None

    @property
    def issue_types(self) -> set[str]:
        return {issue.type for issue in self.issues}
