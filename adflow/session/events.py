"""Request-lifecycle events consumed by a tab session.

Every event is keyed by the host's stable per-exchange ``request_id``
and carries the owning ``tab_id`` so a :class:`SessionStore` can route
it.  Timestamps are epoch milliseconds.
"""

from __future__ import annotations

import pydantic

from adflow.models.slots import SlotHint
from adflow.utils.serialization import snake_to_camel


class _Event(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)

    tab_id: int


class RequestStarted(_Event):
    request_id: str
    url: str
    timestamp: float
    method: str = "GET"
    resource_type: str = "other"
    frame_id: int = 0
    body: str | bytes | None = None
    content_type: str | None = None


class HeadersSent(_Event):
    request_id: str
    headers: dict[str, str] = pydantic.Field(default_factory=dict)


class HeadersReceived(_Event):
    request_id: str
    headers: dict[str, str] = pydantic.Field(default_factory=dict)
    status_code: int | None = None


class RequestCompleted(_Event):
    request_id: str
    timestamp: float
    status_code: int
    response_headers: dict[str, str] = pydantic.Field(default_factory=dict)
    response_size: int | None = None
    response_body: str | None = None


class RequestFailed(_Event):
    request_id: str
    timestamp: float
    error: str


class Navigated(_Event):
    """Top-frame navigation: all state for the tab is discarded."""

    timestamp: float


class SlotHintsUpdated(_Event):
    hints: list[SlotHint] = pydantic.Field(default_factory=list)


LifecycleEvent = (
    RequestStarted | HeadersSent | HeadersReceived | RequestCompleted | RequestFailed | Navigated | SlotHintsUpdated
)
