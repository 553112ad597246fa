"""Pydantic models for correlated ad flows."""

from __future__ import annotations

import pydantic

from adflow.models.requests import AdFlowStage, Issue, RequestRecord
from adflow.utils.serialization import snake_to_camel


class WinningBid(pydantic.BaseModel):
    """The bid believed to have won a flow's placement."""

    vendor: str
    price: float | None = None
    currency: str | None = None


class AdFlow(pydantic.BaseModel):
    """A group of requests forming one ad-serving chain."""

    model_config = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)

    id: str
    slot_id: str | None = None
    ad_unit_path: str | None = None
    start_time: float
    end_time: float
    requests: list[RequestRecord] = pydantic.Field(default_factory=list)
    stages: dict[AdFlowStage, list[RequestRecord]] = pydantic.Field(default_factory=dict)
    winning_bid: WinningBid | None = None
    issues: list[Issue] = pydantic.Field(default_factory=list)

    @property
    def request_ids(self) -> list[str]:
        return [r.id for r in self.requests]

    def stage_members(self, *stages: AdFlowStage) -> list[RequestRecord]:
        """Return the members of *stages*, in the order the stages are given."""
        members: list[RequestRecord] = []
        for stage in stages:
            members.extend(self.stages.get(stage, []))
        return members


class FlowSummary(pydantic.BaseModel):
    """Headline counts over a list of flows."""

    model_config = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)

    total: int = 0
    with_issues: int = 0
    with_winning_bid: int = 0
    by_slot: dict[str, int] = pydantic.Field(default_factory=dict)
