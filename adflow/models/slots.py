"""Pydantic models for placement-element to slot mappings."""

from __future__ import annotations

from typing import Literal

import pydantic

from adflow.utils.serialization import snake_to_camel

SlotSource = Literal["gam", "prebid"]


class SlotHint(pydantic.BaseModel):
    """An out-of-band pairing of a page element with an ad slot id."""

    model_config = pydantic.ConfigDict(frozen=True, alias_generator=snake_to_camel, populate_by_name=True)

    element_id: str = pydantic.Field(min_length=1)
    slot_id: str = pydantic.Field(min_length=1)
    source: SlotSource = "gam"
