"""Pydantic models for decoded request/response payloads."""

from __future__ import annotations

from typing import Any, Literal

import pydantic

from adflow.utils.serialization import snake_to_camel

PayloadType = Literal["url_params", "json", "base64", "openrtb", "text", "unknown"]

# Key under which the OpenRTB summary is attached to the decoded object.
SUMMARY_KEY = "_summary"


class PrivacyFlags(pydantic.BaseModel):
    """Privacy signals carried in an OpenRTB ``regs`` object."""

    model_config = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)

    gdpr: bool = False
    us_privacy: str | None = None


class OpenRtbSummary(pydantic.BaseModel):
    """Derived, human-oriented view of an OpenRTB bid request."""

    model_config = pydantic.ConfigDict(alias_generator=snake_to_camel, populate_by_name=True)

    impression_count: int = 0
    ad_formats: list[str] = pydantic.Field(default_factory=list)
    bid_floors: list[float] = pydantic.Field(default_factory=list)
    site: str | None = None
    privacy: PrivacyFlags | None = None


class DecodedPayload(pydantic.BaseModel):
    """A payload tagged with the format it was recognised as.

    ``data`` holds the parsed value (a mapping, list or string) and
    ``raw`` the exact input string.
    """

    type: PayloadType
    data: Any
    raw: str

    @property
    def is_structured(self) -> bool:
        """Whether ``data`` is a mapping that field lookups can walk."""
        return isinstance(self.data, dict)
