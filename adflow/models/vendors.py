"""Pydantic models for the advertising vendor taxonomy."""

from __future__ import annotations

from typing import Literal

import pydantic

from adflow.utils.serialization import snake_to_camel

VendorCategory = Literal[
    "ssp",
    "dsp",
    "verification",
    "measurement",
    "hb_wrapper",
    "identity",
    "cdn",
    "ad_server",
    "native",
    "other",
]

RequestType = Literal[
    "bid_request",
    "bid_response",
    "impression",
    "click",
    "viewability",
    "sync",
    "creative",
    "config",
    "unknown",
]

DecoderHint = Literal["url_params", "json", "base64", "openrtb"]


class RequestTypePattern(pydantic.BaseModel):
    """A vendor-declared URL substring identifying one request type."""

    model_config = pydantic.ConfigDict(frozen=True)

    pattern: str
    decoder: DecoderHint | None = None


class Vendor(pydantic.BaseModel):
    """One entry of the vendor catalogue.

    ``patterns`` are URL globs matched against the scheme-less URL in
    declaration order.  ``request_types`` maps a request type to the URL
    substring that identifies it for this vendor; mapping order is the
    evaluation order.
    """

    model_config = pydantic.ConfigDict(
        frozen=True, alias_generator=snake_to_camel, populate_by_name=True
    )

    id: str
    name: str
    category: VendorCategory
    patterns: tuple[str, ...]
    request_types: dict[RequestType, RequestTypePattern] = pydantic.Field(default_factory=dict)
