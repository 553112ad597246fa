"""Alias generation for the JSON-facing models.

Records, flows, issues and analysis results dump with camelCase keys
(``slotId``, ``winningBid``, ``p95Latency``), matching the event
payloads a browser host exchanges with the engine.  Each such model
pairs ``alias_generator=snake_to_camel`` with ``populate_by_name=True``
so Python callers keep constructing them by field name.
"""

from __future__ import annotations


def snake_to_camel(name: str) -> str:
    """Return the camelCase alias of a model field name.

    ``"p95_latency"`` becomes ``"p95Latency"``; a name without
    underscores is returned unchanged.
    """
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)
