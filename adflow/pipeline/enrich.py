"""
Single classify-then-attach pass for a newly observed request.

Runs vendor matching, URL and body decoding, the request-type
cascade, stage detection and slot extraction, and returns an updated
copy of the record for the owning collection to store.
"""

from __future__ import annotations

from adflow import decoders
from adflow.classification import request_types, vendors
from adflow.flows import stages
from adflow.models.requests import RequestRecord
from adflow.utils import logger

log = logger.create_logger("Enrich")


def _body_text(body: str | bytes | None) -> str | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


def enrich_record(
    record: RequestRecord,
    body: str | bytes | None = None,
    content_type: str | None = None,
) -> RequestRecord:
    """Classify *record* and attach decoded payloads.

    Args:
        record: The record as first observed (URL, method, timing).
        body: Raw request body, if the request carried one.
        content_type: Request ``Content-Type``; falls back to the
            record's request headers when omitted.

    Returns:
        A copy with vendor, payloads, request type, stage and slot set.
        A slot id already present on the record is kept.
    """
    vendor = vendors.classify_vendor(record.url)
    decoded_url = decoders.decode(record.url, vendors.get_decoder_hint(record.url, vendor))

    if content_type is None:
        content_type = next(
            (v for k, v in record.request_headers.items() if k.lower() == "content-type"),
            None,
        )
    body_text = _body_text(body)
    request_body = decoders.decode_request_body(body_text, content_type) if body_text else record.request_body

    classified = record.model_copy(
        update={
            "vendor": vendor,
            "decoded_payload": decoded_url,
            "request_body": request_body,
            "request_type": request_types.classify_request_type(record.url, vendor, body_text),
        }
    )
    updates: dict[str, object] = {"stage": stages.detect_stage(classified)}
    if not classified.slot_id:
        updates["slot_id"] = stages.extract_slot_id(classified)

    enriched = classified.model_copy(update=updates)
    if vendor:
        log.debug(
            "Classified request",
            {"vendor": vendor.id, "type": enriched.request_type, "stage": enriched.stage, "slot": enriched.slot_id},
        )
    return enriched
