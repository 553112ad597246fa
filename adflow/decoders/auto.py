"""
Payload auto-detection.

Without a hint the input is sniffed in a fixed priority order:
JSON (re-tagged OpenRTB when it carries ``imp``/``seatbid``), URL
parameters, base64, then plain text.  Decoding never raises; the
``raw`` field of every result is the input string unchanged.
"""

from __future__ import annotations

from collections.abc import Callable

from adflow.decoders import base64_payload, json_payload, openrtb, url_params
from adflow.models.payloads import DecodedPayload
from adflow.models.vendors import DecoderHint
from adflow.utils import logger
from adflow.utils.errors import get_error_message

log = logger.create_logger("Decoder")

_HINTED_DECODERS: dict[DecoderHint, Callable[[str], DecodedPayload]] = {
    "url_params": url_params.decode_url_params,
    "json": json_payload.decode_json,
    "base64": base64_payload.decode_base64,
    "openrtb": openrtb.decode_openrtb,
}


def _unknown(text: str) -> DecodedPayload:
    return DecodedPayload(type="unknown", data=text, raw=text)


def _sniff(raw: str) -> DecodedPayload:
    trimmed = raw.strip()

    if trimmed.startswith(("{", "[")):
        decoded = json_payload.decode_json(raw)
        if openrtb.looks_like_openrtb(decoded.data) and decoded.type == "json":
            return openrtb.tag_openrtb(decoded)
        return decoded

    if "?" in trimmed and "=" in trimmed:
        return url_params.decode_url_params(raw)

    if len(trimmed) > base64_payload.MIN_AUTODETECT_LENGTH and base64_payload.is_valid_base64(trimmed):
        return base64_payload.decode_base64(raw)

    return DecodedPayload(type="text", data=trimmed, raw=raw)


def decode(raw: str | None, hint: DecoderHint | None = None) -> DecodedPayload:
    """Decode *raw*, going straight to the hinted decoder when given.

    Args:
        raw: Payload text (URL, body or response).
        hint: Decoder to use instead of auto-detection.

    Returns:
        The decoded payload.  Empty input yields an ``unknown``
        payload with empty data.
    """
    if not raw:
        return DecodedPayload(type="unknown", data="", raw="")
    try:
        if hint is not None and hint in _HINTED_DECODERS:
            return _HINTED_DECODERS[hint](raw)
        return _sniff(raw)
    except Exception as err:
        log.debug("Payload decode failed", {"hint": hint, "error": get_error_message(err)})
        return _unknown(raw)


def decode_request_body(body: str | bytes | None, content_type: str | None = None) -> DecodedPayload | None:
    """Decode a request body, letting the content type pick the decoder.

    JSON content types go to the JSON/OpenRTB decoders, form-encoded
    bodies to URL-parameter decoding; anything else is auto-detected.
    Returns ``None`` when there is no body.
    """
    if not body:
        return None
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    if not text:
        return None

    ctype = (content_type or "").lower()
    try:
        if "application/json" in ctype:
            decoded = json_payload.decode_json(text)
            if decoded.type == "json" and openrtb.looks_like_openrtb(decoded.data):
                return openrtb.tag_openrtb(decoded)
            return decoded
        if "application/x-www-form-urlencoded" in ctype:
            decoded = url_params.decode_url_params("?" + text)
            if decoded.type == "unknown":
                return _unknown(text)
            return decoded.model_copy(update={"raw": text})
    except Exception as err:
        log.debug("Request body decode failed", {"contentType": ctype, "error": get_error_message(err)})
        return _unknown(text)

    return decode(text)
