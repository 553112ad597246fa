"""Payload decoding package.

The public API is :func:`decode` (URL, body or response text, with an
optional decoder hint) and :func:`decode_request_body`.
"""

from __future__ import annotations

from adflow.decoders.auto import decode, decode_request_body

__all__ = ["decode", "decode_request_body"]
