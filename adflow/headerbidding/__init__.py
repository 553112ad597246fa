"""Header-bidding analysis package.

Decomposes the analysis into setup classification, latency
statistics and waterfall conflict detection.  The public API is
:func:`analyze`.
"""

from __future__ import annotations

from adflow.headerbidding.analyzer import analyze

__all__ = ["analyze"]
