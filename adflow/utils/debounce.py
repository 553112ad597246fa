"""
Debounced callbacks on the running asyncio loop.

Used to coalesce bursts of completion/error events into a single
cross-request detection pass.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from adflow.utils import logger
from adflow.utils.errors import get_error_message

log = logger.create_logger("Debounce")


class Debouncer:
    """Run *callback* once, *delay_ms* after the most recent ``schedule()``.

    Each call to :meth:`schedule` cancels the pending invocation and
    arms a new one.  Without a running event loop the callback runs
    immediately.
    """

    def __init__(self, callback: Callable[[], None], delay_ms: int) -> None:
        self._callback = callback
        self._delay_ms = delay_ms
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        """Whether an invocation is armed and has not fired yet."""
        return self._handle is not None

    def schedule(self) -> None:
        """(Re)arm the callback."""
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._fire()
            return
        self._handle = loop.call_later(self._delay_ms / 1000, self._fire)

    def cancel(self) -> None:
        """Drop any armed invocation."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback()
        except Exception as err:
            log.error("Debounced callback failed", {"error": get_error_message(err)})
