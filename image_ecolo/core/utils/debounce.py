"""
Asyncio debouncer.

Coalesces bursts of calls (e.g. a slider being dragged) into a single call
fired once the burst has been quiet for ``delay_ms``.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(__name__)


class Debouncer:
    """Trailing-edge debouncer bound to the running event loop."""

    def __init__(self, delay_ms: int):
        self.delay_ms = delay_ms
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[Tuple[Callable[..., Any], tuple]] = None

    @property
    def pending(self) -> bool:
        """True while a call is waiting for the quiescence window."""
        return self._handle is not None

    def schedule(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule ``callback(*args)``, replacing any call still waiting."""
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("Debounce window restarted")
        self._pending = (callback, args)
        self._handle = loop.call_later(self.delay_ms / 1000.0, self._fire)

    def cancel(self) -> bool:
        """Drop the waiting call. Returns True if one was dropped."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._pending = None
        return True

    def _fire(self) -> None:
        pending = self._pending
        self._handle = None
        self._pending = None
        if pending is not None:
            callback, args = pending
            callback(*args)
