"""Timer scheduling on top of asyncio."""

from __future__ import annotations

import asyncio
from collections.abc import Callable


class TimerToken:
    """Cancellation token wrapping an asyncio timer handle."""

    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioScheduler:
    """Scheduler that arms one-shot timers on an event loop.

    Attributes:
        loop: Event loop the timers run on. Defaults to the running loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self.loop = loop or asyncio.get_running_loop()

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> TimerToken:
        return TimerToken(self.loop.call_later(delay_ms / 1000, callback))
