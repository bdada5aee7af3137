"""Schedulers used by the event bus to run delivery work.

Deferred delivery behaves like a microtask queue: work runs on the same thread
after the current call stack unwinds, in the order it was scheduled.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class Scheduler(Protocol):
    def schedule(self, callback: Callback) -> None: ...


class InlineScheduler:
    """Runs work immediately on the caller's stack."""

    def schedule(self, callback: Callback) -> None:
        callback()


class MicrotaskQueue:
    """FIFO of pending callbacks drained after the current synchronous work.

    When an asyncio loop is running on this thread, a single ``call_soon`` is
    armed to drain the queue, so awaiting once (``await asyncio.sleep(0)``) is
    enough for scheduled work to run. Without a running loop the owner must
    call :meth:`drain` itself.
    """

    def __init__(self) -> None:
        self._pending: deque[Callback] = deque()
        self._armed_loop: asyncio.AbstractEventLoop | None = None
        self._warned_no_loop = False

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, callback: Callback) -> None:
        self._pending.append(callback)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if not self._warned_no_loop:
                self._warned_no_loop = True
                logger.warning(
                    "Deferred work queued with no running event loop; "
                    "it will wait until drain() is called"
                )
            return

        # A drain armed on a loop that has since stopped never ran.
        if self._armed_loop is loop:
            return
        self._armed_loop = loop
        loop.call_soon(self.drain)

    def drain(self) -> int:
        """Run pending callbacks until the queue is empty. Returns how many ran."""
        self._armed_loop = None
        self._warned_no_loop = False
        ran = 0
        while self._pending:
            callback = self._pending.popleft()
            ran += 1
            try:
                callback()
            except Exception as exc:
                logger.error(f"Deferred callback failed: {exc}", exc_info=True)
        return ran
