"""Timer backends for deferred work on the orchestrator's loop thread.

``AsyncioTimers`` runs on an asyncio loop, ``VirtualTimers`` on a manually advanced
clock (replay, tests). The Qt backend lives in ``mediaprogress.ui.qt_timers``.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerBackend(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay_s`` seconds on the loop thread."""

    def now_ms(self) -> int:
        """Current time in milliseconds on this backend's clock."""


class AsyncioTimers:
    """Timers on an asyncio event loop (the running loop unless one is given)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self._get_loop().call_later(max(0.0, delay_s), callback)

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class _VirtualHandle:
    __slots__ = ("cancelled",)

    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualTimers:
    """Manually advanced clock. Callbacks fire in due-time order during ``advance``."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now_ms = start_ms
        self._seq = itertools.count()
        self._queue: list[tuple[int, int, _VirtualHandle, Callable[[], None]]] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _VirtualHandle()
        due = self._now_ms + max(0, int(round(delay_s * 1000)))
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
        return handle

    def now_ms(self) -> int:
        return self._now_ms

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, ms: int) -> None:
        self.advance_to(self._now_ms + ms)

    def advance_to(self, at_ms: int) -> None:
        while self._queue and self._queue[0][0] <= at_ms:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now_ms = max(self._now_ms, due)
            callback()
        self._now_ms = max(self._now_ms, at_ms)
