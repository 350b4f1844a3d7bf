from __future__ import annotations

import time
from collections.abc import Callable

from PySide6.QtCore import QObject, QTimer


class _QtTimerHandle:
    __slots__ = ("_timer", "_callback", "_done")

    def __init__(
        self, timer: QTimer, callback: Callable[[], None], done: Callable[[_QtTimerHandle], None]
    ) -> None:
        self._timer: QTimer | None = timer
        self._callback = callback
        self._done = done
        timer.timeout.connect(self._fire)

    def _release(self) -> QTimer | None:
        timer, self._timer = self._timer, None
        if timer is not None:
            self._done(self)
        return timer

    def _fire(self) -> None:
        timer = self._release()
        if timer is None:
            return
        timer.deleteLater()
        self._callback()

    def cancel(self) -> None:
        timer = self._release()
        if timer is not None:
            timer.stop()
            timer.deleteLater()


class QtTimers:
    """Single-shot ``QTimer`` backend; callbacks run on the Qt event loop thread.

    Armed handles are kept here until they fire or are cancelled, so callers may
    drop the returned handle.
    """

    def __init__(self, parent: QObject | None = None) -> None:
        self._parent = parent
        self._armed: set[_QtTimerHandle] = set()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _QtTimerHandle:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(delay_s * 1000)))
        handle = _QtTimerHandle(timer, callback, self._armed.discard)
        self._armed.add(handle)
        timer.start()
        return handle

    @property
    def pending(self) -> int:
        return len(self._armed)

    def now_ms(self) -> int:
        return int(time.time() * 1000)
