from __future__ import annotations

import logging
from collections.abc import Callable

from mediaprogress.core.progress.models import JobProgress
from mediaprogress.core.progress.timers import TimerBackend, TimerHandle

logger = logging.getLogger(__name__)

DismissPredicate = Callable[[JobProgress], bool]


class AutoDismissScheduler:
    """Per-slot deferred clears.

    Each slot has at most one armed timer. When it fires the slot is re-read and
    cleared only if the predicate still holds for the current value, so a job that
    started in the meantime is left alone.
    """

    def __init__(
        self,
        timers: TimerBackend,
        read: Callable[[str], JobProgress | None],
        clear: Callable[[str], None],
    ) -> None:
        self._timers = timers
        self._read = read
        self._clear = clear
        self._handles: dict[str, TimerHandle] = {}
        self._tokens: dict[str, object] = {}

    def schedule(self, slot: str, delay_ms: int, predicate: DismissPredicate) -> None:
        self.cancel(slot)
        token = object()

        def _fire() -> None:
            self._fire(slot, token, predicate)

        handle = self._timers.call_later(max(0, delay_ms) / 1000.0, _fire)
        self._handles[slot] = handle
        self._tokens[slot] = token
        logger.debug("Dismiss armed", extra={"slot": slot, "event": "dismiss_armed"})

    def cancel(self, slot: str) -> None:
        handle = self._handles.pop(slot, None)
        self._tokens.pop(slot, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for slot in list(self._handles):
            self.cancel(slot)

    def is_pending(self, slot: str) -> bool:
        return slot in self._handles

    def _fire(self, slot: str, token: object, predicate: DismissPredicate) -> None:
        if self._tokens.get(slot) is not token:
            # Superseded after the backend had already queued the callback.
            return
        self._handles.pop(slot, None)
        self._tokens.pop(slot, None)
        current = self._read(slot)
        if current is None:
            return
        try:
            keep = not predicate(current)
        except Exception:
            logger.exception("Dismiss predicate failed", extra={"slot": slot})
            return
        if keep:
            logger.debug(
                "Stale dismiss skipped",
                extra={"slot": slot, "job_kind": current.job_kind, "event": "dismiss_stale"},
            )
            return
        logger.debug("Slot dismissed", extra={"slot": slot, "event": "dismissed"})
        self._clear(slot)
