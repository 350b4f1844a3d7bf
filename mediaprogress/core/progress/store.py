from __future__ import annotations

import logging
from collections.abc import Callable
from threading import RLock

from mediaprogress.core.events import EventBus
from mediaprogress.core.events.progress_events import ControlStateChanged, FlagChanged, SlotChanged
from mediaprogress.core.progress.dismiss import AutoDismissScheduler, DismissPredicate
from mediaprogress.core.progress.identity import same_job, still_snapshot
from mediaprogress.core.progress.models import IDLE_CONTROL, ControlState, JobProgress
from mediaprogress.core.progress.settings import ProgressConfig
from mediaprogress.core.progress.timers import TimerBackend

logger = logging.getLogger(__name__)

Updater = Callable[[JobProgress | None], JobProgress | None]


class JobStateStore:
    """Single owner of per-slot progress, running flags and control flags.

    Writes never raise: a bad updater or value is logged and dropped. Every
    effective change is published on the bus (``SlotChanged``, ``FlagChanged``,
    ``ControlStateChanged``).
    """

    def __init__(
        self,
        bus: EventBus,
        timers: TimerBackend,
        config: ProgressConfig | None = None,
    ) -> None:
        self._bus = bus
        self._timers = timers
        self._config = config or ProgressConfig()
        self._lock = RLock()
        self._slots: dict[str, JobProgress | None] = {name: None for name in self._config.slots}
        self._flags: dict[str, bool] = {name: False for name in self._config.flags}
        self._started_at: dict[str, int] = {}
        self._control: dict[str, ControlState] = {}
        self._dismiss = AutoDismissScheduler(timers, self.get_slot, self._dismiss_slot)

    @property
    def config(self) -> ProgressConfig:
        return self._config

    @property
    def dismiss(self) -> AutoDismissScheduler:
        return self._dismiss

    # Reads

    def get_slot(self, slot: str) -> JobProgress | None:
        with self._lock:
            return self._slots.get(slot)

    def slots(self) -> tuple[str, ...]:
        return tuple(self._slots)

    def snapshot(self) -> dict[str, JobProgress | None]:
        with self._lock:
            return dict(self._slots)

    def get_flag(self, flag: str) -> bool:
        with self._lock:
            return self._flags.get(flag, False)

    def flags(self) -> dict[str, bool]:
        with self._lock:
            return dict(self._flags)

    def started_at(self, slot: str) -> int | None:
        with self._lock:
            return self._started_at.get(slot)

    def control_state(self, slot: str) -> ControlState:
        with self._lock:
            return self._control.get(slot, IDLE_CONTROL)

    # Writes

    def set_slot(
        self,
        slot: str,
        value: JobProgress | Updater | None,
        *,
        auto_dismiss: bool = True,
        dismiss_delay_ms: int | None = None,
        dismiss_guard: DismissPredicate | None = None,
    ) -> JobProgress | None:
        """Write a slot and return its new value.

        ``value`` may be an updater receiving the previous value. Writing a
        terminal record arms a dismiss timer unless ``auto_dismiss`` is False.
        """
        if slot not in self._slots:
            logger.warning("Write to unknown slot dropped", extra={"slot": slot})
            return None
        with self._lock:
            prev = self._slots[slot]
            new = self._resolve(slot, prev, value)
            if new is prev:
                return prev
            self._slots[slot] = new
            control_changed = self._after_write(slot, prev, new)
            if new is not None and new.is_terminal and auto_dismiss:
                self._schedule_dismiss(slot, new, dismiss_delay_ms, dismiss_guard)
        self._publish_slot(slot, new, prev)
        if control_changed:
            self._bus.publish(ControlStateChanged(slot=slot, state=self.control_state(slot)))
        return new

    def clear_slot(self, slot: str) -> None:
        self.set_slot(slot, None)

    def set_flag(self, flag: str, active: bool) -> None:
        with self._lock:
            if flag not in self._flags:
                logger.warning("Unknown running flag ignored", extra={"event": "unknown_flag"})
                return
            if self._flags[flag] == bool(active):
                return
            self._flags[flag] = bool(active)
        self._bus.publish(FlagChanged(flag=flag, active=bool(active)))

    def mark_started(self, slot: str, at_ms: int | None = None) -> None:
        """Remember when the job in ``slot`` started, for elapsed-time fallback."""
        if slot not in self._slots:
            logger.warning("Start time for unknown slot dropped", extra={"slot": slot})
            return
        with self._lock:
            self._started_at[slot] = self._timers.now_ms() if at_ms is None else int(at_ms)

    def update_control(self, slot: str, state: ControlState) -> None:
        """Control-flag gateway, written by the control dispatcher only."""
        with self._lock:
            if self._control.get(slot, IDLE_CONTROL) == state:
                return
            self._control[slot] = state
        self._bus.publish(ControlStateChanged(slot=slot, state=state))

    def reset_control(self, slot: str) -> None:
        self.update_control(slot, IDLE_CONTROL)

    def close_all(self) -> None:
        """Clear every slot and flag and cancel every pending timer, synchronously."""
        with self._lock:
            self._dismiss.cancel_all()
            cleared = [(slot, prev) for slot, prev in self._slots.items() if prev is not None]
            lowered = [flag for flag, active in self._flags.items() if active]
            reset = [slot for slot, state in self._control.items() if state != IDLE_CONTROL]
            for slot in self._slots:
                self._slots[slot] = None
            for flag in self._flags:
                self._flags[flag] = False
            self._started_at.clear()
            self._control.clear()
        for slot, prev in cleared:
            self._publish_slot(slot, None, prev)
        for flag in lowered:
            self._bus.publish(FlagChanged(flag=flag, active=False))
        for slot in reset:
            self._bus.publish(ControlStateChanged(slot=slot, state=IDLE_CONTROL))
        logger.info("All progress closed", extra={"event": "close_all"})

    # Internals

    def _resolve(
        self, slot: str, prev: JobProgress | None, value: JobProgress | Updater | None
    ) -> JobProgress | None:
        new: object = value
        if value is not None and not isinstance(value, JobProgress):
            try:
                new = value(prev)
            except Exception:
                logger.exception("Progress updater failed; write dropped", extra={"slot": slot})
                return prev
        if new is not None and not isinstance(new, JobProgress):
            logger.warning(
                "Non-progress value written; dropped",
                extra={"slot": slot, "event": type(new).__name__},
            )
            return prev
        return new

    def _after_write(self, slot: str, prev: JobProgress | None, new: JobProgress | None) -> bool:
        """Cancel the slot's dismiss timer and keep control flags consistent.

        Returns True when the control state changed.
        """
        self._dismiss.cancel(slot)
        control = self._control.get(slot, IDLE_CONTROL)
        if new is None:
            self._started_at.pop(slot, None)
            if control == IDLE_CONTROL:
                return False
            self._control.pop(slot, None)
            return True
        if control != IDLE_CONTROL and not same_job(prev, new):
            # A new job took the slot; flags set before it existed do not apply.
            self._control.pop(slot, None)
            return True
        if new.is_terminal and control.paused:
            self._control[slot] = ControlState(stopping=control.stopping, paused=False, pending=control.pending)
            return True
        return False

    def _schedule_dismiss(
        self,
        slot: str,
        value: JobProgress,
        delay_ms: int | None,
        guard: DismissPredicate | None,
    ) -> None:
        matches = still_snapshot(value)
        if guard is None:
            predicate = matches
        else:
            def predicate(current: JobProgress) -> bool:
                return matches(current) and guard(current)

        delay = self._config.dismiss_delay_ms(value.job_kind) if delay_ms is None else delay_ms
        self._dismiss.schedule(slot, delay, predicate)

    def _dismiss_slot(self, slot: str) -> None:
        self.set_slot(slot, None)

    def _publish_slot(self, slot: str, new: JobProgress | None, prev: JobProgress | None) -> None:
        self._bus.publish(SlotChanged(slot=slot, progress=new, previous=prev))
