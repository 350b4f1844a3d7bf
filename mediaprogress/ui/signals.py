"""
Thread-safe signal bridge between the event bus and Qt views.

``JobEventRelay`` lets worker threads hand raw job events to the orchestrator on the
main thread; ``ProgressSignals`` re-emits store changes as Qt signals so views can
connect slots instead of subscribing to the bus.
"""

from __future__ import annotations

from PySide6.QtCore import QObject, Signal

from mediaprogress.core.events import EventBus
from mediaprogress.core.events.event_bus import Subscription
from mediaprogress.core.events.progress_events import ControlStateChanged, FlagChanged, SlotChanged


class ProgressSignals(QObject):
    """Store change signals. Connect view slots; they run on the main thread."""

    slot_changed = Signal(str, object)  # (slot, JobProgress | None)
    flag_changed = Signal(str, bool)  # (flag, active)
    control_changed = Signal(str, object)  # (slot, ControlState)

    def __init__(self, bus: EventBus, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._bus = bus
        self._subscriptions: list[Subscription] = [
            bus.subscribe_weak(SlotChanged, self._on_slot),
            bus.subscribe_weak(FlagChanged, self._on_flag),
            bus.subscribe_weak(ControlStateChanged, self._on_control),
        ]

    def detach(self) -> None:
        for sub in self._subscriptions:
            self._bus.unsubscribe(sub)
        self._subscriptions.clear()

    def _on_slot(self, e: SlotChanged) -> None:
        self.slot_changed.emit(e.slot, e.progress)

    def _on_flag(self, e: FlagChanged) -> None:
        self.flag_changed.emit(e.flag, e.active)

    def _on_control(self, e: ControlStateChanged) -> None:
        self.control_changed.emit(e.slot, e.state)


class JobEventRelay(QObject):
    """Queue raw job events from any thread onto the thread that owns the relay."""

    event_posted = Signal(object)

    def __init__(self, bus: EventBus, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._bus = bus
        self.event_posted.connect(self._deliver)

    def post(self, event: object) -> None:
        self.event_posted.emit(event)

    def _deliver(self, event: object) -> None:
        self._bus.publish(event)
