from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from mediaprogress.core.errors import MalformedEventError
from mediaprogress.core.events import EventBus
from mediaprogress.core.events.event_bus import Subscription
from mediaprogress.core.events.job_events import (
    JobCompleted,
    JobFailed,
    JobProgressReported,
    JobStarted,
    SyncFlagChanged,
)
from mediaprogress.core.events.progress_events import FlagChanged, SlotChanged
from mediaprogress.core.progress.aggregate import AggregateView
from mediaprogress.core.progress.control import ControlDispatcher, JobControl
from mediaprogress.core.progress.identity import same_run
from mediaprogress.core.progress.metrics import ProgressMetrics, derive_metrics
from mediaprogress.core.progress.models import (
    ControlState,
    JobProgress,
    Phase,
    merge_progress,
    progress_from_patch,
)
from mediaprogress.core.progress.normalizer import (
    ApplyMode,
    EventContext,
    ProgressNormalizer,
    SlotUpdate,
    SourceAdapter,
)
from mediaprogress.core.progress.settings import ProgressConfig
from mediaprogress.core.progress.sources import default_adapters
from mediaprogress.core.progress.store import JobStateStore, Updater
from mediaprogress.core.progress.timers import TimerBackend, TimerHandle

logger = logging.getLogger(__name__)


class ProgressOrchestrator:
    """Tracks every background job slot from the raw events jobs publish on the bus.

    Handlers never raise: malformed events are logged and dropped. Views read
    through the accessors below and listen for ``SlotChanged``, ``FlagChanged``
    and ``ControlStateChanged``.
    """

    def __init__(
        self,
        event_bus: EventBus,
        timers: TimerBackend,
        config: ProgressConfig | None = None,
        *,
        adapters: Iterable[SourceAdapter] | None = None,
    ) -> None:
        self._bus = event_bus
        self._timers = timers
        self._config = config or ProgressConfig()
        self.store = JobStateStore(event_bus, timers, self._config)
        self.normalizer = ProgressNormalizer(default_adapters() if adapters is None else adapters)
        self.controls = ControlDispatcher(self.store)
        self.view = AggregateView(self.store)
        self._close_all_timer: TimerHandle | None = None
        self._subscriptions: list[Subscription] = []
        self._subscribe_handlers()

    def _subscribe_handlers(self) -> None:
        self._subscriptions.extend(
            self._bus.subscribe_many(
                [
                    (JobStarted, self._on_started),
                    (JobProgressReported, self._on_progress),
                    (JobCompleted, self._on_completed),
                    (JobFailed, self._on_failed),
                    (SyncFlagChanged, self._on_flag),
                    (SlotChanged, self._on_store_changed),
                    (FlagChanged, self._on_store_changed),
                ]
            )
        )

    def close(self) -> None:
        for sub in self._subscriptions:
            self._bus.unsubscribe(sub)
        self._subscriptions.clear()
        self._cancel_close_all_timer()
        self.store.dismiss.cancel_all()

    # Presentation-facing API

    @property
    def config(self) -> ProgressConfig:
        return self._config

    def get_slot(self, slot: str) -> JobProgress | None:
        return self.store.get_slot(slot)

    def set_slot(self, slot: str, value: JobProgress | Updater | None, **kwargs: Any) -> JobProgress | None:
        return self.store.set_slot(slot, value, **kwargs)

    def metrics(self, slot: str) -> ProgressMetrics | None:
        """Display metrics of the job in ``slot``, elapsed clamped to the configured ceiling."""
        progress = self.store.get_slot(slot)
        if progress is None:
            return None
        return derive_metrics(progress, elapsed_ceiling_ms=self._config.elapsed_ceiling_ms)

    def has_active_operation(self) -> bool:
        return self.view.has_active_operation()

    def all_completed(self) -> bool:
        return self.view.all_completed()

    def control_state(self, slot: str) -> ControlState:
        return self.controls.state(slot)

    def stopping(self, slot: str) -> bool:
        return self.controls.stopping(slot)

    def paused(self, slot: str) -> bool:
        return self.controls.paused(slot)

    def register_control(self, slot: str, control: JobControl) -> None:
        self.controls.register_control(slot, control)

    async def request_stop(self, slot: str) -> None:
        await self.controls.request_stop(slot)

    async def request_pause(self, slot: str) -> None:
        await self.controls.request_pause(slot)

    async def request_resume(self, slot: str) -> None:
        await self.controls.request_resume(slot)

    def mark_started(self, slot: str, at_ms: int | None = None) -> None:
        self.store.mark_started(slot, at_ms)

    def set_flag(self, flag: str, active: bool) -> None:
        self.store.set_flag(flag, active)

    def close_all(self) -> None:
        self._cancel_close_all_timer()
        self.store.close_all()

    # Event handling

    def handle_progress(self, source: str, payload: Any, slot: str | None = None) -> bool:
        """Apply one progress event; False when it was dropped."""
        updates = self._normalize("progress", source, payload, slot)
        if updates is None:
            return False
        self._apply(updates)
        adapter = self.normalizer.adapter_for(source)
        if adapter.flag is not None:
            phases = {u.patch.phase for u in updates}
            if any(p is not None and p.is_terminal for p in phases):
                self.store.set_flag(adapter.flag, False)
            elif Phase.START in phases:
                self.store.set_flag(adapter.flag, True)
        return True

    def handle_completed(self, source: str, payload: Any = None, slot: str | None = None) -> bool:
        updates = self._normalize("completed", source, payload, slot)
        if updates is None:
            return False
        self._apply(updates)
        self._lower_flag(source)
        return True

    def handle_failed(self, source: str, payload: Any = None, slot: str | None = None) -> bool:
        updates = self._normalize("failed", source, payload, slot)
        if updates is None:
            return False
        self._apply(updates)
        self._lower_flag(source)
        return True

    def handle_started(
        self, source: str, slot: str, job_kind: str | None = None, at_ms: int | None = None
    ) -> None:
        """A job announced its start: retire a finished record and reset control flags."""
        prev = self.store.get_slot(slot)
        if prev is not None and prev.is_terminal:
            self.store.clear_slot(slot)
        self.store.reset_control(slot)
        self.store.mark_started(slot, at_ms)
        flag = self.normalizer.adapter_for(source).flag
        if flag is not None:
            self.store.set_flag(flag, True)
        logger.info(
            "Job started",
            extra={"slot": slot, "source": source, "job_kind": job_kind or source},
        )

    def _normalize(
        self, kind: str, source: str, payload: Any, slot: str | None
    ) -> list[SlotUpdate] | None:
        ctx = EventContext(slot=slot, now_ms=self._timers.now_ms(), started_at=self.store.started_at)
        try:
            if kind == "progress":
                return self.normalizer.progress(source, payload, ctx)
            if kind == "completed":
                return self.normalizer.completed(source, payload, ctx)
            return self.normalizer.failed(source, payload, ctx)
        except MalformedEventError as e:
            logger.warning(
                "Malformed %s event dropped: %s", kind, e, extra={"source": source, "slot": slot}
            )
        except Exception:
            logger.exception("Event normalization failed", extra={"source": source, "slot": slot})
        return None

    def _apply(self, updates: list[SlotUpdate]) -> None:
        for update in updates:
            self.store.set_slot(update.slot, _writer(update), auto_dismiss=update.auto_dismiss)

    def _lower_flag(self, source: str) -> None:
        flag = self.normalizer.adapter_for(source).flag
        if flag is not None:
            self.store.set_flag(flag, False)

    def _on_started(self, e: JobStarted) -> None:
        self.handle_started(e.source, e.slot, e.job_kind, e.at_ms)

    def _on_progress(self, e: JobProgressReported) -> None:
        self.handle_progress(e.source, e.payload, e.slot)

    def _on_completed(self, e: JobCompleted) -> None:
        self.handle_completed(e.source, e.payload, e.slot)

    def _on_failed(self, e: JobFailed) -> None:
        self.handle_failed(e.source, e.payload, e.slot)

    def _on_flag(self, e: SyncFlagChanged) -> None:
        self.store.set_flag(e.flag, e.active)

    # Close every banner once everything is done (optional)

    def _on_store_changed(self, _e: SlotChanged | FlagChanged) -> None:
        delay_ms = self._config.close_all_when_completed_ms
        if delay_ms is None:
            return
        if not self.view.all_completed():
            self._cancel_close_all_timer()
            return
        if self._close_all_timer is None:
            self._close_all_timer = self._timers.call_later(delay_ms / 1000.0, self._close_all_if_completed)

    def _close_all_if_completed(self) -> None:
        self._close_all_timer = None
        if self.view.all_completed():
            self.close_all()

    def _cancel_close_all_timer(self) -> None:
        if self._close_all_timer is not None:
            self._close_all_timer.cancel()
            self._close_all_timer = None


def _writer(update: SlotUpdate) -> JobProgress | Updater:
    patch = update.patch
    if update.mode is ApplyMode.REPLACE:
        return progress_from_patch(patch)

    if update.mode is ApplyMode.EXISTING:
        def _merge_existing(prev: JobProgress | None) -> JobProgress | None:
            if not same_run(update.slot, prev, patch):
                return prev
            return merge_progress(prev, patch)

        return _merge_existing

    def _merge(prev: JobProgress | None) -> JobProgress | None:
        return merge_progress(prev, patch)

    return _merge
