"""Composition root / DI container.

Views should not build the orchestrator themselves: one container owns the event
bus, the timer backend and the orchestrator, so every view sees the same store.
"""

from __future__ import annotations

from pathlib import Path

from mediaprogress.core.events import EventBus
from mediaprogress.core.paths import get_app_state_dir
from mediaprogress.core.progress.orchestrator import ProgressOrchestrator
from mediaprogress.core.progress.recording import EventRecorder, JsonlEventLog
from mediaprogress.core.progress.settings import ProgressConfig, load_config
from mediaprogress.core.progress.timers import AsyncioTimers, TimerBackend


class Container:
    """Resolves orchestrator services lazily. Single place to swap implementations."""

    def __init__(
        self,
        *,
        timers: TimerBackend | None = None,
        config: ProgressConfig | None = None,
        config_path: Path | None = None,
    ) -> None:
        self._timers = timers
        self._config = config
        self._config_path = config_path
        self._event_bus: EventBus | None = None
        self._progress: ProgressOrchestrator | None = None
        self._recorder: EventRecorder | None = None

    @property
    def config(self) -> ProgressConfig:
        if self._config is None:
            self._config = load_config(self._config_path)
        return self._config

    @property
    def timers(self) -> TimerBackend:
        if self._timers is None:
            self._timers = AsyncioTimers()
        return self._timers

    @timers.setter
    def timers(self, value: TimerBackend) -> None:
        if self._progress is not None:
            raise RuntimeError("Timer backend must be set before the orchestrator is created")
        self._timers = value

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            self._event_bus = EventBus()
        return self._event_bus

    @property
    def progress(self) -> ProgressOrchestrator:
        if self._progress is None:
            self._progress = ProgressOrchestrator(self.event_bus, self.timers, self.config)
        return self._progress

    def start_recording(self, path: Path | None = None) -> EventRecorder:
        """Append every raw job event to a JSONL log (default: <state dir>/events.jsonl)."""
        if self._recorder is None:
            log = JsonlEventLog(path or get_app_state_dir() / "events.jsonl")
            self._recorder = EventRecorder(self.event_bus, log, self.timers)
        return self._recorder

    def close(self) -> None:
        if self._recorder is not None:
            self._recorder.close()
            self._recorder = None
        if self._progress is not None:
            self._progress.close()
            self._progress = None
