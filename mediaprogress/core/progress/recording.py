"""Record raw job event streams to JSONL and replay them.

A recorded stream reproduces ordering bugs offline: replaying it on
``VirtualTimers`` drives the same store transitions, dismiss timers included.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union

from mediaprogress.core.events import EventBus
from mediaprogress.core.events.event_bus import Subscription
from mediaprogress.core.events.job_events import (
    JobCompleted,
    JobFailed,
    JobProgressReported,
    JobStarted,
    SyncFlagChanged,
)
from mediaprogress.core.progress.models import JobProgress
from mediaprogress.core.progress.orchestrator import ProgressOrchestrator
from mediaprogress.core.progress.timers import TimerBackend, VirtualTimers

logger = logging.getLogger(__name__)

RawJobEvent = Union[JobStarted, JobProgressReported, JobCompleted, JobFailed, SyncFlagChanged]

_EVENT_TYPES: dict[str, type[Any]] = {
    cls.__name__: cls
    for cls in (JobStarted, JobProgressReported, JobCompleted, JobFailed, SyncFlagChanged)
}


class JsonlEventLog:
    """Append-only JSONL file of raw job events.

    Malformed lines are skipped on load; write errors are logged, never raised.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        out: list[dict[str, Any]] = []
        with self._path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed line %d in %s", lineno, self._path)
                    continue
                if isinstance(obj, dict) and obj.get("type") in _EVENT_TYPES and isinstance(obj.get("data"), dict):
                    out.append(obj)
        return out

    def append(self, record: Mapping[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError:
            logger.warning("Could not append to event log %s", self._path, exc_info=True)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


def pack_event(event: RawJobEvent, at_ms: int) -> dict[str, Any]:
    data = asdict(event)
    if "payload" in data:
        data["payload"] = dict(event.payload)  # type: ignore[union-attr]
    return {
        "type": type(event).__name__,
        "data": data,
        "at_ms": int(at_ms),
        "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
    }


def unpack_event(record: Mapping[str, Any]) -> RawJobEvent | None:
    cls = _EVENT_TYPES.get(str(record.get("type")))
    data = record.get("data")
    if cls is None or not isinstance(data, Mapping):
        return None
    try:
        return cls(**data)
    except TypeError:
        logger.debug("Skipping record with unexpected fields: %r", record)
        return None


class EventRecorder:
    """Subscribes to raw job events on the bus and appends them to a log."""

    def __init__(self, bus: EventBus, log: JsonlEventLog, timers: TimerBackend) -> None:
        self._bus = bus
        self._log = log
        self._timers = timers
        self._subscriptions: list[Subscription] = self._bus.subscribe_many(
            (cls, self._record) for cls in _EVENT_TYPES.values()
        )

    def _record(self, event: RawJobEvent) -> None:
        self._log.append(pack_event(event, self._timers.now_ms()))

    def close(self) -> None:
        for sub in self._subscriptions:
            self._bus.unsubscribe(sub)
        self._subscriptions.clear()


def replay_records(
    orchestrator: ProgressOrchestrator,
    bus: EventBus,
    timers: VirtualTimers,
    records: list[dict[str, Any]],
    *,
    settle_ms: int = 0,
) -> dict[str, JobProgress | None]:
    """Publish recorded events at their recorded times; return the final slot snapshot.

    ``settle_ms`` advances the clock past the last event so pending dismisses fire.
    """
    for record in records:
        event = unpack_event(record)
        if event is None:
            continue
        at_ms = record.get("at_ms")
        if isinstance(at_ms, int) and not isinstance(at_ms, bool):
            timers.advance_to(at_ms)
        bus.publish(event)
    if settle_ms > 0:
        timers.advance(settle_ms)
    return orchestrator.store.snapshot()
