"""Progress records shared by every orchestrator component."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any


class Phase(str, Enum):
    START = "start"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETE, Phase.ERROR)


@dataclass(frozen=True, slots=True)
class JobProgress:
    """Current state of the job occupying one slot."""

    phase: Phase
    job_kind: str
    total: int = 0
    current: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    current_item_label: str | None = None
    elapsed_ms: int | None = None
    eta_ms: int | None = None
    speed_per_minute: float | None = None
    message: str | None = None
    error: str | None = None
    run_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal


@dataclass(frozen=True, slots=True)
class ProgressPatch:
    """Normalized event content. ``None`` means the event did not carry the field."""

    job_kind: str
    phase: Phase | None = None
    total: int | None = None
    current: int | None = None
    imported: int | None = None
    updated: int | None = None
    skipped: int | None = None
    errors: int | None = None
    current_item_label: str | None = None
    elapsed_ms: int | None = None
    eta_ms: int | None = None
    speed_per_minute: float | None = None
    message: str | None = None
    error: str | None = None
    run_id: str | None = None

    def provided(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def with_values(self, **values: Any) -> ProgressPatch:
        return replace(self, **values)


def progress_from_patch(patch: ProgressPatch) -> JobProgress:
    """Build a fresh record: counters default to 0, optional fields stay unset."""
    values = patch.provided()
    values.setdefault("phase", Phase.RUNNING)
    return JobProgress(**values)


def merge_progress(prev: JobProgress | None, patch: ProgressPatch) -> JobProgress:
    """Apply ``patch`` to the slot's current record.

    A different job kind (or a different emitter-supplied run id) replaces the record;
    otherwise only the fields the event carried are overwritten.
    """
    if prev is None or not continues_record(prev, patch):
        return progress_from_patch(patch)
    return replace(prev, **patch.provided())


def continues_record(prev: JobProgress, patch: ProgressPatch) -> bool:
    if prev.job_kind != patch.job_kind:
        return False
    if prev.run_id is not None and patch.run_id is not None:
        return prev.run_id == patch.run_id
    return True


class ControlAction(str, Enum):
    STOP = "stop"
    PAUSE = "pause"
    RESUME = "resume"


@dataclass(frozen=True, slots=True)
class ControlState:
    """Control flags of one slot, as seen by the UI."""

    stopping: bool = False
    paused: bool = False
    pending: ControlAction | None = None

    @property
    def is_idle(self) -> bool:
        return not self.stopping and not self.paused and self.pending is None


IDLE_CONTROL = ControlState()
