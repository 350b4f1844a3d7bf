"""Change notifications published by the job state store."""

from __future__ import annotations

from dataclasses import dataclass

from mediaprogress.core.progress.models import ControlState, JobProgress


@dataclass(frozen=True, slots=True)
class SlotChanged:
    slot: str
    progress: JobProgress | None
    previous: JobProgress | None = None


@dataclass(frozen=True, slots=True)
class FlagChanged:
    flag: str
    active: bool


@dataclass(frozen=True, slots=True)
class ControlStateChanged:
    slot: str
    state: ControlState
