"""Raw events published by background jobs.

Payloads keep the emitter's own shape (camelCase keys); the orchestrator
normalizes them. ``slot`` is only needed when the payload does not imply it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class JobStarted:
    source: str
    slot: str
    job_kind: str | None = None
    at_ms: int | None = None


@dataclass(frozen=True, slots=True)
class JobProgressReported:
    source: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    slot: str | None = None


@dataclass(frozen=True, slots=True)
class JobCompleted:
    source: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    slot: str | None = None


@dataclass(frozen=True, slots=True)
class JobFailed:
    source: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    slot: str | None = None


@dataclass(frozen=True, slots=True)
class SyncFlagChanged:
    """A standalone running flag, e.g. a catalogue sync that has not reported yet."""

    flag: str
    active: bool
