"""Raw job events -> ``ProgressPatch`` updates.

Each job source has an adapter that knows its payload shape. Adapters only read
payloads; applying the resulting ``SlotUpdate`` list to the store is the
orchestrator's job. Anything that cannot be read raises ``MalformedEventError``.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from mediaprogress.core.errors import MalformedEventError
from mediaprogress.core.progress.models import Phase, ProgressPatch


class ApplyMode(str, Enum):
    MERGE = "merge"  # same job kind merges, other kinds replace
    REPLACE = "replace"  # always a fresh record
    EXISTING = "existing"  # merge only into a record of the same job, else ignore


@dataclass(frozen=True, slots=True)
class SlotUpdate:
    slot: str
    patch: ProgressPatch
    mode: ApplyMode = ApplyMode.MERGE
    auto_dismiss: bool = True


@dataclass(frozen=True, slots=True)
class EventContext:
    slot: str | None
    now_ms: int
    started_at: Callable[[str], int | None]


def _first(payload: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def count_field(payload: Mapping[str, Any], *keys: str) -> int | None:
    """Non-negative integer field; ``None`` when absent."""
    value = _first(payload, keys)
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedEventError(f"{keys[0]} must be a number, got bool")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError as e:
            raise MalformedEventError(f"{keys[0]} is not numeric: {value!r}", cause=e) from e
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise MalformedEventError(f"{keys[0]} is not a finite number: {value!r}")
    if value < 0:
        raise MalformedEventError(f"{keys[0]} must be non-negative, got {value}")
    return int(value)


def float_field(payload: Mapping[str, Any], *keys: str) -> float | None:
    value = _first(payload, keys)
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedEventError(f"{keys[0]} must be a number, got bool")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(f"{keys[0]} is not numeric: {value!r}", cause=e) from e
    if not math.isfinite(number):
        raise MalformedEventError(f"{keys[0]} is not finite")
    return number


def text_field(payload: Mapping[str, Any], *keys: str) -> str | None:
    value = _first(payload, keys)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def phase_field(payload: Mapping[str, Any], key: str = "phase") -> Phase | None:
    value = payload.get(key)
    if value is None:
        return None
    try:
        return Phase(str(value))
    except ValueError as e:
        raise MalformedEventError(f"Unknown phase {value!r}", cause=e) from e


def require_mapping(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise MalformedEventError(f"Payload must be a mapping, got {type(payload).__name__}")
    return payload


def timing_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "elapsed_ms": count_field(payload, "elapsedMs", "elapsed_ms"),
        "eta_ms": count_field(payload, "etaMs", "eta_ms"),
        "speed_per_minute": float_field(payload, "speed", "speedPerMinute", "speed_per_minute"),
    }


class SourceAdapter:
    """Reads one job source's payloads. The base reads the generic shape.

    Generic payload keys: ``jobKind``, ``phase``, ``current``, ``total``,
    ``imported``, ``updated``, ``skipped``, ``errors``, ``item``, ``elapsedMs``,
    ``etaMs``, ``speed``, ``message``, ``error``, ``runId``.
    """

    source = "generic"
    # Standalone running flag raised while this source has a job in flight.
    flag: str | None = None

    def slot_for(self, payload: Mapping[str, Any], ctx: EventContext) -> str:
        if not ctx.slot:
            raise MalformedEventError(f"{self.source} event carries no slot")
        return ctx.slot

    def job_kind(self, payload: Mapping[str, Any]) -> str:
        return text_field(payload, "jobKind", "job_kind") or self.source

    def read_patch(self, payload: Mapping[str, Any]) -> ProgressPatch:
        return ProgressPatch(
            job_kind=self.job_kind(payload),
            phase=phase_field(payload),
            total=count_field(payload, "total"),
            current=count_field(payload, "current", "currentIndex"),
            imported=count_field(payload, "imported"),
            updated=count_field(payload, "updated"),
            skipped=count_field(payload, "skipped"),
            errors=count_field(payload, "errors"),
            current_item_label=text_field(payload, "item", "currentItemLabel", "label"),
            message=text_field(payload, "message"),
            error=text_field(payload, "error"),
            run_id=text_field(payload, "runId", "run_id"),
            **timing_fields(payload),
        )

    def progress(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        patch = self.read_patch(payload)
        if patch.phase is None:
            patch = patch.with_values(phase=Phase.RUNNING)
        return [SlotUpdate(self.slot_for(payload, ctx), patch)]

    def completed(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        patch = self.read_patch(payload).with_values(phase=Phase.COMPLETE)
        return [SlotUpdate(self.slot_for(payload, ctx), patch)]

    def failed(self, payload: Mapping[str, Any], ctx: EventContext) -> list[SlotUpdate]:
        patch = self.read_patch(payload)
        reason = patch.error or patch.message or "job failed"
        return [
            SlotUpdate(
                self.slot_for(payload, ctx),
                patch.with_values(phase=Phase.ERROR, error=reason),
            )
        ]


class ProgressNormalizer:
    """Dispatches raw events to the adapter registered for their source."""

    def __init__(self, adapters: Iterable[SourceAdapter] = ()) -> None:
        self._generic = SourceAdapter()
        self._adapters: dict[str, SourceAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: SourceAdapter) -> None:
        self._adapters[adapter.source] = adapter

    def adapter_for(self, source: str) -> SourceAdapter:
        return self._adapters.get(source, self._generic)

    def progress(self, source: str, payload: Any, ctx: EventContext) -> list[SlotUpdate]:
        data = require_mapping(payload)
        return self._with_elapsed(self.adapter_for(source).progress(data, ctx), ctx)

    def completed(self, source: str, payload: Any, ctx: EventContext) -> list[SlotUpdate]:
        data = require_mapping(payload) if payload is not None else {}
        return self._with_elapsed(self.adapter_for(source).completed(data, ctx), ctx)

    def failed(self, source: str, payload: Any, ctx: EventContext) -> list[SlotUpdate]:
        if isinstance(payload, str):
            payload = {"error": payload}
        data = require_mapping(payload) if payload is not None else {}
        return self.adapter_for(source).failed(data, ctx)

    @staticmethod
    def _with_elapsed(updates: list[SlotUpdate], ctx: EventContext) -> list[SlotUpdate]:
        out: list[SlotUpdate] = []
        for update in updates:
            started = ctx.started_at(update.slot)
            if update.patch.elapsed_ms is None and started is not None and 0 < started < ctx.now_ms:
                patch = update.patch.with_values(elapsed_ms=ctx.now_ms - started)
                update = SlotUpdate(update.slot, patch, update.mode, update.auto_dismiss)
            out.append(update)
        return out
