"""Pause / resume / stop requests forwarded to the jobs that own a slot.

A job advertises what it supports by registering one of the ``JobControl``
variants. Requests are advisory: the job decides when it actually halts, and its
own terminal event is what eventually clears the slot.

Per-slot state machine::

    Idle -> Requesting(stop | pause | resume) -> Confirmed | RolledBack

``stopping`` is raised before the job answers; ``paused`` only flips once the
job confirms. A slot has at most one request in flight; any other request made
meanwhile is rejected, so a confirmation is never lost to a later request. A
confirmed stop keeps ``stopping`` until the slot is cleared or a new job takes
it, and further requests are rejected meanwhile.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Union

from mediaprogress.core.errors import (
    ControlRejectedError,
    ControlRequestError,
    ControlUnsupportedError,
)
from mediaprogress.core.progress.models import ControlAction, ControlState
from mediaprogress.core.progress.store import JobStateStore

logger = logging.getLogger(__name__)

ControlCall = Callable[[], Union[Awaitable[Any], Any]]


@dataclass(frozen=True, slots=True)
class ControlResult:
    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> ControlResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> ControlResult:
        return cls(success=False, error=error)


@dataclass(frozen=True, slots=True)
class FireAndForget:
    """The job cannot be controlled once started."""


@dataclass(frozen=True, slots=True)
class Stoppable:
    stop: ControlCall


@dataclass(frozen=True, slots=True)
class Pausable:
    stop: ControlCall
    pause: ControlCall
    resume: ControlCall


JobControl = Union[FireAndForget, Stoppable, Pausable]

FIRE_AND_FORGET = FireAndForget()


def supports(control: JobControl, action: ControlAction) -> bool:
    if action is ControlAction.STOP:
        return isinstance(control, (Stoppable, Pausable))
    return isinstance(control, Pausable)


def coerce_result(raw: Any) -> ControlResult:
    """Accept the result shapes jobs actually return."""
    if isinstance(raw, ControlResult):
        return raw
    if raw is None:
        return ControlResult.ok()
    if isinstance(raw, bool):
        return ControlResult.ok() if raw else ControlResult.failed("refused")
    if isinstance(raw, Mapping):
        if raw.get("success"):
            return ControlResult.ok()
        return ControlResult.failed(str(raw.get("error") or "refused"))
    return ControlResult.failed(f"unexpected control result {raw!r}")


async def invoke(call: ControlCall) -> ControlResult:
    """Run a control call; a call that raises becomes a failed result."""
    try:
        raw = call()
        if inspect.isawaitable(raw):
            raw = await raw
    except Exception as e:  # noqa: BLE001
        logger.exception("Control call raised")
        return ControlResult.failed(str(e) or type(e).__name__)
    return coerce_result(raw)


class ControlDispatcher:
    """Owns the control capabilities of every slot and reconciles their flags."""

    def __init__(self, store: JobStateStore) -> None:
        self._store = store
        self._controls: dict[str, JobControl] = {}

    def register_control(self, slot: str, control: JobControl) -> None:
        self._check_slot(slot, "register")
        self._controls[slot] = control

    def unregister_control(self, slot: str) -> None:
        self._controls.pop(slot, None)

    def control_for(self, slot: str) -> JobControl:
        return self._controls.get(slot, FIRE_AND_FORGET)

    def supports(self, slot: str, action: ControlAction) -> bool:
        return supports(self.control_for(slot), action)

    def state(self, slot: str) -> ControlState:
        return self._store.control_state(slot)

    def stopping(self, slot: str) -> bool:
        return self.state(slot).stopping

    def paused(self, slot: str) -> bool:
        return self.state(slot).paused

    async def request_stop(self, slot: str) -> None:
        state = self._store.control_state(slot)
        if state.stopping:
            return
        self._reject_if_busy(slot, state, ControlAction.STOP)
        control = self._stoppable(slot)
        self._store.update_control(slot, replace(state, stopping=True, pending=ControlAction.STOP))
        result = await invoke(control.stop)

        current = self._store.control_state(slot)
        if result.success:
            if current.pending is ControlAction.STOP:
                self._store.update_control(slot, replace(current, pending=None))
            logger.info("Stop confirmed", extra={"slot": slot, "action": "stop"})
            return
        if current.pending is ControlAction.STOP:
            self._store.update_control(slot, replace(current, stopping=False, pending=None))
        self._fail(slot, ControlAction.STOP, result)

    async def request_pause(self, slot: str) -> None:
        state = self._store.control_state(slot)
        if state.paused or state.pending is ControlAction.PAUSE:
            return
        self._reject_if_busy(slot, state, ControlAction.PAUSE)
        control = self._pausable(slot, ControlAction.PAUSE)
        await self._toggle_pause(slot, state, control.pause, ControlAction.PAUSE, paused=True)

    async def request_resume(self, slot: str) -> None:
        state = self._store.control_state(slot)
        if not state.paused or state.pending is ControlAction.RESUME:
            return
        self._reject_if_busy(slot, state, ControlAction.RESUME)
        control = self._pausable(slot, ControlAction.RESUME)
        await self._toggle_pause(slot, state, control.resume, ControlAction.RESUME, paused=False)

    async def _toggle_pause(
        self,
        slot: str,
        state: ControlState,
        call: ControlCall,
        action: ControlAction,
        *,
        paused: bool,
    ) -> None:
        self._store.update_control(slot, replace(state, pending=action))
        result = await invoke(call)

        current = self._store.control_state(slot)
        if current.pending is not action:
            # Slot cleared or taken by another job while the request was in flight.
            if not result.success:
                self._fail(slot, action, result)
            return
        if result.success:
            self._store.update_control(slot, replace(current, paused=paused, pending=None))
            logger.info("Control confirmed", extra={"slot": slot, "action": action.value})
            return
        self._store.update_control(slot, replace(current, pending=None))
        self._fail(slot, action, result)

    def _reject_if_busy(self, slot: str, state: ControlState, action: ControlAction) -> None:
        if state.stopping:
            raise ControlRejectedError(
                f"Cannot {action.value} {slot}: stop requested", slot=slot, action=action.value
            )
        if state.pending is not None:
            raise ControlRejectedError(
                f"Cannot {action.value} {slot}: {state.pending.value} in flight",
                slot=slot,
                action=action.value,
            )

    def _stoppable(self, slot: str) -> Stoppable | Pausable:
        self._check_slot(slot, ControlAction.STOP.value)
        control = self.control_for(slot)
        if isinstance(control, (Stoppable, Pausable)):
            return control
        raise self._unsupported(slot, ControlAction.STOP)

    def _pausable(self, slot: str, action: ControlAction) -> Pausable:
        self._check_slot(slot, action.value)
        control = self.control_for(slot)
        if isinstance(control, Pausable):
            return control
        raise self._unsupported(slot, action)

    @staticmethod
    def _unsupported(slot: str, action: ControlAction) -> ControlUnsupportedError:
        return ControlUnsupportedError(
            f"Job in {slot} does not support {action.value}", slot=slot, action=action.value
        )

    def _check_slot(self, slot: str, action: str) -> None:
        if slot not in self._store.slots():
            raise ControlUnsupportedError(f"Unknown slot {slot!r}", slot=slot, action=action)

    @staticmethod
    def _fail(slot: str, action: ControlAction, result: ControlResult) -> None:
        logger.warning(
            "Control request failed: %s",
            result.error,
            extra={"slot": slot, "action": action.value},
        )
        raise ControlRequestError(
            f"Could not {action.value} {slot}: {result.error or 'refused'}",
            slot=slot,
            action=action.value,
        )
