from __future__ import annotations

import asyncio

import pytest

from mediaprogress.core.errors import ControlRejectedError, ControlRequestError, ControlUnsupportedError
from mediaprogress.core.events import EventBus
from mediaprogress.core.progress.control import (
    ControlDispatcher,
    ControlResult,
    Pausable,
    Stoppable,
    coerce_result,
)
from mediaprogress.core.progress.models import ControlAction, ControlState, JobProgress, Phase
from mediaprogress.core.progress.store import JobStateStore
from mediaprogress.core.progress.timers import VirtualTimers


def _setup() -> tuple[ControlDispatcher, JobStateStore, VirtualTimers]:
    timers = VirtualTimers(start_ms=1_000_000)
    store = JobStateStore(EventBus(), timers)
    store.set_slot("adulte-game", JobProgress(phase=Phase.RUNNING, job_kind="adulte-game-updates", total=40, current=3))
    return ControlDispatcher(store), store, timers


class _Job:
    """Controllable job double; answers can be gated to observe in-flight state."""

    def __init__(self, answer: object = None) -> None:
        self.answer = answer
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def _call(self, name: str) -> object:
        self.calls.append(name)
        if self.gate is not None:
            await self.gate.wait()
        return self.answer

    def stop(self):
        return self._call("stop")

    def pause(self):
        return self._call("pause")

    def resume(self):
        return self._call("resume")

    def pausable(self) -> Pausable:
        return Pausable(stop=self.stop, pause=self.pause, resume=self.resume)


def test_refused_stop_rolls_back_stopping() -> None:
    dispatcher, store, _ = _setup()
    job = _Job(answer={"success": False, "error": "busy writing"})
    dispatcher.register_control("adulte-game", job.pausable())
    seen: list[bool] = []

    async def scenario() -> None:
        job.gate = asyncio.Event()
        task = asyncio.create_task(dispatcher.request_stop("adulte-game"))
        await asyncio.sleep(0)
        seen.append(dispatcher.stopping("adulte-game"))
        job.gate.set()
        with pytest.raises(ControlRequestError) as info:
            await task
        assert "busy writing" in str(info.value)

    asyncio.run(scenario())

    assert seen == [True]
    assert dispatcher.state("adulte-game").is_idle
    assert store.get_slot("adulte-game") is not None


def test_confirmed_stop_sticks_until_slot_clears() -> None:
    dispatcher, store, timers = _setup()
    job = _Job(answer=True)
    dispatcher.register_control("adulte-game", job.pausable())

    asyncio.run(dispatcher.request_stop("adulte-game"))
    asyncio.run(dispatcher.request_stop("adulte-game"))

    assert job.calls == ["stop"]
    assert dispatcher.stopping("adulte-game")
    with pytest.raises(ControlRejectedError):
        asyncio.run(dispatcher.request_pause("adulte-game"))

    store.set_slot(
        "adulte-game", JobProgress(phase=Phase.COMPLETE, job_kind="adulte-game-updates", total=40, current=12)
    )
    assert dispatcher.stopping("adulte-game")
    timers.advance(3000)

    assert store.get_slot("adulte-game") is None
    assert not dispatcher.stopping("adulte-game")


def test_pause_flips_only_on_confirmation_then_resume() -> None:
    dispatcher, _, _ = _setup()
    job = _Job(answer=ControlResult.ok())
    dispatcher.register_control("adulte-game", job.pausable())
    mid: list[tuple[bool, ControlAction | None]] = []

    async def scenario() -> None:
        job.gate = asyncio.Event()
        task = asyncio.create_task(dispatcher.request_pause("adulte-game"))
        await asyncio.sleep(0)
        state = dispatcher.state("adulte-game")
        mid.append((state.paused, state.pending))
        job.gate.set()
        await task

    asyncio.run(scenario())

    assert mid == [(False, ControlAction.PAUSE)]
    assert dispatcher.paused("adulte-game")

    job.gate = None
    asyncio.run(dispatcher.request_resume("adulte-game"))

    assert not dispatcher.paused("adulte-game")
    assert job.calls == ["pause", "resume"]


def test_second_request_while_pending_is_rejected() -> None:
    dispatcher, _, _ = _setup()
    job = _Job(answer=None)
    dispatcher.register_control("adulte-game", job.pausable())

    async def scenario() -> None:
        job.gate = asyncio.Event()
        task = asyncio.create_task(dispatcher.request_pause("adulte-game"))
        await asyncio.sleep(0)
        await dispatcher.request_pause("adulte-game")  # same request in flight: no-op
        job.gate.set()
        await task

    asyncio.run(scenario())

    assert job.calls == ["pause"]


def test_pause_is_rejected_while_stop_is_in_flight() -> None:
    dispatcher, _, _ = _setup()
    job = _Job(answer=True)
    dispatcher.register_control("adulte-game", job.pausable())

    async def scenario() -> None:
        job.gate = asyncio.Event()
        task = asyncio.create_task(dispatcher.request_stop("adulte-game"))
        await asyncio.sleep(0)
        with pytest.raises(ControlRejectedError):
            await dispatcher.request_pause("adulte-game")
        job.gate.set()
        await task

    asyncio.run(scenario())

    assert job.calls == ["stop"]


def test_unsupported_actions_raise() -> None:
    dispatcher, _, _ = _setup()
    dispatcher.register_control("adulte-game", Stoppable(stop=lambda: None))

    with pytest.raises(ControlUnsupportedError):
        asyncio.run(dispatcher.request_pause("adulte-game"))
    with pytest.raises(ControlUnsupportedError):
        asyncio.run(dispatcher.request_stop("cloud"))  # fire-and-forget by default
    with pytest.raises(ControlUnsupportedError):
        asyncio.run(dispatcher.request_stop("music"))

    assert dispatcher.supports("adulte-game", ControlAction.STOP)
    assert not dispatcher.supports("cloud", ControlAction.STOP)


def test_raising_control_call_becomes_request_error() -> None:
    dispatcher, _, _ = _setup()

    def explode() -> None:
        raise OSError("pipe closed")

    dispatcher.register_control("adulte-game", Stoppable(stop=explode))

    with pytest.raises(ControlRequestError) as info:
        asyncio.run(dispatcher.request_stop("adulte-game"))

    assert "pipe closed" in str(info.value)
    assert not dispatcher.stopping("adulte-game")


def test_slots_are_controlled_independently() -> None:
    dispatcher, store, _ = _setup()
    store.set_slot("manga", JobProgress(phase=Phase.RUNNING, job_kind="manga-enrichment", total=5, current=1))
    game_job = _Job(answer=True)
    manga_job = _Job(answer=True)
    dispatcher.register_control("adulte-game", game_job.pausable())
    dispatcher.register_control("manga", manga_job.pausable())
    in_flight: list[tuple[ControlState, ControlState]] = []
    after_manga: list[tuple[ControlState, ControlState]] = []

    async def scenario() -> None:
        game_job.gate = asyncio.Event()
        manga_job.gate = asyncio.Event()
        stop = asyncio.create_task(dispatcher.request_stop("adulte-game"))
        pause = asyncio.create_task(dispatcher.request_pause("manga"))
        await asyncio.sleep(0)
        in_flight.append((dispatcher.state("adulte-game"), dispatcher.state("manga")))
        manga_job.gate.set()
        await pause
        after_manga.append((dispatcher.state("adulte-game"), dispatcher.state("manga")))
        game_job.gate.set()
        await stop

    asyncio.run(scenario())

    assert in_flight == [
        (
            ControlState(stopping=True, pending=ControlAction.STOP),
            ControlState(pending=ControlAction.PAUSE),
        )
    ]
    assert after_manga == [
        (ControlState(stopping=True, pending=ControlAction.STOP), ControlState(paused=True)),
    ]
    assert dispatcher.state("adulte-game") == ControlState(stopping=True)
    assert dispatcher.paused("manga")
    assert not dispatcher.stopping("manga")


def test_coerce_result_shapes() -> None:
    assert coerce_result(None).success
    assert coerce_result({"success": True}).success
    assert coerce_result(False) == ControlResult.failed("refused")
    assert coerce_result({"success": False}).error == "refused"
    assert not coerce_result("yes").success


def test_stop_is_rejected_while_pause_is_in_flight() -> None:
    dispatcher, _, _ = _setup()
    job = _Job(answer=True)
    dispatcher.register_control("adulte-game", job.pausable())

    async def scenario() -> None:
        job.gate = asyncio.Event()
        pause = asyncio.create_task(dispatcher.request_pause("adulte-game"))
        await asyncio.sleep(0)
        with pytest.raises(ControlRejectedError):
            await dispatcher.request_stop("adulte-game")
        job.gate.set()
        await pause

    asyncio.run(scenario())

    assert job.calls == ["pause"]
    assert dispatcher.state("adulte-game") == ControlState(paused=True)

    job.gate = None
    asyncio.run(dispatcher.request_resume("adulte-game"))

    assert job.calls == ["pause", "resume"]
    assert not dispatcher.paused("adulte-game")


def test_confirmed_stop_on_empty_slot_does_not_leak_into_next_job() -> None:
    dispatcher, store, _ = _setup()
    store.clear_slot("adulte-game")
    job = _Job(answer=True)
    dispatcher.register_control("adulte-game", job.pausable())

    asyncio.run(dispatcher.request_stop("adulte-game"))
    assert dispatcher.stopping("adulte-game")

    store.set_slot("adulte-game", JobProgress(phase=Phase.START, job_kind="adulte-game-updates", total=9))

    assert dispatcher.state("adulte-game").is_idle
    asyncio.run(dispatcher.request_pause("adulte-game"))
    assert dispatcher.paused("adulte-game")
