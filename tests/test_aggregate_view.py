from __future__ import annotations

from mediaprogress.core.events import EventBus
from mediaprogress.core.progress.aggregate import AggregateView
from mediaprogress.core.progress.models import JobProgress, Phase
from mediaprogress.core.progress.store import JobStateStore
from mediaprogress.core.progress.timers import VirtualTimers


def _view() -> tuple[AggregateView, JobStateStore]:
    store = JobStateStore(EventBus(), VirtualTimers(start_ms=1_000_000))
    return AggregateView(store), store


def test_idle_store_is_neither_active_nor_completed() -> None:
    view, _ = _view()

    assert not view.has_active_operation()
    assert not view.all_completed()
    assert view.active_slots() == []


def test_flag_alone_counts_as_active() -> None:
    view, store = _view()

    store.set_flag("mal-sync", True)

    assert view.has_active_operation()
    assert not view.all_completed()


def test_all_completed_requires_every_slot_terminal_and_no_flags() -> None:
    view, store = _view()
    store.set_slot("anime", JobProgress(phase=Phase.COMPLETE, job_kind="sync", total=2, current=2))
    store.set_slot("cloud", JobProgress(phase=Phase.RUNNING, job_kind="cloud-sync", total=3, current=1))

    assert not view.all_completed()

    store.set_slot("cloud", JobProgress(phase=Phase.ERROR, job_kind="cloud-sync", error="offline"))
    assert view.all_completed()
    assert view.active_slots() == ["anime", "cloud"]

    store.set_flag("translation", True)
    assert not view.all_completed()
