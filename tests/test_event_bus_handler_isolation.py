from __future__ import annotations

from dataclasses import dataclass

from mediaprogress.core.events.event_bus import EventBus


@dataclass(frozen=True)
class _Evt:
    value: int


def test_failing_view_handler_does_not_block_orchestrator() -> None:
    bus = EventBus()
    received: list[int] = []

    def crashing_view(_evt: _Evt) -> None:
        raise RuntimeError("view gone")

    def store_handler(evt: _Evt) -> None:
        received.append(evt.value)

    bus.subscribe(_Evt, crashing_view)
    bus.subscribe(_Evt, store_handler)

    delivered = bus.publish(_Evt(7))

    assert received == [7]
    assert delivered == 1


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    received: list[int] = []

    sub = bus.subscribe(_Evt, lambda e: received.append(e.value))
    bus.publish(_Evt(1))
    assert bus.unsubscribe(sub)
    assert not bus.unsubscribe(sub)
    bus.publish(_Evt(2))

    assert received == [1]


def test_subscribe_many_keeps_order() -> None:
    bus = EventBus()
    calls: list[str] = []

    bus.subscribe_many([(_Evt, lambda e: calls.append("a")), (_Evt, lambda e: calls.append("b"))])
    bus.publish(_Evt(0))

    assert calls == ["a", "b"]


def test_weak_subscription_is_dropped_with_owner() -> None:
    bus = EventBus()
    received: list[int] = []

    class Owner:
        def on_evt(self, evt: _Evt) -> None:
            received.append(evt.value)

    owner = Owner()
    bus.subscribe_weak(_Evt, owner.on_evt)
    bus.publish(_Evt(1))
    del owner
    bus.publish(_Evt(2))
    bus.publish(_Evt(3))

    assert received == [1]
    assert bus.subscriber_count(_Evt) == 0
