from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from threading import RLock
from typing import Any, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent")
Handler = Callable[[Any], None]


class Subscription:
    """Handle returned by ``subscribe``; pass it to ``unsubscribe``.

    A weak subscription resolves its handler on every delivery and reports
    itself dead once the owning object is gone.
    """

    __slots__ = ("event_type", "_handler", "_weak")

    def __init__(self, event_type: type[Any], handler: Handler | None, weak: WeakMethod | None = None) -> None:
        self.event_type = event_type
        self._handler = handler
        self._weak = weak

    def resolve(self) -> Handler | None:
        if self._weak is None:
            return self._handler
        return self._weak()

    def __repr__(self) -> str:
        kind = "weak" if self._weak is not None else "strong"
        return f"Subscription({self.event_type.__name__}, {kind})"


class EventBus:
    """Synchronous in-process event bus between job emitters, the orchestrator and views.

    Subscribe/unsubscribe/publish are thread-safe. Handlers run in the publishing
    thread, in subscription order, outside the lock; the orchestrator expects to
    be published to from its own loop thread (the Qt relay takes care of that).
    A failing handler is logged and the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._subs: dict[type[Any], list[Subscription]] = {}

    def _add(self, sub: Subscription) -> Subscription:
        with self._lock:
            self._subs.setdefault(sub.event_type, []).append(sub)
        return sub

    def subscribe(self, event_type: type[TEvent], handler: Callable[[TEvent], None]) -> Subscription:
        return self._add(Subscription(event_type, handler))

    def subscribe_many(self, handlers: Iterable[tuple[type[Any], Handler]]) -> list[Subscription]:
        """Register a handler table in order; returns the subscriptions in the same order."""
        return [self.subscribe(event_type, handler) for event_type, handler in handlers]

    def subscribe_weak(self, event_type: type[TEvent], handler: Callable[[TEvent], None]) -> Subscription:
        """Hold a bound method weakly, so a view going away drops its subscription.

        Plain functions and lambdas cannot be weakly bound and are held strongly.
        """
        try:
            weak = WeakMethod(handler)  # type: ignore[arg-type]
        except TypeError:
            return self.subscribe(event_type, handler)
        return self._add(Subscription(event_type, None, weak))

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            subs = self._subs.get(subscription.event_type, [])
            if subscription not in subs:
                return False
            subs.remove(subscription)
            if not subs:
                del self._subs[subscription.event_type]
            return True

    def subscriber_count(self, event_type: type[Any]) -> int:
        with self._lock:
            return len(self._subs.get(event_type, ()))

    def publish(self, event: object) -> int:
        """Deliver ``event`` to subscribers of its exact type; return how many handlers succeeded."""
        with self._lock:
            subs = tuple(self._subs.get(type(event), ()))
        delivered = 0
        for sub in subs:
            handler = sub.resolve()
            if handler is None:
                self.unsubscribe(sub)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed for %s",
                    type(event).__name__,
                    extra={"event": type(event).__name__},
                )
                continue
            delivered += 1
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._subs.clear()
