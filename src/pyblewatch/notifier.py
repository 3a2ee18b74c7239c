"""Fan-out of watcher events to subscribers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pyblewatch.events import EventKind, WatcherEvent

_logger = logging.getLogger(__name__)

EventCallback = Callable[[WatcherEvent], None]


@dataclass(frozen=True, slots=True)
class _Subscription:
    callback: EventCallback
    kinds: frozenset[EventKind] | None

    def wants(self, kind: EventKind) -> bool:
        return self.kinds is None or kind in self.kinds


class Notifier:
    """Deliver :class:`WatcherEvent` values to zero or more subscribers.

    Subscribers run synchronously in subscription order on the emitting
    thread.  A subscriber that raises is logged and skipped; the remaining
    subscribers still receive the event.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        callback: EventCallback,
        *,
        kinds: Iterable[EventKind] | None = None,
    ) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it.

        Parameters
        ----------
        callback
            Called with every matching event.
        kinds
            Restrict delivery to these event kinds.  ``None`` means all.
        """
        subscription = _Subscription(callback, frozenset(kinds) if kinds is not None else None)
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                self._subscriptions = [cand for cand in self._subscriptions if cand is not subscription]

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def emit(self, event: WatcherEvent) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            if not subscription.wants(event.kind):
                continue
            try:
                subscription.callback(event)
            except Exception:
                _logger.exception("Subscriber %r failed handling %s", subscription.callback, event.kind)
