"""Stream observer registry and fan-out for vmsdbg."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Set

from .protocol import StreamName, stream_name

logger = logging.getLogger(__name__)

StreamObserver = Callable[[Any], None]


class StreamDispatcher:
    """Fan-out stream events to locally registered observers.

    The dispatcher never talks to the network.  It keeps two independent
    pieces of state per stream: the ordered observer list, and whether the
    caller wants the stream subscribed on the service.  The facade uses the
    latter to re-listen after a reconnect.
    """

    def __init__(self) -> None:
        self._observers: Dict[str, List[StreamObserver]] = {}
        self._subscribed: Set[str] = set()

    def add_observer(self, stream: StreamName, observer: StreamObserver) -> None:
        name = stream_name(stream)
        observers = self._observers.setdefault(name, [])
        if observer in observers:
            return
        observers.append(observer)

    def remove_observer(self, stream: StreamName, observer: StreamObserver) -> None:
        name = stream_name(stream)
        observers = self._observers.get(name)
        if not observers:
            return
        try:
            observers.remove(observer)
        except ValueError:
            return
        if not observers:
            del self._observers[name]

    def observers(self, stream: StreamName) -> List[StreamObserver]:
        return list(self._observers.get(stream_name(stream), ()))

    def streams(self) -> List[str]:
        return list(self._observers)

    def dispatch(self, stream: str, event: Any) -> int:
        """Deliver ``event`` to the observers of ``stream`` in registration order.

        Returns the number of observers that handled the event without
        raising.  Streams nobody observes drop the event silently.
        """
        observers = self._observers.get(str(stream))
        if not observers:
            logger.debug("no observers for stream %s; event dropped", stream)
            return 0
        delivered = 0
        for observer in list(observers):
            try:
                observer(event)
            except Exception:
                logger.exception("observer %r for stream %s failed", observer, stream)
                continue
            delivered += 1
        return delivered

    # ------------------------------------------------------------------
    # Subscription state
    # ------------------------------------------------------------------

    def mark_subscribed(self, stream: StreamName) -> None:
        self._subscribed.add(stream_name(stream))

    def mark_unsubscribed(self, stream: StreamName) -> None:
        self._subscribed.discard(stream_name(stream))

    def is_subscribed(self, stream: StreamName) -> bool:
        return stream_name(stream) in self._subscribed

    def subscribed_streams(self) -> List[str]:
        return sorted(self._subscribed)

    def clear(self) -> None:
        self._observers.clear()
        self._subscribed.clear()
