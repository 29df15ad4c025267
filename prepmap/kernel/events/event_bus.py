"""
Event bus for cache-status and mutation notifications.

Keeps a bounded, append-only history of published events and fans each event
out to subscribers synchronously, in subscription order.
"""

from collections import deque
from typing import Callable, Deque, List, Optional, Tuple, Type

from prepmap.kernel.events.event_types import BaseEvent
from prepmap.logging_config import get_logger

logger = get_logger(__name__)

Subscriber = Callable[[BaseEvent], None]


class EventBus:
    """
    Publish/subscribe hub used by the cache layer and the query facade.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(on_event, CacheStatusChanged)
        bus.publish(CacheStatusChanged(key="roles", status="stale"))
        unsubscribe()
    """

    def __init__(self, history_size: int = 256):
        self._subscribers: List[Tuple[Subscriber, Optional[Type[BaseEvent]]]] = []
        self._history: Deque[BaseEvent] = deque(maxlen=history_size)

    def subscribe(
        self,
        callback: Subscriber,
        event_type: Optional[Type[BaseEvent]] = None,
    ) -> Callable[[], None]:
        """
        Register a callback, optionally filtered to one event type (and its subclasses).

        Returns:
            A function that removes the subscription. Calling it twice is harmless.
        """
        entry = (callback, event_type)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: BaseEvent) -> None:
        """Record the event and deliver it. A failing subscriber does not stop delivery."""
        self._history.append(event)
        for callback, event_type in list(self._subscribers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Subscriber failed handling %s", type(event).__name__,
                    extra={"subscriber": getattr(callback, "__name__", repr(callback))},
                )

    def history(
        self,
        event_type: Optional[Type[BaseEvent]] = None,
        limit: int = 100,
    ) -> List[BaseEvent]:
        """Published events, newest first."""
        events = [e for e in reversed(self._history) if event_type is None or isinstance(e, event_type)]
        return events[:limit]
