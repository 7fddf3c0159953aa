"""Synchronous, thread-safe publish/subscribe for tail notifications."""

import logging
import threading
import uuid
from typing import NamedTuple

from tailwatch.events.models import Event, EventHandler

logger = logging.getLogger(__name__)


class _Subscription(NamedTuple):
    subscription_id: str
    handler: EventHandler


class EventBus:
    """
    Routes engine events to the handlers registered for their type.

    Delivery is synchronous: ``publish()`` calls every handler on the
    publishing thread before returning, which is what lets an engine promise
    that batches never overlap. A handler that raises is logged and skipped.

    Thread Safety:
        - subscribe/unsubscribe/publish may be called from any thread
        - a handler may unsubscribe itself (or others) while being called;
          the change takes effect from the next publish
        - per event type, handlers run in the order they subscribed

    Example:
        bus = EventBus()
        sub_id = bus.subscribe(LINES_ADDED, lambda event: print(event.data["lines"]))
        ...
        bus.unsubscribe(sub_id)
    """

    def __init__(self) -> None:
        self._by_type: dict[str, list[_Subscription]] = {}
        # subscription_id -> event_type, so unsubscribe needs no scan
        self._index: dict[str, str] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """
        Register ``handler`` for events of ``event_type``.

        Returns:
            Opaque id to pass to unsubscribe()
        """
        subscription_id = uuid.uuid4().hex

        with self._lock:
            self._by_type[event_type] = [
                *self._by_type.get(event_type, ()),
                _Subscription(subscription_id, handler),
            ]
            self._index[subscription_id] = event_type

        logger.debug(
            f"Subscribed to {event_type}",
            extra={"event_type": event_type, "subscription_id": subscription_id},
        )
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Drop a subscription.

        Returns:
            False if the id is unknown (already removed, or never issued)
        """
        with self._lock:
            event_type = self._index.pop(subscription_id, None)
            if event_type is None:
                found = False
            else:
                self._by_type[event_type] = [
                    sub for sub in self._by_type[event_type] if sub.subscription_id != subscription_id
                ]
                found = True

        if not found:
            logger.debug(f"Unknown subscription {subscription_id}")
        return found

    def publish(self, event: Event) -> int:
        """
        Deliver ``event`` to its subscribers, in order, on this thread.

        Handler exceptions are logged and never reach the publisher.

        Returns:
            Number of handlers that completed without raising
        """
        with self._lock:
            # Lists are replaced, never mutated, so this is a stable snapshot
            subscribers = self._by_type.get(event.event_type, ())

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.handler(event)
            except Exception as e:
                logger.error(
                    f"Handler for {event.event_type} failed: {e}",
                    extra={
                        "event_type": event.event_type,
                        "subscription_id": subscription.subscription_id,
                        "source": event.source,
                        "error_type": type(e).__name__,
                    },
                )
            else:
                delivered += 1
        return delivered

    def get_subscriber_count(self, event_type: str | None = None) -> int:
        """Count subscriptions for one event type, or for all of them."""
        with self._lock:
            if event_type is None:
                return len(self._index)
            return len(self._by_type.get(event_type, ()))
