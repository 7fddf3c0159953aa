"""Unit tests for EventBus implementation."""

import dataclasses
import threading
import unittest
from datetime import datetime

from tailwatch.events import ERROR_OCCURRED, LINES_ADDED, STATE_CHANGED, TAIL_EVENT_TYPES, EventBus
from tailwatch.events.models import Event


def _event(event_type: str = LINES_ADDED, **data) -> Event:
    return Event(event_type=event_type, timestamp=datetime.now(), source="/tmp/app.log", data=data)


class TestEventBusBasics(unittest.TestCase):
    """Test basic EventBus functionality."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.bus = EventBus()

    def test_subscribe_returns_unique_ids(self) -> None:
        sub_id1 = self.bus.subscribe(LINES_ADDED, lambda event: None)
        sub_id2 = self.bus.subscribe(LINES_ADDED, lambda event: None)

        self.assertIsInstance(sub_id1, str)
        self.assertNotEqual(sub_id1, sub_id2)
        self.assertEqual(self.bus.get_subscriber_count(LINES_ADDED), 2)

    def test_unsubscribe(self) -> None:
        sub_id = self.bus.subscribe(LINES_ADDED, lambda event: None)

        self.assertTrue(self.bus.unsubscribe(sub_id))
        self.assertFalse(self.bus.unsubscribe(sub_id))
        self.assertEqual(self.bus.get_subscriber_count(), 0)

    def test_publish_only_to_matching_type(self) -> None:
        received: list[str] = []
        self.bus.subscribe(LINES_ADDED, lambda event: received.append("lines"))
        self.bus.subscribe(ERROR_OCCURRED, lambda event: received.append("error"))

        self.bus.publish(_event(LINES_ADDED))

        self.assertEqual(received, ["lines"])

    def test_publish_in_subscription_order(self) -> None:
        received: list[int] = []
        for i in range(5):
            self.bus.subscribe(STATE_CHANGED, lambda event, i=i: received.append(i))

        self.bus.publish(_event(STATE_CHANGED))

        self.assertEqual(received, [0, 1, 2, 3, 4])

    def test_publish_without_subscribers(self) -> None:
        self.bus.publish(_event(ERROR_OCCURRED))

    def test_handler_exception_isolated(self) -> None:
        """A failing handler neither stops later handlers nor reaches the publisher."""
        received: list[str] = []

        def failing(event: Event) -> None:
            raise ValueError("boom")

        self.bus.subscribe(LINES_ADDED, failing)
        self.bus.subscribe(LINES_ADDED, lambda event: received.append("ok"))

        delivered = self.bus.publish(_event(LINES_ADDED))

        self.assertEqual(received, ["ok"])
        self.assertEqual(delivered, 1)

    def test_unsubscribe_during_publish(self) -> None:
        received: list[str] = []
        sub_ids: list[str] = []

        def once(event: Event) -> None:
            received.append("once")
            self.bus.unsubscribe(sub_ids[0])

        sub_ids.append(self.bus.subscribe(LINES_ADDED, once))

        self.bus.publish(_event(LINES_ADDED))
        self.bus.publish(_event(LINES_ADDED))

        self.assertEqual(received, ["once"])

    def test_payload_delivered(self) -> None:
        received: list[Event] = []
        self.bus.subscribe(LINES_ADDED, received.append)

        self.bus.publish(_event(LINES_ADDED, lines=("a", "b")))

        self.assertEqual(received[0].data["lines"], ("a", "b"))
        self.assertEqual(received[0].source, "/tmp/app.log")

    def test_event_types_documented(self) -> None:
        self.assertEqual(set(TAIL_EVENT_TYPES), {LINES_ADDED, STATE_CHANGED, ERROR_OCCURRED})


class TestEventBusThreadSafety(unittest.TestCase):
    """Test concurrent use of EventBus."""

    def test_concurrent_publish(self) -> None:
        bus = EventBus()
        count = 0
        lock = threading.Lock()

        def handler(event: Event) -> None:
            nonlocal count
            with lock:
                count += 1

        bus.subscribe(LINES_ADDED, handler)

        def publisher() -> None:
            for _ in range(100):
                bus.publish(_event(LINES_ADDED))

        threads = [threading.Thread(target=publisher) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(count, 1000)

    def test_concurrent_subscribe(self) -> None:
        bus = EventBus()

        def subscriber() -> None:
            for _ in range(50):
                bus.subscribe(STATE_CHANGED, lambda event: None)

        threads = [threading.Thread(target=subscriber) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(bus.get_subscriber_count(STATE_CHANGED), 500)


class TestEventModel(unittest.TestCase):
    """Test the Event dataclass."""

    def test_fields(self) -> None:
        self.assertEqual(
            [f.name for f in dataclasses.fields(Event)], ["event_type", "timestamp", "source", "data"]
        )

    def test_is_immutable(self) -> None:
        event = _event(lines=())
        with self.assertRaises(dataclasses.FrozenInstanceError):
            event.source = "/tmp/other.log"


if __name__ == "__main__":
    unittest.main()
