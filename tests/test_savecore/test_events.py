import logging
import pytest
from enum import Enum, auto
from savecore.core.events import EventBus, Event

class MockEvent(Enum):
    TEST_EVENT = auto()
    OTHER_EVENT = auto()

def test_event_bus_subscribe_publish(event_bus):
    received = []
    def handler(event):
        received.append(event)

    event_bus.subscribe(MockEvent.TEST_EVENT, handler)
    event_bus.publish(MockEvent.TEST_EVENT, data="test")

    assert len(received) == 1
    assert received[0].type == MockEvent.TEST_EVENT
    assert received[0].data["data"] == "test"
    assert received[0]["data"] == "test"
    assert received[0].get("missing", 5) == 5

def test_event_bus_unsubscribe(event_bus):
    received = []
    def handler(event):
        received.append(event)

    event_bus.subscribe(MockEvent.TEST_EVENT, handler)
    event_bus.unsubscribe(MockEvent.TEST_EVENT, handler)
    event_bus.publish(MockEvent.TEST_EVENT)

    assert len(received) == 0

def test_unsubscribe_bound_method(event_bus):
    class Listener:
        def __init__(self):
            self.count = 0
        def on_event(self, event):
            self.count += 1

    listener = Listener()
    event_bus.subscribe(MockEvent.TEST_EVENT, listener.on_event)
    event_bus.publish(MockEvent.TEST_EVENT)
    event_bus.unsubscribe(MockEvent.TEST_EVENT, listener.on_event)
    event_bus.publish(MockEvent.TEST_EVENT)

    assert listener.count == 1

def test_event_priority(event_bus):
    order = []

    event_bus.subscribe(MockEvent.TEST_EVENT, lambda e: order.append("low"), priority=1, weak=False)
    event_bus.subscribe(MockEvent.TEST_EVENT, lambda e: order.append("high"), priority=10, weak=False)
    event_bus.subscribe(MockEvent.TEST_EVENT, lambda e: order.append("normal"), priority=5, weak=False)

    event_bus.publish(MockEvent.TEST_EVENT)

    assert order == ["high", "normal", "low"]

def test_same_priority_keeps_subscription_order(event_bus):
    order = []

    event_bus.subscribe(MockEvent.TEST_EVENT, lambda e: order.append("first"), weak=False)
    event_bus.subscribe(MockEvent.TEST_EVENT, lambda e: order.append("second"), weak=False)
    event_bus.subscribe(MockEvent.TEST_EVENT, lambda e: order.append("third"), weak=False)

    event_bus.publish(MockEvent.TEST_EVENT)

    assert order == ["first", "second", "third"]

def test_event_consumption(event_bus):
    received = []

    def consumer(event):
        received.append("consumer")
        event.consume()

    def later_handler(event):
        received.append("later")

    event_bus.subscribe(MockEvent.TEST_EVENT, consumer, priority=10)
    event_bus.subscribe(MockEvent.TEST_EVENT, later_handler, priority=5)

    event = event_bus.publish(MockEvent.TEST_EVENT)

    assert received == ["consumer"]
    assert event.consumed

def test_one_shot_handler(event_bus):
    received = []
    def handler(event):
        received.append(event)

    event_bus.subscribe(MockEvent.TEST_EVENT, handler, one_shot=True)
    event_bus.publish(MockEvent.TEST_EVENT)
    event_bus.publish(MockEvent.TEST_EVENT)

    assert len(received) == 1
    assert not event_bus.has_subscribers(MockEvent.TEST_EVENT)

def test_weak_handler_removed_when_deleted(event_bus):
    received = []
    def handler(event):
        received.append(event)

    event_bus.subscribe(MockEvent.TEST_EVENT, handler)
    assert event_bus.subscriber_count(MockEvent.TEST_EVENT) == 1

    del handler
    event_bus.publish(MockEvent.TEST_EVENT)

    assert received == []
    assert event_bus.subscriber_count(MockEvent.TEST_EVENT) == 0

def test_events_published_during_dispatch_are_queued(event_bus):
    order = []

    def first(event):
        order.append("test:first")
        event_bus.publish(MockEvent.OTHER_EVENT)
        order.append("test:first:after-publish")

    def second(event):
        order.append("test:second")

    def other(event):
        order.append("other")

    event_bus.subscribe(MockEvent.TEST_EVENT, first, priority=10)
    event_bus.subscribe(MockEvent.TEST_EVENT, second, priority=5)
    event_bus.subscribe(MockEvent.OTHER_EVENT, other)

    event_bus.publish(MockEvent.TEST_EVENT)

    # Nested event is delivered after the current dispatch, before publish returns
    assert order == ["test:first", "test:first:after-publish", "test:second", "other"]

def test_handler_exception_is_logged_not_raised(event_bus, caplog):
    received = []

    def broken(event):
        raise RuntimeError("boom")

    def healthy(event):
        received.append(event)

    event_bus.subscribe(MockEvent.TEST_EVENT, broken, priority=10)
    event_bus.subscribe(MockEvent.TEST_EVENT, healthy)

    with caplog.at_level(logging.ERROR, logger="savecore.core.events"):
        event_bus.publish(MockEvent.TEST_EVENT)

    assert len(received) == 1
    assert "Error in event handler" in caplog.text

def test_clear(event_bus):
    event_bus.subscribe(MockEvent.TEST_EVENT, lambda e: None, weak=False)
    event_bus.subscribe(MockEvent.OTHER_EVENT, lambda e: None, weak=False)

    event_bus.clear(MockEvent.TEST_EVENT)
    assert not event_bus.has_subscribers(MockEvent.TEST_EVENT)
    assert event_bus.has_subscribers(MockEvent.OTHER_EVENT)

    event_bus.clear()
    assert not event_bus.has_subscribers(MockEvent.OTHER_EVENT)

def test_publish_event_object(event_bus):
    received = []
    def handler(event):
        received.append(event)

    event_bus.subscribe(MockEvent.TEST_EVENT, handler)
    event = Event(type=MockEvent.TEST_EVENT, data={"slot": 2})
    event_bus.publish_event(event)

    assert received == [event]
