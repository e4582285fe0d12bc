"""Tests for the event queue and deferred delivery."""

import logging
import threading
from unittest.mock import MagicMock, call

from ndviewer_axes.events import (
    AxisActivatedEvent,
    AxisPositionEvent,
    DataUpdatedEvent,
    EventQueue,
)


class TestEventQueue:
    """Test suite for publish / publish_later / drain."""

    def test_publish_is_immediate(self):
        """publish() calls subscribers before returning."""
        queue = EventQueue()
        observer = MagicMock()
        queue.subscribe(DataUpdatedEvent, observer)
        event = DataUpdatedEvent("data")
        queue.publish(event)
        observer.assert_called_once_with(event)

    def test_publish_later_waits_for_drain(self):
        """Deferred events are not delivered until drain()."""
        queue = EventQueue()
        observer = MagicMock()
        queue.subscribe(AxisPositionEvent, observer)

        queue.publish_later(AxisPositionEvent("d", "Z"))
        observer.assert_not_called()
        assert queue.pending == 1

        assert queue.drain() == 1
        observer.assert_called_once_with(AxisPositionEvent("d", "Z"))
        assert queue.pending == 0

    def test_drain_preserves_issue_order(self):
        """Events reach observers in the order they were queued."""
        queue = EventQueue()
        observer = MagicMock()
        queue.subscribe(AxisPositionEvent, observer)
        queue.subscribe(AxisActivatedEvent, observer)

        events = [
            AxisPositionEvent("d", "Z"),
            AxisActivatedEvent("d", "Time"),
            AxisPositionEvent("d", "Z"),
            AxisPositionEvent("d", "Time"),
        ]
        for event in events:
            queue.publish_later(event)
        queue.drain()

        assert observer.call_args_list == [call(e) for e in events]

    def test_events_queued_during_drain_wait(self):
        """An observer queuing a new event sees it on the next drain."""
        queue = EventQueue()
        seen = []

        def observer(event):
            seen.append(event)
            if event.axis == "Z":
                queue.publish_later(AxisPositionEvent("d", "Time"))

        queue.subscribe(AxisPositionEvent, observer)
        queue.publish_later(AxisPositionEvent("d", "Z"))

        assert queue.drain() == 1
        assert [e.axis for e in seen] == ["Z"]
        assert queue.drain() == 1
        assert [e.axis for e in seen] == ["Z", "Time"]

    def test_failing_observer_does_not_block_others(self, caplog):
        """Exceptions from one observer are logged; later observers still run."""
        queue = EventQueue()
        failing = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        queue.subscribe(DataUpdatedEvent, failing)
        queue.subscribe(DataUpdatedEvent, healthy)

        with caplog.at_level(logging.WARNING, logger="ndviewer_axes.events"):
            queue.publish(DataUpdatedEvent("data"))

        healthy.assert_called_once()
        assert "failed handling" in caplog.text

    def test_unsubscribe(self):
        """Unsubscribed observers are no longer called."""
        queue = EventQueue()
        observer = MagicMock()
        queue.subscribe(DataUpdatedEvent, observer)
        queue.unsubscribe(DataUpdatedEvent, observer)
        queue.unsubscribe(DataUpdatedEvent, observer)  # second call is harmless
        queue.publish(DataUpdatedEvent("data"))
        observer.assert_not_called()

    def test_only_matching_type_delivered(self):
        """Observers receive only the event class they subscribed to."""
        queue = EventQueue()
        observer = MagicMock()
        queue.subscribe(AxisActivatedEvent, observer)
        queue.publish(AxisPositionEvent("d", "Z"))
        observer.assert_not_called()

    def test_clear_discards_pending(self):
        """clear() drops queued events without delivering."""
        queue = EventQueue()
        observer = MagicMock()
        queue.subscribe(AxisPositionEvent, observer)
        queue.publish_later(AxisPositionEvent("d", "Z"))
        queue.clear()
        assert queue.drain() == 0
        observer.assert_not_called()

    def test_concurrent_publishers(self):
        """Events from many threads are all delivered exactly once."""
        queue = EventQueue()
        seen = []
        queue.subscribe(AxisPositionEvent, seen.append)

        def worker(n):
            for i in range(200):
                queue.publish_later(AxisPositionEvent(n, i))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert queue.drain() == 800
        assert len(seen) == 800
        # per-publisher order is preserved
        for n in range(4):
            assert [e.axis for e in seen if e.display == n] == list(range(200))
