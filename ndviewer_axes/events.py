"""Display and data events, with deferred ("publish later") delivery.

Observers subscribe per event class. :meth:`EventQueue.publish` delivers
immediately on the calling thread; :meth:`EventQueue.publish_later` only
enqueues, and delivery happens on the next :meth:`EventQueue.drain` (for
example from a Qt timer, see :mod:`ndviewer_axes.qt`).
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AxisPositionEvent:
    """The cursor position of ``axis`` changed on ``display``."""

    display: Any
    axis: Any


@dataclass(frozen=True)
class AxisActivatedEvent:
    """``axis`` became the active axis of ``display``."""

    display: Any
    axis: Any


@dataclass(frozen=True)
class DataRestructuredEvent:
    """``data`` changed axes or dims; displays showing it must rebuild."""

    data: Any


@dataclass(frozen=True)
class DataUpdatedEvent:
    """``data`` changed sample values or metadata only."""

    data: Any


Callback = Callable[[Any], None]


class EventQueue:
    """Thread-safe publisher with an outbound queue for deferred events.

    Events queued by :meth:`publish_later` are delivered in the order they
    were issued. Events published while a drain is running wait for the next
    drain.
    """

    def __init__(self):
        self._subscribers: Dict[Type, List[Callback]] = {}
        self._queue: Deque[Any] = deque()
        self._lock = threading.Lock()
        self._drain_lock = threading.Lock()

    def subscribe(self, event_type: Type, callback: Callback) -> None:
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: Type, callback: Callback) -> None:
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, event) -> None:
        """Deliver ``event`` to its subscribers now."""
        self._deliver(event)

    def publish_later(self, event) -> None:
        """Queue ``event`` for the next drain."""
        with self._lock:
            self._queue.append(event)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def drain(self) -> int:
        """Deliver every event queued before this call.

        Returns:
            Number of events delivered.
        """
        with self._drain_lock:
            with self._lock:
                batch = list(self._queue)
                self._queue.clear()
            for event in batch:
                self._deliver(event)
            return len(batch)

    def clear(self) -> None:
        with self._lock:
            self._queue.clear()

    def _deliver(self, event) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(type(event), ()))
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.warning(
                    "Observer %r failed handling %s", callback, event, exc_info=True
                )
