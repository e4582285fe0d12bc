"""Qt integration: drain deferred display notifications on the GUI thread."""

import logging
from typing import Optional

from PyQt5.QtCore import QObject, QTimer, pyqtSignal

from .config import EVENT_DRAIN_INTERVAL_MS
from .events import AxisActivatedEvent, AxisPositionEvent, EventQueue

logger = logging.getLogger(__name__)


class QtEventPump(QObject):
    """Drains an :class:`EventQueue` from a Qt timer and re-emits as signals.

    Position and activation events are queued by whichever thread moved the
    cursor; this pump delivers them on the thread owning the pump, so slots
    connected to its signals can touch widgets directly.
    """

    # Signature: (display, axis_type)
    axis_position_changed = pyqtSignal(object, object)
    axis_activated = pyqtSignal(object, object)

    def __init__(
        self,
        queue: EventQueue,
        interval_ms: int = EVENT_DRAIN_INTERVAL_MS,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self._queue = queue
        self._queue.subscribe(AxisPositionEvent, self._on_position)
        self._queue.subscribe(AxisActivatedEvent, self._on_activated)

        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.drain)
        self._timer.start()

    @property
    def queue(self) -> EventQueue:
        return self._queue

    def is_running(self) -> bool:
        return self._timer.isActive()

    def drain(self) -> int:
        """Deliver queued events now; returns the number delivered."""
        return self._queue.drain()

    def stop(self) -> None:
        """Stop the timer and detach from the queue."""
        self._timer.stop()
        self._queue.unsubscribe(AxisPositionEvent, self._on_position)
        self._queue.unsubscribe(AxisActivatedEvent, self._on_activated)

    def _on_position(self, event: AxisPositionEvent) -> None:
        try:
            self.axis_position_changed.emit(event.display, event.axis)
        except RuntimeError as e:
            # Qt object deleted - window closed while events were queued
            logger.warning("Could not emit axis_position_changed: %s", e)

    def _on_activated(self, event: AxisActivatedEvent) -> None:
        try:
            self.axis_activated.emit(event.display, event.axis)
        except RuntimeError as e:
            logger.warning("Could not emit axis_activated: %s", e)
