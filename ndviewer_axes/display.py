"""Displays: several data views composed into one navigable coordinate space.

A :class:`ImageDisplay` aggregates the axes of its views in a
:class:`~ndviewer_axes.interval.CombinedInterval` and keeps a per-axis cursor
in a :class:`PositionTracker`. The cursor selects the visible plane.
"""

import logging
import threading
from collections import OrderedDict
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .axes import Axes, AxisType
from .config import PLANE_CACHE_MAX_MEMORY_BYTES
from .dataset import Dataset, structure_changed
from .errors import StructuralIntervalError, UnknownAxisError
from .events import (
    AxisActivatedEvent,
    AxisPositionEvent,
    DataRestructuredEvent,
    DataUpdatedEvent,
    EventQueue,
)
from .interval import CombinedInterval

logger = logging.getLogger(__name__)


class PlaneCache:
    """Thread-safe LRU cache of computed planes with a memory limit.

    Keys are ``(dataset, plane_position)``. Lazily loaded datasets compute a
    plane on every access, so the display keeps recently shown planes here.
    Evicts least-recently-used planes when the memory limit is exceeded.
    """

    def __init__(self, max_memory_bytes: int = PLANE_CACHE_MAX_MEMORY_BYTES):
        self._max_memory = max_memory_bytes
        self._current_memory = 0
        self._cache: OrderedDict = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: tuple) -> Optional[np.ndarray]:
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]
            return None

    def put(self, key: tuple, value: np.ndarray) -> None:
        item_size = value.nbytes

        # Don't cache if single plane exceeds limit
        if item_size > self._max_memory:
            logger.debug(
                "Cannot cache plane (size %d bytes exceeds max %d bytes)",
                item_size,
                self._max_memory,
            )
            return

        with self._lock:
            if key in self._cache:
                self._current_memory -= self._cache[key].nbytes
                del self._cache[key]

            while self._current_memory + item_size > self._max_memory and self._cache:
                _, oldest_value = self._cache.popitem(last=False)
                self._current_memory -= oldest_value.nbytes

            self._cache[key] = value
            self._current_memory += item_size

    def invalidate(self, dataset) -> int:
        """Drop every plane cached for ``dataset``; returns the count dropped."""
        with self._lock:
            stale = [k for k in self._cache if k[0] is dataset]
            for key in stale:
                self._current_memory -= self._cache.pop(key).nbytes
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._current_memory = 0

    @property
    def memory_bytes(self) -> int:
        with self._lock:
            return self._current_memory

    def __contains__(self, key: tuple) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


class DataView:
    """A data object placed in a display, with its own plane position."""

    def __init__(self, data):
        self.data = data
        self._position: Dict[AxisType, int] = {}

    def set_position(self, value: int, axis_type: AxisType) -> None:
        self._position[axis_type] = int(value)

    def get_position(self, axis_type: AxisType) -> int:
        return self._position.get(axis_type, 0)

    def plane_position(self) -> Tuple[int, ...]:
        """Position along each non-planar axis of the data, in axis order."""
        return tuple(
            self.get_position(a.type) for a in self.data.axes if not a.is_xy()
        )

    def rebuild(self) -> None:
        types = {a.type for a in self.data.axes}
        for axis_type in list(self._position):
            if axis_type not in types:
                del self._position[axis_type]

    def update(self) -> None:
        pass

    def dispose(self) -> None:
        self._position.clear()

    def __repr__(self) -> str:
        return f"DataView({self.data!r})"


class PositionTracker:
    """Per-axis cursor for the non-planar axes of a combined interval.

    Writers (input handling) and readers (rendering) may run on different
    threads. Positions are validated and clamped against the bounds taken
    at the last :meth:`rebuild`, and bounds and positions only change
    together under one lock, so a write can never revive an axis a rebuild
    has dropped. Change notifications are queued with ``publish_later`` and
    reach observers on the next drain.

    Axis arguments may be :class:`~ndviewer_axes.axes.AxisType` instances
    or labels such as ``"Z"`` or ``"t"``.
    """

    def __init__(
        self,
        interval: CombinedInterval,
        publisher: Optional[EventQueue] = None,
        owner=None,
    ):
        self._interval = interval
        self._publisher = publisher
        self._owner = owner
        self._bounds: Dict[AxisType, Tuple[int, int]] = {}
        self._positions: Dict[AxisType, int] = {}
        self._active_axis: Optional[AxisType] = None
        self._lock = threading.RLock()

    def set_position(self, axis_type, value: int) -> int:
        """Clamp ``value`` into the axis bounds and store it.

        Returns:
            The stored (clamped) value.

        Raises:
            UnknownAxisError: ``axis_type`` is not part of the interval.
            ValueError: ``axis_type`` is planar (X or Y).
        """
        axis_type = Axes.get(axis_type)
        with self._lock:
            bounds = self._bounds.get(axis_type)
            if bounds is None:
                raise UnknownAxisError(axis_type)
            if axis_type.is_xy():
                raise ValueError(f"Planar axis {axis_type} has no cursor position")
            lo, hi = bounds
            clamped = min(max(int(value), lo), hi)
            self._positions[axis_type] = clamped

        if clamped != value:
            logger.debug("Position %s=%s clamped to %d", axis_type, value, clamped)
        self._notify(AxisPositionEvent(self._owner, axis_type))
        return clamped

    def get_position(self, axis_type) -> int:
        """Current position; 0 for axes outside the interval."""
        axis_type = Axes.get(axis_type)
        with self._lock:
            return self._positions.get(axis_type, 0)

    def positions(self) -> Dict[AxisType, int]:
        with self._lock:
            return dict(self._positions)

    def is_tracked(self, axis_type) -> bool:
        axis_type = Axes.get(axis_type)
        with self._lock:
            return axis_type in self._positions

    @property
    def active_axis(self) -> Optional[AxisType]:
        with self._lock:
            return self._active_axis

    def set_active_axis(self, axis_type) -> None:
        axis_type = Axes.get(axis_type)
        with self._lock:
            if axis_type not in self._bounds:
                raise UnknownAxisError(axis_type)
            if axis_type.is_xy():
                raise ValueError(f"Planar axis {axis_type} cannot be the active axis")
            self._active_axis = axis_type
        self._notify(AxisActivatedEvent(self._owner, axis_type))

    def rebuild(self) -> None:
        """Re-sync tracked axes with the interval.

        Drops axes no longer present, starts new non-planar axes at their
        minimum, clamps kept positions into the new bounds, and picks the
        first non-planar axis as active if none is set.
        """
        with self._lock:
            snapshot = self._interval.snapshot()
            bounds: Dict[AxisType, Tuple[int, int]] = {}
            positions: Dict[AxisType, int] = {}
            for axis, lo, hi in zip(
                snapshot.axes, snapshot.real_min, snapshot.real_max
            ):
                lo_i, hi_i = int(np.ceil(lo)), int(np.floor(hi))
                bounds[axis.type] = (lo_i, hi_i)
                if axis.is_xy():
                    continue  # do not track position of planar axes
                if axis.type in self._positions:
                    positions[axis.type] = min(max(self._positions[axis.type], lo_i), hi_i)
                else:
                    positions[axis.type] = lo_i
            dropped = set(self._positions) - set(positions)
            self._bounds = bounds
            self._positions = positions
            if self._active_axis is not None and self._active_axis not in positions:
                self._active_axis = None
            activated = None
            if self._active_axis is None:
                activated = next(
                    (a.type for a in snapshot.axes if not a.is_xy()), None
                )
                self._active_axis = activated

        if dropped:
            logger.debug("Dropped positions for obsolete axes: %s", dropped)
        if activated is not None:
            self._notify(AxisActivatedEvent(self._owner, activated))

    def _notify(self, event) -> None:
        if self._publisher is not None:
            self._publisher.publish_later(event)


class ImageDisplay:
    """Composes views of datasets and overlays into one addressable space.

    Args:
        views: Initial data objects or views. The display is rebuilt once
            they are added; a non-discrete combination raises
            :class:`StructuralIntervalError`.
        publisher: Event queue for position/activation/data events. A
            private queue is created when omitted.
        name: Display name. Taken from the first named data when empty.
        plane_cache_bytes: Memory limit for cached planes.
    """

    def __init__(
        self,
        views=(),
        publisher: Optional[EventQueue] = None,
        name: str = "",
        plane_cache_bytes: int = PLANE_CACHE_MAX_MEMORY_BYTES,
    ):
        self.name = name
        self.publisher = publisher if publisher is not None else EventQueue()
        self._views: List[DataView] = []
        self._interval = CombinedInterval()
        self._tracker = PositionTracker(self._interval, self.publisher, owner=self)
        self._plane_cache = PlaneCache(plane_cache_bytes)

        self.publisher.subscribe(DataRestructuredEvent, self._on_data_restructured)
        self.publisher.subscribe(DataUpdatedEvent, self._on_data_updated)

        for obj in views:
            self._views.append(self._as_view(obj))
            self._update_name(self._views[-1])
        if self._views:
            self.rebuild()

    # ─────────────────────────────────────────────────────────────────────────
    # Views
    # ─────────────────────────────────────────────────────────────────────────

    def display(self, obj) -> DataView:
        """Add a dataset, overlay or view and rebuild.

        If the new view makes the combined bounds non-discrete the view is
        removed again and :class:`StructuralIntervalError` is raised.
        """
        view = self._as_view(obj)
        self._views.append(view)
        try:
            self.rebuild()
        except StructuralIntervalError:
            self._views.remove(view)
            self.rebuild()
            raise
        self._update_name(view)
        logger.debug("Display %r now shows %d views", self.name, len(self._views))
        return view

    def remove(self, view: DataView) -> None:
        self._views.remove(view)
        self._plane_cache.invalidate(view.data)
        view.dispose()
        self.rebuild()

    @property
    def views(self) -> Tuple[DataView, ...]:
        return tuple(self._views)

    def __iter__(self) -> Iterator[DataView]:
        return iter(list(self._views))

    def __len__(self) -> int:
        return len(self._views)

    def get_active_view(self) -> Optional[DataView]:
        return self._views[0] if self._views else None

    def is_displaying(self, obj) -> bool:
        return any(obj is v or obj is v.data for v in self._views)

    # ─────────────────────────────────────────────────────────────────────────
    # Structure
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def interval(self) -> CombinedInterval:
        return self._interval

    @property
    def axes(self):
        return self._interval.axes

    def axis_index(self, axis_type) -> int:
        return self._interval.axis_index(Axes.get(axis_type))

    def rebuild(self) -> None:
        """Recombine the views' axes and re-sync tracked positions."""
        self._interval.set_contributors(view.data for view in self._views)
        self._interval.update()
        if not self._interval.is_discrete():
            raise StructuralIntervalError(self._interval.non_discrete_bounds())

        for view in self._views:
            view.rebuild()

        self._tracker.rebuild()
        self._plane_cache.clear()

    def update(self) -> None:
        """Refresh the combined bounds and push the display position into each view."""
        self._interval.update()
        self._tracker.rebuild()
        positions = self._tracker.positions()
        for view in self._views:
            data_types = {a.type for a in view.data.axes}
            for axis_type, value in positions.items():
                if axis_type in data_types:
                    view.set_position(value, axis_type)
            view.update()

    def replace_data(self, old, new) -> int:
        """Swap ``old`` for ``new`` in every view showing it.

        The combined interval always takes ``new`` in place of ``old``. Rebuilds
        when the structure differs, otherwise only updates, keeping positions.

        Returns:
            Number of views that were showing ``old``.
        """
        count = 0
        for view in self._views:
            if view.data is old:
                view.data = new
                count += 1
        if not count:
            return 0
        self._interval.replace(old, new)
        self._plane_cache.invalidate(old)
        if (
            isinstance(old, Dataset)
            and isinstance(new, Dataset)
            and not structure_changed(old, new)
        ):
            self.update()
        else:
            self.rebuild()
            self.update()
        return count

    # ─────────────────────────────────────────────────────────────────────────
    # Positions
    # ─────────────────────────────────────────────────────────────────────────

    def set_position(self, axis_type, value: int) -> int:
        return self._tracker.set_position(axis_type, value)

    def get_position(self, axis_type) -> int:
        return self._tracker.get_position(axis_type)

    def get_active_axis(self) -> Optional[AxisType]:
        return self._tracker.active_axis

    def set_active_axis(self, axis_type) -> None:
        self._tracker.set_active_axis(axis_type)

    def move(self, axis_type, distance: int) -> int:
        return self.set_position(axis_type, self.get_position(axis_type) + distance)

    def fwd(self, axis_type) -> int:
        return self.move(axis_type, 1)

    def bck(self, axis_type) -> int:
        return self.move(axis_type, -1)

    def positions(self) -> Dict[AxisType, int]:
        return self._tracker.positions()

    def localize(self) -> Tuple[int, ...]:
        """Position along every axis of the display (0 for X and Y)."""
        return tuple(self.get_position(a.type) for a in self._interval.axes)

    # ─────────────────────────────────────────────────────────────────────────
    # Plane selection
    # ─────────────────────────────────────────────────────────────────────────

    def is_visible(self, view: DataView) -> bool:
        """Whether ``view`` has data at the current display position."""
        for axis in self._interval.axes:
            if axis.is_xy():
                continue
            value = self.get_position(axis.type)
            types = [a.type for a in view.data.axes]
            if axis.type not in types:
                if value != view.get_position(axis.type):
                    return False
                continue
            lo, hi = view.data.bounds[types.index(axis.type)]
            if value < lo or value > hi:
                return False
        return True

    def plane_extents(self) -> Tuple[float, float, float, float]:
        """``(x_min, y_min, width, height)`` of the combined X/Y plane."""
        x_index = self.axis_index(Axes.X)
        y_index = self.axis_index(Axes.Y)
        if x_index < 0 or y_index < 0:
            raise UnknownAxisError(Axes.X if x_index < 0 else Axes.Y)
        x_min = self._interval.real_min(x_index)
        y_min = self._interval.real_min(y_index)
        width = self._interval.real_max(x_index) - x_min
        height = self._interval.real_max(y_index) - y_min
        return (x_min, y_min, width, height)

    def current_plane(self, view: Optional[DataView] = None) -> Optional[np.ndarray]:
        """Visible ``[Y, X]`` plane of a dataset view at the current position."""
        view = view or self.get_active_view()
        if view is None or not isinstance(view.data, Dataset):
            return None
        dataset = view.data
        plane_pos = tuple(
            self.get_position(a.type) for a in dataset.axes if not a.is_xy()
        )
        key = (dataset, plane_pos)
        plane = self._plane_cache.get(key)
        if plane is None:
            plane = dataset.plane(plane_pos)
            self._plane_cache.put(key, plane)
        return plane

    def close(self) -> None:
        """Dispose views and stop listening for data events."""
        for view in self._views:
            view.dispose()
        self._views.clear()
        self._interval.clear()
        self._tracker.rebuild()
        self._plane_cache.clear()
        self.publisher.unsubscribe(DataRestructuredEvent, self._on_data_restructured)
        self.publisher.unsubscribe(DataUpdatedEvent, self._on_data_updated)

    # ─────────────────────────────────────────────────────────────────────────
    # Event handlers
    # ─────────────────────────────────────────────────────────────────────────

    def _on_data_restructured(self, event: DataRestructuredEvent) -> None:
        if any(v.data is event.data for v in self._views):
            self._plane_cache.invalidate(event.data)
            self.rebuild()
            self.update()

    def _on_data_updated(self, event: DataUpdatedEvent) -> None:
        if any(v.data is event.data for v in self._views):
            self._plane_cache.invalidate(event.data)
            self.update()

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _as_view(obj) -> DataView:
        if isinstance(obj, DataView):
            return obj
        if hasattr(obj, "axes") and hasattr(obj, "bounds"):
            return DataView(obj)
        raise TypeError(f"Incompatible object: {obj!r} [{type(obj).__name__}]")

    def _update_name(self, view: DataView) -> None:
        if self.name:
            return
        data_name = getattr(view.data, "name", "")
        if data_name:
            self.name = data_name

    def __repr__(self) -> str:
        labels = ",".join(a.label for a in self._interval.axes)
        return f"ImageDisplay(name={self.name!r}, axes=[{labels}], views={len(self)})"
