"""Aggregate the axes and bounds of several data objects into one interval.

A contributor is anything exposing ``axes`` (a sequence of
:class:`~ndviewer_axes.axes.Axis`) and ``bounds`` (one ``(min, max)`` pair per
axis). :class:`~ndviewer_axes.dataset.Dataset` and :class:`RectangleOverlay`
both qualify.
"""

import logging
import math
import threading
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .axes import Axes, Axis, AxisType, axis_index

logger = logging.getLogger(__name__)


class RectangleOverlay:
    """Axis-aligned rectangle in the X/Y plane with real-valued bounds."""

    def __init__(
        self,
        origin: Tuple[float, float] = (0.0, 0.0),
        extent: Tuple[float, float] = (0.0, 0.0),
        name: str = "",
    ):
        self.origin = (float(origin[0]), float(origin[1]))
        self.extent = (float(extent[0]), float(extent[1]))
        self.name = name
        self._axes = (Axis(Axes.X), Axis(Axes.Y))

    @property
    def axes(self) -> Tuple[Axis, ...]:
        return self._axes

    @property
    def bounds(self) -> Tuple[Tuple[float, float], ...]:
        return tuple(
            (o, o + e) for o, e in zip(self.origin, self.extent)
        )

    def move(self, dx: float, dy: float) -> None:
        self.origin = (self.origin[0] + dx, self.origin[1] + dy)

    def __repr__(self) -> str:
        return f"RectangleOverlay(origin={self.origin}, extent={self.extent})"


class _IntervalState(NamedTuple):
    axes: Tuple[Axis, ...]
    real_min: Tuple[float, ...]
    real_max: Tuple[float, ...]


_EMPTY = _IntervalState((), (), ())


class CombinedInterval:
    """Union of the axes of several contributors, with enclosing bounds.

    :meth:`update` recomputes the aggregate and publishes it as a single
    snapshot, so readers never see axes from one rebuild paired with bounds
    from another.
    """

    def __init__(self):
        self._contributors: List = []
        self._lock = threading.Lock()
        self._state: _IntervalState = _EMPTY

    # ─────────────────────────────────────────────────────────────────────────
    # Contributors
    # ─────────────────────────────────────────────────────────────────────────

    def add(self, data) -> None:
        with self._lock:
            self._contributors.append(data)

    def remove(self, data) -> None:
        with self._lock:
            self._contributors = [c for c in self._contributors if c is not data]

    def replace(self, old, new) -> int:
        """Put ``new`` in every slot held by ``old``; returns the slot count.

        Contributor order is kept. The snapshot is unchanged until the next
        :meth:`update`.
        """
        with self._lock:
            count = sum(1 for c in self._contributors if c is old)
            self._contributors = [new if c is old else c for c in self._contributors]
        return count

    def set_contributors(self, contributors) -> None:
        """Replace the contributor list, keeping the current snapshot."""
        with self._lock:
            self._contributors = list(contributors)

    def clear(self) -> None:
        with self._lock:
            self._contributors = []
            self._state = _EMPTY

    def contributors(self) -> List:
        with self._lock:
            return list(self._contributors)

    def __len__(self) -> int:
        with self._lock:
            return len(self._contributors)

    def update(self) -> None:
        """Recompute the union axis set and the per-axis enclosing bounds.

        For each axis type, ``min``/``max`` are taken only over contributors
        that define that axis. Axes appear in order of first appearance.
        """
        contributors = self.contributors()

        axes: List[Axis] = []
        mins: List[float] = []
        maxs: List[float] = []
        for data in contributors:
            for axis, (lo, hi) in zip(data.axes, data.bounds):
                index = axis_index(axes, axis.type)
                if index < 0:
                    axes.append(axis)
                    mins.append(float(lo))
                    maxs.append(float(hi))
                    continue
                if not axes[index].same_calibration(axis):
                    logger.warning(
                        "Calibration of axis %s differs between views; keeping %s",
                        axis.type,
                        axes[index],
                    )
                mins[index] = min(mins[index], float(lo))
                maxs[index] = max(maxs[index], float(hi))

        self._state = _IntervalState(tuple(axes), tuple(mins), tuple(maxs))
        logger.debug(
            "Combined interval updated: %s",
            {str(a.type): (lo, hi) for a, lo, hi in zip(axes, mins, maxs)},
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Queries (all read one snapshot)
    # ─────────────────────────────────────────────────────────────────────────

    def snapshot(self) -> _IntervalState:
        return self._state

    def is_discrete(self) -> bool:
        """True if every combined bound is integral."""
        state = self._state
        return all(
            float(v).is_integer() for v in state.real_min + state.real_max
        )

    @property
    def axes(self) -> Tuple[Axis, ...]:
        return self._state.axes

    @property
    def axis_types(self) -> Tuple[AxisType, ...]:
        return tuple(a.type for a in self._state.axes)

    def num_dimensions(self) -> int:
        return len(self._state.axes)

    def axis(self, d: int) -> Axis:
        return self._state.axes[d]

    def axis_index(self, axis_type: AxisType) -> int:
        return axis_index(self._state.axes, axis_type)

    def real_min(self, d: int) -> float:
        return self._state.real_min[d]

    def real_max(self, d: int) -> float:
        return self._state.real_max[d]

    def min(self, d: int) -> int:
        return int(math.ceil(self._state.real_min[d]))

    def max(self, d: int) -> int:
        return int(math.floor(self._state.real_max[d]))

    def bounds(self, axis_type: AxisType) -> Optional[Tuple[int, int]]:
        """Integer ``(min, max)`` for an axis type, or None if absent."""
        state = self._state
        index = axis_index(state.axes, axis_type)
        if index < 0:
            return None
        return (
            int(math.ceil(state.real_min[index])),
            int(math.floor(state.real_max[index])),
        )

    def dims(self) -> Tuple[int, ...]:
        state = self._state
        return tuple(
            int(math.floor(hi)) - int(math.ceil(lo)) + 1
            for lo, hi in zip(state.real_min, state.real_max)
        )

    def extents(self) -> List[Tuple[float, float]]:
        state = self._state
        return list(zip(state.real_min, state.real_max))

    def non_discrete_bounds(self) -> Sequence[Tuple[str, float, float]]:
        state = self._state
        return [
            (a.label, lo, hi)
            for a, lo, hi in zip(state.axes, state.real_min, state.real_max)
            if not (float(lo).is_integer() and float(hi).is_integer())
        ]
