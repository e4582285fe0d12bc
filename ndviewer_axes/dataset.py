"""N-dimensional datasets addressed by typed axes, with per-plane color tables."""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import dask.array as da
import numpy as np

from .axes import Axes, Axis, AxisType, axis_index, check_unique
from .errors import InvalidAxisAssignmentError, UnknownAxisError

logger = logging.getLogger(__name__)

COLOR_TABLE_LENGTH = 256


class ColorTable:
    """Lookup table mapping raw sample values to RGB colors.

    ``values`` is an ``(n, 3)`` uint8 array; entry ``i`` is the color for
    normalized intensity ``i / (n - 1)``.
    """

    def __init__(self, name: str, values: np.ndarray):
        values = np.asarray(values, dtype=np.uint8)
        if values.ndim != 2 or values.shape[1] != 3:
            raise ValueError(
                f"Color table values must have shape (n, 3), got {values.shape}"
            )
        self.name = name
        self.values = values

    @classmethod
    def ramp(
        cls, name: str, rgb: Tuple[int, int, int], length: int = COLOR_TABLE_LENGTH
    ) -> "ColorTable":
        """Linear ramp from black to ``rgb``."""
        t = np.linspace(0.0, 1.0, length)[:, None]
        values = np.round(t * np.asarray(rgb, dtype=float)[None, :])
        return cls(name, values.astype(np.uint8))

    @classmethod
    def from_hex(cls, hex_color: str, name: Optional[str] = None) -> "ColorTable":
        """Ramp ending at a hex color such as ``"00FF00"`` or ``"#00ff00"``."""
        text = hex_color.strip().lstrip("#")
        if len(text) != 6:
            raise ValueError(f"Expected 6 hex digits, got {hex_color!r}")
        rgb = tuple(int(text[i : i + 2], 16) for i in (0, 2, 4))
        return cls.ramp(name or text.upper(), rgb)

    @classmethod
    def for_wavelength(cls, wavelength: Optional[int]) -> "ColorTable":
        """Ramp whose end color approximates an emission wavelength (nm)."""
        name = _wavelength_to_color_name(wavelength)
        return cls.ramp(name, _NAMED_COLORS[name])

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ColorTable):
            return NotImplemented
        return self.name == other.name and np.array_equal(self.values, other.values)

    __hash__ = None

    def __repr__(self) -> str:
        return f"ColorTable({self.name!r}, length={len(self)})"


_NAMED_COLORS: Dict[str, Tuple[int, int, int]] = {
    "gray": (255, 255, 255),
    "blue": (0, 0, 255),
    "green": (0, 255, 0),
    "yellow": (255, 255, 0),
    "red": (255, 0, 0),
    "magenta": (255, 0, 255),
}


def _wavelength_to_color_name(wavelength: Optional[int]) -> str:
    if wavelength is None or wavelength == 0:
        return "gray"
    if wavelength <= 420:
        return "blue"
    elif 470 <= wavelength <= 510:
        return "green"
    elif 540 <= wavelength <= 590:
        return "yellow"
    elif 620 <= wavelength <= 660:
        return "red"
    elif wavelength >= 700:
        return "magenta"
    return "gray"


# Plane arithmetic: the first non-planar axis varies fastest.


def plane_count(plane_dims: Sequence[int]) -> int:
    count = 1
    for d in plane_dims:
        count *= int(d)
    return count


def plane_index(plane_dims: Sequence[int], plane_pos: Sequence[int]) -> int:
    """Flatten a non-planar coordinate into a plane index."""
    if len(plane_dims) != len(plane_pos):
        raise ValueError(
            f"Plane position {tuple(plane_pos)} does not match dims {tuple(plane_dims)}"
        )
    index = 0
    for d, p in zip(reversed(plane_dims), reversed(plane_pos)):
        if not 0 <= p < d:
            raise IndexError(f"Plane position {tuple(plane_pos)} out of range")
        index = index * int(d) + int(p)
    return index


def plane_position(plane_dims: Sequence[int], index: int) -> Tuple[int, ...]:
    """Decompose a plane index into its non-planar coordinate."""
    total = plane_count(plane_dims)
    if not 0 <= index < total:
        raise IndexError(f"Plane index {index} out of range [0, {total})")
    pos = []
    for d in plane_dims:
        pos.append(index % int(d))
        index //= int(d)
    return tuple(pos)


class Dataset:
    """Sample buffer plus the axes that address it.

    The buffer is a numpy array, or a dask array for lazily loaded data.
    ``color_tables`` holds one entry per plane (``None`` when unassigned).
    """

    def __init__(
        self,
        data,
        axes: Sequence[Axis],
        color_tables: Optional[Sequence[Optional[ColorTable]]] = None,
        composite_channel_count: int = 1,
        name: str = "",
    ):
        if not isinstance(data, da.Array):
            data = np.asarray(data)
        axes = list(axes)
        if data.ndim != len(axes):
            raise ValueError(
                f"Data has {data.ndim} dimensions but {len(axes)} axes were given"
            )
        repeated = check_unique(axes)
        if repeated:
            raise InvalidAxisAssignmentError(
                "Axis types must be unique: "
                + ", ".join(str(a) for a in repeated)
                + " repeated"
            )
        self._data = data
        self._axes: List[Axis] = axes
        self.name = name
        self.composite_channel_count = int(composite_channel_count)

        n_planes = plane_count(self.plane_dims)
        if color_tables is None:
            self.color_tables: List[Optional[ColorTable]] = [None] * n_planes
        else:
            color_tables = list(color_tables)
            if len(color_tables) != n_planes:
                raise ValueError(
                    f"Expected {n_planes} color tables, got {len(color_tables)}"
                )
            self.color_tables = color_tables

    @classmethod
    def from_labels(cls, data, labels: Iterable, **kwargs) -> "Dataset":
        """Build a dataset with default calibration from axis labels."""
        return cls(data, [Axis.of(label) for label in labels], **kwargs)

    # ─────────────────────────────────────────────────────────────────────────
    # Structure
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def data(self):
        return self._data

    @property
    def axes(self) -> Tuple[Axis, ...]:
        return tuple(self._axes)

    @property
    def axis_types(self) -> Tuple[AxisType, ...]:
        return tuple(a.type for a in self._axes)

    @property
    def dims(self) -> Tuple[int, ...]:
        return tuple(int(d) for d in self._data.shape)

    @property
    def rank(self) -> int:
        return len(self._axes)

    @property
    def dtype(self):
        return self._data.dtype

    @property
    def nbytes(self) -> int:
        return int(self._data.nbytes)

    @property
    def is_lazy(self) -> bool:
        return isinstance(self._data, da.Array)

    @property
    def bounds(self) -> Tuple[Tuple[float, float], ...]:
        """Per-axis ``(min, max)`` raw coordinate bounds."""
        return tuple((0.0, float(d - 1)) for d in self.dims)

    def axis(self, index: int) -> Axis:
        return self._axes[index]

    def axis_index(self, axis_type: AxisType) -> int:
        """Index of ``axis_type``, or -1 if the dataset has no such axis."""
        return axis_index(self._axes, axis_type)

    def dimension(self, axis_type: AxisType) -> int:
        index = self.axis_index(axis_type)
        if index < 0:
            raise UnknownAxisError(axis_type)
        return self.dims[index]

    @property
    def channel_count(self) -> int:
        index = self.axis_index(Axes.CHANNEL)
        return self.dims[index] if index >= 0 else 1

    # ─────────────────────────────────────────────────────────────────────────
    # Planes
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def planar_indices(self) -> Tuple[int, ...]:
        return tuple(i for i, a in enumerate(self._axes) if a.is_xy())

    @property
    def non_planar_indices(self) -> Tuple[int, ...]:
        return tuple(i for i, a in enumerate(self._axes) if not a.is_xy())

    @property
    def plane_dims(self) -> Tuple[int, ...]:
        dims = self.dims
        return tuple(dims[i] for i in self.non_planar_indices)

    @property
    def plane_count(self) -> int:
        return plane_count(self.plane_dims)

    def plane_index(self, plane_pos: Sequence[int]) -> int:
        return plane_index(self.plane_dims, plane_pos)

    def plane_position(self, index: int) -> Tuple[int, ...]:
        return plane_position(self.plane_dims, index)

    def plane(self, plane_pos: Sequence[int]) -> np.ndarray:
        """Return the 2-D X/Y slice at a non-planar coordinate, as ``[Y, X]``."""
        x_index = self.axis_index(Axes.X)
        y_index = self.axis_index(Axes.Y)
        if x_index < 0 or y_index < 0:
            raise ValueError(f"Dataset {self.name!r} has no X/Y plane")
        non_planar = self.non_planar_indices
        if len(plane_pos) != len(non_planar):
            raise ValueError(
                f"Plane position {tuple(plane_pos)} does not match dims {self.plane_dims}"
            )
        key: List = [slice(None)] * self.rank
        for i, p in zip(non_planar, plane_pos):
            key[i] = int(p)
        plane = self._data[tuple(key)]
        if x_index < y_index:
            plane = plane.T
        if isinstance(plane, da.Array):
            plane = plane.compute()
        return np.asarray(plane)

    # ─────────────────────────────────────────────────────────────────────────
    # Samples
    # ─────────────────────────────────────────────────────────────────────────

    def get_sample(self, pos: Sequence[int]) -> float:
        if len(pos) != self.rank:
            raise ValueError(f"Position {tuple(pos)} has wrong rank for {self.dims}")
        value = self._data[tuple(int(p) for p in pos)]
        if isinstance(value, da.Array):
            value = value.compute()
        return np.asarray(value).item()

    def set_sample(self, pos: Sequence[int], value: float) -> None:
        if self.is_lazy:
            raise TypeError("Cannot set samples on a lazily loaded dataset")
        if len(pos) != self.rank:
            raise ValueError(f"Position {tuple(pos)} has wrong rank for {self.dims}")
        self._data[tuple(int(p) for p in pos)] = value

    # ─────────────────────────────────────────────────────────────────────────
    # Metadata edits (in place)
    # ─────────────────────────────────────────────────────────────────────────

    def set_axis(self, index: int, axis: Axis) -> None:
        others = [a for i, a in enumerate(self._axes) if i != index]
        if axis.type in (a.type for a in others):
            raise InvalidAxisAssignmentError(
                f"Axis {axis.type} already present in dataset {self.name!r}"
            )
        was_planar = self._axes[index].is_xy()
        self._axes[index] = axis
        if was_planar != axis.is_xy():
            # plane layout changed, existing per-plane tables no longer apply
            self.color_tables = [None] * self.plane_count

    def set_axes(self, axes: Sequence[Axis]) -> None:
        axes = list(axes)
        if len(axes) != self.rank:
            raise ValueError(f"Expected {self.rank} axes, got {len(axes)}")
        repeated = check_unique(axes)
        if repeated:
            raise InvalidAxisAssignmentError(
                "At least one axis designation is repeated: "
                + ", ".join(str(a) for a in repeated)
            )
        old_planar = self.planar_indices
        self._axes = axes
        if self.planar_indices != old_planar:
            self.color_tables = [None] * self.plane_count

    def set_units(self, units: Mapping[AxisType, str]) -> None:
        """Set unit labels for a subset of axes."""
        indices = {}
        for axis_type, unit in units.items():
            axis_type = Axes.get(axis_type)
            index = self.axis_index(axis_type)
            if index < 0:
                raise UnknownAxisError(axis_type)
            indices[index] = unit
        for index, unit in indices.items():
            self._axes[index] = self._axes[index].with_unit(unit)

    def copy(self) -> "Dataset":
        data = self._data if self.is_lazy else self._data.copy()
        return Dataset(
            data,
            list(self._axes),
            color_tables=list(self.color_tables),
            composite_channel_count=self.composite_channel_count,
            name=self.name,
        )

    def __repr__(self) -> str:
        labels = ",".join(a.label for a in self._axes)
        return (
            f"Dataset(name={self.name!r}, axes=[{labels}], dims={self.dims}, "
            f"dtype={self.dtype})"
        )


def structure_changed(old: Optional[Dataset], new: Dataset) -> bool:
    """Check if a replacement dataset needs a full display rebuild.

    Detects changes in axis types or order, dims, dtype or channel count.
    A change in calibration or color tables alone only needs an update.

    Args:
        old: Previous dataset. ``None`` means there was none, which
            counts as a structural change.
        new: The replacement dataset.

    Returns:
        True if the display has to rebuild its combined interval.
    """
    if old is None:
        return True

    if old.axis_types != new.axis_types:
        return True

    if old.dims != new.dims:
        return True

    if old.dtype != new.dtype:
        return True

    if old.channel_count != new.channel_count:
        return True

    return False
