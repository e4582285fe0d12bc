"""Axis types and calibrated axes.

An :class:`AxisType` says what a dimension represents (X, Y, Channel, ...).
An :class:`Axis` pairs a type with a calibration mapping raw integer
coordinates to physical values.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class AxisType:
    """Tag identifying what an axis represents. Compared by label."""

    label: str

    def is_xy(self) -> bool:
        return self.label in ("X", "Y")

    def is_spatial(self) -> bool:
        return self.label in ("X", "Y", "Z")

    def __str__(self) -> str:
        return self.label


class Axes:
    """Known axis types and label lookup."""

    X = AxisType("X")
    Y = AxisType("Y")
    Z = AxisType("Z")
    TIME = AxisType("Time")
    CHANNEL = AxisType("Channel")
    SPECTRA = AxisType("Spectra")
    LIFETIME = AxisType("Lifetime")
    FREQUENCY = AxisType("Frequency")
    PHASE = AxisType("Phase")

    _KNOWN: Tuple[AxisType, ...] = (
        X,
        Y,
        Z,
        TIME,
        CHANNEL,
        SPECTRA,
        LIFETIME,
        FREQUENCY,
        PHASE,
    )

    # Lower-case aliases used by file formats and dimension names
    _ALIASES: Dict[str, AxisType] = {
        "x": X,
        "y": Y,
        "z": Z,
        "t": TIME,
        "time": TIME,
        "c": CHANNEL,
        "ch": CHANNEL,
        "channel": CHANNEL,
        "s": CHANNEL,
        "spectra": SPECTRA,
        "lifetime": LIFETIME,
        "frequency": FREQUENCY,
        "phase": PHASE,
    }

    @classmethod
    def get(cls, label: str) -> AxisType:
        """Return the known axis type for ``label``, or a custom type."""
        if isinstance(label, AxisType):
            return label
        label = str(label).strip()
        if not label:
            raise ValueError("Axis label must not be empty")
        known = cls._ALIASES.get(label.lower())
        if known is not None:
            return known
        return AxisType(label)

    @classmethod
    def known(cls) -> Tuple[AxisType, ...]:
        return cls._KNOWN

    @classmethod
    def is_custom(cls, axis_type: AxisType) -> bool:
        return axis_type not in cls._KNOWN

    @staticmethod
    def is_xy(axis_type: AxisType) -> bool:
        return axis_type.is_xy()


class CalibrationKind(Enum):
    LINEAR = "linear"
    LOG = "log"
    POWER = "power"
    EXPONENTIAL = "exponential"


# Shape functions f(raw, p) and their inverses; calibrated = offset + scale * f
_FORWARD: Dict[CalibrationKind, Callable[[float, float], float]] = {
    CalibrationKind.LINEAR: lambda x, p: x,
    CalibrationKind.LOG: lambda x, p: math.log(x + p),
    CalibrationKind.POWER: lambda x, p: x**p,
    CalibrationKind.EXPONENTIAL: lambda x, p: math.exp(p * x),
}

_INVERSE: Dict[CalibrationKind, Callable[[float, float], float]] = {
    CalibrationKind.LINEAR: lambda g, p: g,
    CalibrationKind.LOG: lambda g, p: math.exp(g) - p,
    CalibrationKind.POWER: lambda g, p: g ** (1.0 / p),
    CalibrationKind.EXPONENTIAL: lambda g, p: math.log(g) / p,
}

_DEFAULT_PARAM: Dict[CalibrationKind, float] = {
    CalibrationKind.LINEAR: 0.0,
    CalibrationKind.LOG: 1.0,
    CalibrationKind.POWER: 1.0,
    CalibrationKind.EXPONENTIAL: 1.0,
}


@dataclass(frozen=True)
class Calibration:
    """Non-linear part of an axis calibration.

    ``param`` is the shape parameter: the log shift, the power exponent or
    the exponential rate. It is unused for linear calibration.
    """

    kind: CalibrationKind = CalibrationKind.LINEAR
    param: Optional[float] = None

    @property
    def shape_param(self) -> float:
        if self.param is None:
            return _DEFAULT_PARAM[self.kind]
        return self.param

    def forward(self, raw: float) -> float:
        return _FORWARD[self.kind](float(raw), self.shape_param)

    def inverse(self, value: float) -> float:
        return _INVERSE[self.kind](float(value), self.shape_param)


LINEAR = Calibration()


@dataclass(frozen=True)
class Axis:
    """A typed, calibrated coordinate dimension.

    The physical value at raw coordinate ``i`` is
    ``offset + scale * calibration.forward(i)``.
    """

    type: AxisType
    scale: float = 1.0
    offset: float = 0.0
    unit: str = ""
    calibration: Calibration = field(default=LINEAR)

    @classmethod
    def of(cls, label, **kwargs) -> "Axis":
        """Build an axis from a label or axis type."""
        return cls(Axes.get(label), **kwargs)

    @property
    def label(self) -> str:
        return self.type.label

    def is_xy(self) -> bool:
        return self.type.is_xy()

    def is_linear(self) -> bool:
        return self.calibration.kind is CalibrationKind.LINEAR

    def calibrated(self, raw: float) -> float:
        """Physical value for raw coordinate ``raw``."""
        return self.offset + self.scale * self.calibration.forward(raw)

    def raw(self, value: float) -> float:
        """Raw coordinate for physical value ``value``."""
        if self.scale == 0:
            raise ZeroDivisionError(f"Axis {self.label} has zero scale")
        return self.calibration.inverse((value - self.offset) / self.scale)

    def with_unit(self, unit: str) -> "Axis":
        return replace(self, unit=unit)

    def with_type(self, axis_type: AxisType) -> "Axis":
        return replace(self, type=axis_type)

    def same_calibration(self, other: "Axis") -> bool:
        return (
            self.scale == other.scale
            and self.offset == other.offset
            and self.unit == other.unit
            and self.calibration == other.calibration
        )


def axis_types(axes: Iterable[Axis]) -> List[AxisType]:
    return [a.type for a in axes]


def axis_index(axes: Sequence[Axis], axis_type: AxisType) -> int:
    """Index of ``axis_type`` within ``axes``, or -1 if absent."""
    for i, axis in enumerate(axes):
        if axis.type == axis_type:
            return i
    return -1


def check_unique(axes: Sequence[Axis]) -> List[AxisType]:
    """Return axis types that occur more than once (empty when unique)."""
    seen = set()
    repeated = []
    for axis in axes:
        if axis.type in seen and axis.type not in repeated:
            repeated.append(axis.type)
        seen.add(axis.type)
    return repeated
