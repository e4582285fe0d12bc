"""Exceptions raised by ndviewer_axes."""

from typing import Sequence, Tuple


class AxisError(Exception):
    """Base class for recoverable axis and dataset errors."""


class InvalidPermutationError(AxisError, ValueError):
    """Desired axis order is not a permutation of the dataset's axis types.

    Attributes:
        duplicates: Axis types named more than once.
        missing: Axis types of the dataset absent from the desired order.
        foreign: Axis types in the desired order the dataset does not have.
    """

    def __init__(
        self,
        duplicates: Sequence = (),
        missing: Sequence = (),
        foreign: Sequence = (),
    ):
        self.duplicates: Tuple = tuple(duplicates)
        self.missing: Tuple = tuple(missing)
        self.foreign: Tuple = tuple(foreign)
        super().__init__(self._describe())

    def _describe(self) -> str:
        parts = []
        if self.duplicates:
            parts.append(
                "axis designation repeated: "
                + ", ".join(str(a) for a in self.duplicates)
            )
        if self.missing:
            parts.append(
                "axis designation missing: " + ", ".join(str(a) for a in self.missing)
            )
        if self.foreign:
            parts.append(
                "axis not present in dataset: "
                + ", ".join(str(a) or repr(a) for a in self.foreign)
            )
        if not parts:
            return "invalid axis order"
        return "; ".join(parts) + " (axis order must name every axis exactly once)"


class StructuralIntervalError(AxisError, RuntimeError):
    """Combined bounds of a display's views are not integral."""

    def __init__(self, bounds):
        self.bounds = bounds
        super().__init__(f"Invalid combination of views: non-discrete bounds {bounds}")


class UnknownAxisError(AxisError, LookupError):
    """Axis type is not part of the current interval or dataset."""

    def __init__(self, axis_type):
        self.axis_type = axis_type
        super().__init__(f"Unknown axis: {axis_type}")

    def __str__(self) -> str:
        # LookupError would otherwise repr() the message
        return self.args[0]


class InvalidAxisAssignmentError(AxisError, ValueError):
    """An axis re-labelling names the same axis type twice."""


class CapacityError(AxisError, MemoryError):
    """A reorder would allocate more than the configured limit."""

    def __init__(self, required_bytes: int, limit_bytes: int):
        self.required_bytes = required_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"Reorder needs {required_bytes} bytes, limit is {limit_bytes} bytes"
        )


class SubrangeError(AxisError, ValueError):
    """Malformed axis sub-range definition."""
