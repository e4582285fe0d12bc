"""ndviewer_axes - typed N-dimensional axes, displays and axis reordering."""

try:
    from importlib.metadata import version

    __version__ = version("ndviewer_axes")
except Exception:
    __version__ = "unknown"

from .axes import Axes, Axis, AxisType, Calibration, CalibrationKind
from .commands import (
    axis_position_backward,
    axis_position_forward,
    edit_axes,
    probe,
    reorder_data,
    sample_planes,
    set_dataset_units,
)
from .config import Settings, load_settings
from .dataset import ColorTable, Dataset, structure_changed
from .display import DataView, ImageDisplay, PlaneCache, PositionTracker
from .errors import (
    AxisError,
    CapacityError,
    InvalidAxisAssignmentError,
    InvalidPermutationError,
    StructuralIntervalError,
    SubrangeError,
    UnknownAxisError,
)
from .events import (
    AxisActivatedEvent,
    AxisPositionEvent,
    DataRestructuredEvent,
    DataUpdatedEvent,
    EventQueue,
)
from .interval import CombinedInterval, RectangleOverlay
from .io import from_xarray, load_ngff, load_tiff, save_tiff, to_xarray
from .reorder import (
    ColorTableRemapper,
    Permutation,
    PermutationRemapStrategy,
    reorder,
    validate_axis_order,
)
from .subrange import AxisSubrange

__all__ = [
    "__version__",
    "Axes",
    "Axis",
    "AxisActivatedEvent",
    "AxisError",
    "AxisPositionEvent",
    "AxisSubrange",
    "AxisType",
    "Calibration",
    "CalibrationKind",
    "CapacityError",
    "ColorTable",
    "ColorTableRemapper",
    "CombinedInterval",
    "DataRestructuredEvent",
    "DataUpdatedEvent",
    "DataView",
    "Dataset",
    "EventQueue",
    "ImageDisplay",
    "InvalidAxisAssignmentError",
    "InvalidPermutationError",
    "Permutation",
    "PermutationRemapStrategy",
    "PlaneCache",
    "PositionTracker",
    "RectangleOverlay",
    "Settings",
    "StructuralIntervalError",
    "SubrangeError",
    "UnknownAxisError",
    "axis_position_backward",
    "axis_position_forward",
    "edit_axes",
    "from_xarray",
    "load_ngff",
    "load_settings",
    "load_tiff",
    "probe",
    "reorder",
    "reorder_data",
    "sample_planes",
    "save_tiff",
    "set_dataset_units",
    "structure_changed",
    "to_xarray",
    "validate_axis_order",
]
