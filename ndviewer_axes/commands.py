"""User-level commands on displays and datasets.

These are the boundary between user actions and the core: they log and
absorb rejected input where the caller only needs to know that nothing
happened, and raise everywhere else.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union

import dask.array as da
import numpy as np

from .axes import Axes, Axis, AxisType
from .config import POSITION_STEP, POSITION_STEP_FAST
from .dataset import Dataset, plane_index
from .display import ImageDisplay
from .errors import InvalidAxisAssignmentError, InvalidPermutationError, UnknownAxisError
from .events import DataRestructuredEvent, DataUpdatedEvent, EventQueue
from .reorder import reorder
from .subrange import AxisSubrange

logger = logging.getLogger(__name__)

SubrangeSpec = Union[AxisSubrange, str, Sequence[int]]


def axis_position_forward(
    display: ImageDisplay,
    fast: bool = False,
    step: int = POSITION_STEP,
    fast_step: int = POSITION_STEP_FAST,
) -> Optional[int]:
    """Show the next plane along the active axis.

    Returns:
        The new (clamped) position, or None when no axis is active.
    """
    return _step_active_axis(display, fast_step if fast else step)


def axis_position_backward(
    display: ImageDisplay,
    fast: bool = False,
    step: int = POSITION_STEP,
    fast_step: int = POSITION_STEP_FAST,
) -> Optional[int]:
    """Show the previous plane along the active axis."""
    return _step_active_axis(display, -(fast_step if fast else step))


def _step_active_axis(display: ImageDisplay, delta: int) -> Optional[int]:
    axis_type = display.get_active_axis()
    if axis_type is None:
        return None
    return display.move(axis_type, delta)


def reorder_data(
    display: Optional[ImageDisplay],
    dataset: Dataset,
    desired_order: Sequence,
    **reorder_kwargs,
) -> Optional[Dataset]:
    """Reorder ``dataset`` and show the result in place of it.

    A rejected order is logged and leaves both the dataset and the display
    as they were.

    Args:
        display: Display whose views show ``dataset``; may be None.
        dataset: Dataset to reorder.
        desired_order: Axis types or labels in the wanted storage order.
        **reorder_kwargs: Passed to :func:`ndviewer_axes.reorder.reorder`.

    Returns:
        The reordered dataset, or None if the order was rejected.
    """
    try:
        new_dataset = reorder(dataset, desired_order, **reorder_kwargs)
    except InvalidPermutationError as e:
        logger.error("Reorder of %r rejected: %s", dataset.name, e)
        return None

    if display is not None:
        display.replace_data(dataset, new_dataset)
    return new_dataset


def edit_axes(
    dataset: Dataset,
    axis_types: Sequence,
    publisher: Optional[EventQueue] = None,
) -> Dataset:
    """Re-label the axes of ``dataset`` without moving any samples.

    Calibration is kept for types the dataset already has; other types get
    a default linear calibration. Useful when imported data has the wrong
    axis designations.

    Raises:
        InvalidAxisAssignmentError: a type is named twice.
    """
    types: List[AxisType] = [Axes.get(t) for t in axis_types]
    if len(types) != dataset.rank:
        raise ValueError(f"Expected {dataset.rank} axis types, got {len(types)}")
    if len(set(types)) != len(types):
        raise InvalidAxisAssignmentError(
            "At least one axis designation is repeated: "
            "axis designations must be mutually exclusive"
        )

    new_axes: List[Axis] = []
    for axis_type in types:
        index = dataset.axis_index(axis_type)
        new_axes.append(dataset.axis(index) if index >= 0 else Axis(axis_type))
    dataset.set_axes(new_axes)
    logger.info("Axes of %r set to %s", dataset.name, [str(t) for t in types])

    if publisher is not None:
        publisher.publish(DataRestructuredEvent(dataset))
    return dataset


def set_dataset_units(
    dataset: Dataset,
    units: Mapping,
    publisher: Optional[EventQueue] = None,
) -> Dataset:
    """Set unit labels for any subset of the dataset's axes."""
    dataset.set_units(units)
    if publisher is not None:
        publisher.publish(DataUpdatedEvent(dataset))
    return dataset


def sample_planes(
    dataset: Dataset,
    definitions: Mapping,
    origin_is_one: bool = True,
) -> Dataset:
    """Copy a subset of ``dataset`` selected per axis.

    Args:
        dataset: Source dataset.
        definitions: Axis type (or label) to an :class:`AxisSubrange`, a
            definition string, or a sequence of zero-based indices. Axes
            without a definition keep every index.
        origin_is_one: How definition strings count.

    Returns:
        New dataset with the same axes and the color tables of the kept
        planes.
    """
    selections: Dict[int, List[int]] = {}
    for key, spec in definitions.items():
        axis_type = Axes.get(key)
        index = dataset.axis_index(axis_type)
        if index < 0:
            raise UnknownAxisError(axis_type)
        selections[index] = _indices(spec, dataset.dims[index], origin_is_one)

    data = dataset.data
    take = da.take if dataset.is_lazy else np.take
    for index, selected in selections.items():
        data = take(data, selected, axis=index)
    if not dataset.is_lazy:
        data = np.ascontiguousarray(data)

    result = Dataset(
        data,
        dataset.axes,
        composite_channel_count=dataset.composite_channel_count,
        name=dataset.name,
    )

    # kept[j][k] is the source coordinate of new plane coordinate k on axis j
    kept = [
        selections.get(i, list(range(dataset.dims[i])))
        for i in dataset.non_planar_indices
    ]
    source_dims = dataset.plane_dims
    for new_index in range(result.plane_count):
        new_pos = result.plane_position(new_index)
        old_pos = [kept[j][p] for j, p in enumerate(new_pos)]
        result.color_tables[new_index] = dataset.color_tables[
            plane_index(source_dims, old_pos)
        ]

    logger.info("Sampled %r from %s to %s", dataset.name, dataset.dims, result.dims)
    return result


def _indices(spec: SubrangeSpec, dim: int, origin_is_one: bool) -> List[int]:
    if isinstance(spec, AxisSubrange):
        return spec.as_list()
    if isinstance(spec, str):
        return AxisSubrange(spec, dim, origin_is_one).as_list()
    indices = sorted({int(i) for i in spec})
    for i in indices:
        if not 0 <= i < dim:
            raise IndexError(f"Index {i} outside [0, {dim})")
    return indices


def probe(display: ImageDisplay, x: int, y: int) -> Optional[float]:
    """Sample value of the active view at ``(x, y)`` on the current plane.

    Returns:
        The value, or None if there is no dataset view or the point lies
        outside the data.
    """
    view = display.get_active_view()
    if view is None or not isinstance(view.data, Dataset):
        return None
    dataset = view.data
    pos = []
    for axis, dim in zip(dataset.axes, dataset.dims):
        if axis.type == Axes.X:
            value = x
        elif axis.type == Axes.Y:
            value = y
        else:
            value = display.get_position(axis.type)
        if not 0 <= value < dim:
            return None
        pos.append(value)
    return dataset.get_sample(pos)
