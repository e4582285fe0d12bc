"""Change the storage order of a dataset's axes.

One can reorder in many ways (such as from ``[X, Y, Channel, Z, Time]`` to
``[X, Y, Time, Channel, Z]``). Samples, axes and per-plane color tables are
rearranged to match, and a new :class:`~ndviewer_axes.dataset.Dataset` is
returned; the source dataset is never modified.

The permutation maps each source axis index ``i`` to its new index
``perm[i]``: a sample at source position ``pos`` lands at ``p`` where
``p[perm[i]] = pos[i]``.
"""

import logging
from collections import Counter
from typing import List, Optional, Protocol, Sequence, Tuple

import dask.array as da
import numpy as np

from .axes import Axes, Axis, AxisType
from .config import REORDER_MAX_BYTES, REORDER_PARALLEL_CHUNK_BYTES
from .dataset import Dataset, plane_count, plane_index, plane_position
from .errors import CapacityError, InvalidPermutationError

logger = logging.getLogger(__name__)


class Permutation:
    """Bijection on axis indices ``{0..rank-1}``."""

    def __init__(self, indices: Sequence[int]):
        indices = tuple(int(i) for i in indices)
        if sorted(indices) != list(range(len(indices))):
            raise ValueError(f"{indices} is not a permutation of 0..{len(indices) - 1}")
        self.indices: Tuple[int, ...] = indices

    @classmethod
    def identity(cls, rank: int) -> "Permutation":
        return cls(range(rank))

    @classmethod
    def from_axis_order(
        cls, current: Sequence[AxisType], desired: Sequence
    ) -> "Permutation":
        """Build ``perm[i] = index of current[i] within desired``.

        Raises:
            InvalidPermutationError: ``desired`` repeats, omits or adds an
                axis type relative to ``current``.
        """
        resolved = []
        for label in desired:
            try:
                resolved.append(Axes.get(label))
            except ValueError:
                # blank labels name no axis; reported as foreign below
                resolved.append(label)
        validate_axis_order(current, resolved)
        return cls(resolved.index(t) for t in current)

    @property
    def rank(self) -> int:
        return len(self.indices)

    def __getitem__(self, i: int) -> int:
        return self.indices[i]

    def __len__(self) -> int:
        return len(self.indices)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Permutation):
            return NotImplemented
        return self.indices == other.indices

    def __hash__(self) -> int:
        return hash(self.indices)

    def is_identity(self) -> bool:
        return self.indices == tuple(range(self.rank))

    def inverse(self) -> "Permutation":
        inv = [0] * self.rank
        for i, p in enumerate(self.indices):
            inv[p] = i
        return Permutation(inv)

    def apply(self, values: Sequence) -> list:
        """Move ``values[i]`` to slot ``perm[i]``."""
        if len(values) != self.rank:
            raise ValueError(f"Expected {self.rank} values, got {len(values)}")
        out = [None] * self.rank
        for i, value in enumerate(values):
            out[self.indices[i]] = value
        return out

    def apply_position(self, pos: Sequence[int]) -> Tuple[int, ...]:
        return tuple(self.apply(pos))

    def transpose_axes(self) -> Tuple[int, ...]:
        """Axes argument for ``numpy.transpose`` producing the permuted array."""
        return self.inverse().indices

    def __repr__(self) -> str:
        return f"Permutation({list(self.indices)})"


def validate_axis_order(current: Sequence[AxisType], desired: Sequence[AxisType]) -> None:
    """Check that ``desired`` names every axis of ``current`` exactly once."""
    counts = Counter(desired)
    duplicates = [t for t, n in counts.items() if n > 1]
    missing = [t for t in current if t not in counts]
    current_set = set(current)
    foreign = [t for t in counts if t not in current_set]
    if duplicates or missing or foreign:
        raise InvalidPermutationError(duplicates, missing, foreign)


def reorder(
    dataset: Dataset,
    desired_order: Sequence,
    *,
    parallel: bool = False,
    chunk_bytes: int = REORDER_PARALLEL_CHUNK_BYTES,
    max_bytes: Optional[int] = REORDER_MAX_BYTES,
    remap_color_tables: bool = True,
) -> Dataset:
    """Return a copy of ``dataset`` whose axes follow ``desired_order``.

    Validation runs before anything is allocated, so a rejected order
    leaves the source untouched. The sample copy is a full transpose:
    source and destination buffers coexist until it completes. Datasets
    backed by dask stay lazy; the transposed graph reads each source chunk
    once when computed.

    Args:
        dataset: Source dataset. Not modified.
        desired_order: Axis types or labels, one per axis of ``dataset``.
        parallel: Copy an in-memory buffer in chunks on dask's threaded
            scheduler. Each destination chunk is written by exactly one task.
        chunk_bytes: Target chunk size for the parallel copy.
        max_bytes: Refuse reorders whose new buffer would exceed this size.
        remap_color_tables: Carry per-plane color tables to their new planes.

    Returns:
        New dataset with permuted axes, dims and samples, the same composite
        channel count and name, and remapped color tables.

    Raises:
        InvalidPermutationError: ``desired_order`` is not a permutation of
            the dataset's axis types.
        CapacityError: the new buffer would exceed ``max_bytes``.
    """
    perm = Permutation.from_axis_order(dataset.axis_types, desired_order)

    if max_bytes is not None and not dataset.is_lazy and dataset.nbytes > max_bytes:
        raise CapacityError(dataset.nbytes, max_bytes)

    new_axes: List[Axis] = perm.apply(dataset.axes)
    new_dims = perm.apply_position(dataset.dims)
    data = _permute_samples(dataset, perm, parallel=parallel, chunk_bytes=chunk_bytes)
    if tuple(data.shape) != new_dims:
        raise ValueError(f"Permuted shape {data.shape} does not match {new_dims}")

    result = Dataset(
        data,
        new_axes,
        composite_channel_count=dataset.composite_channel_count,
        name=dataset.name,
    )
    if remap_color_tables:
        ColorTableRemapper(PermutationRemapStrategy(perm, dataset.axes)).remap(
            dataset, result
        )

    logger.info(
        "Reordered %r from %s %s to %s %s",
        dataset.name,
        [a.label for a in dataset.axes],
        dataset.dims,
        [a.label for a in new_axes],
        new_dims,
    )
    return result


def _permute_samples(dataset: Dataset, perm: Permutation, parallel: bool, chunk_bytes: int):
    axes = perm.transpose_axes()
    data = dataset.data
    if dataset.is_lazy:
        return da.transpose(data, axes)
    if perm.is_identity():
        return data.copy()
    if parallel:
        chunks = _chunks_for(data.shape, data.dtype.itemsize, chunk_bytes)
        lazy = da.from_array(data, chunks=chunks)
        out = np.empty(perm.apply_position(data.shape), dtype=data.dtype)
        da.store(da.transpose(lazy, axes), out, lock=False, scheduler="threads")
        return out
    return np.ascontiguousarray(np.transpose(data, axes))


def _chunks_for(shape: Sequence[int], itemsize: int, chunk_bytes: int) -> Tuple[int, ...]:
    """Split the slowest-varying axes until a chunk fits in ``chunk_bytes``."""
    chunks = [max(int(d), 1) for d in shape]
    budget = max(chunk_bytes // max(itemsize, 1), 1)
    for i in range(len(chunks)):
        size = int(np.prod(chunks))
        if size <= budget:
            break
        rest = size // chunks[i]
        chunks[i] = max(budget // max(rest, 1), 1)
    return tuple(chunks)


class RemapStrategy(Protocol):
    """Decides which source planes move and where."""

    def is_valid_source_plane(self, index: int) -> bool:
        ...

    def remap_plane_position(
        self,
        old_plane_dims: Sequence[int],
        old_plane_pos: Sequence[int],
    ) -> Tuple[int, ...]:
        ...


class PermutationRemapStrategy:
    """Plane remapping consistent with an axis permutation.

    X and Y are excluded from plane arithmetic: placeholders are inserted at
    their source indices before permuting, and stripped from the permuted
    position afterwards, wherever the permutation puts them.
    """

    def __init__(self, perm: Permutation, source_axes: Sequence[Axis]):
        if len(source_axes) != perm.rank:
            raise ValueError("Permutation rank does not match axis count")
        self.perm = perm
        self._source_planar = [a.is_xy() for a in source_axes]
        self._target_planar = perm.apply(self._source_planar)

    def is_valid_source_plane(self, index: int) -> bool:
        return True

    def remap_plane_position(
        self,
        old_plane_dims: Sequence[int],
        old_plane_pos: Sequence[int],
    ) -> Tuple[int, ...]:
        it = iter(old_plane_pos)
        full = [0 if planar else next(it) for planar in self._source_planar]
        permuted = self.perm.apply(full)
        return tuple(
            p for p, planar in zip(permuted, self._target_planar) if not planar
        )


class ColorTableRemapper:
    """Moves per-plane color tables from a source to a destination dataset."""

    def __init__(self, strategy: RemapStrategy):
        self.strategy = strategy

    def remap(self, source: Dataset, target: Dataset) -> None:
        """Assign ``target.color_tables`` from ``source.color_tables``.

        Target planes that receive no source table are left as ``None``.
        """
        old_dims = source.plane_dims
        new_dims = target.plane_dims
        tables: List = [None] * plane_count(new_dims)
        moved = 0
        for old_index, table in enumerate(source.color_tables):
            if not self.strategy.is_valid_source_plane(old_index):
                continue
            old_pos = plane_position(old_dims, old_index)
            new_pos = self.strategy.remap_plane_position(old_dims, old_pos)
            tables[plane_index(new_dims, new_pos)] = table
            moved += 1
        target.color_tables = tables
        logger.debug("Remapped %d of %d color tables", moved, len(source.color_tables))
