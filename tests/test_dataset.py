"""Tests for Dataset structure, plane arithmetic and color tables."""

import dask.array as da
import numpy as np
import pytest

from ndviewer_axes.axes import Axes, Axis
from ndviewer_axes.dataset import (
    ColorTable,
    Dataset,
    plane_count,
    plane_index,
    plane_position,
    structure_changed,
)
from ndviewer_axes.errors import InvalidAxisAssignmentError, UnknownAxisError


def _dataset(shape=(4, 3, 2, 5), labels=("X", "Y", "Channel", "Z"), **kwargs):
    data = np.arange(int(np.prod(shape)), dtype=np.float32).reshape(shape)
    return Dataset.from_labels(data, labels, **kwargs)


class TestPlaneArithmetic:
    """Plane index <-> position with the first axis varying fastest."""

    def test_first_axis_varies_fastest(self):
        """Stepping the first coordinate moves the index by one."""
        dims = (2, 3)
        assert plane_index(dims, (0, 0)) == 0
        assert plane_index(dims, (1, 0)) == 1
        assert plane_index(dims, (0, 1)) == 2
        assert plane_index(dims, (1, 2)) == 5

    def test_position_inverts_index(self):
        """plane_position decomposes every index back to its coordinate."""
        dims = (2, 5, 3)
        for index in range(plane_count(dims)):
            assert plane_index(dims, plane_position(dims, index)) == index

    def test_no_planar_axes_is_one_plane(self):
        """An X/Y-only dataset has exactly one plane at the empty position."""
        assert plane_count(()) == 1
        assert plane_index((), ()) == 0
        assert plane_position((), 0) == ()

    def test_out_of_range(self):
        """Coordinates or indices outside the plane space raise IndexError."""
        with pytest.raises(IndexError):
            plane_index((2, 3), (2, 0))
        with pytest.raises(IndexError):
            plane_position((2, 3), 6)

    def test_rank_mismatch(self):
        """A position of the wrong length is a ValueError."""
        with pytest.raises(ValueError):
            plane_index((2, 3), (0,))


class TestDatasetConstruction:
    """Test suite for Dataset construction checks."""

    def test_structure_properties(self):
        """Axes, dims and plane layout follow the buffer."""
        ds = _dataset()
        assert ds.rank == 4
        assert ds.dims == (4, 3, 2, 5)
        assert ds.axis_types == (Axes.X, Axes.Y, Axes.CHANNEL, Axes.Z)
        assert ds.planar_indices == (0, 1)
        assert ds.plane_dims == (2, 5)
        assert ds.plane_count == 10
        assert len(ds.color_tables) == 10
        assert ds.channel_count == 2
        assert ds.bounds[3] == (0.0, 4.0)

    def test_rank_mismatch_rejected(self):
        """Axis count must equal buffer rank."""
        with pytest.raises(ValueError, match="dimensions"):
            Dataset.from_labels(np.zeros((2, 2)), ["X", "Y", "Z"])

    def test_duplicate_axis_rejected(self):
        """Axis types must be unique."""
        with pytest.raises(InvalidAxisAssignmentError):
            Dataset.from_labels(np.zeros((2, 2, 2)), ["X", "Y", "X"])

    def test_color_table_count_checked(self):
        """An explicit color table list needs one entry per plane."""
        with pytest.raises(ValueError, match="color tables"):
            _dataset(color_tables=[None] * 3)

    def test_dimension_of_absent_axis(self):
        """dimension() of an absent axis raises UnknownAxisError."""
        ds = _dataset()
        assert ds.dimension(Axes.Z) == 5
        with pytest.raises(UnknownAxisError):
            ds.dimension(Axes.TIME)
        assert ds.axis_index(Axes.TIME) == -1


class TestSamplesAndPlanes:
    """Tests for sample access and plane extraction."""

    def test_get_and_set_sample(self):
        """Samples are addressed by full coordinate vectors."""
        ds = _dataset()
        assert ds.get_sample((1, 2, 1, 3)) == ds.data[1, 2, 1, 3]
        ds.set_sample((1, 2, 1, 3), -7.0)
        assert ds.get_sample((1, 2, 1, 3)) == -7.0

    def test_plane_is_y_by_x(self):
        """plane() returns [Y, X] regardless of storage order."""
        ds = _dataset()
        plane = ds.plane((1, 3))
        assert plane.shape == (3, 4)
        np.testing.assert_array_equal(plane, ds.data[:, :, 1, 3].T)

    def test_plane_with_y_before_x(self):
        """No transpose is needed when Y precedes X."""
        data = np.arange(2 * 3 * 4).reshape(2, 3, 4)
        ds = Dataset.from_labels(data, ["Z", "Y", "X"])
        np.testing.assert_array_equal(ds.plane((1,)), data[1])

    def test_lazy_dataset(self):
        """Dask-backed datasets read lazily and refuse writes."""
        data = np.arange(24).reshape(2, 3, 4)
        ds = Dataset.from_labels(da.from_array(data, chunks=(1, 3, 4)), ["Z", "Y", "X"])
        assert ds.is_lazy
        assert ds.get_sample((1, 2, 3)) == 23
        np.testing.assert_array_equal(ds.plane((0,)), data[0])
        with pytest.raises(TypeError):
            ds.set_sample((0, 0, 0), 1)


class TestMetadataEdits:
    """Tests for in-place metadata edits."""

    def test_set_units_subset(self):
        """Units can be set for some axes only."""
        ds = _dataset()
        ds.set_units({Axes.X: "µm", "z": "µm"})
        assert ds.axis(0).unit == "µm"
        assert ds.axis(1).unit == ""
        assert ds.axis(3).unit == "µm"

    def test_set_units_unknown_axis(self):
        """Unknown axes are rejected without applying any unit."""
        ds = _dataset()
        with pytest.raises(UnknownAxisError):
            ds.set_units({Axes.X: "µm", Axes.TIME: "s"})
        assert ds.axis(0).unit == ""

    def test_set_axis_keeps_tables_when_planarity_unchanged(self):
        """Re-labelling a non-planar axis keeps the color tables."""
        table = ColorTable.from_hex("00FF00")
        ds = _dataset(color_tables=[table] * 10)
        ds.set_axis(3, Axis(Axes.TIME))
        assert ds.axis_types[3] == Axes.TIME
        assert ds.color_tables[0] is table

    def test_set_axis_resets_tables_when_planarity_changes(self):
        """Turning a planar axis into a non-planar one resets the tables."""
        ds = Dataset.from_labels(np.zeros((2, 3, 4)), ["X", "Y", "Z"])
        ds.color_tables = [ColorTable.from_hex("FF0000")] * 4
        ds.set_axes([Axis(Axes.X), Axis(Axes.Z), Axis(Axes.Y)])
        assert ds.plane_count == 3
        assert ds.color_tables == [None, None, None]

    def test_set_axis_duplicate(self):
        """set_axis refuses a type already present elsewhere."""
        ds = _dataset()
        with pytest.raises(InvalidAxisAssignmentError):
            ds.set_axis(2, Axis(Axes.Z))

    def test_copy_is_independent(self):
        """copy() duplicates the buffer and the table list."""
        ds = _dataset()
        dup = ds.copy()
        dup.set_sample((0, 0, 0, 0), 99)
        dup.color_tables[0] = ColorTable.from_hex("0000FF")
        assert ds.get_sample((0, 0, 0, 0)) == 0
        assert ds.color_tables[0] is None


class TestStructureChanged:
    """Tests for rebuild-vs-update detection on dataset replacement."""

    def test_none_old(self):
        """No previous dataset always counts as a change."""
        assert structure_changed(None, _dataset()) is True

    def test_same_structure(self):
        """Different values with the same layout do not need a rebuild."""
        a = _dataset()
        b = _dataset()
        b.set_units({Axes.X: "µm"})
        assert structure_changed(a, b) is False

    def test_axis_order_change(self):
        """Reordered axes need a rebuild."""
        a = _dataset()
        b = Dataset.from_labels(np.zeros((4, 3, 5, 2), dtype=np.float32), ["X", "Y", "Z", "Channel"])
        assert structure_changed(a, b) is True

    def test_dtype_change(self):
        """A dtype change needs a rebuild."""
        a = _dataset()
        b = Dataset(a.data.astype(np.uint16), a.axes)
        assert structure_changed(a, b) is True


class TestColorTable:
    """Tests for ColorTable factories."""

    def test_from_hex(self):
        """Hex colors produce a ramp from black to that color."""
        table = ColorTable.from_hex("#00ff00")
        assert table.name == "00FF00"
        assert len(table) == 256
        np.testing.assert_array_equal(table.values[0], [0, 0, 0])
        np.testing.assert_array_equal(table.values[-1], [0, 255, 0])

    def test_from_hex_malformed(self):
        """Hex strings must have six digits."""
        with pytest.raises(ValueError):
            ColorTable.from_hex("FFF")

    @pytest.mark.parametrize(
        "wavelength,name",
        [(405, "blue"), (488, "green"), (561, "yellow"), (640, "red"), (730, "magenta"), (None, "gray"), (530, "gray")],
    )
    def test_for_wavelength(self, wavelength, name):
        """Emission wavelengths map to named ramps."""
        assert ColorTable.for_wavelength(wavelength).name == name

    def test_bad_shape(self):
        """Values must be (n, 3)."""
        with pytest.raises(ValueError):
            ColorTable("bad", np.zeros((4, 4)))

    def test_equality(self):
        """Tables compare by name and values."""
        assert ColorTable.from_hex("FF0000") == ColorTable.from_hex("ff0000")
        assert ColorTable.from_hex("FF0000") != ColorTable.from_hex("00FF00")
