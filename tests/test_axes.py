"""Tests for axis types, calibration and axis helpers."""

import math

import pytest

from ndviewer_axes.axes import (
    Axes,
    Axis,
    AxisType,
    Calibration,
    CalibrationKind,
    axis_index,
    check_unique,
)


class TestAxisTypeLookup:
    """Test suite for Axes.get label resolution."""

    def test_known_labels_resolve_to_constants(self):
        """Canonical labels map to the known axis types."""
        assert Axes.get("X") == Axes.X
        assert Axes.get("Time") == Axes.TIME
        assert Axes.get("Channel") == Axes.CHANNEL

    def test_aliases_are_case_insensitive(self):
        """Short and lower-case aliases used by file formats resolve."""
        assert Axes.get("t") == Axes.TIME
        assert Axes.get("C") == Axes.CHANNEL
        assert Axes.get("ch") == Axes.CHANNEL
        assert Axes.get("z") == Axes.Z

    def test_unknown_label_gives_custom_type(self):
        """Labels outside the known set produce a custom type with that label."""
        custom = Axes.get("Angle")
        assert custom == AxisType("Angle")
        assert Axes.is_custom(custom)
        assert not Axes.is_custom(Axes.Z)

    def test_axis_type_passes_through(self):
        """An AxisType argument is returned unchanged."""
        assert Axes.get(Axes.PHASE) is Axes.PHASE

    def test_empty_label_rejected(self):
        """Empty or blank labels are a programming error."""
        with pytest.raises(ValueError):
            Axes.get("  ")

    def test_equality_and_hash_by_label(self):
        """Types with the same label are interchangeable as dict keys."""
        positions = {AxisType("Z"): 3}
        assert positions[Axes.Z] == 3

    def test_planar_types(self):
        """Only X and Y are planar."""
        assert Axes.X.is_xy() and Axes.Y.is_xy()
        assert not Axes.Z.is_xy()
        assert Axes.Z.is_spatial()
        assert not Axes.TIME.is_spatial()


class TestCalibration:
    """Test suite for calibrated axis coordinates."""

    def test_linear_forward_and_inverse(self):
        """Linear axes map raw i to offset + scale * i and back."""
        axis = Axis(Axes.X, scale=0.5, offset=2.0, unit="µm")
        assert axis.calibrated(4) == pytest.approx(4.0)
        assert axis.raw(4.0) == pytest.approx(4.0)
        assert axis.is_linear()

    def test_log_calibration(self):
        """Log calibration uses log(raw + shift)."""
        axis = Axis(Axes.Z, scale=2.0, calibration=Calibration(CalibrationKind.LOG, 1.0))
        assert axis.calibrated(0) == pytest.approx(0.0)
        assert axis.calibrated(math.e - 1) == pytest.approx(2.0)
        assert axis.raw(axis.calibrated(7)) == pytest.approx(7.0)

    def test_power_calibration(self):
        """Power calibration raises raw to the exponent."""
        axis = Axis(Axes.TIME, calibration=Calibration(CalibrationKind.POWER, 2.0))
        assert axis.calibrated(3) == pytest.approx(9.0)
        assert axis.raw(9.0) == pytest.approx(3.0)
        assert not axis.is_linear()

    def test_exponential_calibration(self):
        """Exponential calibration uses exp(rate * raw)."""
        axis = Axis(
            Axes.SPECTRA,
            offset=-1.0,
            calibration=Calibration(CalibrationKind.EXPONENTIAL, 0.5),
        )
        assert axis.calibrated(0) == pytest.approx(0.0)
        assert axis.raw(axis.calibrated(4)) == pytest.approx(4.0)

    def test_default_shape_parameter(self):
        """Missing shape parameters fall back to per-kind defaults."""
        assert Calibration(CalibrationKind.LOG).shape_param == 1.0
        assert Calibration().shape_param == 0.0

    def test_zero_scale_has_no_inverse(self):
        """raw() on a zero-scale axis fails loudly."""
        with pytest.raises(ZeroDivisionError):
            Axis(Axes.X, scale=0.0).raw(1.0)

    def test_same_calibration(self):
        """same_calibration compares scale, offset, unit and kind."""
        a = Axis(Axes.X, scale=0.325, unit="µm")
        assert a.same_calibration(Axis(Axes.Y, scale=0.325, unit="µm"))
        assert not a.same_calibration(Axis(Axes.X, scale=0.65, unit="µm"))
        assert not a.same_calibration(a.with_unit("nm"))


class TestAxisHelpers:
    """Tests for axis_index and check_unique."""

    def test_axis_index_absent_is_negative(self):
        """Absent types report -1 instead of raising."""
        axes = [Axis(Axes.X), Axis(Axes.Y), Axis(Axes.Z)]
        assert axis_index(axes, Axes.Z) == 2
        assert axis_index(axes, Axes.TIME) == -1

    def test_check_unique_reports_repeats_once(self):
        """Each repeated type is listed once, in order of first repeat."""
        axes = [Axis(Axes.X), Axis(Axes.Z), Axis(Axes.Z), Axis(Axes.Z), Axis(Axes.X)]
        assert check_unique(axes) == [Axes.Z, Axes.X]
        assert check_unique([Axis(Axes.X), Axis(Axes.Y)]) == []

    def test_axis_of_label(self):
        """Axis.of builds from a label with keyword calibration."""
        axis = Axis.of("t", scale=2.0)
        assert axis.type == Axes.TIME
        assert axis.label == "Time"
        assert axis.scale == 2.0
