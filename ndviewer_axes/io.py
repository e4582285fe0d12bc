"""Dataset storage adapters: TIFF, OME-NGFF zarr and xarray.

TIFF files written by :func:`save_tiff` carry axis labels and calibration
in shaped-JSON metadata and read back exactly. Other TIFFs fall back to the
series axes letters and OME-XML physical sizes.
"""

import json
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import dask.array as da
import numpy as np
import tifffile as tf
import xarray as xr

from .axes import Axes, Axis, AxisType, Calibration, CalibrationKind
from .dataset import ColorTable, Dataset

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TIFF_EXTENSIONS = {".tif", ".tiff"}

# tifffile axes letters
_LETTER_TO_AXIS: Dict[str, AxisType] = {
    "X": Axes.X,
    "Y": Axes.Y,
    "Z": Axes.Z,
    "C": Axes.CHANNEL,
    "S": Axes.CHANNEL,
    "T": Axes.TIME,
    "E": Axes.SPECTRA,
    "H": Axes.LIFETIME,
    "P": Axes.PHASE,
}
_AXIS_TO_LETTER: Dict[AxisType, str] = {
    Axes.X: "X",
    Axes.Y: "Y",
    Axes.Z: "Z",
    Axes.CHANNEL: "C",
    Axes.TIME: "T",
    Axes.SPECTRA: "E",
    Axes.LIFETIME: "H",
    Axes.PHASE: "P",
}


# ─────────────────────────────────────────────────────────────────────────────
# Metadata helpers
# ─────────────────────────────────────────────────────────────────────────────


_EMISSION_NM = re.compile(r"(\d{3})\s*nm\b", re.IGNORECASE)


def _channel_wavelength(name: str) -> Optional[int]:
    """Wavelength written into a channel name as ``"<nnn> nm"``, else None."""
    match = _EMISSION_NM.search(name or "")
    return int(match.group(1)) if match else None


def ome_physical_sizes(ome_metadata: Optional[str]) -> Dict[AxisType, Tuple[float, str]]:
    """Physical pixel size and unit of X, Y and Z from OME-XML metadata.

    Axes whose size is missing, unparseable or not positive are left out.
    Units are kept as written; OME defaults to micrometers.
    """
    if not ome_metadata:
        return {}
    try:
        root = ET.fromstring(ome_metadata)
    except ET.ParseError as e:
        logger.debug("Failed to parse OME metadata: %s", e)
        return {}

    # {*} matches any OME namespace version, or none
    pixels = root.find(".//{*}Pixels")
    if pixels is None:
        return {}

    sizes: Dict[AxisType, Tuple[float, str]] = {}
    for axis_type in (Axes.X, Axes.Y, Axes.Z):
        attr = f"PhysicalSize{axis_type.label}"
        try:
            size = float(pixels.get(attr, ""))
        except ValueError:
            continue
        if size > 0:
            sizes[axis_type] = (size, pixels.get(f"{attr}Unit", "µm"))
    return sizes


def axes_from_letters(letters: str) -> List[Axis]:
    """Axes for a tifffile axes string; unknown letters become custom types."""
    axes: List[Axis] = []
    used = set()
    for i, letter in enumerate(letters.upper()):
        axis_type = _LETTER_TO_AXIS.get(letter, AxisType(letter))
        if axis_type in used:
            axis_type = AxisType(f"{axis_type.label}{i}")
        used.add(axis_type)
        axes.append(Axis(axis_type))
    return axes


def _calibration_to_json(axis: Axis) -> Dict[str, Any]:
    return {"kind": axis.calibration.kind.value, "param": axis.calibration.param}


def _calibration_from_json(raw: Optional[Dict[str, Any]]) -> Calibration:
    if not raw:
        return Calibration()
    try:
        kind = CalibrationKind(raw.get("kind", "linear"))
    except ValueError:
        logger.debug("Unknown calibration kind %r, using linear", raw.get("kind"))
        return Calibration()
    param = raw.get("param")
    return Calibration(kind, None if param is None else float(param))


# ─────────────────────────────────────────────────────────────────────────────
# TIFF
# ─────────────────────────────────────────────────────────────────────────────


def save_tiff(dataset: Dataset, path: PathLike) -> None:
    """Write the dataset buffer and axis metadata as a shaped TIFF."""
    data = dataset.data.compute() if dataset.is_lazy else dataset.data
    metadata = {
        "axes": "".join(_AXIS_TO_LETTER.get(a.type, "Q") for a in dataset.axes),
        "axis_labels": [a.label for a in dataset.axes],
        "units": [a.unit for a in dataset.axes],
        "scales": [a.scale for a in dataset.axes],
        "offsets": [a.offset for a in dataset.axes],
        "calibrations": [_calibration_to_json(a) for a in dataset.axes],
        "composite_channel_count": dataset.composite_channel_count,
        "name": dataset.name,
    }
    tf.imwrite(str(path), np.asarray(data), photometric="minisblack", metadata=metadata)
    logger.info("Saved %r %s to %s", dataset.name, dataset.dims, path)


def load_tiff(path: PathLike, lazy: bool = False) -> Dataset:
    """Load the first series of a TIFF file as a dataset.

    Args:
        path: TIFF file.
        lazy: Read planes on demand through dask. Only possible when every
            TIFF page is one Y/X plane of the series; otherwise the file is
            read eagerly.
    """
    path = Path(path)
    with tf.TiffFile(str(path)) as tif:
        series = tif.series[0]
        shaped = tif.shaped_metadata[0] if tif.shaped_metadata else None
        ome_xml = tif.ome_metadata if tif.is_ome else None

        if shaped and "axis_labels" in shaped:
            shape = tuple(int(d) for d in shaped.get("shape", series.shape))
            axes = _axes_from_shaped(shaped)
        else:
            shape = tuple(series.shape)
            axes = axes_from_letters(series.axes)
            axes = _apply_physical_sizes(axes, ome_xml)

        n_planes = int(np.prod(shape[:-2])) if len(shape) > 2 else 1
        can_stream = (
            len(axes) >= 2
            and axes[-1].type == Axes.X
            and axes[-2].type == Axes.Y
            and len(tif.series) == 1
            and len(tif.pages) == n_planes
        )
        if lazy and not can_stream:
            logger.debug("Cannot stream %s plane by plane, reading eagerly", path)
        if lazy and can_stream:
            data = _lazy_tiff_planes(path, shape, series.dtype)
        else:
            data = series.asarray().reshape(shape)

    name = path.name
    composite = 1
    if shaped:
        name = shaped.get("name") or name
        composite = int(shaped.get("composite_channel_count", 1))
    dataset = Dataset(data, axes, composite_channel_count=composite, name=name)
    logger.info("Loaded %s: %s %s", path, [a.label for a in axes], dataset.dims)
    return dataset


def _axes_from_shaped(meta: Dict[str, Any]) -> List[Axis]:
    labels = meta["axis_labels"]
    n = len(labels)
    units = meta.get("units") or [""] * n
    scales = meta.get("scales") or [1.0] * n
    offsets = meta.get("offsets") or [0.0] * n
    calibrations = meta.get("calibrations") or [None] * n
    return [
        Axis(
            Axes.get(label),
            scale=float(scale),
            offset=float(offset),
            unit=unit or "",
            calibration=_calibration_from_json(cal),
        )
        for label, unit, scale, offset, cal in zip(
            labels, units, scales, offsets, calibrations
        )
    ]


def _apply_physical_sizes(axes: List[Axis], ome_xml: Optional[str]) -> List[Axis]:
    sizes = ome_physical_sizes(ome_xml)
    out = []
    for axis in axes:
        if axis.type in sizes:
            size, unit = sizes[axis.type]
            axis = Axis(axis.type, scale=size, offset=axis.offset, unit=unit)
        out.append(axis)
    return out


def _lazy_tiff_planes(path: Path, shape: Tuple[int, ...], dtype) -> da.Array:
    """Dask array whose chunks are single TIFF pages, read on demand."""
    leading = shape[:-2]
    height, width = shape[-2:]
    chunks = tuple((1,) * n for n in leading) + ((height,), (width,))

    def _block_loader(block, block_info=None):
        loc = block_info[None]["chunk-location"][:-2]
        page_index = int(np.ravel_multi_index(loc, leading)) if leading else 0
        with tf.TiffFile(str(path)) as tif:
            plane = tif.pages[page_index].asarray()
        return plane.reshape((1,) * len(leading) + (height, width))

    dummy = da.zeros(shape, chunks=chunks, dtype=dtype)
    return da.map_blocks(_block_loader, dummy, dtype=dtype, chunks=chunks)


# ─────────────────────────────────────────────────────────────────────────────
# OME-NGFF zarr
# ─────────────────────────────────────────────────────────────────────────────


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Failed to read %s: %s", path, e)
        return None


def parse_ngff_metadata(zarr_path: PathLike) -> Dict[str, Any]:
    """Parse OME-NGFF metadata from a zarr v3 ``zarr.json`` or v2 ``.zattrs``.

    Returns:
        Dict with ``axes`` (list of NGFF axis dicts), ``scale`` and
        ``translation`` (level-0 transforms, or None), ``dataset_path``,
        ``channel_names`` and ``channel_colors``.
    """
    zarr_path = Path(zarr_path)
    result: Dict[str, Any] = {
        "axes": [],
        "scale": None,
        "translation": None,
        "dataset_path": "0",
        "channel_names": [],
        "channel_colors": [],
    }

    attrs = None
    v3 = _read_json(zarr_path / "zarr.json")
    if v3 is not None:
        attrs = v3.get("attributes", {})
    else:
        attrs = _read_json(zarr_path / ".zattrs")
    if not isinstance(attrs, dict):
        return result

    ome = attrs.get("ome", attrs)

    multiscales = ome.get("multiscales") or []
    if multiscales:
        ms = multiscales[0]
        result["axes"] = list(ms.get("axes", []))
        datasets = ms.get("datasets") or []
        transforms = list(ms.get("coordinateTransformations", []))
        if datasets:
            result["dataset_path"] = str(datasets[0].get("path", "0"))
            transforms = list(datasets[0].get("coordinateTransformations", [])) + transforms
        for transform in transforms:
            kind = transform.get("type")
            if kind == "scale" and result["scale"] is None:
                result["scale"] = [float(v) for v in transform.get("scale", [])]
            elif kind == "translation" and result["translation"] is None:
                result["translation"] = [
                    float(v) for v in transform.get("translation", [])
                ]

    omero = ome.get("omero") or {}
    for channel in omero.get("channels", []):
        result["channel_names"].append(str(channel.get("label", "")))
        result["channel_colors"].append(channel.get("color"))

    return result


def load_ngff(zarr_path: PathLike) -> Dataset:
    """Open level 0 of an OME-NGFF image lazily."""
    zarr_path = Path(zarr_path)
    meta = parse_ngff_metadata(zarr_path)
    data = da.from_zarr(str(zarr_path / meta["dataset_path"]))

    ngff_axes = meta["axes"]
    if len(ngff_axes) != data.ndim:
        logger.debug("NGFF axes missing or mismatched for %s, guessing", zarr_path)
        letters = "TCZYX"[-data.ndim:] if data.ndim <= 5 else "Q" * data.ndim
        axes = axes_from_letters(letters)
    else:
        scale = meta["scale"] or [1.0] * data.ndim
        translation = meta["translation"] or [0.0] * data.ndim
        axes = []
        for i, ax in enumerate(ngff_axes):
            name = ax.get("name", str(i)) if isinstance(ax, dict) else str(ax)
            unit = ax.get("unit", "") if isinstance(ax, dict) else ""
            axes.append(
                Axis(
                    Axes.get(name),
                    scale=float(scale[i]),
                    offset=float(translation[i]),
                    unit=unit or "",
                )
            )

    dataset = Dataset(data, axes, name=zarr_path.name)
    _assign_channel_tables(dataset, meta["channel_names"], meta["channel_colors"])
    logger.info("Opened NGFF %s: %s %s", zarr_path, [a.label for a in axes], dataset.dims)
    return dataset


def _assign_channel_tables(
    dataset: Dataset, names: Sequence[str], colors: Sequence[Optional[str]]
) -> None:
    c_index = dataset.axis_index(Axes.CHANNEL)
    if c_index < 0 or not (names or colors):
        return
    tables: List[Optional[ColorTable]] = []
    for c in range(dataset.dims[c_index]):
        name = names[c] if c < len(names) else ""
        color = colors[c] if c < len(colors) else None
        if color:
            try:
                tables.append(ColorTable.from_hex(color, name=name or None))
                continue
            except ValueError:
                logger.debug("Ignoring malformed channel color %r", color)
        tables.append(ColorTable.for_wavelength(_channel_wavelength(name)))

    channel_slot = dataset.non_planar_indices.index(c_index)
    for plane in range(dataset.plane_count):
        dataset.color_tables[plane] = tables[dataset.plane_position(plane)[channel_slot]]


# ─────────────────────────────────────────────────────────────────────────────
# xarray
# ─────────────────────────────────────────────────────────────────────────────


def to_xarray(dataset: Dataset) -> xr.DataArray:
    """Labelled view of a dataset; dims are axis labels."""
    coords = {
        axis.label: [axis.calibrated(i) for i in range(dim)]
        for axis, dim in zip(dataset.axes, dataset.dims)
    }
    arr = xr.DataArray(
        dataset.data,
        dims=[a.label for a in dataset.axes],
        coords=coords,
        name=dataset.name or None,
    )
    arr.attrs["units"] = {a.label: a.unit for a in dataset.axes}
    arr.attrs["calibrations"] = {a.label: _calibration_to_json(a) for a in dataset.axes}
    arr.attrs["scales"] = {a.label: a.scale for a in dataset.axes}
    arr.attrs["offsets"] = {a.label: a.offset for a in dataset.axes}
    arr.attrs["composite_channel_count"] = dataset.composite_channel_count
    arr.attrs["luts"] = {
        i: t.name for i, t in enumerate(dataset.color_tables) if t is not None
    }
    arr.attrs["color_tables"] = list(dataset.color_tables)
    return arr


def from_xarray(arr: xr.DataArray) -> Dataset:
    """Dataset from a labelled array.

    Calibration comes from ``attrs`` written by :func:`to_xarray`, else is
    inferred from evenly spaced numeric coordinates.
    """
    units = arr.attrs.get("units", {})
    calibrations = arr.attrs.get("calibrations", {})
    scales = arr.attrs.get("scales", {})
    offsets = arr.attrs.get("offsets", {})

    axes = []
    for dim in arr.dims:
        label = str(dim)
        if label in scales and label in offsets:
            scale, offset = float(scales[label]), float(offsets[label])
        else:
            scale, offset = _linear_from_coords(arr, dim)
        axes.append(
            Axis(
                Axes.get(label),
                scale=scale,
                offset=offset,
                unit=units.get(label, ""),
                calibration=_calibration_from_json(calibrations.get(label)),
            )
        )

    dataset = Dataset(
        arr.data,
        axes,
        composite_channel_count=int(arr.attrs.get("composite_channel_count", 1)),
        name=str(arr.name) if arr.name is not None else "",
    )
    tables = arr.attrs.get("color_tables")
    if tables is not None and len(tables) == dataset.plane_count:
        dataset.color_tables = list(tables)
    return dataset


def _linear_from_coords(arr: xr.DataArray, dim) -> Tuple[float, float]:
    if dim not in arr.coords or arr.sizes[dim] < 1:
        return 1.0, 0.0
    values = np.asarray(arr.coords[dim].values)
    if not np.issubdtype(values.dtype, np.number):
        return 1.0, 0.0
    values = values.astype(float)
    if len(values) == 1:
        return 1.0, float(values[0])
    steps = np.diff(values)
    if not np.allclose(steps, steps[0]):
        logger.debug("Coordinates of %s are not evenly spaced", dim)
        return 1.0, 0.0
    return float(steps[0]), float(values[0])
