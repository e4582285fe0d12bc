"""Entry point for running ndviewer_axes as a module: python -m ndviewer_axes"""

import argparse
import logging
import sys
from pathlib import Path

from .config import load_settings
from .errors import AxisError, InvalidPermutationError
from .io import TIFF_EXTENSIONS, load_ngff, load_tiff, save_tiff
from .reorder import reorder

logger = logging.getLogger("ndviewer_axes")


def load_dataset(path: str, lazy: bool = False):
    """Open a TIFF file or an OME-NGFF zarr directory."""
    p = Path(path)
    if p.is_dir() or p.suffix.lower() == ".zarr":
        return load_ngff(p)
    if p.suffix.lower() in TIFF_EXTENSIONS:
        return load_tiff(p, lazy=lazy)
    raise ValueError(f"Unsupported dataset format: {path}")


def _cmd_info(args) -> int:
    dataset = load_dataset(args.path, lazy=True)
    print(f"name:   {dataset.name}")
    print("axes:   " + ", ".join(a.label for a in dataset.axes))
    print("dims:   " + " x ".join(str(d) for d in dataset.dims))
    print(f"dtype:  {dataset.dtype}")
    print(f"planes: {dataset.plane_count}")
    for axis in dataset.axes:
        if axis.unit or axis.scale != 1.0 or axis.offset != 0.0:
            print(f"  {axis.label}: scale={axis.scale} offset={axis.offset} unit={axis.unit}")
    return 0


def _cmd_reorder(args) -> int:
    settings = load_settings(args.settings)
    order = [s.strip() for s in args.order.split(",") if s.strip()]
    dataset = load_dataset(args.input)
    try:
        result = reorder(
            dataset,
            order,
            parallel=args.parallel,
            chunk_bytes=settings.reorder_parallel_chunk_bytes,
            max_bytes=settings.reorder_max_bytes,
        )
    except InvalidPermutationError as e:
        print(f"Invalid axis order: {e}", file=sys.stderr)
        return 2
    save_tiff(result, args.output)
    print(
        "Reordered " + ",".join(a.label for a in result.axes)
        + " " + "x".join(str(d) for d in result.dims) + f" -> {args.output}"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ndviewer_axes", description="Inspect and reorder N-dimensional datasets."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    info = sub.add_parser("info", help="print axes, dims, dtype and plane count")
    info.add_argument("path")
    info.set_defaults(func=_cmd_info)

    re_ = sub.add_parser("reorder", help="change the storage order of axes")
    re_.add_argument("input")
    re_.add_argument("output")
    re_.add_argument(
        "--order", required=True, help="comma separated axis labels, e.g. X,Y,Time,Channel,Z"
    )
    re_.add_argument("--parallel", action="store_true", help="threaded copy")
    re_.add_argument("--settings", default=None, help="settings JSON file or directory")
    re_.set_defaults(func=_cmd_reorder)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (AxisError, OSError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e, exc_info=args.verbose)
        return 1


if __name__ == "__main__":
    sys.exit(main())
