#!/usr/bin/env python3
"""
monocal CLI - single-camera intrinsic calibration.

Usage:
    monocal calibrate [-c config.toml] [-p PATTERN] [options]
    monocal undistort CALIBRATION_JSON IMAGE [-o OUTPUT]
    monocal init-config PATH
    monocal --help
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .config import create_default_config, load_config, save_config
from .errors import ConfigError, MonocalError
from .types import PatternKind, PatternSpec


def _pattern_kind(value: str) -> PatternKind:
    try:
        return PatternKind.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="monocal",
        description="Estimate camera intrinsics and lens distortion from images of a planar target",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    calibrate = commands.add_parser("calibrate", help="Calibrate from a directory of images")
    calibrate.add_argument("-c", "--config", type=Path,
                           help="TOML configuration (default: built-in defaults)")
    calibrate.add_argument("-p", "--pattern", type=_pattern_kind,
                           help="chessboard, symmetric, asymmetric or charuco")
    calibrate.add_argument("--rows", type=int, help="Interior points per column")
    calibrate.add_argument("--cols", type=int, help="Interior points per row")
    calibrate.add_argument("-i", "--images", type=Path, help="Directory of calibration images")
    calibrate.add_argument("-f", "--format", dest="image_format",
                           help="Image file extension (default: jpeg)")
    calibrate.add_argument("-u", "--undistort", type=Path,
                           help="Image to undistort with the result")
    calibrate.add_argument("-o", "--output", type=Path, help="Output directory")
    calibrate.add_argument("--solver", choices=("opencv", "scipy"), help="Solver backend")
    calibrate.add_argument("--preview", action="store_true",
                           help="Show each detection in a window")

    undistort = commands.add_parser("undistort", help="Undistort an image with a saved calibration")
    undistort.add_argument("calibration", type=Path, help="Calibration JSON")
    undistort.add_argument("image", type=Path, help="Image to undistort")
    undistort.add_argument("-o", "--output", type=Path, default=Path("out") / "result.jpeg",
                           help="Output image (default: out/result.jpeg)")
    undistort.add_argument("--alpha", type=float, default=1.0,
                           help="Free scaling: 1 keeps all pixels, 0 only valid ones")
    undistort.add_argument("--crop", action="store_true", help="Crop to the valid-pixel region")

    init = commands.add_parser("init-config", help="Write a default configuration file")
    init.add_argument("path", type=Path, help="Where to write config.toml")

    return parser


def _apply_overrides(config, args):
    pattern = config.pattern
    if args.pattern is not None or args.rows is not None or args.cols is not None:
        try:
            pattern = PatternSpec(
                kind=args.pattern if args.pattern is not None else pattern.kind,
                rows=args.rows if args.rows is not None else pattern.rows,
                cols=args.cols if args.cols is not None else pattern.cols,
                square_size=pattern.square_size,
            )
        except ValueError as e:
            raise ConfigError(f"Invalid pattern: {e}") from e

    config = replace(config, pattern=pattern)
    if args.images is not None:
        config = replace(config, image_dir=args.images)
    if args.image_format is not None:
        config = replace(config, image_format=args.image_format)
    if args.undistort is not None:
        config = replace(config, undistort_image=args.undistort)
    if args.output is not None:
        config = replace(config, output_dir=args.output)
    if args.solver is not None:
        config = replace(config, solver=replace(config.solver, method=args.solver))
    if args.preview:
        config = replace(config, preview=replace(config.preview, enabled=True))
    return config


def _calibrate(args) -> int:
    from .pipeline import run_calibration

    if args.config is not None:
        config = load_config(args.config)
    else:
        config = create_default_config()
    config = _apply_overrides(config, args)

    run = run_calibration(config)

    print(f"Calibrated from {run.model.view_count} view(s), "
          f"{len(run.collection.failed)} image(s) skipped")
    print(f"Total error: {run.report.mean_error:.6f} px")
    print(f"Calibration: {run.calibration_path}")
    if run.failure_report_path is not None:
        print(f"Failure report: {run.failure_report_path}")
    if run.result_image_path is not None:
        print(f"Undistorted image: {run.result_image_path}")
    return 0


def _undistort(args) -> int:
    from .export import load_calibration_json
    from .pipeline import run_undistortion

    try:
        model = load_calibration_json(args.calibration)
    except (OSError, ValueError, KeyError) as e:
        raise MonocalError(f"Cannot load calibration {args.calibration}: {e}") from e

    output = run_undistortion(model, args.image, args.output, alpha=args.alpha, crop=args.crop)
    print(f"Undistorted image: {output}")
    return 0


def _init_config(args) -> int:
    save_config(create_default_config(), args.path)
    print(f"Default configuration written to {args.path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    handlers = {
        "calibrate": _calibrate,
        "undistort": _undistort,
        "init-config": _init_config,
    }

    try:
        return handlers[args.command](args)
    except MonocalError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
