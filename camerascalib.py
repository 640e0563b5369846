#!/usr/bin/env python3
"""Live calibration tool generating the transform between two cameras.

Aim both cameras at a shared, textured scene, then use the runtime keys:

    c   estimate (calibrate) the transform from the matches seen so far
    s   save the current transform to the output file
    r   reset (restart) calibration
    q   stop capture and quit

Usage:
    camerascalib --width=1920 --height=1080 --fps=30 --out=/home/rose/cameras-1080p.xml
    camerascalib --backend sim          # dry run without cameras
"""

from __future__ import annotations

import argparse
import sys
from contextlib import ExitStack
from enum import IntEnum
from pathlib import Path
from typing import Callable, List, Optional

import cv2

from app import CalibrationController, StopFlag, interrupt_handler
from calib import CalibrationEngine, CamerasCalib, MatchMode
from capture import StereoFrameSource, build_pipeline, opened_camera
from configs.settings import DEFAULT_CONFIG_PATH, SessionConfig, load_config
from exceptions import CalibrationError, CameraError, ConfigError
from log_config.logger import configure_logging, get_logger
from ui import PresentationSink, PreviewWindows

logger = get_logger(__name__)


class ExitCode(IntEnum):
    OK = 0
    INVALID_CONFIG = 2
    FIRST_CAMERA_FAILED = 3
    SECOND_CAMERA_FAILED = 4
    ENGINE_FAILED = 5
    DISPLAY_FAILED = 6


RUNTIME_KEYS = """runtime commands:
  c    calibrate: estimate the transform from accumulated matches
  s    save the current transform to --out
  r    reset (restart) calibration
  q    stop capture and quit

example:
  camerascalib --width=1920 --height=1080 --fps=30 --out=/home/rose/cameras-1080p.xml
"""


def _match_mode(value: str) -> int:
    try:
        return int(MatchMode.parse(value))
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="camerascalib",
        description="Calibration tool generating the stitching transform between two cameras.",
        epilog=RUNTIME_KEYS,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML configuration file.")
    parser.add_argument("--width", type=int, help="Capture width [default 1920].")
    parser.add_argument("--height", type=int, help="Capture height [default 1080].")
    parser.add_argument("--fps", type=int, help="Frames per second [default 30].")
    parser.add_argument("--out", help="Output calibration (path and) filename [default cameras.xml].")
    parser.add_argument(
        "--match-mode",
        type=_match_mode,
        help="Feature matcher: 0/orb, 1/akaze or 2/sift [default 0].",
    )
    parser.add_argument("--backend", choices=["gstreamer", "opencv", "sim"], help="Capture backend.")
    parser.add_argument("--first-sensor", type=int, help="Sensor id or index of the first camera.")
    parser.add_argument("--second-sensor", type=int, help="Sensor id or index of the second camera.")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"],
        help="Console log level.",
    )
    parser.add_argument("--log-dir", type=Path, default=None, help="Write rotating log files here.")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _fail(code: ExitCode, message: str) -> ExitCode:
    logger.error(message)
    print(message, file=sys.stderr)
    return code


def _report_camera_failure(config: SessionConfig, which: str, sensor_id: int, error: Exception) -> None:
    camera = config.camera
    if camera.backend == "gstreamer":
        print(build_pipeline(sensor_id, camera.width, camera.height, camera.fps), file=sys.stderr)
    logger.error(f"{which} camera (sensor {sensor_id}) failed: {error}")


def run_session(
    config: SessionConfig,
    stop_flag: Optional[StopFlag] = None,
    engine_factory: Callable[[CamerasCalib.Settings], CalibrationEngine] = CamerasCalib,
    sink_factory: Callable[..., PresentationSink] = PreviewWindows,
) -> ExitCode:
    """Acquire cameras, engine and windows, run the loop, release everything.

    Every resource acquired before a failure is released before returning.
    """
    if stop_flag is None:
        stop_flag = StopFlag()
    camera = config.camera

    with ExitStack() as stack:
        try:
            first = stack.enter_context(
                opened_camera(camera.backend, camera.first_sensor, camera.width, camera.height, camera.fps)
            )
        except CameraError as e:
            _report_camera_failure(config, "First", camera.first_sensor, e)
            return _fail(ExitCode.FIRST_CAMERA_FAILED, "Failed to open capture for first camera!")

        try:
            second = stack.enter_context(
                opened_camera(camera.backend, camera.second_sensor, camera.width, camera.height, camera.fps)
            )
        except CameraError as e:
            _report_camera_failure(config, "Second", camera.second_sensor, e)
            return _fail(ExitCode.SECOND_CAMERA_FAILED, "Failed to open capture for second camera!")

        try:
            engine = engine_factory(CamerasCalib.Settings.from_config(config))
        except CalibrationError as e:
            return _fail(ExitCode.ENGINE_FAILED, f"Failed to start calibrator! {e}")

        try:
            sink = sink_factory(
                window_width=config.ui.window_width,
                window_height=config.ui.window_height,
                show_quality_overlay=config.ui.show_quality_overlay,
            )
        except cv2.error as e:
            return _fail(ExitCode.DISPLAY_FAILED, f"Failed to create preview windows! {e}")
        stack.callback(sink.close)

        stack.enter_context(interrupt_handler(stop_flag))
        controller = CalibrationController(
            engine=engine,
            source=StereoFrameSource(first, second),
            sink=sink,
            stop_flag=stop_flag,
            read_timeout_ms=camera.read_timeout_ms,
            key_poll_ms=config.ui.key_poll_ms,
        )
        controller.run()

    return ExitCode.OK


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_dir)

    overrides = {
        "width": args.width,
        "height": args.height,
        "fps": args.fps,
        "out": args.out,
        "match_mode": args.match_mode,
        "backend": args.backend,
        "first_sensor": args.first_sensor,
        "second_sensor": args.second_sensor,
    }
    try:
        config = load_config(args.config, overrides=overrides)
    except ConfigError as e:
        build_parser().print_usage(sys.stderr)
        return int(_fail(ExitCode.INVALID_CONFIG, f"Invalid configuration: {e}"))

    return int(run_session(config))


if __name__ == "__main__":
    sys.exit(main())
