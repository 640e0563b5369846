"""Camera construction and synchronized frame pair acquisition."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Type

import cv2

from contracts import Frame, FramePair
from exceptions import CameraConnectionError, CameraError

from .camera_device import CameraDevice
from .gstreamer_backend import GStreamerCamera
from .opencv_backend import OpenCVCamera
from .simulated_camera import SimulatedCamera

logger = logging.getLogger(__name__)

BACKENDS: Dict[str, Type[CameraDevice]] = {
    "gstreamer": GStreamerCamera,
    "opencv": OpenCVCamera,
    "sim": SimulatedCamera,
}

# Errors a single read may raise without the channel being gone for good
READ_ERRORS = (TimeoutError, RuntimeError, CameraError, cv2.error)


def create_camera(backend: str) -> CameraDevice:
    try:
        camera_cls = BACKENDS[backend]
    except KeyError:
        raise ValueError(f"Unknown camera backend: {backend!r} (expected one of {sorted(BACKENDS)})")
    return camera_cls()


@contextmanager
def opened_camera(
    backend: str,
    sensor_id: int,
    width: int,
    height: int,
    fps: int,
    pixfmt: str = "BGR",
) -> Iterator[CameraDevice]:
    """Open one capture channel and close it on every exit path.

    Raises:
        CameraConnectionError: If the channel cannot be configured or opened
    """
    camera = create_camera(backend)
    try:
        try:
            camera.set_mode(width, height, fps, pixfmt)
            camera.open(str(sensor_id))
        except CameraError:
            raise
        except Exception as e:
            raise CameraConnectionError(
                f"Failed to open {backend} camera {sensor_id}: {e}", camera_id=str(sensor_id)
            ) from e
        yield camera
    finally:
        camera.close()


class StereoFrameSource:
    """Pulls one frame from each of two opened cameras per call."""

    def __init__(self, first: CameraDevice, second: CameraDevice) -> None:
        self._first = first
        self._second = second
        self._pairs = 0
        self._dropped = 0

    @property
    def pairs(self) -> int:
        return self._pairs

    @property
    def dropped(self) -> int:
        return self._dropped

    def _read(self, camera: CameraDevice, label: str, timeout_ms: int) -> Optional[Frame]:
        try:
            return camera.read_frame(timeout_ms)
        except READ_ERRORS as e:
            logger.debug(f"{label} camera read failed: {e}")
            return None

    def read_pair(self, timeout_ms: int) -> Optional[FramePair]:
        """Return the next frame pair, or None when either read fails.

        Both cameras are read even when the first fails so the streams stay
        in step.
        """
        first = self._read(self._first, "First", timeout_ms)
        second = self._read(self._second, "Second", timeout_ms)
        if first is None or second is None:
            self._dropped += 1
            return None
        if (first.width, first.height) != (second.width, second.height):
            logger.warning(
                f"Frame size mismatch: {first.width}x{first.height} vs {second.width}x{second.height}"
            )
            self._dropped += 1
            return None
        self._pairs += 1
        return FramePair(first=first, second=second)
