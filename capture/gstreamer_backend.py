"""Jetson CSI camera backend using an nvarguscamerasrc GStreamer pipeline."""

from __future__ import annotations

import logging

import cv2

from exceptions import CameraConfigurationError

from .opencv_backend import OpenCVCamera

logger = logging.getLogger(__name__)


def build_pipeline(sensor_id: int, width: int, height: int, fps: int) -> str:
    """Return the GStreamer pipeline delivering BGR frames from a CSI sensor."""
    return (
        f"nvarguscamerasrc sensor-id={sensor_id} "
        f"! video/x-raw(memory:NVMM), width=(int){width}, height=(int){height}, "
        f"format=(string)NV12, framerate=(fraction){fps}/1 "
        "! nvvidconv ! video/x-raw, format=(string)BGRx ! videoconvert "
        "! video/x-raw, format=(string)BGR ! appsink "
    )


class GStreamerCamera(OpenCVCamera):
    """CSI camera on Jetson Nano / Xavier NX.

    The pipeline encodes the capture mode, so set_mode must be called before
    open. Changing the mode on an open camera reopens the pipeline.
    """

    def _pipeline(self) -> str:
        return build_pipeline(int(self._serial), self._width, self._height, self._fps)

    def _describe(self) -> str:
        return f"CSI sensor {self._serial}"

    def _create_capture(self) -> cv2.VideoCapture:
        if not str(self._serial).isdigit():
            raise ValueError(f"GStreamerCamera expects a numeric sensor id, got {self._serial!r}")
        if not (self._width and self._height and self._fps):
            raise CameraConfigurationError(
                f"Capture mode must be set before opening {self._describe()}", camera_id=self._serial
            )
        pipeline = self._pipeline()
        logger.debug(f"GStreamer pipeline: {pipeline}")
        capture = cv2.VideoCapture(pipeline, cv2.CAP_GSTREAMER)
        if not capture.isOpened():
            logger.error(f"Pipeline failed to start: {pipeline}")
        return capture

    def _apply_mode(self) -> None:
        # Resolution and rate are fixed by the pipeline caps
        return None

    def set_mode(self, width: int, height: int, fps: int, pixfmt: str = "BGR") -> None:
        reopen = self.is_open and (width, height, fps) != (self._width, self._height, self._fps)
        super().set_mode(width, height, fps, pixfmt)
        if reopen:
            serial = self._serial
            self.close()
            self.open(serial)
