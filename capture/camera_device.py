"""Camera abstraction for the two capture channels of the rig."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from contracts import Frame
from exceptions import CameraConfigurationError

PIXEL_FORMATS = ("BGR", "GRAY8")


@dataclass(frozen=True)
class CameraStats:
    fps_avg: float
    fps_instant: float
    frames: int
    dropped_frames: int


def validate_mode(width: int, height: int, fps: int, pixfmt: str, camera_id=None) -> None:
    """Reject capture modes no backend can deliver.

    fps 0 means unthrottled and is accepted.

    Raises:
        CameraConfigurationError: If a dimension, the rate or the format is invalid
    """
    if width <= 0 or height <= 0:
        raise CameraConfigurationError(f"Invalid capture size {width}x{height}", camera_id=camera_id)
    if fps < 0:
        raise CameraConfigurationError(f"Invalid frame rate {fps}", camera_id=camera_id)
    if pixfmt not in PIXEL_FORMATS:
        raise CameraConfigurationError(
            f"Unsupported pixel format {pixfmt!r} (expected one of {PIXEL_FORMATS})", camera_id=camera_id
        )


class CameraDevice(ABC):
    @abstractmethod
    def open(self, serial: str) -> None:
        """Open a camera by sensor id or index."""

    @abstractmethod
    def set_mode(self, width: int, height: int, fps: int, pixfmt: str) -> None:
        """Configure resolution, frame rate, and pixel format."""

    @abstractmethod
    def read_frame(self, timeout_ms: int) -> Frame:
        """Read a frame or raise a timeout error."""

    @abstractmethod
    def get_stats(self) -> CameraStats:
        """Return capture diagnostics."""

    @abstractmethod
    def close(self) -> None:
        """Close the camera. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the capture channel is open."""
