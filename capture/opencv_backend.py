"""OpenCV-based camera backend."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import cv2

from contracts import Frame
from exceptions import CameraConnectionError

from .camera_device import CameraDevice, CameraStats, validate_mode
from .timeout_utils import RetryPolicy, retry_on_failure, run_with_timeout

logger = logging.getLogger(__name__)


@dataclass
class _Stats:
    last_frame_ns: int = 0
    frames: int = 0
    dropped: int = 0
    fps_avg: float = 0.0
    fps_instant: float = 0.0

    def record(self, now_ns: int) -> None:
        if self.last_frame_ns:
            delta_s = (now_ns - self.last_frame_ns) / 1e9
            if delta_s > 0:
                self.fps_instant = 1.0 / delta_s
                self.fps_avg = ((self.fps_avg * self.frames) + self.fps_instant) / (self.frames + 1)
        self.frames += 1
        self.last_frame_ns = now_ns


class OpenCVCamera(CameraDevice):
    """Index-based cv2.VideoCapture camera (USB/UVC webcams, V4L2 devices).

    set_mode may be called before open; the requested mode is applied when
    the capture is opened.

    Reads run on a single reader thread per camera so read_frame can give
    up after timeout_ms. A read still in flight after a timeout is picked up
    by the next read_frame call instead of starting a second one.
    """

    open_timeout_s = 5.0

    def __init__(self) -> None:
        self._serial: Optional[str] = None
        self._capture: Optional[cv2.VideoCapture] = None
        self._reader: Optional[ThreadPoolExecutor] = None
        self._pending_read: Optional[Future] = None
        self._stats = _Stats()
        self._width = 0
        self._height = 0
        self._fps = 0
        self._pixfmt = "BGR"

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    @property
    def serial(self) -> Optional[str]:
        return self._serial

    def _create_capture(self) -> cv2.VideoCapture:
        """Create the underlying capture for the current serial."""
        serial_str = str(self._serial)
        if not serial_str.isdigit():
            raise ValueError(f"OpenCVCamera only supports index-based devices, got {serial_str!r}")
        return cv2.VideoCapture(int(serial_str), cv2.CAP_ANY)

    def _describe(self) -> str:
        return f"camera index {self._serial}"

    def _release_late_capture(self, capture: cv2.VideoCapture) -> None:
        """Release a capture whose open finished after its timeout."""
        logger.warning(f"Releasing late capture for {self._describe()}")
        capture.release()

    @retry_on_failure(
        policy=RetryPolicy(
            max_attempts=3,
            base_delay=0.5,
            max_delay=2.0,
            retry_on=(CameraConnectionError,),
        )
    )
    def open(self, serial: str) -> None:
        """Open the camera.

        Args:
            serial: Camera index or sensor id as string (e.g., "0", "1")

        Raises:
            ValueError: If serial is not valid for this backend
            CameraConnectionError: If the camera fails to open within timeout
        """
        self._serial = str(serial)
        logger.info(f"Opening {self._describe()}")

        def _open_camera():
            capture = self._create_capture()
            if not capture.isOpened():
                capture.release()
                raise CameraConnectionError(
                    f"Failed to open {self._describe()} - camera may be in use or not found",
                    camera_id=self._serial,
                )
            return capture

        try:
            self._capture = run_with_timeout(
                _open_camera,
                timeout_seconds=self.open_timeout_s,
                error_message=f"Opening {self._describe()} timed out",
                on_late_result=self._release_late_capture,
            )
        except Exception as e:
            logger.error(f"Failed to open {self._describe()}: {e}")
            self._capture = None
            raise

        self._reader = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"camera-{self._serial}-read")
        self._pending_read = None
        if self._width and self._height:
            self._apply_mode()
        logger.info(f"Successfully opened {self._describe()}")

    def set_mode(self, width: int, height: int, fps: int, pixfmt: str = "BGR") -> None:
        """Configure camera resolution, framerate, and pixel format.

        Args:
            width: Frame width in pixels
            height: Frame height in pixels
            fps: Target frames per second
            pixfmt: Pixel format ("BGR" or "GRAY8")

        Raises:
            CameraConfigurationError: If the mode is invalid
        """
        validate_mode(width, height, fps, pixfmt, camera_id=self._serial)
        logger.info(f"Camera {self._serial}: Configuring {width}x{height} @ {fps}fps ({pixfmt})")
        self._width = width
        self._height = height
        self._fps = fps
        self._pixfmt = pixfmt
        if self._capture is not None:
            self._apply_mode()

    def _apply_mode(self) -> None:
        assert self._capture is not None
        self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
        self._capture.set(cv2.CAP_PROP_FPS, self._fps)

        # Verify settings were applied (some drivers silently ignore them)
        actual_width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        actual_fps = int(self._capture.get(cv2.CAP_PROP_FPS))

        if actual_width != self._width or actual_height != self._height:
            logger.warning(
                f"Camera {self._serial}: Requested {self._width}x{self._height} "
                f"but got {actual_width}x{actual_height}"
            )
        if actual_fps and actual_fps != self._fps:
            logger.warning(f"Camera {self._serial}: Requested {self._fps}fps but got {actual_fps}fps")

    def _grab(self, timeout_ms: int) -> Tuple[bool, Any]:
        """Wait at most timeout_ms for the in-flight read, starting one if needed."""
        assert self._capture is not None and self._reader is not None
        if self._pending_read is None:
            self._pending_read = self._reader.submit(self._capture.read)
        try:
            result = self._pending_read.result(timeout=max(timeout_ms, 1) / 1000.0)
        except FutureTimeoutError:
            raise TimeoutError(f"No frame from {self._describe()} within {timeout_ms}ms.")
        finally:
            if self._pending_read is not None and self._pending_read.done():
                self._pending_read = None
        return result

    def read_frame(self, timeout_ms: int) -> Frame:
        if self._capture is None:
            raise RuntimeError("Camera not opened.")
        try:
            ok, frame = self._grab(timeout_ms)
        except TimeoutError:
            self._stats.dropped += 1
            raise
        if not ok or frame is None:
            self._stats.dropped += 1
            raise TimeoutError(f"Failed to read frame from {self._describe()}.")
        if self._pixfmt == "GRAY8" and frame.ndim == 3:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

        now_ns = time.monotonic_ns()
        self._stats.record(now_ns)
        return Frame(
            camera_id=self._serial or "0",
            frame_index=self._stats.frames,
            t_capture_monotonic_ns=now_ns,
            image=frame,
            width=frame.shape[1],
            height=frame.shape[0],
            pixfmt=self._pixfmt,
        )

    def get_stats(self) -> CameraStats:
        return CameraStats(
            fps_avg=self._stats.fps_avg,
            fps_instant=self._stats.fps_instant,
            frames=self._stats.frames,
            dropped_frames=self._stats.dropped,
        )

    def close(self) -> None:
        """Close camera and release resources.

        Note:
            - Idempotent - safe to call multiple times
            - Uses timeout to prevent hanging on release
        """
        if self._capture is None:
            logger.debug(f"Camera {self._serial}: Already closed")
            return

        logger.info(f"Camera {self._serial}: Closing")
        capture = self._capture
        try:
            run_with_timeout(
                capture.release,
                timeout_seconds=2.0,
                error_message=f"Camera {self._serial} release timed out",
            )
            logger.info(f"Camera {self._serial}: Closed successfully")
        except Exception as e:
            logger.error(f"Camera {self._serial}: Error during close: {e}")
        finally:
            # Always clear capture reference
            self._capture = None
            self._pending_read = None
            if self._reader is not None:
                # A read blocked in the driver returns once the capture is released
                self._reader.shutdown(wait=False)
                self._reader = None
