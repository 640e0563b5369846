"""Simulated camera backend for dry runs and tests."""

from __future__ import annotations

import time
from typing import Optional

import cv2
import numpy as np

from contracts import Frame

from .camera_device import CameraDevice, CameraStats, validate_mode


def render_scene(width: int, height: int, seed: int = 7) -> np.ndarray:
    """Render a deterministic textured BGR scene twice as wide as one view."""
    rng = np.random.default_rng(seed)
    scene_w = width * 2
    scene = rng.integers(0, 256, size=(height, scene_w, 3), dtype=np.uint8)
    scene = cv2.GaussianBlur(scene, (0, 0), sigmaX=3)

    # Hard edges give the detectors stable corners
    for _ in range(max(40, (scene_w * height) // 8000)):
        x, y = int(rng.integers(0, scene_w)), int(rng.integers(0, height))
        size = int(rng.integers(8, max(9, height // 8)))
        color = tuple(int(c) for c in rng.integers(0, 256, size=3))
        if rng.random() < 0.5:
            cv2.rectangle(scene, (x, y), (x + size, y + size), color, -1)
        else:
            cv2.circle(scene, (x, y), size // 2, color, -1)
    return scene


class SimulatedCamera(CameraDevice):
    """Camera looking at a shared synthetic scene.

    Sensor N sees the scene shifted right by N half-widths (capped at one
    full width), so sensors 0 and 1 overlap by half a frame.
    """

    def __init__(self, seed: int = 7) -> None:
        self._serial: Optional[str] = None
        self._seed = seed
        self._width = 0
        self._height = 0
        self._fps = 0
        self._pixfmt = "BGR"
        self._frame_index = 0
        self._dropped = 0
        self._pending_failures = 0
        self._last_frame_time = time.monotonic()
        self._scene: Optional[np.ndarray] = None
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    def open(self, serial: str) -> None:
        self._serial = str(serial)
        self._opened = True

    def set_mode(self, width: int, height: int, fps: int, pixfmt: str = "BGR") -> None:
        validate_mode(width, height, fps, pixfmt, camera_id=self._serial)
        self._width = width
        self._height = height
        self._fps = fps
        self._pixfmt = pixfmt
        self._scene = None

    def inject_failures(self, count: int) -> None:
        """Make the next `count` reads fail as a dropped frame would."""
        self._pending_failures += count

    def _view(self) -> np.ndarray:
        if self._scene is None:
            self._scene = render_scene(self._width, self._height, self._seed)
        sensor = int(self._serial) if self._serial and self._serial.isdigit() else 0
        offset = min(sensor * (self._width // 2), self._width)
        return self._scene[:, offset : offset + self._width].copy()

    def read_frame(self, timeout_ms: int) -> Frame:
        if not self._opened:
            raise RuntimeError("Camera not opened.")
        if self._fps > 0:
            target_delay = 1.0 / self._fps
            elapsed = time.monotonic() - self._last_frame_time
            if elapsed < target_delay:
                time.sleep(target_delay - elapsed)
        self._last_frame_time = time.monotonic()

        if self._pending_failures > 0:
            self._pending_failures -= 1
            self._dropped += 1
            raise TimeoutError("Simulated frame drop.")

        self._frame_index += 1
        image = self._view()
        if self._pixfmt == "GRAY8":
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        return Frame(
            camera_id=self._serial or "sim",
            frame_index=self._frame_index,
            t_capture_monotonic_ns=time.monotonic_ns(),
            image=image,
            width=self._width,
            height=self._height,
            pixfmt=self._pixfmt,
        )

    def get_stats(self) -> CameraStats:
        return CameraStats(
            fps_avg=float(self._fps),
            fps_instant=float(self._fps),
            frames=self._frame_index,
            dropped_frames=self._dropped,
        )

    def close(self) -> None:
        self._opened = False
