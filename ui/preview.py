"""OpenCV HighGUI preview windows for match overlays and the stitched view."""

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from contracts import QualitySnapshot
from log_config.logger import get_logger

from .render import PresentationSink

logger = get_logger(__name__)

MATCHES_WINDOW = "Matches"
WARPING_WINDOW = "Warping"

KEY_LEGEND = "c: calibrate  s: save  r: reset  q: quit"


def draw_quality(image: np.ndarray, quality: QualitySnapshot) -> np.ndarray:
    """Return a copy of image with the PSNR / MSSIM readout and key legend."""
    canvas = image.copy()
    if canvas.ndim == 2:
        canvas = cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)
    scale = max(0.6, canvas.shape[0] / 720.0)
    thickness = max(1, int(round(2 * scale)))
    line = int(36 * scale)

    ssim_text = " ".join(f"{value:.3f}" for value in quality.mssim)
    lines = [
        (f"PSNR: {quality.psnr:.2f} dB", (0, 255, 0)),
        (f"MSSIM: {ssim_text}", (0, 255, 0)),
        (KEY_LEGEND, (0, 255, 255)),
    ]
    for i, (text, color) in enumerate(lines, 1):
        cv2.putText(canvas, text, (10, i * line), cv2.FONT_HERSHEY_SIMPLEX, scale, (0, 0, 0), thickness + 2)
        cv2.putText(canvas, text, (10, i * line), cv2.FONT_HERSHEY_SIMPLEX, scale, color, thickness)
    return canvas


class PreviewWindows(PresentationSink):
    """Two resizable windows placed side by side.

    Windows are created on construction and destroyed by close(), which is
    also called when leaving the context manager.
    """

    def __init__(
        self,
        window_width: int = 1280,
        window_height: int = 720,
        show_quality_overlay: bool = True,
    ) -> None:
        self._show_quality_overlay = show_quality_overlay
        self._closed = False

        cv2.namedWindow(MATCHES_WINDOW, cv2.WINDOW_NORMAL)
        cv2.namedWindow(WARPING_WINDOW, cv2.WINDOW_NORMAL)

        cv2.resizeWindow(MATCHES_WINDOW, window_width, window_height)
        cv2.resizeWindow(WARPING_WINDOW, window_width, window_height)

        cv2.moveWindow(MATCHES_WINDOW, 200, 100)
        cv2.moveWindow(WARPING_WINDOW, window_width + 250, 100)
        logger.debug(f"Preview windows created at {window_width}x{window_height}")

    def __enter__(self) -> "PreviewWindows":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def show(self, matches_image, stitched_image, quality: QualitySnapshot) -> None:
        if self._closed:
            raise RuntimeError("Preview windows are closed.")
        if self._show_quality_overlay:
            stitched_image = draw_quality(stitched_image, quality)
        cv2.imshow(MATCHES_WINDOW, matches_image)
        cv2.imshow(WARPING_WINDOW, stitched_image)

    def poll_key(self, wait_ms: int) -> Optional[str]:
        key = cv2.waitKey(max(1, wait_ms))
        if key < 0:
            return None
        key &= 0xFF
        if key == 0xFF:
            return None
        return chr(key)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for name in (MATCHES_WINDOW, WARPING_WINDOW):
            try:
                cv2.destroyWindow(name)
            except cv2.error as e:
                logger.debug(f"Window {name} already gone: {e}")
        # Let HighGUI process the destroy events
        cv2.waitKey(1)
        logger.debug("Preview windows closed")
