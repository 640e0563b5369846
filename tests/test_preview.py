"""Tests for the preview windows, with HighGUI mocked out."""

from __future__ import annotations

from unittest.mock import call, patch

import numpy as np
import pytest

from contracts import QualitySnapshot
from ui import MATCHES_WINDOW, WARPING_WINDOW, PreviewWindows, draw_quality


@pytest.fixture
def highgui():
    with patch("ui.preview.cv2") as cv2_mock:
        cv2_mock.waitKey.return_value = -1
        yield cv2_mock


def test_draw_quality_leaves_input_untouched():
    image = np.zeros((720, 1280, 3), dtype=np.uint8)

    annotated = draw_quality(image, QualitySnapshot(psnr=32.1, mssim=(0.91, 0.88, 0.9)))

    assert annotated.shape == image.shape
    assert annotated.any()
    assert not image.any()


def test_windows_placed_side_by_side(highgui):
    PreviewWindows(window_width=1280, window_height=720)

    highgui.moveWindow.assert_has_calls([call(MATCHES_WINDOW, 200, 100), call(WARPING_WINDOW, 1530, 100)])
    highgui.resizeWindow.assert_any_call(WARPING_WINDOW, 1280, 720)


def test_show_without_overlay_passes_images_through(highgui):
    windows = PreviewWindows(show_quality_overlay=False)
    matches = np.zeros((4, 8, 3), dtype=np.uint8)
    stitched = np.ones((4, 8, 3), dtype=np.uint8)

    windows.show(matches, stitched, QualitySnapshot.empty())

    highgui.imshow.assert_has_calls([call(MATCHES_WINDOW, matches), call(WARPING_WINDOW, stitched)])


@pytest.mark.parametrize(
    "raw, expected",
    [(-1, None), (ord("c"), "c"), (0x100 | ord("q"), "q"), (0xFF, None)],
)
def test_poll_key_maps_low_byte(highgui, raw, expected):
    highgui.waitKey.return_value = raw

    assert PreviewWindows().poll_key(1) == expected


def test_close_is_idempotent(highgui):
    windows = PreviewWindows()

    windows.close()
    windows.close()

    assert highgui.destroyWindow.call_count == 2
    with pytest.raises(RuntimeError):
        windows.show(None, None, QualitySnapshot.empty())


def test_context_manager_closes(highgui):
    with PreviewWindows():
        pass

    highgui.destroyWindow.assert_any_call(MATCHES_WINDOW)
