"""Tests for the PSNR and MSSIM stitch quality metrics."""

from __future__ import annotations

import numpy as np
import pytest

from calib.quality import PSNR_CAP_DB, mssim, psnr
from contracts import QualitySnapshot


@pytest.fixture
def textured():
    rng = np.random.default_rng(3)
    return rng.integers(0, 256, size=(64, 80, 3), dtype=np.uint8)


def test_identical_images_hit_the_cap(textured):
    assert psnr(textured, textured.copy()) == PSNR_CAP_DB
    assert mssim(textured, textured.copy()) == pytest.approx((1.0, 1.0, 1.0), abs=1e-4)


def test_known_psnr_for_constant_offset():
    a = np.full((10, 10, 3), 100, dtype=np.uint8)
    b = np.full((10, 10, 3), 110, dtype=np.uint8)

    # MSE 100 -> 10 * log10(255^2 / 100)
    assert psnr(a, b) == pytest.approx(28.1308, abs=1e-3)


def test_noise_lowers_both_metrics(textured):
    rng = np.random.default_rng(5)
    noise = rng.integers(-80, 81, size=textured.shape)
    noisy = np.clip(textured.astype(np.int32) + noise, 0, 255).astype(np.uint8)

    assert psnr(textured, noisy) < 25.0
    assert all(value < 0.9 for value in mssim(textured, noisy))


def test_mask_restricts_comparison(textured):
    other = textured.copy()
    other[:, 40:] = 0
    mask = np.zeros(textured.shape[:2], dtype=np.uint8)
    mask[:, :40] = 255

    assert psnr(textured, other, mask) == PSNR_CAP_DB
    assert psnr(textured, other) < PSNR_CAP_DB


def test_empty_mask_gives_zeros(textured):
    mask = np.zeros(textured.shape[:2], dtype=np.uint8)

    assert psnr(textured, textured, mask) == 0.0
    assert mssim(textured, textured, mask) == (0.0, 0.0, 0.0)


def test_grayscale_has_one_channel():
    gray = np.arange(64 * 64, dtype=np.uint32).reshape(64, 64).astype(np.uint8)

    assert len(mssim(gray, gray)) == 1


def test_shape_mismatch_rejected(textured):
    with pytest.raises(ValueError, match="shapes differ"):
        psnr(textured, textured[:, :40])


def test_empty_snapshot():
    snapshot = QualitySnapshot.empty()

    assert snapshot.psnr == 0.0
    assert snapshot.mssim == (0.0, 0.0, 0.0)
    assert snapshot.mssim_mean == 0.0
    assert QualitySnapshot(30.0, (0.9, 0.6, 0.6)).mssim_mean == pytest.approx(0.7)
