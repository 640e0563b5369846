"""Stitch quality metrics: PSNR and mean structural similarity."""

from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

# Reported when the two images are identical inside the mask
PSNR_CAP_DB = 100.0

# SSIM stabilizers for 8-bit images: (0.01 * 255)^2 and (0.03 * 255)^2
SSIM_C1 = 6.5025
SSIM_C2 = 58.5225


def _as_channels(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image[:, :, np.newaxis]
    return image


def _check_shapes(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape != b.shape:
        raise ValueError(f"Image shapes differ: {a.shape} vs {b.shape}")


def psnr(a: np.ndarray, b: np.ndarray, mask: Optional[np.ndarray] = None) -> float:
    """Peak signal-to-noise ratio in dB between two 8-bit images.

    Args:
        a: Reference image
        b: Test image, same shape as a
        mask: Optional single-channel mask; only nonzero pixels are compared

    Returns:
        PSNR in dB, PSNR_CAP_DB for identical images, 0.0 for an empty mask
    """
    _check_shapes(a, b)
    diff = _as_channels(a).astype(np.float64) - _as_channels(b).astype(np.float64)
    sq = diff * diff
    if mask is not None:
        selected = mask.astype(bool)
        if not selected.any():
            return 0.0
        sq = sq[selected]
    mse = float(np.mean(sq))
    if mse <= 1e-10:
        return PSNR_CAP_DB
    return float(10.0 * np.log10((255.0 * 255.0) / mse))


def mssim(a: np.ndarray, b: np.ndarray, mask: Optional[np.ndarray] = None) -> Tuple[float, ...]:
    """Mean SSIM per channel using an 11x11 Gaussian window (sigma 1.5).

    Returns one value per channel; zeros when the mask selects nothing.
    """
    _check_shapes(a, b)
    i1 = _as_channels(a).astype(np.float32)
    i2 = _as_channels(b).astype(np.float32)
    channels = i1.shape[2]

    if mask is not None:
        selected = mask.astype(bool)
        if not selected.any():
            return tuple(0.0 for _ in range(channels))
    else:
        selected = None

    def blur(x: np.ndarray) -> np.ndarray:
        return cv2.GaussianBlur(x, (11, 11), 1.5)

    scores = []
    for c in range(channels):
        x = np.ascontiguousarray(i1[:, :, c])
        y = np.ascontiguousarray(i2[:, :, c])

        mu1 = blur(x)
        mu2 = blur(y)
        mu1_sq = mu1 * mu1
        mu2_sq = mu2 * mu2
        mu1_mu2 = mu1 * mu2

        sigma1_sq = blur(x * x) - mu1_sq
        sigma2_sq = blur(y * y) - mu2_sq
        sigma12 = blur(x * y) - mu1_mu2

        numerator = (2 * mu1_mu2 + SSIM_C1) * (2 * sigma12 + SSIM_C2)
        denominator = (mu1_sq + mu2_sq + SSIM_C1) * (sigma1_sq + sigma2_sq + SSIM_C2)
        ssim_map = numerator / denominator

        if selected is not None:
            scores.append(float(np.mean(ssim_map[selected])))
        else:
            scores.append(float(np.mean(ssim_map)))
    return tuple(scores)


__all__ = ["PSNR_CAP_DB", "mssim", "psnr"]
