"""Core data contracts for capture, calibration, and preview."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple


@dataclass(frozen=True)
class Frame:
    camera_id: str
    frame_index: int
    t_capture_monotonic_ns: int
    image: Any
    width: int
    height: int
    pixfmt: str


@dataclass(frozen=True)
class FramePair:
    """One synchronized frame from each camera for a single loop iteration."""

    first: Frame
    second: Frame

    @property
    def images(self) -> Tuple[Any, Any]:
        return self.first.image, self.second.image

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) of the first frame."""
        return self.first.width, self.first.height


@dataclass(frozen=True)
class QualitySnapshot:
    """Stitch fidelity for one frame pair.

    psnr is in dB; mssim holds the mean structural similarity of each
    color channel.
    """

    psnr: float
    mssim: Tuple[float, ...]

    @classmethod
    def empty(cls) -> "QualitySnapshot":
        return cls(psnr=0.0, mssim=(0.0, 0.0, 0.0))

    @property
    def mssim_mean(self) -> float:
        if not self.mssim:
            return 0.0
        return sum(self.mssim) / len(self.mssim)
