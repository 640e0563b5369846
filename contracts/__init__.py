"""Shared data contracts for the calibration tool."""

from .types import Frame, FramePair, QualitySnapshot

__all__ = [
    "Frame",
    "FramePair",
    "QualitySnapshot",
]
