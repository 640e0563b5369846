"""Calibration module."""

from .cameras_calib import CamerasCalib, MatchMode, SavedTransform, load_transform
from .engine import CalibrationEngine
from .quality import mssim, psnr

__all__ = [
    "CalibrationEngine",
    "CamerasCalib",
    "MatchMode",
    "SavedTransform",
    "load_transform",
    "mssim",
    "psnr",
]
