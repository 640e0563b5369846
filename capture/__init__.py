"""Capture module."""

from .camera_device import PIXEL_FORMATS, CameraDevice, CameraStats, validate_mode
from .frame_source import BACKENDS, StereoFrameSource, create_camera, opened_camera
from .gstreamer_backend import GStreamerCamera, build_pipeline
from .opencv_backend import OpenCVCamera
from .simulated_camera import SimulatedCamera

__all__ = [
    "BACKENDS",
    "CameraDevice",
    "CameraStats",
    "GStreamerCamera",
    "OpenCVCamera",
    "PIXEL_FORMATS",
    "SimulatedCamera",
    "StereoFrameSource",
    "build_pipeline",
    "create_camera",
    "opened_camera",
    "validate_mode",
]
