"""Custom exception classes for the stitching calibration tool."""

from __future__ import annotations

from typing import Optional


class StitchCalibError(Exception):
    """Base exception for all calibration tool errors."""

    pass


class CameraError(StitchCalibError):
    """Base exception for camera-related errors."""

    def __init__(self, message: str, camera_id: Optional[str] = None):
        self.camera_id = camera_id
        super().__init__(message)


class CameraConnectionError(CameraError):
    """Raised when a capture channel fails to open or is lost."""

    pass


class CameraConfigurationError(CameraError):
    """Raised when camera configuration fails."""

    pass


class ConfigError(StitchCalibError):
    """Base exception for configuration errors."""

    pass


class InvalidConfigError(ConfigError):
    """Raised when configuration file is invalid or corrupted."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration fails schema validation."""

    def __init__(self, message: str, validation_errors: Optional[list] = None):
        self.validation_errors = validation_errors or []
        super().__init__(message)


class CalibrationError(StitchCalibError):
    """Base exception for calibration engine errors."""

    pass


class EngineConstructionError(CalibrationError):
    """Raised when the calibration engine cannot be constructed."""

    pass


class TransformPersistenceError(CalibrationError):
    """Raised when a transform cannot be written to or read from disk."""

    pass
