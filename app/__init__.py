"""Interactive calibration session."""

from app.controller import KEY_COMMANDS, CalibrationController, Command, SessionStats
from app.lifecycle import StopFlag, interrupt_handler

__all__ = [
    "KEY_COMMANDS",
    "CalibrationController",
    "Command",
    "SessionStats",
    "StopFlag",
    "interrupt_handler",
]
