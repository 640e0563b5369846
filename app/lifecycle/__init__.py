"""Lifecycle management for startup, shutdown, and cleanup."""

from app.lifecycle.shutdown import StopFlag, interrupt_handler

__all__ = [
    "StopFlag",
    "interrupt_handler",
]
