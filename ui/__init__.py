"""UI module."""

from .preview import MATCHES_WINDOW, WARPING_WINDOW, PreviewWindows, draw_quality
from .render import PresentationSink

__all__ = ["MATCHES_WINDOW", "PresentationSink", "PreviewWindows", "WARPING_WINDOW", "draw_quality"]
