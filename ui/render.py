"""Presentation sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from contracts import QualitySnapshot


class PresentationSink(ABC):
    @abstractmethod
    def show(self, matches_image: Any, stitched_image: Any, quality: QualitySnapshot) -> None:
        """Display the match overlay and the stitched preview."""

    @abstractmethod
    def poll_key(self, wait_ms: int) -> Optional[str]:
        """Wait at most wait_ms for a key press and return it, or None."""

    @abstractmethod
    def close(self) -> None:
        """Release display surfaces. Safe to call more than once."""
