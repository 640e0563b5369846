"""Calibration engine interface driven by the interactive controller."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Tuple

from contracts import FramePair, QualitySnapshot


class CalibrationEngine(ABC):
    """Owns correspondences, the current transform, and its persistence.

    The controller never tracks a calibration phase of its own; every
    operation here must be safe to call at any time, answering requests it
    cannot satisfy yet with a no-op.
    """

    @abstractmethod
    def feed(self, pair: FramePair) -> None:
        """Accumulate correspondence data from a frame pair."""

    @abstractmethod
    def matches(self, pair: FramePair) -> Any:
        """Return an image visualizing the correspondences of a frame pair."""

    @abstractmethod
    def estimate(self) -> bool:
        """(Re)compute the transform; False if there was too little data."""

    @abstractmethod
    def evaluate(self, pair: FramePair) -> Tuple[QualitySnapshot, Any]:
        """Return the quality snapshot and stitched preview for a frame pair."""

    @abstractmethod
    def save(self) -> bool:
        """Persist the current transform; False if there is none yet."""

    @abstractmethod
    def reset(self) -> None:
        """Discard all accumulated state."""

    @property
    @abstractmethod
    def has_transform(self) -> bool:
        """Whether a transform has been estimated."""

    @property
    @abstractmethod
    def correspondence_count(self) -> int:
        """Number of buffered point correspondences."""
