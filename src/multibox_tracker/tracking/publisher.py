"""
Read-only views of the track registry.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .registry import TrackedObject, TrackRegistry


@dataclass(frozen=True)
class TrackedObjectView:
    """
    Point-in-time copy of a tracked object.

    Attributes:
        track_id: Track identifier
        label: Detection label
        confidence: Detection confidence
        position: Box [x1, y1, x2, y2]
        correlation: Last motion tracker correlation, None if untracked
        tracked: Whether the track is followed by the motion tracker
    """
    track_id: int
    label: str
    confidence: float
    position: np.ndarray
    correlation: Optional[float]
    tracked: bool

    @classmethod
    def of(cls, track: TrackedObject) -> "TrackedObjectView":
        position = track.position.copy()
        position.flags.writeable = False
        return cls(
            track_id=track.track_id,
            label=track.label,
            confidence=track.detection_confidence,
            position=position,
            correlation=track.correlation,
            tracked=track.is_tracked,
        )


@dataclass(frozen=True)
class ScreenRect:
    """Render hint for a detection considered in the last detection cycle."""
    confidence: float
    bbox: np.ndarray


@dataclass
class FrameTracks:
    """
    Tracks published for one frame.

    Attributes:
        frame_idx: Index of the frame
        tracks: Track views after the frame was processed
        screen_rects: Render hints of the latest detection batch
    """
    frame_idx: int
    tracks: List[TrackedObjectView]
    screen_rects: List[ScreenRect] = field(default_factory=list)


class Publisher:
    """Publishes consistent snapshots of a TrackRegistry."""

    def __init__(self, registry: TrackRegistry):
        self._registry = registry

    def snapshot(self) -> List[TrackedObjectView]:
        """Views of all tracks, in registry order."""
        with self._registry.mutation():
            return [TrackedObjectView.of(track) for track in self._registry.snapshot()]
