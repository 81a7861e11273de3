"""
Registry of currently tracked objects.

The registry is the single piece of state shared between the frame path
and the detection path. Multi-step passes hold ``registry.mutation()``
for their whole duration; single reads and writes lock internally.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from itertools import count
from typing import Iterator, List, Optional

import numpy as np

from .motion import TrackHandle
from ..errors import RegistryError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class TrackedObject:
    """
    A tracked object.

    Attributes:
        track_id: Identifier, stable for the lifetime of the track
        label: Label of the detection that created the track
        detection_confidence: Confidence of that detection
        position: Last known box [x1, y1, x2, y2]
        handle: Motion tracker handle owned by this track, None when
                motion tracking is unavailable
        correlation: Last correlation read from the motion tracker
    """
    track_id: int
    label: str
    detection_confidence: float
    position: np.ndarray
    handle: Optional[TrackHandle] = None
    correlation: Optional[float] = field(default=None)

    @property
    def is_tracked(self) -> bool:
        """Whether the track is followed by the motion tracker."""
        return self.handle is not None


class TrackRegistry:
    """
    Insertion-ordered collection of TrackedObject.

    No two entries may share a motion tracker handle.

    Example:
        >>> registry = TrackRegistry()
        >>> with registry.mutation():
        ...     registry.insert(track)
        >>> tracks = registry.snapshot()
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tracks: List[TrackedObject] = []
        self._ids = count()

    @contextmanager
    def mutation(self) -> Iterator["TrackRegistry"]:
        """Hold exclusive access to the registry."""
        with self._lock:
            yield self

    def next_id(self) -> int:
        """Allocate a new track id."""
        with self._lock:
            return next(self._ids)

    def insert(self, track: TrackedObject) -> None:
        with self._lock:
            for existing in self._tracks:
                if existing is track:
                    raise RegistryError(f"Track {track.track_id} is already registered")
                if track.handle is not None and existing.handle == track.handle:
                    raise RegistryError(
                        f"Track {track.track_id} would share {track.handle} "
                        f"with track {existing.track_id}")
            self._tracks.append(track)

    def remove(self, track: TrackedObject) -> None:
        with self._lock:
            for i, existing in enumerate(self._tracks):
                if existing is track:
                    del self._tracks[i]
                    return
            raise RegistryError(f"Track {track.track_id} is not registered")

    def clear(self) -> List[TrackedObject]:
        """Remove every track and return them."""
        with self._lock:
            removed = self._tracks
            self._tracks = []
            return removed

    def snapshot(self) -> List[TrackedObject]:
        """Copy of the current tracks, safe to iterate while mutating."""
        with self._lock:
            return list(self._tracks)

    def __contains__(self, track: TrackedObject) -> bool:
        with self._lock:
            return any(existing is track for existing in self._tracks)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tracks)
