"""
MultiBoxTracker: the entry point of the tracking engine.

Frames and detection batches arrive independently, typically from
different threads and at different rates. Frames advance the motion
tracker and prune lost tracks; detection batches create, replace and
evict tracks. Both paths serialize on the registry lock, so each pass
runs to completion before the other starts.
"""

import logging
from typing import List, Optional, Sequence

from .association import AssociationEngine, AssociationResult
from .frame_pump import FramePump
from .motion import FrameLike, MotionTracker
from .publisher import Publisher, ScreenRect, TrackedObjectView
from .registry import TrackedObject, TrackRegistry
from ..config import TrackerConfig
from ..detection.base import Detection

logger = logging.getLogger(__name__)


class MultiBoxTracker:
    """
    Keeps a live set of tracked boxes across a video stream.

    Args:
        motion_tracker: Motion tracker backend. None runs in
                        detection-only mode.
        config: Association and pruning thresholds

    Example:
        >>> tracker = MultiBoxTracker(OpticalFlowMotionTracker())
        >>> for timestamp, frame in enumerate(frames):
        ...     tracker.submit_frame(w, h, w, frame, timestamp)
        ...     if timestamp % 5 == 0:
        ...         tracker.submit_detections(detect(frame), frame, timestamp)
        ...     for view in tracker.current_tracks():
        ...         print(view.track_id, view.label, view.position)
    """

    def __init__(
        self,
        motion_tracker: Optional[MotionTracker] = None,
        config: Optional[TrackerConfig] = None
    ):
        self._config = config or TrackerConfig()
        self._registry = TrackRegistry()
        self._pump = FramePump(self._registry, motion_tracker, self._config)
        self._engine = AssociationEngine(self._registry, self._config)
        self._publisher = Publisher(self._registry)
        self._screen_rects: List[ScreenRect] = []

        logger.info(
            f"Initialized MultiBoxTracker (min_size={self._config.min_size}, "
            f"max_overlap={self._config.max_overlap}, "
            f"marginal_correlation={self._config.marginal_correlation}, "
            f"min_correlation={self._config.min_correlation})"
        )

    @property
    def registry(self) -> TrackRegistry:
        return self._registry

    @property
    def tracking_available(self) -> bool:
        """Whether a motion session is open. False before the first frame."""
        return self._pump.session is not None

    @property
    def screen_rects(self) -> List[ScreenRect]:
        """Render hints of the most recent detection batch."""
        return list(self._screen_rects)

    def submit_frame(
        self,
        width: int,
        height: int,
        row_stride: Optional[int],
        frame: FrameLike,
        timestamp: int
    ) -> List[TrackedObject]:
        """
        Advance tracking with a new frame.

        Args:
            width: Frame width
            height: Frame height
            row_stride: Bytes per row when ``frame`` is a flat buffer
            frame: Luminance image or flat luminance buffer
            timestamp: Monotonic frame timestamp

        Returns:
            Tracks dropped on this frame because they were lost
        """
        return self._pump.on_frame(width, height, row_stride, frame, timestamp)

    def submit_detections(
        self,
        detections: Sequence[Detection],
        frame: Optional[FrameLike],
        timestamp: int
    ) -> AssociationResult:
        """
        Reconcile a detection batch with the tracked objects.

        Args:
            detections: Detections computed on ``frame``
            frame: Luminance frame the detections belong to
            timestamp: Timestamp of ``frame``

        Returns:
            AssociationResult describing accepted, rejected and evicted items
        """
        logger.debug(f"Processing {len(detections)} results from timestamp {timestamp}")
        # reset() closes the session under the same lock
        with self._registry.mutation():
            result = self._engine.process(detections, frame, timestamp, self._pump.session)
            self._screen_rects = result.screen_rects
        return result

    def current_tracks(self) -> List[TrackedObjectView]:
        """Snapshot of all tracked objects."""
        return self._publisher.snapshot()

    def reset(self) -> None:
        """Drop all tracks and the motion session; the next frame starts afresh."""
        self._pump.close()
        self._screen_rects = []
        logger.info("Tracker reset")

    def close(self) -> None:
        self.reset()

    def __enter__(self) -> "MultiBoxTracker":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._registry)
