"""
Per-frame advance of the motion tracker and pruning of lost tracks.
"""

import logging
import threading
from typing import List, Optional, Tuple

from .motion import FrameLike, MotionSession, MotionTracker
from .registry import TrackedObject, TrackRegistry
from ..config import TrackerConfig

logger = logging.getLogger(__name__)


class FramePump:
    """
    Drives the motion session with incoming frames.

    The session is created lazily from the first frame and keeps that
    frame size until close(). If the backend cannot provide a session the
    pump stays in detection-only mode for good.

    Args:
        registry: Registry to prune
        motion_tracker: Session factory, None to disable motion tracking
        config: Pruning thresholds
    """

    def __init__(
        self,
        registry: TrackRegistry,
        motion_tracker: Optional[MotionTracker],
        config: Optional[TrackerConfig] = None
    ):
        self._registry = registry
        self._motion_tracker = motion_tracker
        self._config = config or TrackerConfig()

        self._init_lock = threading.Lock()
        self._session: Optional[MotionSession] = None
        self._initialized = False
        self._frame_size: Optional[Tuple[int, int]] = None

    @property
    def session(self) -> Optional[MotionSession]:
        return self._session

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def frame_size(self) -> Optional[Tuple[int, int]]:
        return self._frame_size

    def ensure_session(
        self,
        width: int,
        height: int,
        row_stride: Optional[int] = None
    ) -> Optional[MotionSession]:
        """Create the motion session on first use; later calls return it unchanged."""
        with self._init_lock:
            return self._ensure_session_locked(width, height, row_stride)

    def _ensure_session_locked(
        self,
        width: int,
        height: int,
        row_stride: Optional[int]
    ) -> Optional[MotionSession]:
        if not self._initialized:
            if self._motion_tracker is not None:
                logger.info(f"Initializing motion tracker: {width}x{height}")
                self._session = self._motion_tracker.create_session(
                    width, height, row_stride or width)
            if self._session is None:
                logger.warning("Motion tracking unavailable, tracking detections only")
            self._frame_size = (width, height)
            self._initialized = True
        return self._session

    def on_frame(
        self,
        width: int,
        height: int,
        row_stride: Optional[int],
        frame: FrameLike,
        timestamp: int
    ) -> List[TrackedObject]:
        """
        Advance tracking by one frame.

        The whole step holds the init lock, so close() waits for it to
        finish and never closes the session under it.

        Returns:
            Tracks removed because their correlation decayed
        """
        with self._init_lock:
            session = self._ensure_session_locked(width, height, row_stride)
            if session is None:
                return []

            expected_width, expected_height = self._frame_size
            if (width, height) != (expected_width, expected_height):
                logger.warning(
                    f"Skipping {width}x{height} frame, motion session expects "
                    f"{expected_width}x{expected_height}"
                )
                return []

            session.advance(frame, timestamp)
            return self.prune(session)

    def prune(self, session: MotionSession) -> List[TrackedObject]:
        """Drop tracks below the survival correlation, refresh the others."""
        evicted = []
        with self._registry.mutation():
            for track in self._registry.snapshot():
                if track.handle is None:
                    continue

                correlation = session.correlation_of(track.handle)
                if correlation < self._config.min_correlation:
                    logger.info(
                        f"Removing tracked object {track.track_id} ({track.label}) "
                        f"because correlation is {correlation:.3f}"
                    )
                    session.release(track.handle)
                    self._registry.remove(track)
                    evicted.append(track)
                    continue

                track.correlation = correlation
                position = session.position_of(track.handle)
                if position is not None:
                    track.position = position

        return evicted

    def close(self) -> None:
        """Release every track and the session; the next frame starts a new one."""
        with self._init_lock, self._registry.mutation():
            for track in self._registry.clear():
                if track.handle is not None and self._session is not None:
                    self._session.release(track.handle)

            if self._session is not None:
                self._session.close()
                logger.info(f"Released motion session {self._session.session_id}")

            self._session = None
            self._initialized = False
            self._frame_size = None
