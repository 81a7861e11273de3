"""
Motion tracker interface.

A MotionTracker is a backend factory that opens at most one MotionSession
at a time for a video stream of fixed dimensions. A session follows the
boxes it was seeded with from frame to frame and reports a position and a
correlation score for each of them.

Handles returned by a session are capability tokens: they carry the id of
the session that issued them, and using one with any other session (or
after the session was closed) is a programming error.

Example:
    >>> session = motion_tracker.create_session(640, 480, 640)
    >>> handle = session.seed_track([10, 10, 90, 90], frame, timestamp=0)
    >>> session.advance(next_frame, timestamp=1)
    >>> session.position_of(handle), session.correlation_of(handle)
    >>> session.release(handle)
    >>> session.close()
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import count
from typing import Dict, Optional, Union

import numpy as np

from .geometry import BoxLike, as_box
from ..errors import HandleReleasedError, SessionActiveError, SessionMismatchError

logger = logging.getLogger(__name__)

FrameLike = Union[np.ndarray, bytes, bytearray, memoryview]

_session_ids = count(1)


def as_luminance(
    frame: FrameLike,
    width: int,
    height: int,
    row_stride: Optional[int] = None
) -> np.ndarray:
    """
    View a frame as a (height, width) uint8 luminance image.

    Args:
        frame: 2-D image array, or a flat buffer of ``height`` rows of
               ``row_stride`` bytes each
        width: Frame width in pixels
        height: Frame height in pixels
        row_stride: Bytes per row in a flat buffer (defaults to width)

    Returns:
        Luminance image, shape (height, width)
    """
    if isinstance(frame, np.ndarray) and frame.ndim == 2:
        if frame.shape[0] < height or frame.shape[1] < width:
            raise ValueError(
                f"Frame of shape {frame.shape} is smaller than {width}x{height}")
        return np.asarray(frame[:height, :width], dtype=np.uint8)

    row_stride = row_stride or width
    if row_stride < width:
        raise ValueError(f"row_stride {row_stride} is smaller than width {width}")

    if isinstance(frame, np.ndarray):
        buffer = np.asarray(frame, dtype=np.uint8).reshape(-1)
    else:
        buffer = np.frombuffer(frame, dtype=np.uint8)

    if buffer.size < row_stride * height:
        raise ValueError(
            f"Frame buffer holds {buffer.size} bytes, "
            f"expected at least {row_stride * height}")

    return buffer[:row_stride * height].reshape(height, row_stride)[:, :width]


@dataclass(frozen=True)
class TrackHandle:
    """Opaque reference to one object followed by a motion session."""
    session_id: int
    object_id: int


@dataclass
class _HandleState:
    position: np.ndarray
    last_update: int


class MotionSession(ABC):
    """
    One motion tracking session over a stream of fixed-size frames.

    This base class owns the handle bookkeeping and validity checks;
    subclasses provide the actual motion estimation through the
    ``_register``, ``_reposition``, ``_advance``, ``_locate``,
    ``_correlate`` and ``_forget`` hooks. All public methods are
    serialized by a per-session lock.

    Args:
        width: Frame width in pixels
        height: Frame height in pixels
        row_stride: Bytes per row of flat frame buffers
    """

    def __init__(self, width: int, height: int, row_stride: Optional[int] = None):
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid frame size {width}x{height}")

        self.session_id = next(_session_ids)
        self.width = width
        self.height = height
        self.row_stride = row_stride or width

        self._lock = threading.RLock()
        self._handles: Dict[int, _HandleState] = {}
        self._next_object_id = 1
        self._closed = False
        self._on_close = None

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _register(
        self,
        object_id: int,
        box: np.ndarray,
        frame: np.ndarray,
        timestamp: int
    ) -> None:
        """Start following ``box`` as it appears in ``frame``."""

    @abstractmethod
    def _reposition(self, object_id: int, box: np.ndarray, timestamp: int) -> None:
        """Move an object to an externally supplied position."""

    @abstractmethod
    def _advance(self, frame: np.ndarray, timestamp: int) -> None:
        """Update every registered object for a new frame."""

    @abstractmethod
    def _locate(self, object_id: int) -> np.ndarray:
        """Current box of an object, full-frame coordinates."""

    @abstractmethod
    def _correlate(self, object_id: int) -> float:
        """Current correlation of an object, in [0, 1]."""

    @abstractmethod
    def _forget(self, object_id: int) -> None:
        """Drop all state kept for an object."""

    def _release_resources(self) -> None:
        """Free session-wide resources. Called once from close()."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def live_handles(self) -> int:
        """Number of handles issued and not yet released."""
        with self._lock:
            return len(self._handles)

    def seed_track(self, box: BoxLike, frame: FrameLike, timestamp: int) -> TrackHandle:
        """
        Start tracking ``box`` in ``frame``.

        Returns:
            A handle exclusively owned by the caller until released
        """
        box = as_box(box)
        with self._lock:
            self._check_open()
            luminance = as_luminance(frame, self.width, self.height, self.row_stride)

            handle = TrackHandle(self.session_id, self._next_object_id)
            self._next_object_id += 1

            self._register(handle.object_id, box, luminance, timestamp)
            self._handles[handle.object_id] = _HandleState(
                position=self._locate(handle.object_id),
                last_update=timestamp,
            )
            return handle

    def advance(self, frame: FrameLike, timestamp: int) -> None:
        """Feed the next frame and refresh every live object."""
        with self._lock:
            self._check_open()
            luminance = as_luminance(frame, self.width, self.height, self.row_stride)
            self._advance(luminance, timestamp)

            for object_id, state in self._handles.items():
                state.position = self._locate(object_id)

    def set_position(self, handle: TrackHandle, box: BoxLike, timestamp: int) -> bool:
        """
        Override the position of a tracked object.

        Updates older than the last one recorded for the handle are
        ignored.

        Returns:
            True if the position was applied
        """
        box = as_box(box)
        with self._lock:
            state = self._check_handle(handle)
            if state is None:
                logger.debug(f"Ignoring position update for released {handle}")
                return False

            if timestamp < state.last_update:
                logger.warning(
                    f"Tried to use older position time {timestamp} for {handle} "
                    f"(last update {state.last_update})"
                )
                return False

            self._reposition(handle.object_id, box, timestamp)
            state.last_update = timestamp
            state.position = self._locate(handle.object_id)
            return True

    def position_of(self, handle: TrackHandle) -> Optional[np.ndarray]:
        """Current box of a tracked object, or None once it was released."""
        with self._lock:
            state = self._check_handle(handle)
            if state is None:
                return None
            return state.position.copy()

    def correlation_of(self, handle: TrackHandle) -> float:
        """Current correlation of a tracked object, 0.0 once it was released."""
        with self._lock:
            state = self._check_handle(handle)
            if state is None:
                return 0.0
            return float(self._correlate(handle.object_id))

    def release(self, handle: TrackHandle) -> None:
        """Stop tracking an object. Each handle must be released exactly once."""
        with self._lock:
            state = self._check_handle(handle)
            if state is None:
                raise HandleReleasedError(f"{handle} was already released")

            self._forget(handle.object_id)
            del self._handles[handle.object_id]

    def close(self) -> None:
        """Forget every object and free the session. Idempotent."""
        with self._lock:
            if self._closed:
                return

            for object_id in list(self._handles):
                self._forget(object_id)
            if self._handles:
                logger.info(
                    f"Closing session {self.session_id} with "
                    f"{len(self._handles)} live handles")
            self._handles.clear()
            self._release_resources()
            self._closed = True

        if self._on_close is not None:
            self._on_close(self)

    def _check_open(self) -> None:
        if self._closed:
            raise SessionMismatchError(f"Motion session {self.session_id} is closed")

    def _check_handle(self, handle: TrackHandle) -> Optional[_HandleState]:
        """Return the live state of a handle, or None if it was released."""
        if handle.session_id != self.session_id:
            raise SessionMismatchError(
                f"{handle} was created by another motion session "
                f"(this is session {self.session_id})")
        self._check_open()

        state = self._handles.get(handle.object_id)
        if state is None and handle.object_id >= self._next_object_id:
            raise SessionMismatchError(f"{handle} was never issued by this session")
        return state

    def __enter__(self) -> "MotionSession":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self.session_id}, "
            f"{self.width}x{self.height}, closed={self._closed})"
        )


class MotionTracker(ABC):
    """
    Factory for motion sessions.

    Only one session may be open at a time; it has to be closed before
    the next one is created.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Optional[MotionSession] = None

    @property
    def available(self) -> bool:
        """Whether this backend can track at all."""
        return True

    @property
    def active_session(self) -> Optional[MotionSession]:
        return self._active

    @abstractmethod
    def _open_session(self, width: int, height: int, row_stride: int) -> MotionSession:
        """Create a backend-specific session."""

    def create_session(
        self,
        width: int,
        height: int,
        row_stride: Optional[int] = None
    ) -> Optional[MotionSession]:
        """
        Open a session for frames of the given size.

        Returns:
            The new session, or None if motion tracking is unavailable
        """
        row_stride = row_stride or width

        with self._lock:
            if not self.available:
                logger.warning("Motion tracking unavailable, tracking detections only")
                return None

            if self._active is not None and not self._active.closed:
                raise SessionActiveError(
                    "Tried to create a new motion session before closing "
                    f"session {self._active.session_id}")

            session = self._open_session(width, height, row_stride)
            session._on_close = self._session_closed
            self._active = session

        logger.info(f"Opened {session}")
        return session

    def _session_closed(self, session: MotionSession) -> None:
        with self._lock:
            if self._active is session:
                self._active = None
