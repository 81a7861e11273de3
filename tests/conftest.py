"""
Shared fixtures: a scripted motion tracker whose correlations are set by
the tests, and helpers to build detections and frames.
"""

import cv2
import numpy as np
import pytest

from multibox_tracker.detection import Detection
from multibox_tracker.tracking import MotionSession, MotionTracker, MultiBoxTracker

WIDTH, HEIGHT = 640, 480


class ScriptedSession(MotionSession):
    """
    Motion session that never moves boxes on its own.

    Seeded correlations are taken from ``seed_correlations`` in order, then
    ``default_correlation``. Each advance multiplies every correlation by
    ``decay``.
    """

    def __init__(self, width, height, row_stride=None, seed_correlations=None,
                 default_correlation=0.9, decay=1.0):
        super().__init__(width, height, row_stride)
        self.seed_correlations = list(seed_correlations or [])
        self.default_correlation = default_correlation
        self.decay = decay
        self.boxes = {}
        self.correlations = {}
        self.seed_count = 0
        self.forgotten = []
        self.advances = []

    def _register(self, object_id, box, frame, timestamp):
        self.seed_count += 1
        self.boxes[object_id] = box.copy()
        if self.seed_correlations:
            self.correlations[object_id] = self.seed_correlations.pop(0)
        else:
            self.correlations[object_id] = self.default_correlation

    def _reposition(self, object_id, box, timestamp):
        self.boxes[object_id] = box.copy()

    def _advance(self, frame, timestamp):
        self.advances.append(timestamp)
        for object_id in self.correlations:
            self.correlations[object_id] *= self.decay

    def _locate(self, object_id):
        return self.boxes[object_id].copy()

    def _correlate(self, object_id):
        return self.correlations[object_id]

    def _forget(self, object_id):
        self.forgotten.append(object_id)
        del self.boxes[object_id]
        del self.correlations[object_id]

    # Test helpers

    def set_correlation(self, handle, value):
        self.correlations[handle.object_id] = value

    def move(self, handle, box):
        self.boxes[handle.object_id] = np.array(box, dtype=np.float32)


class ScriptedMotionTracker(MotionTracker):
    """Backend creating ScriptedSession instances."""

    def __init__(self, available=True, **session_kwargs):
        super().__init__()
        self._available = available
        self._session_kwargs = session_kwargs
        self.sessions = []

    @property
    def available(self):
        return self._available

    def _open_session(self, width, height, row_stride):
        session = ScriptedSession(width, height, row_stride, **self._session_kwargs)
        self.sessions.append(session)
        return session


def det(box, confidence=0.9, label="car"):
    """Build a detection."""
    return Detection(
        label=label,
        confidence=confidence,
        bbox=None if box is None else np.array(box, dtype=np.float32),
    )


def texture(seed, height=240, width=320):
    """Smooth random luminance texture that optical flow can follow."""
    rng = np.random.RandomState(seed)
    noise = (rng.rand(height, width) * 255).astype(np.float32)
    blurred = cv2.GaussianBlur(noise, (0, 0), 3)
    return cv2.normalize(blurred, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)


@pytest.fixture
def frame():
    return np.zeros((HEIGHT, WIDTH), dtype=np.uint8)


@pytest.fixture
def motion_tracker():
    return ScriptedMotionTracker()


@pytest.fixture
def tracker(motion_tracker, frame):
    """MultiBoxTracker whose motion session was opened by a first frame."""
    tracker = MultiBoxTracker(motion_tracker)
    tracker.submit_frame(WIDTH, HEIGHT, WIDTH, frame, 0)
    yield tracker
    tracker.close()


@pytest.fixture
def session(tracker, motion_tracker):
    return motion_tracker.sessions[0]
