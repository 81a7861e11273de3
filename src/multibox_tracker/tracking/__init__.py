"""
Tracking module for multibox-tracker.

This module reconciles detector output with boxes followed by a motion
tracker, deciding which detections start, replace or lose against tracks.

Example:
    >>> from multibox_tracker.tracking import MultiBoxTracker, OpticalFlowMotionTracker
    >>> tracker = MultiBoxTracker(OpticalFlowMotionTracker())
    >>> tracker.submit_frame(width, height, width, luminance, timestamp)
    >>> tracker.submit_detections(detections, luminance, timestamp)
    >>> views = tracker.current_tracks()
"""

from .geometry import compute_iou, as_box
from .motion import MotionSession, MotionTracker, TrackHandle, as_luminance
from .optical_flow import OpticalFlowMotionTracker, OpticalFlowSession
from .registry import TrackedObject, TrackRegistry
from .publisher import FrameTracks, Publisher, ScreenRect, TrackedObjectView
from .association import AssociationEngine, AssociationResult
from .frame_pump import FramePump
from .multibox import MultiBoxTracker

__all__ = [
    # Geometry
    "compute_iou",
    "as_box",
    # Motion tracking
    "MotionSession",
    "MotionTracker",
    "TrackHandle",
    "as_luminance",
    "OpticalFlowMotionTracker",
    "OpticalFlowSession",
    # Registry and views
    "TrackedObject",
    "TrackRegistry",
    "FrameTracks",
    "Publisher",
    "ScreenRect",
    "TrackedObjectView",
    # Engine
    "AssociationEngine",
    "AssociationResult",
    "FramePump",
    "MultiBoxTracker",
]
