"""
multibox-tracker - Detection-driven multi-object tracking.

Keeps a live set of tracked boxes across a video stream by reconciling
per-frame detector output with boxes followed by an optical-flow motion
tracker.

Example:
    >>> from multibox_tracker import MultiBoxTracker, OpticalFlowMotionTracker
    >>> tracker = MultiBoxTracker(OpticalFlowMotionTracker())
    >>> tracker.submit_frame(width, height, width, luminance, timestamp)
    >>> tracker.submit_detections(detections, luminance, timestamp)
    >>> tracks = tracker.current_tracks()

For whole videos:
    >>> from multibox_tracker import run_pipeline
    >>> results = run_pipeline("videos/", output_dir="output/")
"""

__version__ = "0.1.0"

from .config import (
    PipelineConfig,
    TrackerConfig,
    MotionConfig,
    DetectorConfig,
    VideoConfig,
    OutputConfig,
    COCO_CLASSES,
    get_default_config,
)
from .errors import (
    TrackingError,
    SessionMismatchError,
    HandleReleasedError,
    SessionActiveError,
    RegistryError,
)
from .detection import Detection, DetectionResult, BaseDetector
from .tracking import (
    MultiBoxTracker,
    MotionTracker,
    MotionSession,
    OpticalFlowMotionTracker,
    TrackedObjectView,
    ScreenRect,
)
from .pipeline import DetectionTrackingPipeline, run_pipeline

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "PipelineConfig",
    "TrackerConfig",
    "MotionConfig",
    "DetectorConfig",
    "VideoConfig",
    "OutputConfig",
    "COCO_CLASSES",
    "get_default_config",
    # Errors
    "TrackingError",
    "SessionMismatchError",
    "HandleReleasedError",
    "SessionActiveError",
    "RegistryError",
    # Detection
    "Detection",
    "DetectionResult",
    "BaseDetector",
    # Tracking
    "MultiBoxTracker",
    "MotionTracker",
    "MotionSession",
    "OpticalFlowMotionTracker",
    "TrackedObjectView",
    "ScreenRect",
    # Pipeline
    "DetectionTrackingPipeline",
    "run_pipeline",
]
