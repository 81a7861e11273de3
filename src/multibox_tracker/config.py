"""
Centralized configuration management for multibox-tracker.

This module provides typed, validated configuration using dataclasses.
Configuration can be loaded from YAML files or constructed programmatically.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple
import yaml


# =============================================================================
# COCO Class Definitions
# =============================================================================

COCO_CLASSES: Dict[int, str] = {
    0: 'background', 1: 'person', 2: 'bicycle', 3: 'car', 4: 'motorcycle',
    5: 'airplane', 6: 'bus', 7: 'train', 8: 'truck', 9: 'boat',
    10: 'traffic light', 11: 'fire hydrant', 12: 'stop sign', 13: 'parking meter',
    14: 'bench', 15: 'bird', 16: 'cat', 17: 'dog', 18: 'horse', 19: 'sheep',
    20: 'cow', 21: 'elephant', 22: 'bear', 23: 'zebra', 24: 'giraffe',
    25: 'backpack', 26: 'umbrella', 27: 'handbag', 28: 'tie', 29: 'suitcase',
    30: 'frisbee', 31: 'skis', 32: 'snowboard', 33: 'sports ball', 34: 'kite',
    35: 'baseball bat', 36: 'baseball glove', 37: 'skateboard', 38: 'surfboard',
    39: 'tennis racket', 40: 'bottle', 41: 'wine glass', 42: 'cup', 43: 'fork',
    44: 'knife', 45: 'spoon', 46: 'bowl', 47: 'banana', 48: 'apple',
    49: 'sandwich', 50: 'orange', 51: 'broccoli', 52: 'carrot', 53: 'hot dog',
    54: 'pizza', 55: 'donut', 56: 'cake', 57: 'chair', 58: 'couch',
    59: 'potted plant', 60: 'bed', 61: 'dining table', 62: 'toilet', 63: 'tv',
    64: 'laptop', 65: 'mouse', 66: 'remote', 67: 'keyboard', 68: 'cell phone',
    69: 'microwave', 70: 'oven', 71: 'toaster', 72: 'sink', 73: 'refrigerator',
    74: 'book', 75: 'clock', 76: 'vase', 77: 'scissors', 78: 'teddy bear',
    79: 'hair drier', 80: 'toothbrush'
}


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class TrackerConfig:
    """Thresholds for track association and pruning."""

    # Boxes narrower or shorter than this are never tracked
    min_size: float = 16.0

    # Maximum IoU between a new candidate and a live track before one of
    # them has to go
    max_overlap: float = 0.1

    # Seeded candidates must self-correlate at least this well, and an
    # incumbent only defends its place while above it
    marginal_correlation: float = 0.75

    # Tracks are considered lost below this correlation
    min_correlation: float = 0.20

    def __post_init__(self) -> None:
        if self.min_size < 0:
            raise ValueError(f"min_size must be >= 0, got {self.min_size}")
        for name in ("max_overlap", "marginal_correlation", "min_correlation"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")


@dataclass
class MotionConfig:
    """Configuration for the optical-flow motion tracker."""

    available: bool = True
    downsample_factor: int = 2

    # Keypoint selection inside a tracked box
    max_corners: int = 40
    quality_level: float = 0.01
    min_distance: int = 3
    min_points: int = 4

    # Pyramidal Lucas-Kanade parameters
    lk_window: int = 15
    lk_max_level: int = 2

    def __post_init__(self) -> None:
        if self.downsample_factor < 1:
            raise ValueError(
                f"downsample_factor must be >= 1, got {self.downsample_factor}")


@dataclass
class DetectorConfig:
    """Configuration for object detection."""

    model_name: str = "maskrcnn_resnet50_fpn"
    device: str = "auto"  # "auto", "cuda", or "cpu"
    default_confidence: float = 0.5

    # Per-class confidence thresholds (class_id -> threshold)
    class_thresholds: Dict[int, float] = field(default_factory=lambda: {
        1: 0.6,   # person
        3: 0.4,   # car
        7: 0.4,   # train
    })

    def get_threshold(self, class_id: int) -> float:
        """Get confidence threshold for a specific class."""
        return self.class_thresholds.get(class_id, self.default_confidence)


@dataclass
class VideoConfig:
    """Configuration for video reading."""

    target_width: int = 1280
    target_height: int = 720
    max_frames: int = 300  # Maximum sequential frames to process per video
    supported_formats: Tuple[str, ...] = (".mp4", ".mkv", ".avi", ".mov")


@dataclass
class OutputConfig:
    """Configuration for output generation."""

    output_dir: Path = field(default_factory=lambda: Path("output"))
    save_tracked_frames: bool = True
    save_coco_json: bool = True
    draw_screen_rects: bool = False
    visualization_line_thickness: int = 2
    visualization_font_scale: float = 0.6


@dataclass
class PipelineConfig:
    """Master configuration combining all sub-configs."""

    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    # Frame processing
    use_tracker: bool = True
    detection_interval: int = 5  # Run the detector every N frames
    async_detection: bool = False
    min_object_size: float = 16.0

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @classmethod
    def from_yaml(cls, path: Path) -> "PipelineConfig":
        """Load configuration from a YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        video = dict(data.get('video', {}))
        if 'supported_formats' in video:
            video['supported_formats'] = tuple(video['supported_formats'])

        output = dict(data.get('output', {}))
        output['output_dir'] = Path(output.get('output_dir', 'output'))

        return cls(
            tracker=TrackerConfig(**data.get('tracker', {})),
            motion=MotionConfig(**data.get('motion', {})),
            detector=DetectorConfig(**data.get('detector', {})),
            video=VideoConfig(**video),
            output=OutputConfig(**output),
            use_tracker=data.get('use_tracker', True),
            detection_interval=data.get('detection_interval', 5),
            async_detection=data.get('async_detection', False),
            min_object_size=data.get('min_object_size', 16.0),
            log_level=data.get('log_level', 'INFO'),
            log_file=Path(data['log_file']) if data.get('log_file') else None,
        )

    def to_dict(self) -> dict:
        """Convert to a plain dictionary suitable for YAML."""
        video = asdict(self.video)
        video['supported_formats'] = list(self.video.supported_formats)
        output = asdict(self.output)
        output['output_dir'] = str(self.output.output_dir)

        return {
            'tracker': asdict(self.tracker),
            'motion': asdict(self.motion),
            'detector': asdict(self.detector),
            'video': video,
            'output': output,
            'use_tracker': self.use_tracker,
            'detection_interval': self.detection_interval,
            'async_detection': self.async_detection,
            'min_object_size': self.min_object_size,
            'log_level': self.log_level,
            'log_file': str(self.log_file) if self.log_file else None,
        }

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


# =============================================================================
# Default Configuration Factory
# =============================================================================

def get_default_config() -> PipelineConfig:
    """Create default configuration suitable for most use cases."""
    return PipelineConfig()
