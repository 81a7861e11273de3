"""
I/O module for multibox-tracker.

This module provides video reading, track export, and visualization.

Example:
    >>> from multibox_tracker.io import VideoReader, COCOExporter
    >>> reader = VideoReader("video.mp4")
    >>> for idx, frame in reader.iterate_frames(end=100):
    ...     ...
"""

from .video import (
    VideoReader,
    VideoMetadata,
    find_videos,
    to_luminance,
)
from .export import (
    COCOExporter,
    COCOImage,
    COCOAnnotation,
    COCOCategory,
    TrackingVisualizer,
)

__all__ = [
    # Video I/O
    "VideoReader",
    "VideoMetadata",
    "find_videos",
    "to_luminance",
    # Export
    "COCOExporter",
    "COCOImage",
    "COCOAnnotation",
    "COCOCategory",
    "TrackingVisualizer",
]
