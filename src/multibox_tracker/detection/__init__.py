"""
Detection module for multibox-tracker.

This module provides the detection types consumed by the tracker and a
pluggable detector interface.

Available Detectors:
    - MaskRCNNDetector: torchvision Mask R-CNN, in
      ``multibox_tracker.detection.mask_rcnn`` (imported on demand, it
      pulls in torch)

Example:
    >>> from multibox_tracker.detection.mask_rcnn import MaskRCNNDetector
    >>> detector = MaskRCNNDetector()
    >>> result = detector.detect(rgb_frame)
"""

from .base import BaseDetector, Detection, DetectionResult

__all__ = [
    "BaseDetector",
    "Detection",
    "DetectionResult",
]
