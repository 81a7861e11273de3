"""
Abstract base class for object detectors.

This module defines the interface that all detector implementations must follow,
enabling easy swapping between different detection backends (Mask R-CNN, YOLO, etc.).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import numpy as np


@dataclass
class Detection:
    """
    Represents a single object detection.

    Attributes:
        label: Class label, e.g. "person"
        confidence: Detection confidence score [0, 1]
        bbox: Bounding box as [x1, y1, x2, y2] in pixel coordinates,
              None if the detector produced no location
    """
    label: str
    confidence: float
    bbox: Optional[np.ndarray]  # Shape: (4,) - [x1, y1, x2, y2]

    @property
    def width(self) -> float:
        """Bounding box width."""
        return float(self.bbox[2] - self.bbox[0])

    @property
    def height(self) -> float:
        """Bounding box height."""
        return float(self.bbox[3] - self.bbox[1])

    @property
    def area(self) -> float:
        """Bounding box area in pixels."""
        return self.width * self.height

    @property
    def center(self) -> np.ndarray:
        """Center point of bounding box as [cx, cy]."""
        return np.array([
            (self.bbox[0] + self.bbox[2]) / 2,
            (self.bbox[1] + self.bbox[3]) / 2
        ])

    def __str__(self) -> str:
        location = self.bbox.tolist() if self.bbox is not None else None
        return f"{self.label} ({self.confidence * 100.0:.1f}%) {location}"


@dataclass
class DetectionResult:
    """
    Container for all detections in a single frame.

    Attributes:
        detections: List of Detection objects
        frame_shape: Original frame shape as (H, W, C)
    """
    detections: List[Detection]
    frame_shape: tuple

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    def filter_by_label(self, labels: List[str]) -> "DetectionResult":
        """Return new result containing only specified labels."""
        filtered = [d for d in self.detections if d.label in labels]
        return DetectionResult(detections=filtered, frame_shape=self.frame_shape)

    def filter_by_confidence(self, min_confidence: float) -> "DetectionResult":
        """Return new result containing only detections above threshold."""
        filtered = [
            d for d in self.detections if d.confidence >= min_confidence]
        return DetectionResult(detections=filtered, frame_shape=self.frame_shape)

    def filter_by_size(self, min_size: float) -> "DetectionResult":
        """Return new result without missing or too small boxes."""
        filtered = [
            d for d in self.detections
            if d.bbox is not None and d.width >= min_size and d.height >= min_size
        ]
        return DetectionResult(detections=filtered, frame_shape=self.frame_shape)


class BaseDetector(ABC):
    """
    Abstract base class for object detectors.

    All detector implementations (Mask R-CNN, YOLO, etc.) must inherit
    from this class and implement the required methods.
    """

    @abstractmethod
    def detect(self, frame: np.ndarray) -> DetectionResult:
        """
        Run detection on a single frame.

        Args:
            frame: RGB image as numpy array, shape (H, W, 3)

        Returns:
            DetectionResult containing all detections
        """
        pass

    @property
    @abstractmethod
    def device(self) -> str:
        """Return the device being used (cuda/cpu)."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name/identifier."""
        pass
