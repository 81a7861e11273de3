"""
Export utilities for tracking results.

This module provides functionality to export per-frame tracks as COCO
JSON with track ids, and to draw tracks on video frames.
"""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import cv2
import numpy as np

from ..config import COCO_CLASSES, OutputConfig
from ..tracking import FrameTracks

logger = logging.getLogger(__name__)


@dataclass
class COCOImage:
    """COCO format image entry."""
    id: int
    file_name: str
    height: int
    width: int


@dataclass
class COCOAnnotation:
    """COCO format annotation entry."""
    id: int
    image_id: int
    category_id: int
    bbox: List[float]  # [x, y, width, height]
    area: float
    score: float
    track_id: int
    correlation: Optional[float] = None
    iscrowd: int = 0


@dataclass
class COCOCategory:
    """COCO format category entry."""
    id: int
    name: str
    supercategory: str = "object"


class COCOExporter:
    """
    Export tracks to COCO JSON format.

    Categories are created on demand from track labels; COCO class names
    keep their usual ids.

    Example:
        >>> exporter = COCOExporter()
        >>> exporter.add_frame_tracks(frame_tracks, "frame_0000.jpg", 720, 1280)
        >>> exporter.save("annotations.json")
    """

    def __init__(self):
        self._images: List[COCOImage] = []
        self._annotations: List[COCOAnnotation] = []
        self._categories: Dict[str, COCOCategory] = {}
        self._coco_ids = {name: class_id for class_id, name in COCO_CLASSES.items()}
        self._annotation_id = 1

    def category_id(self, label: str) -> int:
        """Get or create the category id for a label."""
        if label not in self._categories:
            category_id = self._coco_ids.get(label)
            if category_id is None:
                used = [c.id for c in self._categories.values()]
                category_id = max(used + list(COCO_CLASSES)) + 1
            self._categories[label] = COCOCategory(id=category_id, name=label)
        return self._categories[label].id

    def add_image(
        self,
        image_id: int,
        file_name: str,
        height: int,
        width: int
    ) -> None:
        """Add an image entry."""
        self._images.append(COCOImage(
            id=image_id,
            file_name=file_name,
            height=height,
            width=width
        ))

    def add_frame_tracks(
        self,
        frame_tracks: FrameTracks,
        file_name: str,
        height: int,
        width: int
    ) -> None:
        """
        Add an image and one annotation per track.

        Args:
            frame_tracks: Tracks published for the frame
            file_name: Image filename
            height: Image height
            width: Image width
        """
        image_id = frame_tracks.frame_idx
        self.add_image(image_id, file_name, height, width)

        for view in frame_tracks.tracks:
            x1, y1, x2, y2 = [float(v) for v in view.position]
            coco_bbox = [x1, y1, x2 - x1, y2 - y1]

            self._annotations.append(COCOAnnotation(
                id=self._annotation_id,
                image_id=image_id,
                category_id=self.category_id(view.label),
                bbox=coco_bbox,
                area=coco_bbox[2] * coco_bbox[3],
                score=float(view.confidence),
                track_id=view.track_id,
                correlation=view.correlation,
            ))
            self._annotation_id += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to COCO JSON dictionary."""
        annotations = []
        for ann in self._annotations:
            ann_dict = asdict(ann)
            if ann_dict["correlation"] is None:
                del ann_dict["correlation"]
            annotations.append(ann_dict)

        return {
            "images": [asdict(img) for img in self._images],
            "annotations": annotations,
            "categories": sorted(
                (asdict(cat) for cat in self._categories.values()),
                key=lambda c: c["id"]
            ),
        }

    def save(self, path: Union[str, Path], indent: int = 2) -> None:
        """
        Save to JSON file.

        Args:
            path: Output file path
            indent: JSON indentation level
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=indent)

        logger.info(
            f"Saved COCO JSON: {path} "
            f"({len(self._images)} images, {len(self._annotations)} annotations)"
        )


class TrackingVisualizer:
    """
    Draw tracks on video frames.

    Each track id gets a consistent color. Detections from the latest
    batch can be drawn as thin gray boxes.

    Args:
        config: Output configuration for visualization parameters
        seed: Random seed for color generation (for reproducibility)
    """

    SCREEN_RECT_COLOR = (160, 160, 160)

    def __init__(
        self,
        config: Optional[OutputConfig] = None,
        seed: int = 42
    ):
        self._config = config or OutputConfig()
        self._rng = np.random.RandomState(seed)
        self._track_colors: Dict[int, Tuple[int, int, int]] = {}

    def _get_color(self, track_id: int) -> Tuple[int, int, int]:
        """Get consistent color for a track."""
        if track_id not in self._track_colors:
            color = tuple(self._rng.randint(0, 255, 3).tolist())
            self._track_colors[track_id] = color
        return self._track_colors[track_id]

    def draw_tracks(
        self,
        frame: np.ndarray,
        frame_tracks: FrameTracks,
        copy: bool = True
    ) -> np.ndarray:
        """
        Draw tracks on a frame.

        Args:
            frame: RGB or BGR image
            frame_tracks: Tracks published for the frame
            copy: If True, work on a copy of the frame

        Returns:
            Frame with visualizations drawn
        """
        if copy:
            frame = frame.copy()

        thickness = self._config.visualization_line_thickness
        font_scale = self._config.visualization_font_scale
        font = cv2.FONT_HERSHEY_SIMPLEX

        if self._config.draw_screen_rects:
            for rect in frame_tracks.screen_rects:
                x1, y1, x2, y2 = map(int, rect.bbox)
                cv2.rectangle(frame, (x1, y1), (x2, y2), self.SCREEN_RECT_COLOR, 1)

        for view in frame_tracks.tracks:
            color = self._get_color(view.track_id)
            x1, y1, x2, y2 = map(int, view.position)

            cv2.rectangle(frame, (x1, y1), (x2, y2), color, thickness)

            label = f"{view.label}_{view.track_id} {view.confidence * 100:.0f}%"

            (text_w, text_h), baseline = cv2.getTextSize(
                label, font, font_scale, thickness
            )

            cv2.rectangle(
                frame,
                (x1, y1 - text_h - baseline - 4),
                (x1 + text_w, y1),
                color,
                -1
            )

            cv2.putText(
                frame,
                label,
                (x1, y1 - baseline - 2),
                font,
                font_scale,
                (255, 255, 255),
                thickness
            )

        return frame

    def save_frame(
        self,
        frame: np.ndarray,
        path: Union[str, Path],
        is_rgb: bool = True
    ) -> None:
        """
        Save a frame to disk.

        Args:
            frame: Image to save
            path: Output path
            is_rgb: If True, convert from RGB to BGR before saving
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if is_rgb:
            frame = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)

        cv2.imwrite(str(path), frame)
