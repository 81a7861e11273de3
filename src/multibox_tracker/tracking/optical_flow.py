"""
Optical-flow motion tracker built on OpenCV.

Frames are downsampled before tracking. Each object keeps the appearance
template it was seeded with and a set of keypoints inside its box. On
every frame the keypoints are followed with pyramidal Lucas-Kanade flow,
the box is moved by their median displacement, and the correlation is the
normalized cross-correlation between the template and the image patch at
the new position (OpenCV TM_CCOEFF_NORMED).
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from .geometry import scale_box, shift_box
from .motion import MotionSession, MotionTracker
from ..config import MotionConfig

logger = logging.getLogger(__name__)

_EMPTY_POINTS = np.empty((0, 1, 2), dtype=np.float32)
_MIN_TEXTURE = 1e-3


@dataclass
class FlowObject:
    """
    Per-object optical-flow state, in downsampled coordinates.

    Attributes:
        box: Current box [x1, y1, x2, y2]
        template: Appearance patch captured at seed time
        offset: Template origin relative to the box origin
        points: Keypoints inside the box, shape (N, 1, 2)
        reference: Frame in which ``points`` were last located
        correlation: Template match score at the current position
    """
    box: np.ndarray
    template: Optional[np.ndarray]
    offset: Tuple[int, int]
    points: np.ndarray
    reference: np.ndarray
    correlation: float = 0.0


def template_score(patch: np.ndarray, template: np.ndarray) -> float:
    """
    Normalized correlation coefficient of two equally sized patches.

    Returns:
        Score in [0, 1]; textureless patches score 0
    """
    if patch.shape != template.shape:
        return 0.0
    if patch.std() < _MIN_TEXTURE or template.std() < _MIN_TEXTURE:
        return 0.0

    res = cv2.matchTemplate(patch, template, cv2.TM_CCOEFF_NORMED)
    score = float(res[0, 0])
    if not np.isfinite(score):
        return 0.0
    return float(np.clip(score, 0.0, 1.0))


class OpticalFlowSession(MotionSession):
    """Motion session following boxes with sparse Lucas-Kanade flow."""

    def __init__(
        self,
        width: int,
        height: int,
        row_stride: int,
        config: Optional[MotionConfig] = None
    ):
        super().__init__(width, height, row_stride)
        self._config = config or MotionConfig()
        self._factor = self._config.downsample_factor
        self._objects: Dict[int, FlowObject] = {}
        self._downsampled: Optional[Tuple[int, np.ndarray]] = None

    # ------------------------------------------------------------------
    # Image helpers
    # ------------------------------------------------------------------

    def _downsample(self, frame: np.ndarray, timestamp: int) -> np.ndarray:
        """Downsample a frame once per timestamp."""
        if self._downsampled is not None and self._downsampled[0] == timestamp:
            return self._downsampled[1]

        frame = np.ascontiguousarray(frame)
        if self._factor == 1:
            small = frame
        else:
            size = (self.width // self._factor, self.height // self._factor)
            small = cv2.resize(frame, size, interpolation=cv2.INTER_AREA)

        self._downsampled = (timestamp, small)
        return small

    @staticmethod
    def _clip(box: np.ndarray, shape: Tuple[int, ...]) -> Optional[Tuple[int, int, int, int]]:
        """Integer box clipped to the image, or None if nothing is left."""
        h, w = shape[:2]
        x1 = max(0, int(round(float(box[0]))))
        y1 = max(0, int(round(float(box[1]))))
        x2 = min(w, int(round(float(box[2]))))
        y2 = min(h, int(round(float(box[3]))))
        if x2 - x1 < 2 or y2 - y1 < 2:
            return None
        return x1, y1, x2, y2

    def _select_points(self, image: np.ndarray, box: np.ndarray) -> np.ndarray:
        """Pick keypoints inside a box, falling back to a regular grid."""
        region = self._clip(box, image.shape)
        if region is None:
            return _EMPTY_POINTS
        x1, y1, x2, y2 = region

        mask = np.zeros(image.shape[:2], dtype=np.uint8)
        mask[y1:y2, x1:x2] = 255
        corners = cv2.goodFeaturesToTrack(
            image,
            maxCorners=self._config.max_corners,
            qualityLevel=self._config.quality_level,
            minDistance=self._config.min_distance,
            mask=mask,
        )

        if corners is not None and len(corners) >= self._config.min_points:
            return corners.astype(np.float32).reshape(-1, 1, 2)

        xs = np.linspace(x1, x2 - 1, 5, dtype=np.float32)
        ys = np.linspace(y1, y2 - 1, 5, dtype=np.float32)
        grid = np.array([[x, y] for y in ys for x in xs], dtype=np.float32)
        return grid.reshape(-1, 1, 2)

    def _match(self, image: np.ndarray, obj: FlowObject) -> float:
        """Correlate the stored template with the patch under the box."""
        if obj.template is None or len(obj.points) == 0:
            return 0.0

        th, tw = obj.template.shape
        x = int(round(float(obj.box[0]))) + obj.offset[0]
        y = int(round(float(obj.box[1]))) + obj.offset[1]
        h, w = image.shape[:2]
        if x < 0 or y < 0 or x + tw > w or y + th > h:
            return 0.0

        return template_score(image[y:y + th, x:x + tw], obj.template)

    # ------------------------------------------------------------------
    # MotionSession hooks
    # ------------------------------------------------------------------

    def _register(
        self,
        object_id: int,
        box: np.ndarray,
        frame: np.ndarray,
        timestamp: int
    ) -> None:
        small = self._downsample(frame, timestamp)
        local = scale_box(box, 1.0 / self._factor)

        region = self._clip(local, small.shape)
        if region is None:
            template, offset = None, (0, 0)
        else:
            x1, y1, x2, y2 = region
            template = small[y1:y2, x1:x2].copy()
            offset = (
                x1 - int(round(float(local[0]))),
                y1 - int(round(float(local[1]))),
            )

        obj = FlowObject(
            box=local,
            template=template,
            offset=offset,
            points=self._select_points(small, local),
            reference=small,
        )
        obj.correlation = self._match(small, obj)
        self._objects[object_id] = obj

        logger.debug(
            f"Seeded object {object_id} at {box.tolist()} with "
            f"{len(obj.points)} points, correlation {obj.correlation:.3f}"
        )

    def _reposition(self, object_id: int, box: np.ndarray, timestamp: int) -> None:
        obj = self._objects[object_id]
        obj.box = scale_box(box, 1.0 / self._factor)
        obj.points = self._select_points(obj.reference, obj.box)
        obj.correlation = self._match(obj.reference, obj)

    def _advance(self, frame: np.ndarray, timestamp: int) -> None:
        small = self._downsample(frame, timestamp)
        window = (self._config.lk_window, self._config.lk_window)

        for object_id, obj in self._objects.items():
            if len(obj.points) == 0:
                obj.correlation = 0.0
                obj.reference = small
                continue

            new_points, status, _ = cv2.calcOpticalFlowPyrLK(
                obj.reference,
                small,
                obj.points,
                None,
                winSize=window,
                maxLevel=self._config.lk_max_level,
            )

            found = status.reshape(-1) == 1 if new_points is not None else None
            if found is None or not found.any():
                logger.debug(f"Lost all keypoints of object {object_id}")
                obj.points = _EMPTY_POINTS
                obj.correlation = 0.0
                obj.reference = small
                continue

            dx, dy = np.median(
                (new_points[found] - obj.points[found]).reshape(-1, 2), axis=0)
            obj.box = shift_box(obj.box, float(dx), float(dy))
            obj.points = new_points[found].reshape(-1, 1, 2).astype(np.float32)
            obj.correlation = self._match(small, obj)

            if len(obj.points) < self._config.min_points:
                obj.points = self._select_points(small, obj.box)
            obj.reference = small

    def _locate(self, object_id: int) -> np.ndarray:
        return scale_box(self._objects[object_id].box, self._factor)

    def _correlate(self, object_id: int) -> float:
        return self._objects[object_id].correlation

    def _forget(self, object_id: int) -> None:
        del self._objects[object_id]

    def _release_resources(self) -> None:
        self._objects.clear()
        self._downsampled = None


class OpticalFlowMotionTracker(MotionTracker):
    """
    Motion tracker backend producing OpticalFlowSession instances.

    Args:
        config: Motion configuration. ``config.available = False`` makes
                every create_session() call return None.

    Example:
        >>> tracker = OpticalFlowMotionTracker()
        >>> session = tracker.create_session(640, 480)
    """

    def __init__(self, config: Optional[MotionConfig] = None):
        super().__init__()
        self._config = config or MotionConfig()

    @property
    def available(self) -> bool:
        return self._config.available

    def _open_session(self, width: int, height: int, row_stride: int) -> MotionSession:
        return OpticalFlowSession(width, height, row_stride, self._config)
