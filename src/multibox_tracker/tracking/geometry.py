"""
Bounding box helpers.

Boxes are numpy arrays of shape (4,) holding [x1, y1, x2, y2] in pixel
coordinates of the full-resolution frame.
"""

from typing import Sequence, Union

import numpy as np

BoxLike = Union[np.ndarray, Sequence[float]]


def as_box(values: BoxLike) -> np.ndarray:
    """Return a float32 copy of a box."""
    box = np.array(values, dtype=np.float32).reshape(-1)
    if box.shape != (4,):
        raise ValueError(f"Expected box [x1, y1, x2, y2], got {values!r}")
    return box


def box_width(box: np.ndarray) -> float:
    return float(box[2] - box[0])


def box_height(box: np.ndarray) -> float:
    return float(box[3] - box[1])


def box_area(box: np.ndarray) -> float:
    return max(0.0, box_width(box)) * max(0.0, box_height(box))


def scale_box(box: np.ndarray, factor: float) -> np.ndarray:
    """Multiply every coordinate of a box by ``factor``."""
    return (as_box(box) * factor).astype(np.float32)


def shift_box(box: np.ndarray, dx: float, dy: float) -> np.ndarray:
    """Translate a box by (dx, dy)."""
    return as_box(box) + np.array([dx, dy, dx, dy], dtype=np.float32)


def compute_iou(box_a: np.ndarray, box_b: np.ndarray) -> float:
    """
    Compute Intersection over Union between two boxes.

    Boxes that only touch along an edge do not intersect.

    Args:
        box_a: First box [x1, y1, x2, y2]
        box_b: Second box [x1, y1, x2, y2]

    Returns:
        IoU value in [0, 1]
    """
    x1 = max(box_a[0], box_b[0])
    y1 = max(box_a[1], box_b[1])
    x2 = min(box_a[2], box_b[2])
    y2 = min(box_a[3], box_b[3])

    if x2 <= x1 or y2 <= y1:
        return 0.0

    inter_area = float((x2 - x1) * (y2 - y1))
    union_area = box_area(box_a) + box_area(box_b) - inter_area

    return inter_area / max(union_area, 1e-8)
