"""
Mask R-CNN detector implementation using torchvision.

This module provides a concrete implementation of the BaseDetector
interface using the pre-trained Mask R-CNN model from torchvision.
Only boxes, labels and scores are used; segmentation masks are dropped.
"""

import logging
from typing import Optional

import numpy as np
import torch
import torchvision
import torchvision.transforms.functional as F

from .base import BaseDetector, Detection, DetectionResult
from ..config import COCO_CLASSES, DetectorConfig

logger = logging.getLogger(__name__)


class MaskRCNNDetector(BaseDetector):
    """
    Object detector using Mask R-CNN with ResNet-50 FPN backbone.

    Example:
        >>> config = DetectorConfig(device="cuda")
        >>> detector = MaskRCNNDetector(config)
        >>> result = detector.detect(rgb_frame)
        >>> for det in result:
        ...     print(f"Found {det.label} at {det.bbox}")
    """

    def __init__(self, config: Optional[DetectorConfig] = None):
        self._config = config or DetectorConfig()
        self._device = self._resolve_device()
        self._model = self._load_model()

        logger.info(
            f"Initialized MaskRCNNDetector on {self._device} "
            f"(default_conf={self._config.default_confidence})"
        )

    def _resolve_device(self) -> torch.device:
        """Resolve the device to use based on configuration and availability."""
        if self._config.device == "auto":
            device = torch.device(
                "cuda" if torch.cuda.is_available() else "cpu")
        else:
            device = torch.device(self._config.device)

        if device.type == "cuda" and not torch.cuda.is_available():
            logger.warning(
                "CUDA requested but not available, falling back to CPU")
            device = torch.device("cpu")

        return device

    def _load_model(self) -> torch.nn.Module:
        """Load and configure the Mask R-CNN model."""
        logger.debug("Loading Mask R-CNN model...")

        model = torchvision.models.detection.maskrcnn_resnet50_fpn(
            weights=torchvision.models.detection.MaskRCNN_ResNet50_FPN_Weights.DEFAULT
        )
        model.eval()
        model.to(self._device)

        logger.debug("Model loaded successfully")
        return model

    def _postprocess(self, output: dict, frame_shape: tuple) -> DetectionResult:
        """Convert raw model output into thresholded detections."""
        boxes = output['boxes'].cpu().numpy()
        labels = output['labels'].cpu().numpy()
        scores = output['scores'].cpu().numpy()

        detections = []
        for box, class_id, score in zip(boxes, labels, scores):
            class_id = int(class_id)
            confidence = float(score)
            if confidence < self._config.get_threshold(class_id):
                continue

            detections.append(Detection(
                label=COCO_CLASSES.get(class_id, f"class_{class_id}"),
                confidence=confidence,
                bbox=box.astype(np.float32),
            ))

        return DetectionResult(detections=detections, frame_shape=frame_shape)

    def detect(self, frame: np.ndarray) -> DetectionResult:
        """
        Run detection on a single frame.

        Args:
            frame: RGB image as numpy array, shape (H, W, 3)

        Returns:
            DetectionResult containing all detections above threshold
        """
        if frame.ndim != 3 or frame.shape[2] != 3:
            raise ValueError(
                f"Expected RGB image (H, W, 3), got shape {frame.shape}")

        input_tensor = F.to_tensor(frame).unsqueeze(0).to(self._device)

        with torch.no_grad():
            outputs = self._model(input_tensor)

        result = self._postprocess(outputs[0], frame.shape)

        if self._device.type == "cuda":
            torch.cuda.empty_cache()

        return result

    @property
    def device(self) -> str:
        """Return the device being used."""
        return str(self._device)

    @property
    def model_name(self) -> str:
        """Return the model identifier."""
        return self._config.model_name

    def __repr__(self) -> str:
        return f"MaskRCNNDetector(device={self._device}, model={self.model_name})"
