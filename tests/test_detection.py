"""
Unit tests for detection module.
"""

import numpy as np
import pytest

from multibox_tracker.detection import Detection, DetectionResult


class TestDetection:
    """Tests for Detection dataclass."""

    def test_properties(self):
        det = Detection(
            label="person",
            confidence=0.9,
            bbox=np.array([100, 100, 200, 150]),
        )

        assert det.width == 100
        assert det.height == 50
        assert det.area == 5000
        np.testing.assert_array_equal(det.center, [150, 125])

    def test_str(self):
        det = Detection("car", 0.875, np.array([0, 0, 10, 20]))
        assert str(det) == "car (87.5%) [0, 0, 10, 20]"

    def test_str_without_box(self):
        det = Detection("car", 0.5, None)
        assert str(det) == "car (50.0%) None"


class TestDetectionResult:
    """Tests for DetectionResult container."""

    def test_empty_result(self):
        result = DetectionResult(detections=[], frame_shape=(480, 640, 3))

        assert len(result) == 0
        assert list(result) == []

    def test_filter_by_label(self):
        detections = [
            Detection("person", 0.9, np.array([0, 0, 50, 50])),
            Detection("car", 0.8, np.array([100, 100, 150, 150])),
            Detection("person", 0.7, np.array([200, 200, 250, 250])),
        ]
        result = DetectionResult(detections=detections, frame_shape=(480, 640, 3))

        filtered = result.filter_by_label(["person"])
        assert len(filtered) == 2

        for det in filtered:
            assert det.label == "person"

    def test_filter_by_confidence(self):
        detections = [
            Detection("person", 0.9, np.array([0, 0, 50, 50])),
            Detection("person", 0.5, np.array([100, 100, 150, 150])),
            Detection("person", 0.3, np.array([200, 200, 250, 250])),
        ]
        result = DetectionResult(detections=detections, frame_shape=(480, 640, 3))

        filtered = result.filter_by_confidence(0.6)
        assert len(filtered) == 1
        assert filtered.detections[0].confidence == 0.9

    def test_filter_by_size(self):
        detections = [
            Detection("car", 0.9, np.array([0, 0, 50, 50])),
            Detection("car", 0.9, np.array([0, 0, 50, 10])),
            Detection("car", 0.9, None),
        ]
        result = DetectionResult(detections=detections, frame_shape=(480, 640, 3))

        filtered = result.filter_by_size(16)
        assert len(filtered) == 1
        assert filtered.frame_shape == (480, 640, 3)
        np.testing.assert_array_equal(filtered.detections[0].bbox, [0, 0, 50, 50])


class TestMaskRCNNPostprocess:
    """Tests for converting raw model output, without loading weights."""

    @pytest.fixture
    def detector(self):
        from multibox_tracker.config import DetectorConfig
        from multibox_tracker.detection.mask_rcnn import MaskRCNNDetector

        detector = MaskRCNNDetector.__new__(MaskRCNNDetector)
        detector._config = DetectorConfig()
        return detector

    def test_per_class_thresholds(self, detector):
        import torch

        output = {
            "boxes": torch.tensor([
                [0.0, 0.0, 50.0, 50.0],
                [10.0, 10.0, 80.0, 60.0],
                [5.0, 5.0, 40.0, 40.0],
            ]),
            "labels": torch.tensor([1, 3, 1]),
            "scores": torch.tensor([0.7, 0.45, 0.5]),
        }

        result = detector._postprocess(output, (480, 640, 3))

        assert [d.label for d in result] == ["person", "car"]
        assert result.detections[1].bbox.dtype == np.float32
        np.testing.assert_array_equal(result.detections[1].bbox, [10, 10, 80, 60])
        assert result.frame_shape == (480, 640, 3)
