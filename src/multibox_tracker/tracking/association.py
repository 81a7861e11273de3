"""
Association of new detections with tracked objects.

Every detection that survives size filtering is seeded in the motion
tracker as a candidate track. A candidate that cannot even correlate with
itself is dropped. Otherwise it is compared against every live track: when
the two overlap by more than ``max_overlap`` IoU, the incumbent keeps its
place only if it has the higher detection confidence and is still
correlating above ``marginal_correlation``; in every other case the
incumbent is evicted. A single candidate may evict several incumbents.
Entries created while no session was open take part in the overlap test
but, having no correlation, never defend their place.

Without a motion session the registry is simply replaced by the
detections of the latest batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .geometry import as_box, box_height, box_width, compute_iou
from .motion import FrameLike, MotionSession
from .publisher import ScreenRect
from .registry import TrackedObject, TrackRegistry
from ..config import TrackerConfig
from ..detection.base import Detection
from ..errors import RegistryError

logger = logging.getLogger(__name__)


@dataclass
class AssociationResult:
    """
    Outcome of processing one detection batch.

    Attributes:
        screen_rects: Render hints for every detection with a box
        accepted: Tracks created by this batch
        evicted: Tracks removed by this batch
        rejected_low_correlation: Detections whose candidate did not correlate
        rejected_overlap: Detections that lost against a live track
        max_evicted_iou: For accepted tracks that replaced incumbents, the
                         largest IoU with any of them, keyed by track id
        degraded: True if the batch was handled without motion tracking
    """
    screen_rects: List[ScreenRect] = field(default_factory=list)
    accepted: List[TrackedObject] = field(default_factory=list)
    evicted: List[TrackedObject] = field(default_factory=list)
    rejected_low_correlation: List[Detection] = field(default_factory=list)
    rejected_overlap: List[Detection] = field(default_factory=list)
    max_evicted_iou: Dict[int, float] = field(default_factory=dict)
    degraded: bool = False

    @property
    def mutated(self) -> bool:
        """Whether the registry changed."""
        return bool(self.accepted or self.evicted)


class AssociationEngine:
    """
    Applies detection batches to a TrackRegistry.

    Args:
        registry: Registry to mutate
        config: Association thresholds
    """

    def __init__(self, registry: TrackRegistry, config: Optional[TrackerConfig] = None):
        self._registry = registry
        self._config = config or TrackerConfig()

    def _filter(
        self,
        detections: Sequence[Detection],
        result: AssociationResult
    ) -> List[Detection]:
        """Record render hints and drop missing or degenerate boxes."""
        candidates = []
        for detection in detections:
            if detection.bbox is None:
                continue

            box = as_box(detection.bbox)
            result.screen_rects.append(ScreenRect(detection.confidence, box))

            if box_width(box) < self._config.min_size or box_height(box) < self._config.min_size:
                logger.debug(f"Degenerate rectangle {box.tolist()} for {detection.label}")
                continue

            candidates.append(Detection(detection.label, detection.confidence, box))

        return candidates

    def process(
        self,
        detections: Sequence[Detection],
        frame: Optional[FrameLike],
        timestamp: int,
        session: Optional[MotionSession]
    ) -> AssociationResult:
        """
        Process one batch of detections.

        Args:
            detections: Detections for ``timestamp``, in priority order
            frame: Frame the detections were computed on, used for seeding
            timestamp: Frame timestamp
            session: Open motion session, or None to track detections only

        Returns:
            AssociationResult describing what changed
        """
        result = AssociationResult(degraded=session is None)
        candidates = self._filter(detections, result)

        if not candidates:
            logger.debug(f"Nothing to track at {timestamp}")
            return result

        with self._registry.mutation():
            if session is None:
                self._replace_all(candidates, result)
            else:
                logger.debug(f"{len(candidates)} rects to track at {timestamp}")
                for detection in candidates:
                    self._handle_detection(detection, frame, timestamp, session, result)

        return result

    def _replace_all(self, candidates: List[Detection], result: AssociationResult) -> None:
        """Replace the registry with untracked entries built from detections."""
        for track in self._registry.snapshot():
            if track.handle is not None:
                raise RegistryError(
                    f"Track {track.track_id} still owns {track.handle} "
                    "but no motion session is open")

        result.evicted.extend(self._registry.clear())
        for detection in candidates:
            track = TrackedObject(
                track_id=self._registry.next_id(),
                label=detection.label,
                detection_confidence=detection.confidence,
                position=detection.bbox.copy(),
            )
            self._registry.insert(track)
            result.accepted.append(track)

    def _handle_detection(
        self,
        detection: Detection,
        frame: FrameLike,
        timestamp: int,
        session: MotionSession,
        result: AssociationResult
    ) -> None:
        handle = session.seed_track(detection.bbox, frame, timestamp)
        correlation = session.correlation_of(handle)

        if correlation < self._config.marginal_correlation:
            logger.debug(
                f"Correlation too low to begin tracking {detection.label}: {correlation:.3f}")
            session.release(handle)
            result.rejected_low_correlation.append(detection)
            return

        position = session.position_of(handle)
        to_remove: List[TrackedObject] = []
        max_intersect = 0.0

        for track in self._registry.snapshot():
            if track.handle is None:
                # Entries created without a session have no correlation and
                # cannot defend their place
                incumbent = track.position
            else:
                incumbent = session.position_of(track.handle)
            if incumbent is None:
                continue

            iou = compute_iou(incumbent, position)
            if iou <= self._config.max_overlap:
                continue

            if (track.handle is not None
                    and detection.confidence < track.detection_confidence
                    and session.correlation_of(track.handle) > self._config.marginal_correlation):
                logger.debug(
                    f"Keeping track {track.track_id} ({track.label}), "
                    f"rejecting {detection.label} at IoU {iou:.2f}")
                session.release(handle)
                result.rejected_overlap.append(detection)
                return

            to_remove.append(track)
            max_intersect = max(max_intersect, iou)

        for track in to_remove:
            if track.handle is None:
                logger.info(f"Replacing untracked object {track.track_id} ({track.label})")
            else:
                logger.info(
                    f"Removing tracked object {track.track_id} ({track.label}) with "
                    f"detection confidence {track.detection_confidence:.2f}, "
                    f"correlation {session.correlation_of(track.handle):.2f}"
                )
                session.release(track.handle)
            self._registry.remove(track)
            result.evicted.append(track)

        track = TrackedObject(
            track_id=self._registry.next_id(),
            label=detection.label,
            detection_confidence=detection.confidence,
            position=position if position is not None else np.array(detection.bbox),
            handle=handle,
            correlation=correlation,
        )
        self._registry.insert(track)
        result.accepted.append(track)
        if to_remove:
            result.max_evicted_iou[track.track_id] = max_intersect

        logger.info(f"Tracking object {track.track_id} ({track.label})")
