"""
Main pipeline for video detection and tracking.

This module feeds video frames through the tracker, running the detector
on a subset of frames, and writes per-frame tracks to disk.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np
from tqdm import tqdm

from .config import PipelineConfig, get_default_config
from .detection import BaseDetector
from .tracking import FrameTracks, MotionTracker, MultiBoxTracker, OpticalFlowMotionTracker
from .io import (
    VideoReader,
    COCOExporter,
    TrackingVisualizer,
    find_videos,
    to_luminance,
)

logger = logging.getLogger(__name__)


class DetectionTrackingPipeline:
    """
    End-to-end pipeline for video object detection and tracking.

    Every frame advances the tracker. The detector runs every
    ``detection_interval`` frames, or, with ``async_detection``, on a
    background worker that picks up the latest frame whenever it is idle.

    Args:
        config: Pipeline configuration. Uses defaults if None.
        detector: Detector to use. A Mask R-CNN detector is created on
                  first use if None.
        motion_tracker: Motion tracker backend. Defaults to the optical
                        flow tracker unless ``config.use_tracker`` is off.

    Example:
        >>> pipeline = DetectionTrackingPipeline()
        >>> results = pipeline.process_video("input.mp4", output_dir="output/")
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        detector: Optional[BaseDetector] = None,
        motion_tracker: Optional[MotionTracker] = None
    ):
        self._config = config or get_default_config()
        self._setup_logging()

        self._detector = detector
        if not self._config.use_tracker:
            self._motion_tracker = None
        else:
            self._motion_tracker = motion_tracker or OpticalFlowMotionTracker(self._config.motion)
        self._visualizer: Optional[TrackingVisualizer] = None

    def _setup_logging(self) -> None:
        """Configure logging based on config."""
        logging.basicConfig(
            level=getattr(logging, self._config.log_level.upper()),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.StreamHandler(),
                *(
                    [logging.FileHandler(self._config.log_file)]
                    if self._config.log_file else []
                )
            ]
        )

    @property
    def detector(self) -> BaseDetector:
        """Get or create the detector (lazy initialization)."""
        if self._detector is None:
            from .detection.mask_rcnn import MaskRCNNDetector

            logger.info("Initializing detector...")
            self._detector = MaskRCNNDetector(self._config.detector)
        return self._detector

    @property
    def visualizer(self) -> TrackingVisualizer:
        """Get or create the visualizer."""
        if self._visualizer is None:
            self._visualizer = TrackingVisualizer(self._config.output)
        return self._visualizer

    def _detect(
        self,
        tracker: MultiBoxTracker,
        frame: np.ndarray,
        luminance: np.ndarray,
        frame_idx: int
    ) -> None:
        """Run the detector on a frame and hand the results to the tracker."""
        result = self.detector.detect(frame).filter_by_size(self._config.min_object_size)
        association = tracker.submit_detections(result.detections, luminance, frame_idx)

        logger.debug(
            f"Frame {frame_idx}: {len(result)} detections, "
            f"{len(association.accepted)} accepted, {len(association.evicted)} evicted"
        )

    def process_frames(
        self,
        frames: Iterable[Tuple[int, np.ndarray]],
        tracked_dir: Optional[Path] = None
    ) -> List[FrameTracks]:
        """
        Track objects through a sequence of frames.

        Args:
            frames: Iterable of (frame_index, rgb_frame), in order
            tracked_dir: If given, visualizations are written here

        Returns:
            FrameTracks for every frame
        """
        interval = max(1, self._config.detection_interval)
        tracker = MultiBoxTracker(self._motion_tracker, self._config.tracker)
        executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="detector")
            if self._config.async_detection else None
        )
        pending: Optional[Future] = None
        results = []

        try:
            for position, (frame_idx, frame) in enumerate(frames):
                luminance = to_luminance(frame)
                height, width = luminance.shape
                tracker.submit_frame(width, height, width, luminance, frame_idx)

                if executor is not None:
                    # Skip detection while the detector is still busy
                    if pending is None or pending.done():
                        if pending is not None:
                            pending.result()
                        pending = executor.submit(
                            self._detect, tracker, frame, luminance, frame_idx)
                elif position % interval == 0:
                    self._detect(tracker, frame, luminance, frame_idx)

                frame_tracks = FrameTracks(
                    frame_idx=frame_idx,
                    tracks=tracker.current_tracks(),
                    screen_rects=tracker.screen_rects,
                )
                results.append(frame_tracks)

                if tracked_dir is not None:
                    vis_frame = self.visualizer.draw_tracks(frame, frame_tracks)
                    self.visualizer.save_frame(
                        vis_frame,
                        tracked_dir / f"tracked_{frame_idx:04d}.jpg",
                        is_rgb=True
                    )

            if pending is not None:
                pending.result()

        finally:
            if executor is not None:
                executor.shutdown(wait=True)
            tracker.close()

        logger.info(f"Tracked {len(results)} frames")
        return results

    def _save_json(
        self,
        results: List[FrameTracks],
        frame_size: Tuple[int, int],
        output_dir: Path,
        video_name: str
    ) -> Path:
        """Write the COCO JSON for a video."""
        exporter = COCOExporter()
        width, height = frame_size
        for frame_tracks in results:
            exporter.add_frame_tracks(
                frame_tracks,
                file_name=f"tracked_{frame_tracks.frame_idx:04d}.jpg",
                height=height,
                width=width
            )

        json_path = output_dir / f"{video_name}_annotations.json"
        exporter.save(json_path)
        return json_path

    def process_video(
        self,
        video_path: Union[str, Path],
        output_dir: Optional[Union[str, Path]] = None,
        n_frames: Optional[int] = None,
        show_progress: bool = True
    ) -> List[FrameTracks]:
        """
        Process a single video through the complete pipeline.

        Args:
            video_path: Path to input video
            output_dir: Directory for outputs. Uses config default if None.
            n_frames: Number of consecutive frames to process. Uses config
                      default if None.
            show_progress: Whether to show progress bars

        Returns:
            List of FrameTracks for each processed frame
        """
        video_path = Path(video_path)
        output_dir = Path(output_dir or self._config.output.output_dir)
        n_frames = n_frames or self._config.video.max_frames
        video_name = video_path.stem

        logger.info(f"Processing video: {video_path}")

        tracked_dir = None
        if self._config.output.save_tracked_frames:
            tracked_dir = output_dir / video_name / "tracked"
            tracked_dir.mkdir(parents=True, exist_ok=True)

        with VideoReader(video_path, self._config.video) as reader:
            logger.info(f"Video info: {reader.metadata}")
            end = min(n_frames, reader.metadata.frame_count)
            frames = reader.iterate_frames(end=end)
            if show_progress:
                frames = tqdm(frames, total=end, desc="Tracking")

            results = self.process_frames(frames, tracked_dir=tracked_dir)
            frame_size = reader.frame_size

        if self._config.output.save_coco_json:
            self._save_json(results, frame_size, output_dir, video_name)

        logger.info(f"Results saved to {output_dir}")
        return results

    def process_directory(
        self,
        input_dir: Union[str, Path],
        output_dir: Optional[Union[str, Path]] = None,
        exclude_patterns: Optional[List[str]] = None,
        show_progress: bool = True
    ) -> dict:
        """
        Process all videos in a directory.

        Args:
            input_dir: Directory containing videos
            output_dir: Directory for outputs
            exclude_patterns: Filename patterns to exclude
            show_progress: Whether to show progress bars

        Returns:
            Dictionary mapping video names to their FrameTracks
        """
        input_dir = Path(input_dir)
        output_dir = Path(output_dir or self._config.output.output_dir)

        videos = find_videos(
            input_dir,
            self._config.video,
            exclude_patterns=exclude_patterns
        )

        if not videos:
            logger.warning(f"No videos found in {input_dir}")
            return {}

        results = {}
        for i, video_path in enumerate(videos, 1):
            logger.info(f"Processing video {i}/{len(videos)}: {video_path.name}")

            try:
                results[video_path.stem] = self.process_video(
                    video_path,
                    output_dir=output_dir,
                    show_progress=show_progress
                )

            except Exception as e:
                logger.error(f"Failed to process {video_path}: {e}")
                continue

        logger.info(f"Completed processing {len(results)}/{len(videos)} videos")
        return results


def run_pipeline(
    input_path: Union[str, Path],
    output_dir: Optional[Union[str, Path]] = None,
    config: Optional[PipelineConfig] = None,
    exclude_patterns: Optional[List[str]] = None,
    **kwargs
) -> dict:
    """
    Convenience function to run the pipeline.

    Args:
        input_path: Video file or directory of videos
        output_dir: Output directory
        config: Pipeline configuration
        exclude_patterns: Filename patterns to exclude in directories
        **kwargs: Additional arguments passed to process methods

    Returns:
        Dictionary of results
    """
    pipeline = DetectionTrackingPipeline(config)
    input_path = Path(input_path)

    if input_path.is_file():
        results = pipeline.process_video(input_path, output_dir, **kwargs)
        return {input_path.stem: results}
    else:
        return pipeline.process_directory(
            input_path, output_dir, exclude_patterns=exclude_patterns, **kwargs)
