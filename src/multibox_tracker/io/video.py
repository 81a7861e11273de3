"""
Video input utilities.

This module provides video reading and sequential frame iteration for
feeding the tracker.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, List, Optional, Tuple, Union

import cv2
import numpy as np

from ..config import VideoConfig

logger = logging.getLogger(__name__)


@dataclass
class VideoMetadata:
    """Metadata about a video file."""
    path: Path
    width: int
    height: int
    fps: float
    frame_count: int
    duration_seconds: float

    def __str__(self) -> str:
        return (
            f"Video({self.path.name}: {self.width}x{self.height}, "
            f"{self.fps:.2f}fps, {self.frame_count} frames, "
            f"{self.duration_seconds:.2f}s)"
        )


def to_luminance(frame: np.ndarray) -> np.ndarray:
    """Convert an RGB frame to a single-channel luminance image."""
    return cv2.cvtColor(frame, cv2.COLOR_RGB2GRAY)


class VideoReader:
    """
    Video file reader producing consecutive RGB frames.

    Args:
        path: Path to video file
        config: Video configuration for target resolution

    Example:
        >>> with VideoReader("video.mp4") as reader:
        ...     for idx, frame in reader.iterate_frames(end=300):
        ...         ...
    """

    def __init__(
        self,
        path: Union[str, Path],
        config: Optional[VideoConfig] = None
    ):
        self._path = Path(path)
        self._config = config or VideoConfig()
        self._cap: Optional[cv2.VideoCapture] = None
        self._metadata: Optional[VideoMetadata] = None

        self._validate_path()
        self._load_metadata()

    def _validate_path(self) -> None:
        """Validate video file exists and has supported format."""
        if not self._path.exists():
            raise FileNotFoundError(f"Video file not found: {self._path}")

        suffix = self._path.suffix.lower()
        if suffix not in self._config.supported_formats:
            raise ValueError(
                f"Unsupported video format: {suffix}. "
                f"Supported: {self._config.supported_formats}"
            )

    def _load_metadata(self) -> None:
        """Load video metadata."""
        cap = cv2.VideoCapture(str(self._path))

        if not cap.isOpened():
            raise RuntimeError(f"Failed to open video: {self._path}")

        try:
            width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            fps = cap.get(cv2.CAP_PROP_FPS)
            frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))

            self._metadata = VideoMetadata(
                path=self._path,
                width=width,
                height=height,
                fps=fps if fps > 0 else 30.0,
                frame_count=frame_count,
                duration_seconds=frame_count / max(fps, 1.0)
            )

            logger.info(f"Loaded video: {self._metadata}")

        finally:
            cap.release()

    @property
    def metadata(self) -> VideoMetadata:
        """Get video metadata."""
        if self._metadata is None:
            raise RuntimeError("Video metadata not loaded")
        return self._metadata

    @property
    def frame_size(self) -> Tuple[int, int]:
        """(width, height) of the frames produced by this reader."""
        return self._config.target_width, self._config.target_height

    def _open(self) -> cv2.VideoCapture:
        """Open video capture if not already open."""
        if self._cap is None or not self._cap.isOpened():
            self._cap = cv2.VideoCapture(str(self._path))
            if not self._cap.isOpened():
                raise RuntimeError(f"Failed to open video: {self._path}")
        return self._cap

    def _close(self) -> None:
        """Release video capture."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def _prepare(self, frame: np.ndarray) -> np.ndarray:
        """Resize a BGR frame to the target size and convert it to RGB."""
        frame = cv2.resize(frame, self.frame_size)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def iterate_frames(
        self,
        start: int = 0,
        end: Optional[int] = None
    ) -> Generator[Tuple[int, np.ndarray], None, None]:
        """
        Iterate over consecutive video frames.

        Frames are decoded sequentially; the tracker relies on small
        motion between neighbouring frames.

        Args:
            start: Starting frame index
            end: Ending frame index (exclusive). None = end of video.

        Yields:
            Tuples of (frame_index, rgb_frame)
        """
        end = end or self.metadata.frame_count
        cap = self._open()

        try:
            cap.set(cv2.CAP_PROP_POS_FRAMES, start)
            for i in range(start, end):
                ret, frame = cap.read()

                if not ret:
                    logger.warning(f"Failed to read frame {i}, stopping")
                    break

                yield i, self._prepare(frame)

        finally:
            self._close()

    def __enter__(self) -> "VideoReader":
        return self

    def __exit__(self, *args) -> None:
        self._close()

    def __del__(self) -> None:
        self._close()


def find_videos(
    directory: Union[str, Path],
    config: Optional[VideoConfig] = None,
    exclude_patterns: Optional[List[str]] = None
) -> List[Path]:
    """
    Find all supported video files in a directory.

    Args:
        directory: Directory to search
        config: Video config for supported formats
        exclude_patterns: Substrings to exclude from filenames

    Returns:
        List of video file paths
    """
    directory = Path(directory)
    config = config or VideoConfig()
    exclude_patterns = exclude_patterns or []

    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    videos = []
    for fmt in config.supported_formats:
        for path in directory.glob(f"*{fmt}"):
            if any(pattern in path.name for pattern in exclude_patterns):
                continue
            videos.append(path)

    videos.sort()
    logger.info(f"Found {len(videos)} videos in {directory}")

    return videos
