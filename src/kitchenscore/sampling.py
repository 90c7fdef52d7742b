"""Frame sampling and the lighting-quality gate."""

from __future__ import annotations

import io
import logging
import math
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

import cv2
import numpy as np
from PIL import Image

from kitchenscore.exceptions import InsufficientLightingError, InvalidDurationError, VideoDecodeError
from kitchenscore.models import Frame
from kitchenscore.progress import ProgressReporter

__all__ = ["FrameSampler", "SampledVideo", "SamplingConfig", "frame_brightness", "probe_duration"]

logger = logging.getLogger(__name__)

VideoSource = bytes | str | Path


@dataclass
class SamplingConfig:
    """How a video is turned into frames for detection.

    Attributes:
        frame_stride: Keep every Nth second of the 1-second grid.
        max_frames: Upper bound on frames sent to the detector, spread evenly over the strided grid.
        min_duration_seconds: Shortest accepted video.
        max_duration_seconds: Longest accepted video.
        brightness_threshold: Minimum mean luminance (0-255) of the midpoint frame.
        jpeg_quality: Quality of the encoded frames.
        max_width: Frames wider than this are downscaled, None keeps the source size.
        prefer_container_duration: Use the duration stored in the video over the caller's estimate.
    """

    frame_stride: int = 3
    max_frames: int | None = 5
    min_duration_seconds: float = 5
    max_duration_seconds: float = 300
    brightness_threshold: float = 30
    jpeg_quality: int = 95
    max_width: int | None = 1280
    prefer_container_duration: bool = True

    def __post_init__(self) -> None:
        if self.frame_stride < 1:
            raise ValueError("frame_stride must be >= 1")
        if self.max_frames is not None and self.max_frames < 1:
            raise ValueError("max_frames must be >= 1 or None")
        if self.min_duration_seconds > self.max_duration_seconds:
            raise ValueError("min_duration_seconds must not exceed max_duration_seconds")
        if not 0 <= self.brightness_threshold <= 255:
            raise ValueError("brightness_threshold must be between 0 and 255")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be between 1 and 100")
        if self.max_width is not None and self.max_width < 1:
            raise ValueError("max_width must be >= 1 or None")

    def to_dict(self) -> dict[str, Any]:
        return {
            "frame_stride": self.frame_stride,
            "max_frames": self.max_frames,
            "min_duration_seconds": self.min_duration_seconds,
            "max_duration_seconds": self.max_duration_seconds,
            "brightness_threshold": self.brightness_threshold,
            "jpeg_quality": self.jpeg_quality,
            "max_width": self.max_width,
            "prefer_container_duration": self.prefer_container_duration,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SamplingConfig:
        """Build a config from a ``[sampling]`` table, e.g. ``{"max_frames": 8}``.

        Raises:
            ValueError: A value has the wrong type or is out of range.
        """
        defaults = cls()
        try:
            return cls(
                frame_stride=int(data.get("frame_stride", defaults.frame_stride)),
                max_frames=_optional_int(data.get("max_frames", defaults.max_frames)),
                min_duration_seconds=float(data.get("min_duration_seconds", defaults.min_duration_seconds)),
                max_duration_seconds=float(data.get("max_duration_seconds", defaults.max_duration_seconds)),
                brightness_threshold=float(data.get("brightness_threshold", defaults.brightness_threshold)),
                jpeg_quality=int(data.get("jpeg_quality", defaults.jpeg_quality)),
                max_width=_optional_int(data.get("max_width", defaults.max_width)),
                prefer_container_duration=bool(
                    data.get("prefer_container_duration", defaults.prefer_container_duration)
                ),
            )
        except TypeError as e:
            raise ValueError(f"Invalid sampling setting: {e}") from e


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


@dataclass
class SampledVideo:
    """Frames selected for detection plus what was learned while decoding."""

    frames: list[Frame] = field(default_factory=list)
    duration_seconds: int = 0
    brightness: float = 0.0

    @property
    def grid_size(self) -> int:
        """Number of seconds on the full 1-second grid."""
        return self.duration_seconds


def frame_brightness(image: np.ndarray) -> float:
    """Mean luminance (0-255) of an RGB image, using 0.299 R + 0.587 G + 0.114 B."""
    if image.ndim == 2:
        return float(image.mean())
    rgb = image[..., :3].astype(np.float32)
    luminance = 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]
    return float(luminance.mean())


@contextmanager
def _open_capture(video: VideoSource, suffix: str) -> Iterator[cv2.VideoCapture]:
    """Open a video from bytes or a path, cleaning up any temporary file."""
    tmp_path: Path | None = None
    if isinstance(video, (bytes, bytearray, memoryview)):
        if not video:
            raise VideoDecodeError("Video data is empty.")
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as f:
            f.write(video)
            tmp_path = Path(f.name)
        path = tmp_path
    else:
        path = Path(video)
        if not path.exists():
            raise VideoDecodeError(f"Video file not found: {path}")

    capture = cv2.VideoCapture(str(path))
    try:
        if not capture.isOpened():
            raise VideoDecodeError("Failed to load video. The format may not be supported, please record again.")
        yield capture
    finally:
        capture.release()
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)


def _container_duration(capture: cv2.VideoCapture) -> float | None:
    fps = capture.get(cv2.CAP_PROP_FPS)
    frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT)
    if fps and fps > 0 and frame_count and frame_count > 0:
        return frame_count / fps
    return None


def probe_duration(video: VideoSource, *, suffix: str = ".mp4") -> float | None:
    """Return the duration stored in the video container, or None when it can't be read."""
    try:
        with _open_capture(video, suffix) as capture:
            return _container_duration(capture)
    except VideoDecodeError:
        return None


def _read_at(capture: cv2.VideoCapture, timestamp: int) -> np.ndarray | None:
    capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
    ok, frame = capture.read()
    if not ok or frame is None:
        return None
    return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)


class FrameSampler:
    """Turns a video into a bounded set of frames on a 1-second grid."""

    def __init__(self, config: SamplingConfig | None = None):
        self.config = config or SamplingConfig()

    def validate_duration(self, duration_seconds: float) -> None:
        if not self.config.min_duration_seconds <= duration_seconds <= self.config.max_duration_seconds:
            raise InvalidDurationError(
                duration_seconds, self.config.min_duration_seconds, self.config.max_duration_seconds
            )

    def plan_timestamps(self, duration_seconds: float) -> list[int]:
        """Seconds that will be decoded and sent to the detector."""
        grid = list(range(int(math.floor(duration_seconds))))
        strided = grid[:: self.config.frame_stride]
        max_frames = self.config.max_frames
        if max_frames is None or len(strided) <= max_frames:
            return strided
        picks = np.linspace(0, len(strided) - 1, max_frames, dtype=int)
        return [strided[i] for i in picks]

    def sample(
        self,
        video: VideoSource,
        duration_seconds: float,
        *,
        suffix: str = ".mp4",
        progress: ProgressReporter | None = None,
    ) -> SampledVideo:
        """Decode the planned frames and run the lighting gate.

        Args:
            video: Encoded video bytes or a path to a video file.
            duration_seconds: Caller's estimate of the video duration.
            suffix: File extension hint used when ``video`` is raw bytes.
            progress: Optional reporter for the sampling stage.

        Returns:
            SampledVideo with the encoded frames in timestamp order.

        Raises:
            InvalidDurationError: Duration outside the accepted range.
            VideoDecodeError: The video can't be opened or no frame could be decoded.
            InsufficientLightingError: The midpoint frame is too dark.
        """
        self.validate_duration(duration_seconds)
        progress = progress or ProgressReporter()
        progress.stage("sampling", 0.0, "Loading video...")

        with _open_capture(video, suffix) as capture:
            duration = float(duration_seconds)
            container_duration = _container_duration(capture)
            if self.config.prefer_container_duration and container_duration:
                duration = float(math.floor(container_duration))
                logger.info("Video duration: %ss (estimated: %ss)", duration, duration_seconds)
                self.validate_duration(duration)

            timestamps = self.plan_timestamps(duration)
            logger.info(
                "Sampling %d of %d seconds (stride=%d, max_frames=%s)",
                len(timestamps),
                int(duration),
                self.config.frame_stride,
                self.config.max_frames,
            )

            decoded: list[tuple[int, np.ndarray]] = []
            for position, timestamp in enumerate(timestamps, start=1):
                image = _read_at(capture, timestamp)
                if image is None:
                    logger.warning("Could not decode frame at %ds, skipping", timestamp)
                else:
                    decoded.append((timestamp, image))
                progress.stage(
                    "sampling",
                    position / (len(timestamps) + 1),
                    f"Extracting frame {position} of {len(timestamps)}...",
                )

            if not decoded:
                raise VideoDecodeError("Failed to extract any frames from the video. Please try recording again.")

            brightness = self._midpoint_brightness(capture, duration, decoded)

        logger.info("Video brightness: %.1f (threshold: %g)", brightness, self.config.brightness_threshold)
        if brightness < self.config.brightness_threshold:
            raise InsufficientLightingError(brightness, self.config.brightness_threshold)

        frames = [self._encode(timestamp, image) for timestamp, image in decoded]
        progress.stage("sampling", 1.0, f"Extracted {len(frames)} frames")
        return SampledVideo(frames=frames, duration_seconds=int(duration), brightness=brightness)

    def _midpoint_brightness(
        self, capture: cv2.VideoCapture, duration: float, decoded: list[tuple[int, np.ndarray]]
    ) -> float:
        midpoint = int(math.floor(duration)) // 2
        for timestamp, image in decoded:
            if timestamp == midpoint:
                return frame_brightness(image)

        image = _read_at(capture, midpoint)
        if image is None:
            logger.warning("Could not decode midpoint frame at %ds, using the middle sampled frame", midpoint)
            image = decoded[len(decoded) // 2][1]
        return frame_brightness(image)

    def _encode(self, timestamp: int, image: np.ndarray) -> Frame:
        pil_image = Image.fromarray(image)
        max_width = self.config.max_width
        if max_width and pil_image.width > max_width:
            new_height = int(pil_image.height * (max_width / pil_image.width))
            pil_image = pil_image.resize((max_width, new_height), Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        pil_image.save(buffer, format="JPEG", quality=self.config.jpeg_quality)
        return Frame(
            index=timestamp + 1,
            timestamp_seconds=timestamp,
            image_bytes=buffer.getvalue(),
            width=pil_image.width,
            height=pil_image.height,
        )
