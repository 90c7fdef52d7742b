"""End-to-end hygiene analysis: sampling, detection, aggregation and scoring."""

from __future__ import annotations

import logging
from pathlib import Path

from kitchenscore.aggregation import CategoryAggregator
from kitchenscore.categories import CategoryConfig
from kitchenscore.config import get_section
from kitchenscore.detection import FrameDetector, create_detector
from kitchenscore.exceptions import VideoDecodeError
from kitchenscore.models import AnalysisResult
from kitchenscore.progress import ProgressCallback, ProgressReporter
from kitchenscore.sampling import FrameSampler, SamplingConfig, VideoSource, probe_duration
from kitchenscore.scoring import ScoringEngine
from kitchenscore.suggestions import SuggestionGenerator

__all__ = ["HygieneAnalyzer"]

logger = logging.getLogger(__name__)


class HygieneAnalyzer:
    """Scores a kitchen video for hygiene compliance.

    Example:
        >>> analyzer = HygieneAnalyzer()
        >>> result = analyzer.analyze_path("prep.mp4")
        >>> result.overall_score
        82
    """

    def __init__(
        self,
        detector: FrameDetector | None = None,
        *,
        category_config: CategoryConfig | None = None,
        sampling_config: SamplingConfig | None = None,
    ):
        """Initialize the analyzer.

        Args:
            detector: Frame detector, created from the config file's default backend when omitted.
            category_config: Category policy table, read from the config file when omitted.
            sampling_config: Frame sampling settings, read from the config file when omitted.
        """
        self.category_config = category_config or CategoryConfig.from_project_config()
        self.sampling_config = sampling_config or SamplingConfig.from_dict(get_section("sampling"))
        self.detector = detector or create_detector(config=self.category_config)
        self.sampler = FrameSampler(self.sampling_config)
        self.aggregator = CategoryAggregator(self.category_config)
        self.scoring_engine = ScoringEngine(self.category_config, SuggestionGenerator(self.category_config))

    def analyze(
        self,
        video: VideoSource,
        estimated_duration_seconds: float,
        on_progress: ProgressCallback | None = None,
        *,
        suffix: str = ".mp4",
    ) -> AnalysisResult:
        """Run the full pipeline on one video.

        Args:
            video: Encoded video bytes or a path to a video file.
            estimated_duration_seconds: Duration measured by the caller, e.g. the recording timer.
            on_progress: Called with `ProgressUpdate`s whose percentage never decreases.
            suffix: File extension hint used when ``video`` is raw bytes.

        Returns:
            The scored AnalysisResult.

        Raises:
            InvalidDurationError, VideoDecodeError, InsufficientLightingError: Before any detection call.
            DetectionUnavailableError: When detection failed for every frame.
        """
        progress = ProgressReporter(on_progress)

        sampled = self.sampler.sample(video, estimated_duration_seconds, suffix=suffix, progress=progress)
        frames = sampled.frames

        progress.stage("detecting", 0.0, "Analyzing frames with vision model...")
        batch = self.detector.detect_batch(
            frames,
            on_frame_done=lambda done, total: progress.stage(
                "detecting", done / total, f"Analyzed frame {done} of {total}..."
            ),
        )
        if batch.failures:
            logger.warning("%d of %d frames failed detection and were excluded", len(batch.failures), len(frames))

        progress.stage("scoring", 0.0, "Calculating hygiene scores...")
        aggregates = self.aggregator.aggregate(batch.detections)
        result = self.scoring_engine.score(aggregates, len(frames), frames_analyzed=batch.succeeded)

        progress.stage("scoring", 1.0, "Analysis complete!")
        return result

    def analyze_path(self, path: str | Path, on_progress: ProgressCallback | None = None) -> AnalysisResult:
        """Analyze a video file, reading its duration from the container."""
        path = Path(path)
        duration = probe_duration(path)
        if duration is None:
            raise VideoDecodeError(f"Could not read the duration of {path}")
        return self.analyze(path, duration, on_progress, suffix=path.suffix or ".mp4")
