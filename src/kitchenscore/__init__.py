from .aggregation import CategoryAggregator
from .categories import (
    DEFAULT_CATEGORY_CONFIG,
    Category,
    CategoryConfig,
    CategoryRule,
    Polarity,
    Severity,
)
from .detection import (
    BatchDetectionResult,
    FrameDetector,
    LabelDetector,
    VisionLanguageDetector,
    create_detector,
)
from .exceptions import (
    AnalysisError,
    BackendError,
    ConfigError,
    DetectionErrorKind,
    DetectionRequestError,
    DetectionUnavailableError,
    InsufficientLightingError,
    InvalidDurationError,
    KitchenScoreError,
    MissingAPIKeyError,
    UnsupportedBackendError,
    VideoDecodeError,
)
from .models import (
    AnalysisResult,
    CategoryAggregate,
    CategoryScore,
    Finding,
    Frame,
    FrameDetection,
    FrameDetections,
    ProgressUpdate,
)
from .pipeline import HygieneAnalyzer
from .sampling import FrameSampler, SamplingConfig
from .scoring import ScoringEngine
from .suggestions import SuggestionGenerator

__all__ = [
    # Pipeline
    "HygieneAnalyzer",
    "FrameSampler",
    "SamplingConfig",
    "FrameDetector",
    "LabelDetector",
    "VisionLanguageDetector",
    "BatchDetectionResult",
    "create_detector",
    "CategoryAggregator",
    "ScoringEngine",
    "SuggestionGenerator",
    # Categories
    "Category",
    "CategoryConfig",
    "CategoryRule",
    "Polarity",
    "Severity",
    "DEFAULT_CATEGORY_CONFIG",
    # Models
    "Frame",
    "FrameDetection",
    "FrameDetections",
    "CategoryAggregate",
    "CategoryScore",
    "Finding",
    "AnalysisResult",
    "ProgressUpdate",
    # Exceptions
    "KitchenScoreError",
    "AnalysisError",
    "InvalidDurationError",
    "VideoDecodeError",
    "InsufficientLightingError",
    "DetectionUnavailableError",
    "DetectionErrorKind",
    "BackendError",
    "MissingAPIKeyError",
    "UnsupportedBackendError",
    "DetectionRequestError",
    "ConfigError",
]
