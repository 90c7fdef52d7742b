"""Value objects passed between the pipeline stages."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from kitchenscore.categories import Category, Severity


@dataclass(frozen=True)
class Frame:
    """A still image sampled from the video.

    Attributes:
        index: 1-based position of the frame on the 1-second grid
        timestamp_seconds: Second of the video the frame was taken from
        image_bytes: Encoded image
        width: Image width in pixels
        height: Image height in pixels
        mime_type: Encoding of ``image_bytes``
    """

    index: int
    timestamp_seconds: int
    image_bytes: bytes = field(repr=False)
    width: int = 0
    height: int = 0
    mime_type: str = "image/jpeg"

    def __post_init__(self) -> None:
        if self.index < 1:
            raise ValueError("Frame index must be >= 1")
        if self.timestamp_seconds < 0:
            raise ValueError("Frame timestamp must be >= 0")

    def to_base64(self) -> str:
        return base64.b64encode(self.image_bytes).decode()

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


@dataclass(frozen=True)
class FrameDetection:
    """Detector verdict for one category in one frame."""

    detected: bool
    confidence: float = 0.0
    details: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))


NOT_DETECTED = FrameDetection(detected=False, confidence=0.0, details="Not detected")


@dataclass(frozen=True)
class FrameDetections:
    """Normalized detector output for one frame.

    Categories the backend did not report (or reported in a malformed way) are absent
    from ``categories`` and read as not detected.
    """

    frame_index: int
    timestamp_seconds: int
    categories: dict[Category, FrameDetection] = field(default_factory=dict)
    fallback: bool = False

    def get(self, category: Category) -> FrameDetection:
        return self.categories.get(category, NOT_DETECTED)

    def is_detected(self, category: Category) -> bool:
        return self.get(category).detected

    @classmethod
    def empty(cls, frame: Frame, *, fallback: bool = True) -> FrameDetections:
        """All-"not detected" record, used when a response cannot be interpreted."""
        return cls(frame_index=frame.index, timestamp_seconds=frame.timestamp_seconds, fallback=fallback)


@dataclass(frozen=True)
class CategoryAggregate:
    """Per-category detections accumulated over all frames of one video."""

    category: Category
    detected_timestamps: tuple[int, ...] = ()
    total_detections: int = 0
    average_confidence: float = 0.0

    @property
    def first_timestamp(self) -> int:
        """Earliest contributing timestamp, or 0 when the category was never detected."""
        return min(self.detected_timestamps) if self.detected_timestamps else 0

    @property
    def frame_count(self) -> int:
        return len(self.detected_timestamps)


@dataclass
class CategoryScore:
    category: Category
    label: str
    score: float
    weight: float
    detection_rate: float
    confidence: float

    @property
    def contribution(self) -> float:
        return self.score * self.weight

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "label": self.label,
            "score": self.score,
            "weight": self.weight,
            "detection_rate": self.detection_rate,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CategoryScore:
        return cls(
            category=Category(data["category"]),
            label=data["label"],
            score=float(data["score"]),
            weight=float(data["weight"]),
            detection_rate=float(data["detection_rate"]),
            confidence=float(data["confidence"]),
        )


@dataclass
class Finding:
    """A compliance problem observed in the video.

    Attributes:
        category: Category the finding belongs to
        severity: How urgent the problem is
        description: Human readable description
        timestamp_seconds: First moment the problem was seen, 0 when it holds throughout
        confidence: Detector confidence backing the finding
    """

    category: Category
    severity: Severity
    description: str
    timestamp_seconds: int = 0
    confidence: float = 0.0

    @property
    def display_timestamp(self) -> str:
        if self.timestamp_seconds <= 0:
            return "Throughout"
        mins, sec = divmod(int(self.timestamp_seconds), 60)
        return f"{mins}:{sec:02d}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "description": self.description,
            "timestamp_seconds": self.timestamp_seconds,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Finding:
        return cls(
            category=Category(data["category"]),
            severity=Severity(data["severity"]),
            description=data["description"],
            timestamp_seconds=int(data.get("timestamp_seconds", 0)),
            confidence=float(data.get("confidence", 0.0)),
        )


@dataclass
class AnalysisResult:
    """Complete outcome of one analysis run."""

    overall_score: int
    category_scores: dict[Category, CategoryScore]
    findings: list[Finding]
    suggestions: list[str]
    summary: str = ""
    frames_sampled: int = 0
    frames_analyzed: int = 0
    analyzed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def bacterial_risk(self) -> int:
        return 100 - self.overall_score

    @property
    def detected_categories(self) -> dict[Category, bool]:
        """Whether each category was seen at least once, to tell a 0% score from "never seen"."""
        return {category: score.detection_rate > 0 for category, score in self.category_scores.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "bacterial_risk": self.bacterial_risk,
            "category_scores": {c.value: s.to_dict() for c, s in self.category_scores.items()},
            "findings": [f.to_dict() for f in self.findings],
            "suggestions": list(self.suggestions),
            "summary": self.summary,
            "frames_sampled": self.frames_sampled,
            "frames_analyzed": self.frames_analyzed,
            "analyzed_at": self.analyzed_at,
            "detected_categories": {c.value: seen for c, seen in self.detected_categories.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisResult:
        return cls(
            overall_score=int(data["overall_score"]),
            category_scores={
                Category(key): CategoryScore.from_dict(value) for key, value in data["category_scores"].items()
            },
            findings=[Finding.from_dict(f) for f in data.get("findings", [])],
            suggestions=list(data.get("suggestions", [])),
            summary=data.get("summary", ""),
            frames_sampled=int(data.get("frames_sampled", 0)),
            frames_analyzed=int(data.get("frames_analyzed", 0)),
            analyzed_at=data.get("analyzed_at", ""),
        )

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> AnalysisResult:
        return cls.from_dict(json.loads(text))

    def save(self, path: str | Path, *, indent: int | None = 2) -> None:
        Path(path).write_text(self.to_json(indent=indent), encoding="utf-8")


ProgressStage = Literal["sampling", "detecting", "scoring"]


@dataclass(frozen=True)
class ProgressUpdate:
    stage: ProgressStage
    percent: float
    message: str
