"""Folding per-frame detections into per-category aggregates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from kitchenscore.categories import DEFAULT_CATEGORY_CONFIG, Category, CategoryConfig
from kitchenscore.models import CategoryAggregate, FrameDetections

__all__ = ["CategoryAggregator"]

logger = logging.getLogger(__name__)


@dataclass
class _Accumulator:
    timestamps: set[int] = field(default_factory=set)
    total: int = 0
    mean_confidence: float = 0.0

    def add(self, timestamp: int, confidence: float) -> None:
        self.timestamps.add(timestamp)
        self.total += 1
        self.mean_confidence += (confidence - self.mean_confidence) / self.total


class CategoryAggregator:
    """Builds one `CategoryAggregate` per category from a run's frame detections.

    A frame contributes to a category when the category is detected in it. After all
    frames are folded in, the configured exclusions remove every timestamp of the positive
    category (gloves) from the violation category (bare hands).
    """

    def __init__(self, config: CategoryConfig | None = None):
        self.config = config or DEFAULT_CATEGORY_CONFIG

    def aggregate(self, frame_detections: Iterable[FrameDetections]) -> dict[Category, CategoryAggregate]:
        accumulators = {category: _Accumulator() for category in self.config}

        for detections in frame_detections:
            for category, accumulator in accumulators.items():
                detection = detections.get(category)
                if detection.detected:
                    accumulator.add(detections.timestamp_seconds, detection.confidence)

        for positive, violation in self.config.exclusions:
            excluded = accumulators[violation].timestamps & accumulators[positive].timestamps
            if excluded:
                logger.debug(
                    "Excluding %d %s timestamps already covered by %s",
                    len(excluded),
                    violation.value,
                    positive.value,
                )
            accumulators[violation].timestamps -= accumulators[positive].timestamps

        aggregates = {
            category: CategoryAggregate(
                category=category,
                detected_timestamps=tuple(sorted(accumulator.timestamps)),
                total_detections=accumulator.total,
                average_confidence=accumulator.mean_confidence,
            )
            for category, accumulator in accumulators.items()
        }

        for category, aggregate in aggregates.items():
            if aggregate.detected_timestamps:
                logger.info(
                    "%s: %d frames (%.1f%% confidence)",
                    self.config[category].label,
                    aggregate.frame_count,
                    aggregate.average_confidence * 100,
                )
        return aggregates
