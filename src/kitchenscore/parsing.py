"""Turning raw detector responses into normalized `FrameDetections`."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from kitchenscore.categories import Category, CategoryConfig
from kitchenscore.models import Frame, FrameDetection, FrameDetections

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

_TRUE_STRINGS = {"true", "yes", "y", "1", "detected", "present"}
_FALSE_STRINGS = {"false", "no", "n", "0", "not detected", "absent", "none", ""}


@dataclass(frozen=True)
class Label:
    """One entry of a label-list detector response."""

    description: str
    score: float


def _names_category(data: Any) -> bool:
    return isinstance(data, dict) and any(Category.from_key(str(key)) is not None for key in data)


def _direct(text: str) -> str | None:
    return text.strip()


def _fenced(text: str) -> str | None:
    match = _FENCED_BLOCK.search(text)
    return match.group(1).strip() if match else None


# Tried in order before scanning the prose for an embedded object.
_EXTRACTORS: tuple[Callable[[str], str | None], ...] = (_direct, _fenced)

_DECODER = json.JSONDecoder()


def _embedded(text: str) -> dict[str, Any] | None:
    """First JSON object in ``text`` that names a category, skipping stray braces in the prose."""
    start = text.find("{")
    while start != -1:
        try:
            data, _ = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            data = None
        if _names_category(data):
            return data
        start = text.find("{", start + 1)
    return None


def extract_category_object(text: str) -> dict[str, Any] | None:
    """Find the category object in a vision-language model response.

    Accepts plain JSON, JSON inside a fenced code block, or a JSON object surrounded by prose.

    Returns:
        The decoded object, or None when no attempt yields an object naming a known category.
    """
    if not text:
        return None
    for extract in _EXTRACTORS:
        candidate = extract(text)
        if not candidate:
            continue
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if _names_category(data):
            return data
    return _embedded(text)


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _coerce_confidence(value: Any) -> float | None:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return None
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    if confidence != confidence:  # NaN
        return None
    return min(1.0, max(0.0, confidence))


def parse_category_entry(entry: Any) -> FrameDetection | None:
    """Validate one ``{"detected", "confidence", "details"}`` entry, None when malformed."""
    if not isinstance(entry, dict):
        return None
    detected = _coerce_bool(entry.get("detected"))
    confidence = _coerce_confidence(entry.get("confidence"))
    if detected is None or confidence is None:
        return None
    details = entry.get("details")
    return FrameDetection(detected=detected, confidence=confidence, details="" if details is None else str(details))


def parse_structured_response(text: str, frame: Frame) -> FrameDetections:
    """Parse a structured vision-language model response for one frame.

    Unparseable responses degrade to an all-"not detected" record instead of failing.
    """
    data = extract_category_object(text)
    if data is None:
        logger.warning("Failed to parse detector response for frame %d, using fallback", frame.index)
        return FrameDetections.empty(frame)

    categories: dict[Category, FrameDetection] = {}
    for key, entry in data.items():
        category = Category.from_key(str(key))
        if category is None:
            continue
        detection = parse_category_entry(entry)
        if detection is None:
            logger.debug("Dropping malformed '%s' entry for frame %d", key, frame.index)
            continue
        categories[category] = detection

    return FrameDetections(frame_index=frame.index, timestamp_seconds=frame.timestamp_seconds, categories=categories)


def parse_label_annotations(data: dict[str, Any]) -> list[Label]:
    """Read ``labelAnnotations`` from a Cloud Vision ``images:annotate`` response."""
    responses = data.get("responses") or [{}]
    annotations = responses[0].get("labelAnnotations") or []
    labels = []
    for annotation in annotations:
        description = annotation.get("description")
        score = _coerce_confidence(annotation.get("score"))
        if not description or score is None:
            continue
        labels.append(Label(description=str(description), score=score))
    return labels


def map_labels(
    labels: Iterable[Label],
    frame: Frame,
    config: CategoryConfig,
    *,
    min_confidence: float = 0.5,
) -> FrameDetections:
    """Map free-text labels to categories by case-insensitive keyword containment.

    A category is detected when at least one label containing one of its keywords scores
    ``min_confidence`` or more. Its confidence is the mean score of those labels.
    """
    labels = list(labels)
    categories: dict[Category, FrameDetection] = {}
    for category, rule in config.items():
        keywords = [k.lower() for k in rule.keywords]
        matching = [
            label
            for label in labels
            if label.score >= min_confidence and any(k in label.description.lower() for k in keywords)
        ]
        if matching:
            categories[category] = FrameDetection(
                detected=True,
                confidence=sum(label.score for label in matching) / len(matching),
                details="Matched labels: " + ", ".join(f"{label.description} ({label.score:.2f})" for label in matching),
            )
        else:
            categories[category] = FrameDetection(detected=False, confidence=0.0, details="No matching labels")

    return FrameDetections(frame_index=frame.index, timestamp_seconds=frame.timestamp_seconds, categories=categories)
