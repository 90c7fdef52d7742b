import random

import pytest

from kitchenscore.aggregation import CategoryAggregator
from kitchenscore.categories import Category
from kitchenscore.models import FrameDetection, FrameDetections

from .fakes import make_detections

GLOVES = Category.PROTECTIVE_GLOVES
BARE_HANDS = Category.BARE_HANDS


@pytest.fixture
def aggregator():
    return CategoryAggregator()


def test_returns_aggregate_for_every_category(aggregator) -> None:
    aggregates = aggregator.aggregate([])
    assert set(aggregates) == set(Category)
    for aggregate in aggregates.values():
        assert aggregate.detected_timestamps == ()
        assert aggregate.total_detections == 0
        assert aggregate.average_confidence == 0
        assert aggregate.first_timestamp == 0


def test_collects_sorted_unique_timestamps(aggregator) -> None:
    frames = [
        make_detections(6, Category.HAIR_COVERING),
        make_detections(0, Category.HAIR_COVERING),
        make_detections(3, Category.HAIR_COVERING, Category.PEST_SIGNS),
    ]
    aggregates = aggregator.aggregate(frames)

    assert aggregates[Category.HAIR_COVERING].detected_timestamps == (0, 3, 6)
    assert aggregates[Category.HAIR_COVERING].total_detections == 3
    assert aggregates[Category.PEST_SIGNS].detected_timestamps == (3,)
    assert aggregates[Category.PEST_SIGNS].first_timestamp == 3


def test_average_confidence_is_mean_of_detections(aggregator) -> None:
    frames = [
        make_detections(0, Category.CLEAN_SURFACE, confidence=0.6),
        make_detections(1, Category.CLEAN_SURFACE, confidence=0.9),
        make_detections(2, Category.CLEAN_SURFACE, confidence=0.75),
    ]
    aggregate = aggregator.aggregate(frames)[Category.CLEAN_SURFACE]
    assert aggregate.average_confidence == pytest.approx(0.75)


def test_aggregation_is_idempotent_and_order_independent(aggregator) -> None:
    rng = random.Random(7)
    frames = [
        make_detections(t, *[c for c in Category if rng.random() < 0.4], confidence=rng.random()) for t in range(20)
    ]
    shuffled = frames[:]
    rng.shuffle(shuffled)

    first = aggregator.aggregate(frames)
    second = aggregator.aggregate(frames)
    third = aggregator.aggregate(shuffled)

    assert first == second
    for category in Category:
        assert first[category].detected_timestamps == third[category].detected_timestamps
        assert first[category].total_detections == third[category].total_detections
        assert first[category].average_confidence == pytest.approx(third[category].average_confidence)


def test_gloves_suppress_bare_hands(aggregator) -> None:
    """Ten frames: gloves in 9, bare hands in 3 of which 2 overlap the gloves."""
    frames = [make_detections(t, GLOVES) for t in range(7)]
    frames += [make_detections(7, GLOVES, BARE_HANDS), make_detections(8, GLOVES, BARE_HANDS)]
    frames += [make_detections(9, BARE_HANDS)]

    aggregates = aggregator.aggregate(frames)

    assert aggregates[GLOVES].frame_count == 9
    assert aggregates[BARE_HANDS].detected_timestamps == (9,)


def test_exclusion_law_holds_for_random_frames(aggregator) -> None:
    rng = random.Random(11)
    for _ in range(50):
        frames = []
        for t in range(rng.randint(1, 30)):
            detected = [c for c in (GLOVES, BARE_HANDS) if rng.random() < 0.5]
            frames.append(make_detections(t, *detected))
        aggregates = aggregator.aggregate(frames)

        gloved = {d.timestamp_seconds for d in frames if d.is_detected(GLOVES)}
        assert not gloved & set(aggregates[BARE_HANDS].detected_timestamps)


def test_undetected_entries_do_not_count(aggregator) -> None:
    frames = [
        FrameDetections(
            frame_index=1,
            timestamp_seconds=0,
            categories={Category.PROPER_APRON: FrameDetection(detected=False, confidence=0.95)},
        )
    ]
    aggregate = aggregator.aggregate(frames)[Category.PROPER_APRON]
    assert aggregate.total_detections == 0
    assert aggregate.average_confidence == 0
