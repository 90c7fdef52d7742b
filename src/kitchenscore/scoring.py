"""Weighted hygiene scoring, findings and the summary paragraph."""

from __future__ import annotations

import logging
import math
from typing import Mapping

from kitchenscore.categories import DEFAULT_CATEGORY_CONFIG, Category, CategoryConfig, Severity
from kitchenscore.models import AnalysisResult, CategoryAggregate, CategoryScore, Finding
from kitchenscore.suggestions import SuggestionGenerator

__all__ = ["ScoringEngine", "round_half_up"]

logger = logging.getLogger(__name__)

_STRENGTH_SCORE = 85
_WEAKNESS_SCORE = 70


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _human_join(items: list[str]) -> str:
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return f"{', '.join(items[:-1])}, and {items[-1]}"


class ScoringEngine:
    """Converts category aggregates into an `AnalysisResult`."""

    def __init__(
        self,
        config: CategoryConfig | None = None,
        suggestion_generator: SuggestionGenerator | None = None,
    ):
        self.config = config or DEFAULT_CATEGORY_CONFIG
        self.suggestion_generator = suggestion_generator or SuggestionGenerator(self.config)

    @staticmethod
    def detection_rate(aggregate: CategoryAggregate, total_frame_count: int) -> float:
        """Percentage of sampled frames in which the category was detected."""
        if total_frame_count <= 0:
            return 0.0
        return min(100.0, aggregate.frame_count / total_frame_count * 100.0)

    def category_scores(
        self, aggregates: Mapping[Category, CategoryAggregate], total_frame_count: int
    ) -> dict[Category, CategoryScore]:
        scores: dict[Category, CategoryScore] = {}
        for category, rule in self.config.items():
            aggregate = aggregates.get(category) or CategoryAggregate(category=category)
            rate = self.detection_rate(aggregate, total_frame_count)
            scores[category] = CategoryScore(
                category=category,
                label=rule.label,
                score=rule.score(rate),
                weight=rule.weight,
                detection_rate=rate,
                confidence=aggregate.average_confidence,
            )
        return scores

    @staticmethod
    def overall_score(category_scores: Mapping[Category, CategoryScore]) -> int:
        total = math.fsum(score.contribution for score in category_scores.values())
        return min(100, max(0, round_half_up(total)))

    def findings(
        self,
        aggregates: Mapping[Category, CategoryAggregate],
        category_scores: Mapping[Category, CategoryScore],
    ) -> list[Finding]:
        """Findings for every category whose detection rate crosses its trigger, most severe first."""
        findings: list[Finding] = []
        for category, rule in self.config.items():
            score = category_scores[category]
            if not rule.is_triggered(score.detection_rate):
                continue
            aggregate = aggregates.get(category) or CategoryAggregate(category=category)
            findings.append(
                Finding(
                    category=category,
                    severity=rule.severity,
                    description=rule.finding_description,
                    timestamp_seconds=aggregate.first_timestamp,
                    confidence=aggregate.average_confidence or rule.finding_confidence,
                )
            )
        # sorted() is stable, so ties keep the category order
        return sorted(findings, key=lambda f: f.severity.rank)

    def summarize(
        self,
        overall_score: int,
        category_scores: Mapping[Category, CategoryScore],
        findings: list[Finding],
    ) -> str:
        order = {category: i for i, category in enumerate(self.config)}
        ranked = sorted(category_scores.values(), key=lambda s: (s.score, order.get(s.category, 0)))
        if not ranked:
            return "No hygiene categories were scored."

        lowest = [s.label.lower() for s in ranked]
        highest = [s.label.lower() for s in sorted(ranked, key=lambda s: -s.score)]
        weak = [s.label.lower() for s in ranked if s.score < _WEAKNESS_SCORE]
        strong = [s.label.lower() for s in sorted(ranked, key=lambda s: -s.score) if s.score >= _STRENGTH_SCORE]
        critical: list[str] = []
        for finding in findings:
            label = self.config[finding.category].label.lower()
            if finding.severity is Severity.CRITICAL and label not in critical:
                critical.append(label)

        if overall_score >= 90:
            if strong:
                return (
                    f"Outstanding work! Your {_human_join(strong[:2])} practices are exemplary. "
                    "Keep maintaining these high standards."
                )
            return "Excellent hygiene practices observed throughout your food preparation."
        elif overall_score >= 80:
            if weak:
                return f"Good overall performance! Focus on improving your {_human_join(weak[:2])} to achieve excellence."
            return (
                f"Solid hygiene practices led by your {highest[0]}, with just a few minor areas to refine. "
                f"Keep an eye on {lowest[0]}."
            )
        elif overall_score >= 70:
            if critical:
                named = critical[:2]
                if len(named) == 1:
                    return (
                        f"Your {named[0]} needs immediate attention. "
                        "Address this critical area to meet safety standards."
                    )
                return (
                    f"Your {_human_join(named)} need immediate attention. "
                    "Address these critical areas to meet safety standards."
                )
            return (
                f"Acceptable baseline hygiene, but {_human_join(lowest[:2])} need improvement "
                "to ensure consistent food safety."
            )
        elif overall_score >= 60:
            areas = weak[:3] or lowest[:1]
            return (
                f"Your {_human_join(areas)} practices are below standard. "
                "Immediate corrective action is needed to ensure customer safety."
            )
        return (
            f"Critical hygiene violations detected, most severely in {_human_join(lowest[:2])}. "
            "A comprehensive review of your food safety protocols and immediate staff training is required."
        )

    def score(
        self,
        aggregates: Mapping[Category, CategoryAggregate],
        total_frame_count: int,
        *,
        frames_analyzed: int | None = None,
    ) -> AnalysisResult:
        """Score a run.

        Args:
            aggregates: Output of `CategoryAggregator.aggregate`. Missing categories count as never detected.
            total_frame_count: Number of sampled frames, including frames whose detection failed.
            frames_analyzed: Number of frames with a detector answer, defaults to ``total_frame_count``.

        Returns:
            AnalysisResult with scores, findings, suggestions and summary.
        """
        category_scores = self.category_scores(aggregates, total_frame_count)
        overall = self.overall_score(category_scores)
        findings = self.findings(aggregates, category_scores)
        suggestions = self.suggestion_generator.suggest(findings, category_scores)
        summary = self.summarize(overall, category_scores, findings)

        logger.debug("Scoring breakdown:")
        for score in category_scores.values():
            logger.debug(
                "  %s: %.1f%% (weight: %.0f%%) -> +%.1f points",
                score.label,
                score.score,
                score.weight * 100,
                score.contribution,
            )
        logger.info("Overall score: %d%% (%d findings)", overall, len(findings))

        return AnalysisResult(
            overall_score=overall,
            category_scores=category_scores,
            findings=findings,
            suggestions=suggestions,
            summary=summary,
            frames_sampled=max(0, total_frame_count),
            frames_analyzed=total_frame_count if frames_analyzed is None else frames_analyzed,
        )
