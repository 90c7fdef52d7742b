from __future__ import annotations

from typing import Iterable, Mapping

from kitchenscore.categories import DEFAULT_CATEGORY_CONFIG, Category, CategoryConfig
from kitchenscore.models import CategoryScore, Finding

__all__ = ["SuggestionGenerator"]


class SuggestionGenerator:
    """Derives remediation suggestions, at most one per category."""

    def __init__(self, config: CategoryConfig | None = None):
        self.config = config or DEFAULT_CATEGORY_CONFIG

    def suggest(self, findings: Iterable[Finding], category_scores: Mapping[Category, CategoryScore]) -> list[str]:
        """Suggestions for the categories with findings, then for other low-scoring categories.

        Returns a single positive message when nothing needs improvement.
        """
        suggestions: list[str] = []
        covered: set[Category] = set()

        for finding in findings:
            if finding.category not in covered:
                covered.add(finding.category)
                suggestions.append(self.config[finding.category].suggestion)

        for category in self.config:
            score = category_scores.get(category)
            if score is None or category in covered:
                continue
            if score.score < self.config.suggestion_threshold:
                covered.add(category)
                suggestions.append(self.config[category].suggestion)

        if not suggestions:
            suggestions.append(self.config.positive_message)
        return suggestions
