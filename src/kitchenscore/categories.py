"""Hygiene categories and the scoring policy attached to each of them."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from kitchenscore.exceptions import ConfigError

WEIGHT_TOLERANCE = 1e-6


class Category(str, Enum):
    PROTECTIVE_GLOVES = "protective_gloves"
    BARE_HANDS = "bare_hands"
    HAIR_COVERING = "hair_covering"
    CLEAN_SURFACE = "clean_surface"
    PROPER_APRON = "proper_apron"
    HANDWASH_STATION = "handwash_station"
    PEST_SIGNS = "pest_signs"
    CROSS_CONTAMINATION = "cross_contamination"

    @classmethod
    def from_key(cls, key: str) -> Category | None:
        """Resolve a snake_case or camelCase key (``bareHands``) to a category."""
        normalized = key.replace("_", "").replace("-", "").replace(" ", "").lower()
        return _NORMALIZED_KEYS.get(normalized)


_NORMALIZED_KEYS: dict[str, Category] = {c.value.replace("_", ""): c for c in Category}
# Older detector prompts used "hairNet" for the hair covering category.
_NORMALIZED_KEYS["hairnet"] = Category.HAIR_COVERING


class Polarity(str, Enum):
    POSITIVE = "positive"
    VIOLATION = "violation"


class Severity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.MAJOR: 1, Severity.MINOR: 2}


@dataclass(frozen=True)
class CategoryRule:
    """Static scoring policy for one category.

    Attributes:
        label: Human readable category name used in findings and summaries.
        polarity: Whether detections raise (positive) or lower (violation) the score.
        weight: Share of the overall score, all weights sum to 1.
        full_credit_rate: Detection rate (percent) at which a positive category reaches 100,
            or at which a violation category reaches its floor.
        floor: Minimum score of the category.
        trigger_rate: Detection rate that emits a finding. Positive categories trigger below it,
            violation categories above it.
        severity: Severity of the emitted finding.
        finding_description: Finding text.
        finding_confidence: Confidence reported on the finding when no detection carried one.
        suggestion: Remediation text used by the suggestion generator.
        keywords: Label substrings mapped to this category by label-list detectors.
    """

    label: str
    polarity: Polarity
    weight: float
    full_credit_rate: float
    floor: float
    trigger_rate: float
    severity: Severity
    finding_description: str
    finding_confidence: float
    suggestion: str
    keywords: tuple[str, ...] = ()

    @property
    def is_positive(self) -> bool:
        return self.polarity is Polarity.POSITIVE

    def score(self, rate: float) -> float:
        """Convert a detection rate (0-100) into a 0-100 category score."""
        if self.is_positive:
            return max(self.floor, min(100.0, rate / self.full_credit_rate * 100.0))
        return max(self.floor, 100.0 - rate / self.full_credit_rate * 100.0)

    def is_triggered(self, rate: float) -> bool:
        if self.is_positive:
            return rate < self.trigger_rate
        return rate > self.trigger_rate


DEFAULT_RULES: Mapping[Category, CategoryRule] = MappingProxyType(
    {
        Category.PROTECTIVE_GLOVES: CategoryRule(
            label="Protective Gloves",
            polarity=Polarity.POSITIVE,
            weight=0.12,
            full_credit_rate=80,
            floor=0,
            trigger_rate=60,
            severity=Severity.CRITICAL,
            finding_description="Protective gloves not consistently worn during food preparation",
            finding_confidence=0.85,
            suggestion="Wear food-safe gloves consistently while handling food",
            keywords=(
                "glove",
                "disposable glove",
                "medical glove",
                "latex glove",
                "nitrile glove",
                "rubber glove",
                "protective glove",
            ),
        ),
        Category.BARE_HANDS: CategoryRule(
            label="Bare Hands",
            polarity=Polarity.VIOLATION,
            weight=0.20,
            full_credit_rate=30,
            floor=10,
            trigger_rate=20,
            severity=Severity.CRITICAL,
            finding_description="Bare hands detected in contact with food or food-contact surfaces",
            finding_confidence=0.8,
            suggestion="Use gloves or utensils and avoid bare-hand contact with food",
            keywords=("hand", "finger", "thumb", "wrist", "palm", "fist", "nail", "flesh"),
        ),
        Category.HAIR_COVERING: CategoryRule(
            label="Hair Covering",
            polarity=Polarity.POSITIVE,
            weight=0.10,
            full_credit_rate=70,
            floor=0,
            trigger_rate=50,
            severity=Severity.MAJOR,
            finding_description="Hair covering not detected or worn improperly",
            finding_confidence=0.75,
            suggestion="Wear a hair net or hat that fully restrains hair",
            keywords=("hair net", "hairnet", "chef hat", "chef's hat", "head covering", "haircover", "cap", "beanie"),
        ),
        Category.CLEAN_SURFACE: CategoryRule(
            label="Clean Surfaces",
            polarity=Polarity.POSITIVE,
            weight=0.12,
            full_credit_rate=60,
            floor=0,
            trigger_rate=40,
            severity=Severity.MAJOR,
            finding_description="Work surfaces not consistently clean, with visible debris, grease, or stains",
            finding_confidence=0.7,
            suggestion="Clean and sanitize work surfaces between tasks",
            keywords=("countertop", "counter", "stainless steel", "work surface", "tabletop", "table", "bench"),
        ),
        Category.PROPER_APRON: CategoryRule(
            label="Proper Apron",
            polarity=Polarity.POSITIVE,
            weight=0.10,
            full_credit_rate=70,
            floor=0,
            trigger_rate=50,
            severity=Severity.MAJOR,
            finding_description="Clean apron or chef coat not worn during food preparation",
            finding_confidence=0.7,
            suggestion="Wear a clean apron or chef coat during prep",
            keywords=("apron", "chef coat", "chef's uniform", "chef uniform", "chef jacket"),
        ),
        Category.HANDWASH_STATION: CategoryRule(
            label="Handwash Station",
            polarity=Polarity.POSITIVE,
            weight=0.16,
            full_credit_rate=30,
            floor=0,
            trigger_rate=10,
            severity=Severity.CRITICAL,
            finding_description="No handwashing station with soap and paper towels visible in the preparation area",
            finding_confidence=0.8,
            suggestion="Keep a handwash sink with soap and towels accessible",
            keywords=("sink", "soap", "soap dispenser", "paper towel", "hand washing", "handwashing", "faucet"),
        ),
        Category.PEST_SIGNS: CategoryRule(
            label="Pest Control",
            polarity=Polarity.VIOLATION,
            weight=0.15,
            full_credit_rate=10,
            floor=5,
            trigger_rate=0,
            severity=Severity.CRITICAL,
            finding_description="Signs of pest activity detected, such as droppings, insects, or infestation evidence",
            finding_confidence=0.8,
            suggestion="Address pest signs immediately: clean and seal entry points",
            keywords=("cockroach", "rodent", "droppings", "insect", "housefly", "pest", "infestation"),
        ),
        Category.CROSS_CONTAMINATION: CategoryRule(
            label="Cross Contamination",
            polarity=Polarity.VIOLATION,
            weight=0.05,
            full_credit_rate=20,
            floor=10,
            trigger_rate=10,
            severity=Severity.CRITICAL,
            finding_description="Raw meat, poultry, or fish in direct contact with ready-to-eat foods",
            finding_confidence=0.8,
            suggestion="Separate raw meat from ready-to-eat foods",
            keywords=("raw meat", "raw chicken", "raw poultry", "raw fish", "raw beef", "raw pork"),
        ),
    }
)

DEFAULT_EXCLUSIONS: tuple[tuple[Category, Category], ...] = ((Category.PROTECTIVE_GLOVES, Category.BARE_HANDS),)

DEFAULT_POSITIVE_MESSAGE = "Great job, keep maintaining these food safety standards"

_RULE_FIELDS = {f.name for f in fields(CategoryRule)}


@dataclass(frozen=True)
class CategoryConfig:
    """Immutable policy table shared by the aggregator, scoring engine and suggestion generator.

    Attributes:
        rules: Rule per category. Iteration order is the report order.
        exclusions: ``(positive, violation)`` pairs. A timestamp detected for the positive
            category is removed from the violation category.
        suggestion_threshold: Categories scoring below this get a suggestion even without a finding.
        positive_message: Suggestion emitted when nothing else applies.
    """

    rules: Mapping[Category, CategoryRule] = field(default_factory=lambda: dict(DEFAULT_RULES))
    exclusions: tuple[tuple[Category, Category], ...] = DEFAULT_EXCLUSIONS
    suggestion_threshold: float = 70
    positive_message: str = DEFAULT_POSITIVE_MESSAGE

    def __post_init__(self) -> None:
        missing = [c.value for c in Category if c not in self.rules]
        if missing:
            raise ConfigError(f"Missing category rules: {missing}")
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

        for category, rule in self.rules.items():
            if not 0.0 <= rule.weight <= 1.0:
                raise ConfigError(f"Weight of '{category.value}' must be between 0 and 1, got {rule.weight}")
            if rule.full_credit_rate <= 0:
                raise ConfigError(f"full_credit_rate of '{category.value}' must be > 0")
            if not 0.0 <= rule.floor <= 100.0:
                raise ConfigError(f"floor of '{category.value}' must be between 0 and 100")
            if rule.polarity is Polarity.VIOLATION and rule.floor <= 0:
                raise ConfigError(f"Violation category '{category.value}' needs a floor above 0")

        total = math.fsum(rule.weight for rule in self.rules.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ConfigError(f"Category weights must sum to 1.0, got {total:.6f}")

        for positive, violation in self.exclusions:
            if self.rules[positive].polarity is not Polarity.POSITIVE:
                raise ConfigError(f"Exclusion source '{positive.value}' must be a positive category")
            if self.rules[violation].polarity is not Polarity.VIOLATION:
                raise ConfigError(f"Exclusion target '{violation.value}' must be a violation category")

    def __getitem__(self, category: Category) -> CategoryRule:
        return self.rules[category]

    def __iter__(self) -> Iterator[Category]:
        return iter(self.rules)

    def items(self):
        return self.rules.items()

    @property
    def total_weight(self) -> float:
        return math.fsum(rule.weight for rule in self.rules.values())

    def with_rule(self, category: Category, **changes: Any) -> CategoryConfig:
        """Return a copy with some fields of one rule replaced."""
        unknown = sorted(set(changes) - _RULE_FIELDS)
        if unknown:
            raise ConfigError(f"Unknown category rule fields: {unknown}")
        rules = dict(self.rules)
        rules[category] = replace(rules[category], **changes)
        return replace(self, rules=rules)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], scoring: Mapping[str, Any] | None = None) -> CategoryConfig:
        """Build a config from TOML-style overrides on top of the defaults.

        Args:
            data: ``{category_name: {field: value}}``, e.g. the ``[categories]`` table.
            scoring: Optional ``[scoring]`` table with ``suggestion_threshold``/``positive_message``.
        """
        rules = dict(DEFAULT_RULES)
        for key, overrides in data.items():
            category = Category.from_key(key)
            if category is None:
                raise ConfigError(f"Unknown category '{key}'")
            if not isinstance(overrides, Mapping):
                raise ConfigError(f"Overrides for '{key}' must be a table")
            unknown = sorted(set(overrides) - _RULE_FIELDS)
            if unknown:
                raise ConfigError(f"Unknown fields for '{key}': {unknown}")
            changes = dict(overrides)
            try:
                if "polarity" in changes:
                    changes["polarity"] = Polarity(changes["polarity"])
                if "severity" in changes:
                    changes["severity"] = Severity(changes["severity"])
            except ValueError as e:
                raise ConfigError(f"Invalid value for '{key}': {e}") from e
            if "keywords" in changes:
                changes["keywords"] = tuple(changes["keywords"])
            rules[category] = replace(rules[category], **changes)

        scoring = scoring or {}
        try:
            suggestion_threshold = float(scoring.get("suggestion_threshold", 70))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid suggestion_threshold: {e}") from e
        return cls(
            rules=rules,
            suggestion_threshold=suggestion_threshold,
            positive_message=str(scoring.get("positive_message", DEFAULT_POSITIVE_MESSAGE)),
        )

    @classmethod
    def from_project_config(cls) -> CategoryConfig:
        """Build a config from the ``[categories]`` and ``[scoring]`` tables of the config file."""
        from kitchenscore.config import get_section

        return cls.from_dict(get_section("categories"), get_section("scoring"))


DEFAULT_CATEGORY_CONFIG = CategoryConfig()
