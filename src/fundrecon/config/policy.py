"""Reconciliation policy constants.

These are product policy, not structural requirements: every value can be
overridden through the environment and the defaults are documented in
DESIGN.md.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from fundrecon.domain.model import TaskPriority

from .env import optional_float
from .errors import ConfigurationError

DEFAULT_SIMILARITY_FLOOR = 0.85
DEFAULT_AMBIGUITY_MARGIN = 0.03
DEFAULT_MONEY_TOLERANCE = 0.02
DEFAULT_AUTO_ACCEPT_THRESHOLD = 0.65
DEFAULT_RECENCY_HALF_LIFE_DAYS = 180.0


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    reliability: float = 0.60
    corroboration: float = 0.25
    recency: float = 0.15

    def __post_init__(self) -> None:
        total = self.reliability + self.corroboration + self.recency
        if any(weight < 0 for weight in (self.reliability, self.corroboration, self.recency)):
            raise ConfigurationError("Scoring weights must be non-negative")
        if abs(total - 1.0) > 1e-6:
            raise ConfigurationError(f"Scoring weights must sum to 1.0, got {total:.3f}")


@dataclass(frozen=True, slots=True)
class SlaPolicy:
    high: timedelta = timedelta(hours=24)
    medium: timedelta = timedelta(hours=72)
    low: timedelta = timedelta(days=7)

    def due_after(self, priority: TaskPriority) -> timedelta:
        return {
            TaskPriority.HIGH: self.high,
            TaskPriority.MEDIUM: self.medium,
            TaskPriority.LOW: self.low,
        }[priority]


@dataclass(frozen=True, slots=True)
class ReconciliationPolicy:
    similarity_floor: float = DEFAULT_SIMILARITY_FLOOR
    ambiguity_margin: float = DEFAULT_AMBIGUITY_MARGIN
    money_tolerance: float = DEFAULT_MONEY_TOLERANCE
    auto_accept_threshold: float = DEFAULT_AUTO_ACCEPT_THRESHOLD
    recency_half_life_days: float = DEFAULT_RECENCY_HALF_LIFE_DAYS
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    sla: SlaPolicy = field(default_factory=SlaPolicy)

    def __post_init__(self) -> None:
        for name in (
            "similarity_floor",
            "ambiguity_margin",
            "money_tolerance",
            "auto_accept_threshold",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
        if self.recency_half_life_days <= 0:
            raise ConfigurationError("recency_half_life_days must be positive")


def get_reconciliation_policy() -> ReconciliationPolicy:
    return ReconciliationPolicy(
        similarity_floor=optional_float("FUNDRECON_SIMILARITY_FLOOR", DEFAULT_SIMILARITY_FLOOR),
        ambiguity_margin=optional_float("FUNDRECON_AMBIGUITY_MARGIN", DEFAULT_AMBIGUITY_MARGIN),
        money_tolerance=optional_float("FUNDRECON_MONEY_TOLERANCE", DEFAULT_MONEY_TOLERANCE),
        auto_accept_threshold=optional_float(
            "FUNDRECON_AUTO_ACCEPT_THRESHOLD", DEFAULT_AUTO_ACCEPT_THRESHOLD
        ),
        recency_half_life_days=optional_float(
            "FUNDRECON_RECENCY_HALF_LIFE_DAYS", DEFAULT_RECENCY_HALF_LIFE_DAYS
        ),
    )
