"""Confidence scoring of claims.

confidence = base * (1 + agreeing) / (1 + agreeing + disagreeing)

where ``base`` is a weighted blend of source reliability, corroboration by
other live sources, and recency (exponential decay with a configurable
half-life). The result is always within [0, 1] and never decreases when
another source agrees.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fundrecon.domain.model import ReliabilityTier, SourceKind

from .compare import values_agree

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import datetime

    from fundrecon.config import ReconciliationPolicy

    from .claims import FactClaim

REVIEWER_SOURCE_ID = "verification-queue"

_DEFAULT_TIERS: dict[SourceKind, ReliabilityTier] = {
    SourceKind.MANUAL: ReliabilityTier.HIGH,
    SourceKind.API: ReliabilityTier.HIGH,
    SourceKind.NEWS: ReliabilityTier.MEDIUM,
}


@dataclass(slots=True)
class SourceRegistry:
    """Reliability tier per source id, falling back to a default per source kind."""

    tiers: Mapping[str, ReliabilityTier] = field(default_factory=dict[str, ReliabilityTier])

    def tier_for(self, source_id: str, kind: SourceKind | None = None) -> ReliabilityTier:
        if source_id == REVIEWER_SOURCE_ID:
            return ReliabilityTier.OFFICIAL
        configured = self.tiers.get(source_id)
        if configured is not None:
            return configured
        if kind is None:
            return ReliabilityTier.LOW
        return _DEFAULT_TIERS.get(kind, ReliabilityTier.LOW)


@dataclass(slots=True)
class ConfidenceScorer:
    policy: ReconciliationPolicy
    sources: SourceRegistry = field(default_factory=SourceRegistry)

    def score(self, claim: FactClaim, others: Iterable[FactClaim], *, as_of: datetime) -> float:
        agreeing = 0
        disagreeing = 0
        for other in others:
            if other.claim_id == claim.claim_id or other.source_id == claim.source_id:
                continue
            if values_agree(
                claim.fact_field,
                claim.value,
                other.value,
                money_tolerance=self.policy.money_tolerance,
            ):
                agreeing += 1
            else:
                disagreeing += 1
        return self.base_score(claim, agreeing, as_of=as_of) * (
            (1 + agreeing) / (1 + agreeing + disagreeing)
        )

    def base_score(self, claim: FactClaim, agreeing: int, *, as_of: datetime) -> float:
        weights = self.policy.weights
        reliability = self.sources.tier_for(claim.source_id, claim.source_kind).weight
        corroboration = 1.0 - 0.5**agreeing
        age_days = max((as_of - claim.observed_at).total_seconds(), 0.0) / 86_400
        recency = 0.5 ** (age_days / self.policy.recency_half_life_days)
        blended = (
            weights.reliability * reliability
            + weights.corroboration * corroboration
            + weights.recency * recency
        )
        return min(max(blended, 0.0), 1.0)
