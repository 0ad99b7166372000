"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityKind(StrEnum):
    COMPANY = "company"
    INVESTOR = "investor"


class SourceKind(StrEnum):
    NEWS = "news"
    API = "api"
    MANUAL = "manual"


class ReliabilityTier(StrEnum):
    OFFICIAL = "official"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> float:
        return _TIER_WEIGHTS[self]


_TIER_WEIGHTS: dict[ReliabilityTier, float] = {
    ReliabilityTier.OFFICIAL: 1.0,
    ReliabilityTier.HIGH: 0.9,
    ReliabilityTier.MEDIUM: 0.7,
    ReliabilityTier.LOW: 0.4,
}


class DatePrecision(StrEnum):
    YEAR = "year"
    MONTH = "month"
    DAY = "day"


class ValueKind(StrEnum):
    MONEY = "money"
    DATE = "date"
    ENUM = "enum"
    STRING = "string"
    TEXT = "text"
    INVESTOR_SET = "investor_set"
    ENTITY_REF = "entity_ref"


class FactField(StrEnum):
    """Controlled vocabulary of fields a claim may assert."""

    TOTAL_FUNDING = "total_funding"
    VALUATION = "valuation"
    ROUND_TYPE = "round_type"
    HEADQUARTERS = "headquarters"
    FOUNDED = "founded"
    SECTOR = "sector"
    WEBSITE = "website"
    DESCRIPTION = "description"
    INVESTOR_TYPE = "investor_type"

    # Round-scoped (FactKey.scope holds the round key)
    ROUND_AMOUNT = "round_amount"
    ROUND_DATE = "round_date"
    LEAD_INVESTOR = "lead_investor"
    PARTICIPANTS = "participants"

    # Synthetic, used for ambiguous-identity escalation only
    IDENTITY = "identity"


class TaskKind(StrEnum):
    CONFLICT = "conflict"
    LOW_CONFIDENCE = "low_confidence"


class TaskPriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


class VerificationOutcome(StrEnum):
    VERIFIED = "verified"
    REJECTED = "rejected"

    @property
    def status(self) -> TaskStatus:
        return TaskStatus(self.value)


class ConflictStatus(StrEnum):
    OPEN = "open"
    RESOLVED = "resolved"


class CommitRule(StrEnum):
    AUTO_AGREEMENT = "auto_agreement"
    AUTO_SINGLE = "auto_single"
    VERIFIED = "verified"


class MergeReason(StrEnum):
    MANUAL = "manual"
    IDENTITY_REVIEW = "identity_review"
