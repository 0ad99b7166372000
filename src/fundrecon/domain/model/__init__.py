"""Public domain model surface."""

from __future__ import annotations

from fundrecon.domain.model.audit import EntityMerge
from fundrecon.domain.model.entity import Entity
from fundrecon.domain.model.enums import (
    CommitRule,
    ConflictStatus,
    DatePrecision,
    EntityKind,
    FactField,
    MergeReason,
    ReliabilityTier,
    SourceKind,
    TaskKind,
    TaskPriority,
    TaskStatus,
    ValueKind,
    VerificationOutcome,
)
from fundrecon.domain.model.organizations import (
    CLASS_BY_ENTITY_KIND,
    Company,
    Investor,
    new_entity,
)
from fundrecon.domain.model.primitives import (
    EntityRef,
    FactKey,
    FactValue,
    MoneyCents,
    PartialDate,
    usd,
)
from fundrecon.domain.model.provenance import FactRecord, Provenance
from fundrecon.domain.model.verification import (
    ALLOWED_TRANSITIONS,
    OPEN_TASK_STATUSES,
    PRIORITY_RANK,
    Conflict,
    VerificationTask,
    can_transition,
)

__all__ = [  # noqa: RUF022
    # base
    "Entity",
    "Company",
    "Investor",
    "CLASS_BY_ENTITY_KIND",
    "new_entity",
    # facts
    "FactKey",
    "FactValue",
    "FactRecord",
    "Provenance",
    "EntityRef",
    "MoneyCents",
    "PartialDate",
    "usd",
    # verification
    "Conflict",
    "VerificationTask",
    "ALLOWED_TRANSITIONS",
    "OPEN_TASK_STATUSES",
    "PRIORITY_RANK",
    "can_transition",
    # audit
    "EntityMerge",
    # enums
    "CommitRule",
    "ConflictStatus",
    "DatePrecision",
    "EntityKind",
    "FactField",
    "MergeReason",
    "ReliabilityTier",
    "SourceKind",
    "TaskKind",
    "TaskPriority",
    "TaskStatus",
    "ValueKind",
    "VerificationOutcome",
]
