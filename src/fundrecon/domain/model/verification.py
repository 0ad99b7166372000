"""Conflicts and human verification tasks."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from .enums import ConflictStatus, TaskKind, TaskPriority, TaskStatus

if TYPE_CHECKING:
    from .primitives import FactKey, FactValue


ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.IN_REVIEW, TaskStatus.VERIFIED, TaskStatus.REJECTED}
    ),
    TaskStatus.IN_REVIEW: frozenset(
        {TaskStatus.PENDING, TaskStatus.VERIFIED, TaskStatus.REJECTED}
    ),
    TaskStatus.VERIFIED: frozenset(),
    TaskStatus.REJECTED: frozenset(),
}
OPEN_TASK_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_REVIEW})
PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.HIGH: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.LOW: 2,
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True, slots=True, kw_only=True)
class Conflict:
    """Disagreement between two or more live claims for one (entity, key)."""

    entity_id: UUID
    key: FactKey
    contending_claims: tuple[UUID, ...]
    conflict_id: UUID = field(default_factory=uuid4)
    detected_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    status: ConflictStatus = ConflictStatus.OPEN
    resolved_at: datetime | None = None

    def __post_init__(self) -> None:
        if len(set(self.contending_claims)) < 2:
            raise ValueError("A conflict needs at least two contending claims")

    @property
    def is_open(self) -> bool:
        return self.status is ConflictStatus.OPEN

    def attached(self, claim_ids: tuple[UUID, ...]) -> Conflict:
        merged = self.contending_claims + tuple(
            claim_id for claim_id in claim_ids if claim_id not in self.contending_claims
        )
        return replace(self, contending_claims=merged)

    def resolved(self, at: datetime) -> Conflict:
        return replace(self, status=ConflictStatus.RESOLVED, resolved_at=at)


@dataclass(frozen=True, slots=True, kw_only=True)
class VerificationTask:
    """Unit of human review wrapping a conflict or a single low-confidence claim.

    ``subject_ref`` is the conflict id for conflict tasks, the claim id for
    low-confidence claims, and the provisional entity id for identity tasks.
    ``candidates`` lists the alternatives a reviewer chooses among (entity ids
    for identity tasks).
    """

    kind: TaskKind
    subject_ref: UUID
    entity_id: UUID
    key: FactKey
    priority: TaskPriority
    created_at: datetime
    due_at: datetime
    task_id: UUID = field(default_factory=uuid4)
    status: TaskStatus = TaskStatus.PENDING
    assignee: str | None = None
    resolution_notes: str | None = None
    chosen_value: FactValue | None = None
    resolved_at: datetime | None = None
    candidates: tuple[UUID, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_TASK_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        return self.is_open and now > self.due_at

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at
