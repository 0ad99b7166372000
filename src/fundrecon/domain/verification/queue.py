"""Verification queue: reviewer-facing operations over tasks.

Transitions follow ``ALLOWED_TRANSITIONS``. Terminal decisions are applied
under the entity lock in the same unit of work as the transition, so a task
is either resolved with its effects or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from fundrecon.domain.errors import IncompleteResolutionError, UnknownTaskError
from fundrecon.domain.model import PRIORITY_RANK, TaskKind, TaskStatus, VerificationOutcome

from .stats import QueueStats, compute_stats

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from uuid import UUID

    from fundrecon.domain.model import TaskPriority, VerificationTask
    from fundrecon.domain.ports import ReconciliationUnitOfWork
    from fundrecon.domain.reconciliation import Evaluation, ReconciliationEngine


log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    task: VerificationTask
    evaluation: Evaluation | None


class VerificationQueue:
    def __init__(
        self,
        engine: ReconciliationEngine,
        *,
        uow_factory: Callable[[], ReconciliationUnitOfWork] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.engine = engine
        self.uow_factory = uow_factory or engine.uow_factory
        self.clock = clock or engine.clock

    def get(self, task_id: UUID) -> VerificationTask:
        with self.uow_factory() as uow:
            task = uow.repositories.tasks.get(task_id)
        if task is None:
            raise UnknownTaskError(f"Unknown task {task_id}")
        return task

    def claim(self, task_id: UUID, reviewer: str) -> VerificationTask:
        """Move a pending task into review for ``reviewer``."""

        if not reviewer.strip():
            raise ValueError("A reviewer is required to claim a task")
        with self.uow_factory() as uow:
            task = uow.repositories.tasks.transition(
                task_id,
                target=TaskStatus.IN_REVIEW,
                update=lambda current: replace(
                    current, status=TaskStatus.IN_REVIEW, assignee=reviewer
                ),
            )
            uow.commit()
        log.info("Task %s claimed by %s", task_id, reviewer)
        return task

    def release(self, task_id: UUID) -> VerificationTask:
        """Return an in-review task to the pending pool."""

        with self.uow_factory() as uow:
            task = uow.repositories.tasks.transition(
                task_id,
                target=TaskStatus.PENDING,
                update=lambda current: replace(current, status=TaskStatus.PENDING, assignee=None),
            )
            uow.commit()
        log.info("Task %s released", task_id)
        return task

    def resolve(
        self,
        task_id: UUID,
        outcome: VerificationOutcome,
        *,
        chosen_value: object | None = None,
        notes: str | None = None,
    ) -> ResolutionResult:
        """Record a reviewer decision and apply it.

        Verifying a conflict requires ``chosen_value``; rejecting requires
        ``notes``. A verified low-confidence task without a value accepts the
        claim as stated.
        """

        task = self.get(task_id)
        if outcome is VerificationOutcome.REJECTED and not (notes and notes.strip()):
            raise IncompleteResolutionError("Rejecting a task requires notes")
        if (
            outcome is VerificationOutcome.VERIFIED
            and task.kind is TaskKind.CONFLICT
            and chosen_value is None
        ):
            raise IncompleteResolutionError("Verifying a conflict requires a chosen value")

        with self.engine.entity_lock(task.entity_id), self.uow_factory() as uow:
            repositories = uow.repositories
            value = (
                None
                if chosen_value is None or outcome is VerificationOutcome.REJECTED
                else self.engine.coerce_chosen_value(repositories, task.key, chosen_value)
            )
            now = self.clock()
            resolved = repositories.tasks.transition(
                task_id,
                target=outcome.status,
                update=lambda current: replace(
                    current,
                    status=outcome.status,
                    chosen_value=value,
                    resolution_notes=notes,
                    resolved_at=now,
                ),
            )
            evaluation = self.engine.apply_resolution(repositories, resolved)
            uow.commit()
        log.info("Task %s %s", task_id, outcome)
        return ResolutionResult(task=resolved, evaluation=evaluation)

    def query(
        self,
        *,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        kind: TaskKind | None = None,
        due_before: datetime | None = None,
    ) -> list[VerificationTask]:
        with self.uow_factory() as uow:
            tasks = uow.repositories.tasks.query(
                status=status, priority=priority, kind=kind, due_before=due_before
            )
        return sorted(tasks, key=_queue_order)

    def overdue(self, now: datetime | None = None) -> list[VerificationTask]:
        moment = now or self.clock()
        with self.uow_factory() as uow:
            tasks = uow.repositories.tasks.query(due_before=moment)
        return sorted((task for task in tasks if task.is_overdue(moment)), key=_queue_order)

    def stats(self, now: datetime | None = None) -> QueueStats:
        with self.uow_factory() as uow:
            tasks = uow.repositories.tasks.query()
        return compute_stats(tasks, now or self.clock())


def _queue_order(task: VerificationTask) -> tuple[int, datetime, str]:
    return (PRIORITY_RANK[task.priority], task.due_at, str(task.task_id))
