from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from fundrecon.domain.model import (
    ALLOWED_TRANSITIONS,
    Conflict,
    ConflictStatus,
    FactField,
    FactKey,
    TaskKind,
    TaskPriority,
    TaskStatus,
    VerificationTask,
    can_transition,
)

NOW = datetime(2024, 6, 1, 12, tzinfo=UTC)


def _task(**overrides: object) -> VerificationTask:
    values: dict[str, object] = {
        "kind": TaskKind.CONFLICT,
        "subject_ref": uuid4(),
        "entity_id": uuid4(),
        "key": FactKey(FactField.TOTAL_FUNDING),
        "priority": TaskPriority.HIGH,
        "created_at": NOW,
        "due_at": NOW + timedelta(hours=24),
    }
    values.update(overrides)
    return VerificationTask(**values)  # type: ignore[arg-type]


def test_terminal_states_allow_no_transition() -> None:
    assert ALLOWED_TRANSITIONS[TaskStatus.VERIFIED] == frozenset()
    assert ALLOWED_TRANSITIONS[TaskStatus.REJECTED] == frozenset()
    for target in TaskStatus:
        assert not can_transition(TaskStatus.VERIFIED, target)
        assert not can_transition(TaskStatus.REJECTED, target)


def test_review_can_be_released_or_decided() -> None:
    assert can_transition(TaskStatus.PENDING, TaskStatus.IN_REVIEW)
    assert can_transition(TaskStatus.IN_REVIEW, TaskStatus.PENDING)
    assert can_transition(TaskStatus.IN_REVIEW, TaskStatus.VERIFIED)
    assert not can_transition(TaskStatus.IN_REVIEW, TaskStatus.IN_REVIEW)


def test_task_is_overdue_only_while_open() -> None:
    task = _task()
    later = NOW + timedelta(hours=25)

    assert not task.is_overdue(NOW)
    assert task.is_overdue(later)
    assert not _task(status=TaskStatus.VERIFIED).is_overdue(later)
    assert task.age(later) == timedelta(hours=25)


def test_conflict_needs_two_distinct_claims() -> None:
    claim = uuid4()
    with pytest.raises(ValueError, match="at least two"):
        Conflict(
            entity_id=uuid4(), key=FactKey(FactField.VALUATION), contending_claims=(claim, claim)
        )


def test_conflict_attach_and_resolve_keep_original() -> None:
    first, second, third = uuid4(), uuid4(), uuid4()
    conflict = Conflict(
        entity_id=uuid4(), key=FactKey(FactField.VALUATION), contending_claims=(first, second)
    )

    grown = conflict.attached((second, third))
    closed = grown.resolved(NOW)

    assert conflict.contending_claims == (first, second)
    assert grown.contending_claims == (first, second, third)
    assert closed.status is ConflictStatus.RESOLVED
    assert closed.resolved_at == NOW
    assert conflict.is_open
