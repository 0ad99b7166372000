from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest

from fundrecon.adapters.memory import InMemoryStore, InMemoryUnitOfWork
from fundrecon.domain.errors import InvalidTransitionError, UnknownEntityError, UnknownTaskError
from fundrecon.domain.model import (
    EntityKind,
    EntityMerge,
    FactField,
    FactKey,
    MergeReason,
    TaskKind,
    TaskPriority,
    TaskStatus,
    VerificationTask,
    new_entity,
)
from tests.helpers.records import NOW


def test_repositories_hand_out_copies() -> None:
    with InMemoryUnitOfWork() as uow:
        entity = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
        uow.repositories.entities.add(entity)

        loaded = uow.repositories.entities.get(entity.id)
        assert loaded is not None
        loaded.aliases.append("Mutated")

        reloaded = uow.repositories.entities.get(entity.id)
    assert reloaded is not None
    assert reloaded.aliases == ["Acme"]


def test_chained_merges_point_at_the_final_target() -> None:
    store = InMemoryStore()
    first = new_entity(EntityKind.COMPANY, name="A", normalized_key="a")
    second = new_entity(EntityKind.COMPANY, name="B", normalized_key="b")
    third = new_entity(EntityKind.COMPANY, name="C", normalized_key="c")
    with InMemoryUnitOfWork(store) as uow:
        entities = uow.repositories.entities
        for entity in (first, second, third):
            entities.add(entity)
        for source, target in ((first, second), (second, third)):
            entities.merge(
                EntityMerge(
                    entity_kind=EntityKind.COMPANY,
                    source_id=source.id,
                    target_id=target.id,
                    reason=MergeReason.MANUAL,
                    created_at=NOW,
                )
            )

        assert set(entities.members(third.id)) == {first.id, second.id, third.id}
        assert [entity.id for entity in entities.candidates(EntityKind.COMPANY)] == [third.id]


def test_unknown_ids_raise() -> None:
    with InMemoryUnitOfWork() as uow:
        with pytest.raises(UnknownEntityError):
            uow.repositories.entities.add_alias(uuid4(), "Ghost")
        with pytest.raises(UnknownTaskError):
            uow.repositories.tasks.transition(
                uuid4(), target=TaskStatus.IN_REVIEW, update=lambda task: task
            )


def test_one_open_task_per_key_and_checked_transitions() -> None:
    entity_id = uuid4()
    key = FactKey(FactField.WEBSITE)

    def make_task() -> VerificationTask:
        return VerificationTask(
            kind=TaskKind.LOW_CONFIDENCE,
            subject_ref=uuid4(),
            entity_id=entity_id,
            key=key,
            priority=TaskPriority.LOW,
            created_at=NOW,
            due_at=NOW + timedelta(days=7),
        )

    with InMemoryUnitOfWork() as uow:
        tasks = uow.repositories.tasks
        first = tasks.add(make_task())
        assert tasks.add(make_task()) == first
        conflict_id = uuid4()
        retargeted = tasks.retarget(
            first.task_id,
            update=lambda task: replace(task, kind=TaskKind.CONFLICT, subject_ref=conflict_id),
        )
        assert retargeted.status is TaskStatus.PENDING
        assert tasks.open_for(entity_id, key) == retargeted

        tasks.transition(
            first.task_id,
            target=TaskStatus.REJECTED,
            update=lambda task: replace(task, status=TaskStatus.REJECTED),
        )
        with pytest.raises(InvalidTransitionError):
            tasks.transition(
                first.task_id,
                target=TaskStatus.IN_REVIEW,
                update=lambda task: replace(task, status=TaskStatus.IN_REVIEW),
            )
        with pytest.raises(InvalidTransitionError):
            tasks.retarget(first.task_id, update=lambda task: task)
        assert tasks.open_for(entity_id, key) is None


def test_exception_inside_unit_of_work_rolls_back() -> None:
    uow = InMemoryUnitOfWork()

    with pytest.raises(RuntimeError), uow:
        raise RuntimeError("boom")

    assert uow.rollback_called
    assert not uow.committed
