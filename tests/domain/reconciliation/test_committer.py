from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from fundrecon.domain.errors import StaleCommitError, UnknownEntityError
from fundrecon.domain.model import (
    CommitRule,
    EntityKind,
    FactField,
    FactKey,
    Provenance,
    new_entity,
)
from fundrecon.domain.reconciliation import ReconciliationCommitter
from tests.helpers.records import NOW

if TYPE_CHECKING:
    from collections.abc import Callable

    from fundrecon.adapters.memory import InMemoryUnitOfWork

VALUATION = FactKey(FactField.VALUATION)


def _committer() -> ReconciliationCommitter:
    return ReconciliationCommitter(clock=lambda: NOW)


def test_commit_appends_versioned_history(
    memory_unit_of_work: Callable[[], InMemoryUnitOfWork],
) -> None:
    entity = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
    committer = _committer()
    with memory_unit_of_work() as uow:
        entities = uow.repositories.entities
        entities.add(entity)
        first = committer.commit(
            entities,
            entity.id,
            VALUATION,
            5_000_000_000,
            Provenance.of([uuid4()], rule=CommitRule.AUTO_SINGLE),
        )
        second = committer.commit(
            entities,
            entity.id,
            VALUATION,
            6_000_000_000,
            Provenance.of([uuid4()], rule=CommitRule.AUTO_SINGLE),
            expected_version=1,
        )
        stored = entities.get(entity.id)

    assert first.created
    assert second.record.version == 2
    assert stored is not None
    assert [record.value for record in stored.history] == [5_000_000_000, 6_000_000_000]
    assert stored.current_facts[VALUATION] == second.record
    assert second.record.committed_at == NOW


def test_reapplying_the_same_commit_is_a_noop(
    memory_unit_of_work: Callable[[], InMemoryUnitOfWork],
) -> None:
    entity = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
    provenance = Provenance.of([uuid4(), uuid4()], rule=CommitRule.AUTO_AGREEMENT)
    committer = _committer()
    with memory_unit_of_work() as uow:
        entities = uow.repositories.entities
        entities.add(entity)
        first = committer.commit(entities, entity.id, VALUATION, 100, provenance)
        again = committer.commit(entities, entity.id, VALUATION, 100, provenance)
        stored = entities.get(entity.id)

    assert not again.created
    assert again.record == first.record
    assert stored is not None
    assert len(stored.history) == 1


def test_stale_commit_is_rejected(memory_unit_of_work: Callable[[], InMemoryUnitOfWork]) -> None:
    entity = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
    committer = _committer()
    with memory_unit_of_work() as uow:
        entities = uow.repositories.entities
        entities.add(entity)
        committer.commit(
            entities, entity.id, VALUATION, 100, Provenance.of([uuid4()], rule=CommitRule.VERIFIED)
        )

        with pytest.raises(StaleCommitError) as excinfo:
            committer.commit(
                entities,
                entity.id,
                VALUATION,
                200,
                Provenance.of([uuid4()], rule=CommitRule.VERIFIED),
                expected_version=0,
            )

    assert excinfo.value.actual == 1


def test_commit_to_unknown_entity_fails(
    memory_unit_of_work: Callable[[], InMemoryUnitOfWork],
) -> None:
    with memory_unit_of_work() as uow, pytest.raises(UnknownEntityError):
        _committer().commit(
            uow.repositories.entities,
            uuid4(),
            VALUATION,
            100,
            Provenance.of([uuid4()], rule=CommitRule.AUTO_SINGLE),
        )
