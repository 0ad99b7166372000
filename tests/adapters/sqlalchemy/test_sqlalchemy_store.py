from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from fundrecon.adapters.sqlalchemy import (
    SqlAlchemyClaimRepository,
    SqlAlchemyConflictRepository,
    SqlAlchemyEntityRepository,
    SqlAlchemyTaskRepository,
)
from fundrecon.domain.errors import InvalidTransitionError, StaleCommitError
from fundrecon.domain.model import (
    CommitRule,
    Conflict,
    ConflictStatus,
    EntityKind,
    EntityMerge,
    FactField,
    FactKey,
    FactRecord,
    MergeReason,
    PartialDate,
    Provenance,
    SourceKind,
    TaskKind,
    TaskPriority,
    TaskStatus,
    VerificationTask,
    new_entity,
)
from fundrecon.domain.reconciliation import FactClaim
from tests.helpers.records import NOW, OBSERVED

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.orm import Session

SECTOR = FactKey(FactField.SECTOR)


def _claim(entity_id: UUID, value: str, *, source: str = "crunchbase") -> FactClaim:
    return FactClaim(
        entity_kind=EntityKind.COMPANY,
        entity_key="Acme",
        key=SECTOR,
        value=value,
        source_id=source,
        source_kind=SourceKind.API,
        observed_at=OBSERVED,
        ingested_at=NOW,
        entity_id=entity_id,
    )


def test_entity_round_trip_with_aliases_and_history(sqlite_session: Session) -> None:
    repository = SqlAlchemyEntityRepository(sqlite_session)
    entity = new_entity(EntityKind.COMPANY, name="Acme Inc.", normalized_key="acme")
    repository.add(entity)
    repository.add_alias(entity.id, "ACME, Inc")
    repository.add_alias(entity.id, "ACME, Inc")
    key = FactKey(FactField.ROUND_DATE, "seed")
    record = FactRecord(
        key=key,
        value=PartialDate(2021, 3),
        provenance=Provenance.of([uuid4()], rule=CommitRule.AUTO_SINGLE),
        version=1,
        committed_at=NOW,
    )
    repository.append_fact(entity.id, record, expected_version=0)

    loaded = repository.get(entity.id)

    assert loaded is not None
    assert loaded.aliases == ["Acme Inc.", "ACME, Inc"]
    assert loaded.current_facts[key] == record
    assert repository.find_by_key(EntityKind.COMPANY, "acme") is not None
    assert repository.find_by_key(EntityKind.INVESTOR, "acme") is None
    assert [found.id for found in repository.find_by_alias(EntityKind.COMPANY, "acme")] == [
        entity.id
    ]


def test_append_fact_rejects_stale_version(sqlite_session: Session) -> None:
    repository = SqlAlchemyEntityRepository(sqlite_session)
    entity = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
    repository.add(entity)
    provenance = Provenance.of([uuid4()], rule=CommitRule.AUTO_SINGLE)
    repository.append_fact(
        entity.id,
        FactRecord(key=SECTOR, value="Robotics", provenance=provenance, version=1),
        expected_version=0,
    )

    with pytest.raises(StaleCommitError):
        repository.append_fact(
            entity.id,
            FactRecord(key=SECTOR, value="Drones", provenance=provenance, version=1),
            expected_version=0,
        )


def test_merge_redirects_and_lists_members(sqlite_session: Session) -> None:
    repository = SqlAlchemyEntityRepository(sqlite_session)
    target = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
    source = new_entity(EntityKind.COMPANY, name="Acme Labs", normalized_key="acme labs")
    repository.add(target)
    repository.add(source)

    repository.merge(
        EntityMerge(
            entity_kind=EntityKind.COMPANY,
            source_id=source.id,
            target_id=target.id,
            reason=MergeReason.MANUAL,
            created_at=NOW,
        )
    )

    merged = repository.get(source.id)
    assert merged is not None
    assert merged.resolved_id == target.id
    assert repository.members(target.id) == (target.id, source.id)
    assert [entity.id for entity in repository.candidates(EntityKind.COMPANY)] == [target.id]
    assert len(repository.merges()) == 1


def test_claims_deduplicate_and_settle(sqlite_session: Session) -> None:
    entities = SqlAlchemyEntityRepository(sqlite_session)
    claims = SqlAlchemyClaimRepository(sqlite_session)
    entity = new_entity(EntityKind.COMPANY, name="Acme", normalized_key="acme")
    entities.add(entity)
    first = _claim(entity.id, "Robotics")
    other = _claim(entity.id, "Drones", source="pitchbook")

    assert claims.add(first)
    assert not claims.add(_claim(entity.id, "Robotics"))
    assert claims.add(other)
    claims.settle([first.claim_id], task_id=None)

    assert claims.get(first.claim_id) == first
    assert [claim.claim_id for claim in claims.for_key([entity.id], SECTOR)] == [other.claim_id]
    assert len(claims.for_key([entity.id], SECTOR, include_settled=True)) == 2
    assert claims.keys_for([entity.id]) == {SECTOR}


def test_only_one_open_conflict_per_key(sqlite_session: Session) -> None:
    conflicts = SqlAlchemyConflictRepository(sqlite_session)
    entity_id = uuid4()
    first = conflicts.add(
        Conflict(entity_id=entity_id, key=SECTOR, contending_claims=(uuid4(), uuid4()))
    )
    second = conflicts.add(
        Conflict(entity_id=entity_id, key=SECTOR, contending_claims=(uuid4(), uuid4()))
    )
    extra = uuid4()

    grown = conflicts.attach(first.conflict_id, [extra])
    conflicts.resolve(first.conflict_id, at=NOW)

    assert second.conflict_id == first.conflict_id
    assert grown.contending_claims[-1] == extra
    assert conflicts.open_for(entity_id, SECTOR) is None
    (stored,) = conflicts.list_all(ConflictStatus.RESOLVED)
    assert stored.contending_claims == grown.contending_claims
    assert stored.resolved_at == NOW


def test_task_transitions_are_checked(sqlite_session: Session) -> None:
    tasks = SqlAlchemyTaskRepository(sqlite_session)
    task = tasks.add(
        VerificationTask(
            kind=TaskKind.CONFLICT,
            subject_ref=uuid4(),
            entity_id=uuid4(),
            key=SECTOR,
            priority=TaskPriority.MEDIUM,
            created_at=NOW,
            due_at=NOW + timedelta(hours=72),
        )
    )

    def verify(current: VerificationTask) -> VerificationTask:
        return replace(current, status=TaskStatus.VERIFIED, chosen_value="Robotics")

    verified = tasks.transition(task.task_id, target=TaskStatus.VERIFIED, update=verify)

    assert tasks.get(task.task_id) == verified
    assert tasks.open_for(task.entity_id, SECTOR) is None
    assert tasks.query(status=TaskStatus.VERIFIED) == [verified]
    with pytest.raises(InvalidTransitionError):
        tasks.transition(task.task_id, target=TaskStatus.PENDING, update=verify)


def test_retarget_rewrites_an_open_task_in_place(sqlite_session: Session) -> None:
    tasks = SqlAlchemyTaskRepository(sqlite_session)
    task = tasks.add(
        VerificationTask(
            kind=TaskKind.LOW_CONFIDENCE,
            subject_ref=uuid4(),
            entity_id=uuid4(),
            key=SECTOR,
            priority=TaskPriority.MEDIUM,
            created_at=NOW,
            due_at=NOW + timedelta(hours=72),
            status=TaskStatus.IN_REVIEW,
            assignee="ada",
        )
    )
    conflict_id = uuid4()

    retargeted = tasks.retarget(
        task.task_id,
        update=lambda current: replace(
            current, kind=TaskKind.CONFLICT, subject_ref=conflict_id, status=TaskStatus.PENDING
        ),
    )

    assert retargeted.kind is TaskKind.CONFLICT
    assert retargeted.status is TaskStatus.IN_REVIEW
    assert retargeted.assignee == "ada"
    assert tasks.open_for(task.entity_id, SECTOR) == retargeted

    def reject(current: VerificationTask) -> VerificationTask:
        return replace(current, status=TaskStatus.REJECTED, resolution_notes="duplicate")

    tasks.transition(task.task_id, target=TaskStatus.REJECTED, update=reject)
    with pytest.raises(InvalidTransitionError):
        tasks.retarget(task.task_id, update=lambda current: current)
