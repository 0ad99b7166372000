"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import Update, func, insert, select, update

from fundrecon.adapters.sqlalchemy.tables import (
    claim_settlement_table,
    conflict_claim_table,
    conflict_table,
    entity_alias_table,
    entity_merge_table,
    entity_table,
    fact_claim_table,
    fact_commit_table,
    verification_task_table,
)
from fundrecon.domain.errors import (
    InvalidTransitionError,
    StaleCommitError,
    UnknownEntityError,
    UnknownTaskError,
)
from fundrecon.domain.model import (
    CLASS_BY_ENTITY_KIND,
    Conflict,
    ConflictStatus,
    EntityMerge,
    FactKey,
    FactRecord,
    Provenance,
    VerificationTask,
    can_transition,
)
from fundrecon.domain.reconciliation.claims import FactClaim
from fundrecon.domain.reconciliation.names import normalize_name
from fundrecon.domain.reconciliation.values import decode_value, encode_value

if TYPE_CHECKING:
    from collections.abc import Callable, Collection
    from datetime import datetime

    from sqlalchemy import Row
    from sqlalchemy.orm import Session

    from fundrecon.domain.model import (
        Entity,
        EntityKind,
        TaskKind,
        TaskPriority,
        TaskStatus,
    )


log = logging.getLogger(__name__)


def _open_marker(entity_id: UUID, key: FactKey) -> str:
    return f"{entity_id}|{key.field}|{key.scope}"


class SqlAlchemyEntityRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, entity_id: UUID) -> Entity | None:
        row = self.session.execute(
            select(entity_table).where(entity_table.c.id == entity_id)
        ).one_or_none()
        return None if row is None else self._load(row)

    def find_by_key(self, kind: EntityKind, normalized_key: str) -> Entity | None:
        row = self.session.execute(
            select(entity_table)
            .where(entity_table.c.kind == kind)
            .where(entity_table.c.normalized_key == normalized_key)
        ).one_or_none()
        return None if row is None else self._load(row)

    def find_by_alias(self, kind: EntityKind, normalized_alias: str) -> list[Entity]:
        stmt = (
            select(entity_table)
            .join(entity_alias_table, entity_alias_table.c.entity_id == entity_table.c.id)
            .where(entity_table.c.kind == kind)
            .where(entity_alias_table.c.normalized_alias == normalized_alias)
            .distinct()
        )
        return [self._load(row) for row in self.session.execute(stmt)]

    def candidates(self, kind: EntityKind) -> list[Entity]:
        stmt = (
            select(entity_table)
            .where(entity_table.c.kind == kind)
            .where(entity_table.c.merged_into.is_(None))
            .order_by(entity_table.c.created_at, entity_table.c.id)
        )
        return [self._load(row, with_history=False) for row in self.session.execute(stmt)]

    def add(self, entity: Entity) -> None:
        self.session.execute(
            insert(entity_table).values(
                id=entity.id,
                kind=entity.kind,
                name=entity.name,
                normalized_key=entity.normalized_key,
                created_at=entity.created_at,
                merged_into=entity.merged_into,
            )
        )
        for alias in entity.aliases:
            self.add_alias(entity.id, alias)

    def add_alias(self, entity_id: UUID, alias: str) -> None:
        existing = self.session.execute(
            select(entity_alias_table.c.alias)
            .where(entity_alias_table.c.entity_id == entity_id)
            .where(entity_alias_table.c.alias == alias)
        ).one_or_none()
        if existing is not None:
            return
        position = self.session.execute(
            select(func.count())
            .select_from(entity_alias_table)
            .where(entity_alias_table.c.entity_id == entity_id)
        ).scalar_one()
        self.session.execute(
            insert(entity_alias_table).values(
                entity_id=entity_id,
                alias=alias,
                normalized_alias=normalize_name(alias),
                position=position,
            )
        )

    def append_fact(self, entity_id: UUID, record: FactRecord, *, expected_version: int) -> None:
        current = self._current_version(entity_id, record.key)
        if current != expected_version:
            raise StaleCommitError(entity_id, record.key, expected=expected_version, actual=current)
        self.session.execute(
            insert(fact_commit_table).values(
                entity_id=entity_id,
                field=record.key.field,
                scope=record.key.scope,
                version=record.version,
                value=encode_value(record.value),
                claim_ids=json.dumps([str(item) for item in record.provenance.claim_ids]),
                rule=record.provenance.rule,
                task_id=record.provenance.task_id,
                committed_at=record.committed_at,
            )
        )

    def merge(self, merge: EntityMerge) -> None:
        for entity_id in (merge.source_id, merge.target_id):
            if self.get(entity_id) is None:
                raise UnknownEntityError(f"Unknown entity {entity_id}")
        self.session.execute(
            update(entity_table)
            .where(
                (entity_table.c.id == merge.source_id)
                | (entity_table.c.merged_into == merge.source_id)
            )
            .values(merged_into=merge.target_id)
        )
        self.session.execute(
            insert(entity_merge_table).values(
                entity_kind=merge.entity_kind,
                source_id=merge.source_id,
                target_id=merge.target_id,
                reason=merge.reason,
                created_at=merge.created_at,
                created_by=merge.created_by,
            )
        )

    def members(self, entity_id: UUID) -> tuple[UUID, ...]:
        merged = self.session.execute(
            select(entity_table.c.id).where(entity_table.c.merged_into == entity_id)
        ).scalars()
        return (entity_id, *sorted(merged, key=str))

    def merges(self) -> list[EntityMerge]:
        rows = self.session.execute(select(entity_merge_table).order_by(entity_merge_table.c.id))
        return [
            EntityMerge(
                entity_kind=row.entity_kind,
                source_id=row.source_id,
                target_id=row.target_id,
                reason=row.reason,
                created_at=row.created_at,
                created_by=row.created_by,
            )
            for row in rows
        ]

    def list_all(self, kind: EntityKind | None = None) -> list[Entity]:
        stmt = select(entity_table).order_by(entity_table.c.created_at, entity_table.c.id)
        if kind is not None:
            stmt = stmt.where(entity_table.c.kind == kind)
        return [self._load(row) for row in self.session.execute(stmt)]

    def _current_version(self, entity_id: UUID, key: FactKey) -> int:
        return self.session.execute(
            select(func.coalesce(func.max(fact_commit_table.c.version), 0))
            .where(fact_commit_table.c.entity_id == entity_id)
            .where(fact_commit_table.c.field == key.field)
            .where(fact_commit_table.c.scope == key.scope)
        ).scalar_one()

    def _load(self, row: Row[Any], *, with_history: bool = True) -> Entity:
        entity_cls = CLASS_BY_ENTITY_KIND[row.kind]
        aliases = self.session.execute(
            select(entity_alias_table.c.alias)
            .where(entity_alias_table.c.entity_id == row.id)
            .order_by(entity_alias_table.c.position)
        ).scalars()
        entity = entity_cls(
            id=row.id,
            name=row.name,
            normalized_key=row.normalized_key,
            aliases=list(aliases),
            created_at=row.created_at,
            merged_into=row.merged_into,
        )
        if with_history:
            commits = self.session.execute(
                select(fact_commit_table)
                .where(fact_commit_table.c.entity_id == row.id)
                .order_by(fact_commit_table.c.id)
            )
            for commit in commits:
                record = _record_from_row(commit)
                entity.history.append(record)
                current = entity.current_facts.get(record.key)
                if current is None or current.version < record.version:
                    entity.current_facts[record.key] = record
        return entity


def _record_from_row(row: Row[Any]) -> FactRecord:
    return FactRecord(
        key=FactKey(row.field, row.scope),
        value=decode_value(row.value),
        provenance=Provenance(
            claim_ids=tuple(UUID(item) for item in json.loads(row.claim_ids)),
            rule=row.rule,
            task_id=row.task_id,
        ),
        version=row.version,
        committed_at=row.committed_at,
    )


class SqlAlchemyClaimRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, claim: FactClaim) -> bool:
        if claim.entity_id is None:
            raise ValueError("Only resolved claims can be stored")
        fingerprint = claim.fingerprint()
        exists = self.session.execute(
            select(fact_claim_table.c.claim_id).where(
                fact_claim_table.c.fingerprint == fingerprint
            )
        ).one_or_none()
        if exists is not None:
            return False
        self.session.execute(
            insert(fact_claim_table).values(
                claim_id=claim.claim_id,
                entity_id=claim.entity_id,
                entity_kind=claim.entity_kind,
                entity_key=claim.entity_key,
                field=claim.key.field,
                scope=claim.key.scope,
                value=encode_value(claim.value),
                source_id=claim.source_id,
                source_kind=claim.source_kind,
                observed_at=claim.observed_at,
                ingested_at=claim.ingested_at,
                evidence=claim.evidence,
                fingerprint=fingerprint,
            )
        )
        return True

    def get(self, claim_id: UUID) -> FactClaim | None:
        row = self.session.execute(
            select(fact_claim_table).where(fact_claim_table.c.claim_id == claim_id)
        ).one_or_none()
        return None if row is None else _claim_from_row(row)

    def for_key(
        self,
        entity_ids: Collection[UUID],
        key: FactKey,
        *,
        include_settled: bool = False,
    ) -> list[FactClaim]:
        stmt = (
            select(fact_claim_table)
            .where(fact_claim_table.c.entity_id.in_(list(entity_ids)))
            .where(fact_claim_table.c.field == key.field)
            .where(fact_claim_table.c.scope == key.scope)
        )
        if not include_settled:
            stmt = stmt.where(
                fact_claim_table.c.claim_id.not_in(select(claim_settlement_table.c.claim_id))
            )
        return [_claim_from_row(row) for row in self.session.execute(stmt)]

    def keys_for(self, entity_ids: Collection[UUID]) -> set[FactKey]:
        rows = self.session.execute(
            select(fact_claim_table.c.field, fact_claim_table.c.scope)
            .where(fact_claim_table.c.entity_id.in_(list(entity_ids)))
            .distinct()
        )
        return {FactKey(row.field, row.scope) for row in rows}

    def settle(self, claim_ids: Collection[UUID], *, task_id: UUID | None) -> None:
        if not claim_ids:
            return
        settled = set(
            self.session.execute(
                select(claim_settlement_table.c.claim_id).where(
                    claim_settlement_table.c.claim_id.in_(list(claim_ids))
                )
            ).scalars()
        )
        for claim_id in claim_ids:
            if claim_id not in settled:
                self.session.execute(
                    insert(claim_settlement_table).values(claim_id=claim_id, task_id=task_id)
                )


def _claim_from_row(row: Row[Any]) -> FactClaim:
    return FactClaim(
        claim_id=row.claim_id,
        entity_id=row.entity_id,
        entity_kind=row.entity_kind,
        entity_key=row.entity_key,
        key=FactKey(row.field, row.scope),
        value=decode_value(row.value),
        source_id=row.source_id,
        source_kind=row.source_kind,
        observed_at=row.observed_at,
        ingested_at=row.ingested_at,
        evidence=row.evidence,
    )


class SqlAlchemyConflictRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, conflict_id: UUID) -> Conflict | None:
        row = self.session.execute(
            select(conflict_table).where(conflict_table.c.conflict_id == conflict_id)
        ).one_or_none()
        return None if row is None else self._load(row)

    def open_for(self, entity_id: UUID, key: FactKey) -> Conflict | None:
        row = self.session.execute(
            select(conflict_table).where(
                conflict_table.c.open_marker == _open_marker(entity_id, key)
            )
        ).one_or_none()
        return None if row is None else self._load(row)

    def add(self, conflict: Conflict) -> Conflict:
        existing = self.open_for(conflict.entity_id, conflict.key)
        if existing is not None:
            return existing
        self.session.execute(
            insert(conflict_table).values(
                conflict_id=conflict.conflict_id,
                entity_id=conflict.entity_id,
                field=conflict.key.field,
                scope=conflict.key.scope,
                status=conflict.status,
                detected_at=conflict.detected_at,
                resolved_at=conflict.resolved_at,
                open_marker=(
                    _open_marker(conflict.entity_id, conflict.key)
                    if conflict.is_open
                    else None
                ),
            )
        )
        self._insert_claims(conflict.conflict_id, conflict.contending_claims, start=0)
        return conflict

    def attach(self, conflict_id: UUID, claim_ids: Collection[UUID]) -> Conflict:
        conflict = self._require(conflict_id)
        updated = conflict.attached(tuple(claim_ids))
        added = updated.contending_claims[len(conflict.contending_claims) :]
        self._insert_claims(conflict_id, added, start=len(conflict.contending_claims))
        return updated

    def resolve(self, conflict_id: UUID, *, at: datetime) -> Conflict:
        updated = self._require(conflict_id).resolved(at)
        self.session.execute(
            update(conflict_table)
            .where(conflict_table.c.conflict_id == conflict_id)
            .values(status=updated.status, resolved_at=at, open_marker=None)
        )
        return updated

    def list_all(self, status: ConflictStatus | None = None) -> list[Conflict]:
        stmt = select(conflict_table).order_by(
            conflict_table.c.detected_at, conflict_table.c.conflict_id
        )
        if status is not None:
            stmt = stmt.where(conflict_table.c.status == status)
        return [self._load(row) for row in self.session.execute(stmt)]

    def _insert_claims(self, conflict_id: UUID, claim_ids: Collection[UUID], *, start: int) -> None:
        for offset, claim_id in enumerate(claim_ids):
            self.session.execute(
                insert(conflict_claim_table).values(
                    conflict_id=conflict_id, claim_id=claim_id, position=start + offset
                )
            )

    def _require(self, conflict_id: UUID) -> Conflict:
        conflict = self.get(conflict_id)
        if conflict is None:
            raise LookupError(f"Unknown conflict {conflict_id}")
        return conflict

    def _load(self, row: Row[Any]) -> Conflict:
        claims = self.session.execute(
            select(conflict_claim_table.c.claim_id)
            .where(conflict_claim_table.c.conflict_id == row.conflict_id)
            .order_by(conflict_claim_table.c.position)
        ).scalars()
        return Conflict(
            conflict_id=row.conflict_id,
            entity_id=row.entity_id,
            key=FactKey(row.field, row.scope),
            contending_claims=tuple(claims),
            detected_at=row.detected_at,
            status=row.status,
            resolved_at=row.resolved_at,
        )


class SqlAlchemyTaskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, task: VerificationTask) -> VerificationTask:
        existing = self.open_for(task.entity_id, task.key)
        if existing is not None:
            return existing
        self.session.execute(insert(verification_task_table).values(**_task_values(task)))
        return task

    def get(self, task_id: UUID) -> VerificationTask | None:
        row = self.session.execute(
            select(verification_task_table).where(verification_task_table.c.task_id == task_id)
        ).one_or_none()
        return None if row is None else _task_from_row(row)

    def open_for(self, entity_id: UUID, key: FactKey) -> VerificationTask | None:
        row = self.session.execute(
            select(verification_task_table).where(
                verification_task_table.c.open_marker == _open_marker(entity_id, key)
            )
        ).one_or_none()
        return None if row is None else _task_from_row(row)

    def transition(
        self,
        task_id: UUID,
        *,
        target: TaskStatus,
        update: Callable[[VerificationTask], VerificationTask],
    ) -> VerificationTask:
        current = self.get(task_id)
        if current is None:
            raise UnknownTaskError(f"Unknown task {task_id}")
        if not can_transition(current.status, target):
            raise InvalidTransitionError(task_id, current=current.status, target=target)
        updated = update(current)
        result = self.session.execute(
            _update_task(task_id, expected=current.status).values(**_task_values(updated))
        )
        if result.rowcount == 0:
            latest = self.get(task_id)
            raise InvalidTransitionError(
                task_id,
                current=current.status if latest is None else latest.status,
                target=target,
            )
        log.debug("Task %s: %s -> %s", task_id, current.status, updated.status)
        return updated

    def retarget(
        self,
        task_id: UUID,
        *,
        update: Callable[[VerificationTask], VerificationTask],
    ) -> VerificationTask:
        current = self.get(task_id)
        if current is None:
            raise UnknownTaskError(f"Unknown task {task_id}")
        if not current.is_open:
            raise InvalidTransitionError(task_id, current=current.status, target=current.status)
        updated = replace(update(current), status=current.status)
        result = self.session.execute(
            _update_task(task_id, expected=current.status).values(**_task_values(updated))
        )
        if result.rowcount == 0:
            latest = self.get(task_id)
            raise InvalidTransitionError(
                task_id,
                current=current.status if latest is None else latest.status,
                target=current.status,
            )
        log.debug("Task %s retargeted to %s %s", task_id, updated.kind, updated.subject_ref)
        return updated

    def query(
        self,
        *,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        kind: TaskKind | None = None,
        due_before: datetime | None = None,
    ) -> list[VerificationTask]:
        stmt = select(verification_task_table).order_by(
            verification_task_table.c.due_at, verification_task_table.c.task_id
        )
        if status is not None:
            stmt = stmt.where(verification_task_table.c.status == status)
        if priority is not None:
            stmt = stmt.where(verification_task_table.c.priority == priority)
        if kind is not None:
            stmt = stmt.where(verification_task_table.c.kind == kind)
        if due_before is not None:
            stmt = stmt.where(verification_task_table.c.due_at < due_before)
        return [_task_from_row(row) for row in self.session.execute(stmt)]


def _update_task(task_id: UUID, *, expected: TaskStatus) -> Update:
    return (
        update(verification_task_table)
        .where(verification_task_table.c.task_id == task_id)
        .where(verification_task_table.c.status == expected)
    )


def _task_values(task: VerificationTask) -> dict[str, object]:
    return {
        "task_id": task.task_id,
        "kind": task.kind,
        "subject_ref": task.subject_ref,
        "entity_id": task.entity_id,
        "field": task.key.field,
        "scope": task.key.scope,
        "priority": task.priority,
        "status": task.status,
        "created_at": task.created_at,
        "due_at": task.due_at,
        "assignee": task.assignee,
        "resolution_notes": task.resolution_notes,
        "chosen_value": None if task.chosen_value is None else encode_value(task.chosen_value),
        "resolved_at": task.resolved_at,
        "candidates": json.dumps([str(item) for item in task.candidates]),
        "open_marker": _open_marker(task.entity_id, task.key) if task.is_open else None,
    }


def _task_from_row(row: Row[Any]) -> VerificationTask:
    return VerificationTask(
        task_id=row.task_id,
        kind=row.kind,
        subject_ref=row.subject_ref,
        entity_id=row.entity_id,
        key=FactKey(row.field, row.scope),
        priority=row.priority,
        status=row.status,
        created_at=row.created_at,
        due_at=row.due_at,
        assignee=row.assignee,
        resolution_notes=row.resolution_notes,
        chosen_value=None if row.chosen_value is None else decode_value(row.chosen_value),
        resolved_at=row.resolved_at,
        candidates=tuple(UUID(item) for item in json.loads(row.candidates)),
    )
