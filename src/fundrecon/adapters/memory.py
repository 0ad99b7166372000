"""In-memory persistence adapter.

All repositories of one :class:`InMemoryStore` share a re-entrant lock, hand out
copies, and write through immediately; ``commit`` and ``rollback`` only record
that they were called. Intended for tests and single-process runs.
"""

from __future__ import annotations

import threading
from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Literal

from fundrecon.domain.errors import (
    InvalidTransitionError,
    StaleCommitError,
    UnknownEntityError,
    UnknownTaskError,
)
from fundrecon.domain.model import (
    Conflict,
    Entity,
    EntityMerge,
    VerificationTask,
    can_transition,
)
from fundrecon.domain.ports import ReconciliationRepositories
from fundrecon.domain.reconciliation.names import normalize_name

if TYPE_CHECKING:
    from collections.abc import Callable, Collection
    from datetime import datetime
    from types import TracebackType
    from uuid import UUID

    from fundrecon.domain.model import (
        ConflictStatus,
        EntityKind,
        FactKey,
        FactRecord,
        TaskKind,
        TaskPriority,
        TaskStatus,
    )
    from fundrecon.domain.reconciliation.claims import FactClaim


@dataclass(slots=True)
class InMemoryStore:
    lock: threading.RLock = field(default_factory=threading.RLock)
    entities: dict[UUID, Entity] = field(default_factory=dict["UUID", Entity])
    merges: list[EntityMerge] = field(default_factory=list[EntityMerge])
    claims: dict[UUID, FactClaim] = field(default_factory=dict["UUID", "FactClaim"])
    fingerprints: set[str] = field(default_factory=set[str])
    settled: dict[UUID, UUID | None] = field(default_factory=dict["UUID", "UUID | None"])
    conflicts: dict[UUID, Conflict] = field(default_factory=dict["UUID", Conflict])
    tasks: dict[UUID, VerificationTask] = field(default_factory=dict["UUID", VerificationTask])


class InMemoryEntityRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get(self, entity_id: UUID) -> Entity | None:
        with self._store.lock:
            entity = self._store.entities.get(entity_id)
            return None if entity is None else deepcopy(entity)

    def find_by_key(self, kind: EntityKind, normalized_key: str) -> Entity | None:
        with self._store.lock:
            for entity in self._store.entities.values():
                if entity.kind is kind and entity.normalized_key == normalized_key:
                    return deepcopy(entity)
        return None

    def find_by_alias(self, kind: EntityKind, normalized_alias: str) -> list[Entity]:
        with self._store.lock:
            return [
                deepcopy(entity)
                for entity in self._store.entities.values()
                if entity.kind is kind
                and any(normalize_name(alias) == normalized_alias for alias in entity.aliases)
            ]

    def candidates(self, kind: EntityKind) -> list[Entity]:
        with self._store.lock:
            return [
                deepcopy(entity)
                for entity in self._store.entities.values()
                if entity.kind is kind and entity.is_canonical
            ]

    def add(self, entity: Entity) -> None:
        with self._store.lock:
            self._store.entities[entity.id] = deepcopy(entity)

    def add_alias(self, entity_id: UUID, alias: str) -> None:
        with self._store.lock:
            entity = self._require(entity_id)
            if alias not in entity.aliases:
                entity.aliases.append(alias)

    def append_fact(self, entity_id: UUID, record: FactRecord, *, expected_version: int) -> None:
        with self._store.lock:
            entity = self._require(entity_id)
            current = entity.version_of(record.key)
            if current != expected_version:
                raise StaleCommitError(
                    entity_id, record.key, expected=expected_version, actual=current
                )
            entity.history.append(record)
            entity.current_facts[record.key] = record

    def merge(self, merge: EntityMerge) -> None:
        with self._store.lock:
            source = self._require(merge.source_id)
            self._require(merge.target_id)
            source.merged_into = merge.target_id
            for entity in self._store.entities.values():
                if entity.merged_into == merge.source_id:
                    entity.merged_into = merge.target_id
            self._store.merges.append(merge)

    def members(self, entity_id: UUID) -> tuple[UUID, ...]:
        with self._store.lock:
            merged = sorted(
                (
                    entity.id
                    for entity in self._store.entities.values()
                    if entity.merged_into == entity_id
                ),
                key=str,
            )
            return (entity_id, *merged)

    def merges(self) -> list[EntityMerge]:
        with self._store.lock:
            return list(self._store.merges)

    def list_all(self, kind: EntityKind | None = None) -> list[Entity]:
        with self._store.lock:
            entities = [
                deepcopy(entity)
                for entity in self._store.entities.values()
                if kind is None or entity.kind is kind
            ]
        return sorted(entities, key=lambda entity: (entity.created_at, str(entity.id)))

    def _require(self, entity_id: UUID) -> Entity:
        entity = self._store.entities.get(entity_id)
        if entity is None:
            raise UnknownEntityError(f"Unknown entity {entity_id}")
        return entity


class InMemoryClaimRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add(self, claim: FactClaim) -> bool:
        fingerprint = claim.fingerprint()
        with self._store.lock:
            if fingerprint in self._store.fingerprints:
                return False
            self._store.fingerprints.add(fingerprint)
            self._store.claims[claim.claim_id] = claim
            return True

    def get(self, claim_id: UUID) -> FactClaim | None:
        with self._store.lock:
            return self._store.claims.get(claim_id)

    def for_key(
        self,
        entity_ids: Collection[UUID],
        key: FactKey,
        *,
        include_settled: bool = False,
    ) -> list[FactClaim]:
        with self._store.lock:
            return [
                claim
                for claim in self._store.claims.values()
                if claim.entity_id in entity_ids
                and claim.key == key
                and (include_settled or claim.claim_id not in self._store.settled)
            ]

    def keys_for(self, entity_ids: Collection[UUID]) -> set[FactKey]:
        with self._store.lock:
            return {
                claim.key for claim in self._store.claims.values() if claim.entity_id in entity_ids
            }

    def settle(self, claim_ids: Collection[UUID], *, task_id: UUID | None) -> None:
        with self._store.lock:
            for claim_id in claim_ids:
                self._store.settled.setdefault(claim_id, task_id)


class InMemoryConflictRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get(self, conflict_id: UUID) -> Conflict | None:
        with self._store.lock:
            return self._store.conflicts.get(conflict_id)

    def open_for(self, entity_id: UUID, key: FactKey) -> Conflict | None:
        with self._store.lock:
            for conflict in self._store.conflicts.values():
                if conflict.entity_id == entity_id and conflict.key == key and conflict.is_open:
                    return conflict
        return None

    def add(self, conflict: Conflict) -> Conflict:
        with self._store.lock:
            existing = self.open_for(conflict.entity_id, conflict.key)
            if existing is not None:
                return existing
            self._store.conflicts[conflict.conflict_id] = conflict
            return conflict

    def attach(self, conflict_id: UUID, claim_ids: Collection[UUID]) -> Conflict:
        with self._store.lock:
            updated = self._require(conflict_id).attached(tuple(claim_ids))
            self._store.conflicts[conflict_id] = updated
            return updated

    def resolve(self, conflict_id: UUID, *, at: datetime) -> Conflict:
        with self._store.lock:
            updated = self._require(conflict_id).resolved(at)
            self._store.conflicts[conflict_id] = updated
            return updated

    def list_all(self, status: ConflictStatus | None = None) -> list[Conflict]:
        with self._store.lock:
            conflicts = [
                conflict
                for conflict in self._store.conflicts.values()
                if status is None or conflict.status is status
            ]
        return sorted(conflicts, key=lambda item: (item.detected_at, str(item.conflict_id)))

    def _require(self, conflict_id: UUID) -> Conflict:
        conflict = self._store.conflicts.get(conflict_id)
        if conflict is None:
            raise LookupError(f"Unknown conflict {conflict_id}")
        return conflict


class InMemoryTaskRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add(self, task: VerificationTask) -> VerificationTask:
        with self._store.lock:
            existing = self.open_for(task.entity_id, task.key)
            if existing is not None:
                return existing
            self._store.tasks[task.task_id] = task
            return task

    def get(self, task_id: UUID) -> VerificationTask | None:
        with self._store.lock:
            return self._store.tasks.get(task_id)

    def open_for(self, entity_id: UUID, key: FactKey) -> VerificationTask | None:
        with self._store.lock:
            for task in self._store.tasks.values():
                if task.entity_id == entity_id and task.key == key and task.is_open:
                    return task
        return None

    def transition(
        self,
        task_id: UUID,
        *,
        target: TaskStatus,
        update: Callable[[VerificationTask], VerificationTask],
    ) -> VerificationTask:
        with self._store.lock:
            current = self._store.tasks.get(task_id)
            if current is None:
                raise UnknownTaskError(f"Unknown task {task_id}")
            if not can_transition(current.status, target):
                raise InvalidTransitionError(task_id, current=current.status, target=target)
            updated = update(current)
            self._store.tasks[task_id] = updated
            return updated

    def retarget(
        self,
        task_id: UUID,
        *,
        update: Callable[[VerificationTask], VerificationTask],
    ) -> VerificationTask:
        with self._store.lock:
            current = self._store.tasks.get(task_id)
            if current is None:
                raise UnknownTaskError(f"Unknown task {task_id}")
            if not current.is_open:
                raise InvalidTransitionError(task_id, current=current.status, target=current.status)
            updated = replace(update(current), status=current.status)
            self._store.tasks[task_id] = updated
            return updated

    def query(
        self,
        *,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        kind: TaskKind | None = None,
        due_before: datetime | None = None,
    ) -> list[VerificationTask]:
        with self._store.lock:
            return [
                task
                for task in self._store.tasks.values()
                if (status is None or task.status is status)
                and (priority is None or task.priority is priority)
                and (kind is None or task.kind is kind)
                and (due_before is None or task.due_at < due_before)
            ]


class InMemoryUnitOfWork:
    """Unit of work over a shared :class:`InMemoryStore`."""

    def __init__(self, store: InMemoryStore | None = None) -> None:
        self.store = store or InMemoryStore()
        self._repositories = ReconciliationRepositories(
            entities=InMemoryEntityRepository(self.store),
            claims=InMemoryClaimRepository(self.store),
            conflicts=InMemoryConflictRepository(self.store),
            tasks=InMemoryTaskRepository(self.store),
        )
        self.committed = False
        self.rollback_called = False

    @property
    def repositories(self) -> ReconciliationRepositories:
        return self._repositories

    def __enter__(self) -> InMemoryUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        return False

    def commit(self) -> None:
        self.committed = True

    def rollback(self) -> None:
        self.rollback_called = True


def in_memory_uow_factory(store: InMemoryStore | None = None) -> Callable[[], InMemoryUnitOfWork]:
    shared = store or InMemoryStore()

    def factory() -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(shared)

    return factory
