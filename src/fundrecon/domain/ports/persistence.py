"""Persistence ports for entities, claims, conflicts and verification tasks.

Repositories return detached copies of domain objects; callers mutate state only
through the methods below so that adapters can enforce the append-only and
one-open-task-per-key invariants.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable, Collection
    from datetime import datetime
    from uuid import UUID

    from fundrecon.domain.model import (
        Conflict,
        ConflictStatus,
        Entity,
        EntityKind,
        EntityMerge,
        FactKey,
        FactRecord,
        TaskKind,
        TaskPriority,
        TaskStatus,
        VerificationTask,
    )
    from fundrecon.domain.reconciliation.claims import FactClaim


class EntityRepository(Protocol):
    def get(self, entity_id: UUID) -> Entity | None: ...

    def find_by_key(self, kind: EntityKind, normalized_key: str) -> Entity | None: ...

    def find_by_alias(self, kind: EntityKind, normalized_alias: str) -> list[Entity]:
        """Entities owning an alias whose normalized form equals ``normalized_alias``."""
        ...

    def candidates(self, kind: EntityKind) -> list[Entity]:
        """Canonical (unmerged) entities of ``kind`` for fuzzy matching."""
        ...

    def add(self, entity: Entity) -> None: ...

    def add_alias(self, entity_id: UUID, alias: str) -> None: ...

    def append_fact(self, entity_id: UUID, record: FactRecord, *, expected_version: int) -> None:
        """Append ``record`` to history and make it current.

        Raises ``StaleCommitError`` when the current version of the key is not
        ``expected_version``.
        """
        ...

    def merge(self, merge: EntityMerge) -> None: ...

    def members(self, entity_id: UUID) -> tuple[UUID, ...]:
        """The entity itself plus every entity soft-merged into it."""
        ...

    def merges(self) -> list[EntityMerge]: ...

    def list_all(self, kind: EntityKind | None = None) -> list[Entity]: ...


class ClaimRepository(Protocol):
    def add(self, claim: FactClaim) -> bool:
        """Store a resolved claim; return ``False`` if an identical observation exists."""
        ...

    def get(self, claim_id: UUID) -> FactClaim | None: ...

    def for_key(
        self,
        entity_ids: Collection[UUID],
        key: FactKey,
        *,
        include_settled: bool = False,
    ) -> list[FactClaim]: ...

    def keys_for(self, entity_ids: Collection[UUID]) -> set[FactKey]: ...

    def settle(self, claim_ids: Collection[UUID], *, task_id: UUID | None) -> None:
        """Exclude claims from future detection; they remain stored."""
        ...


class ConflictRepository(Protocol):
    def get(self, conflict_id: UUID) -> Conflict | None: ...

    def open_for(self, entity_id: UUID, key: FactKey) -> Conflict | None: ...

    def add(self, conflict: Conflict) -> Conflict:
        """Store ``conflict`` unless one is already open for its key; return the open one."""
        ...

    def attach(self, conflict_id: UUID, claim_ids: Collection[UUID]) -> Conflict: ...

    def resolve(self, conflict_id: UUID, *, at: datetime) -> Conflict: ...

    def list_all(self, status: ConflictStatus | None = None) -> list[Conflict]: ...


class TaskRepository(Protocol):
    def add(self, task: VerificationTask) -> VerificationTask:
        """Store ``task`` unless one is already open for its key; return the open one."""
        ...

    def get(self, task_id: UUID) -> VerificationTask | None: ...

    def open_for(self, entity_id: UUID, key: FactKey) -> VerificationTask | None: ...

    def transition(
        self,
        task_id: UUID,
        *,
        target: TaskStatus,
        update: Callable[[VerificationTask], VerificationTask],
    ) -> VerificationTask:
        """Atomically move a task to ``target`` applying ``update``.

        Raises ``UnknownTaskError`` for missing tasks and ``InvalidTransitionError``
        when the stored status does not allow ``target`` at write time.
        """
        ...

    def retarget(
        self,
        task_id: UUID,
        *,
        update: Callable[[VerificationTask], VerificationTask],
    ) -> VerificationTask:
        """Rewrite the subject of an open task in place, keeping its status.

        Raises ``InvalidTransitionError`` when the task is no longer open.
        """
        ...

    def query(
        self,
        *,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        kind: TaskKind | None = None,
        due_before: datetime | None = None,
    ) -> list[VerificationTask]: ...
