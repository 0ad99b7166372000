"""The only writer of committed facts.

Commits append a new versioned record; earlier history is never edited.
Re-applying the same value with the same provenance is a no-op, and a commit
made against an outdated version raises ``StaleCommitError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fundrecon.domain.errors import StaleCommitError, UnknownEntityError
from fundrecon.domain.model import FactRecord

from .values import describe_value

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from uuid import UUID

    from fundrecon.domain.model import Entity, FactKey, FactValue, Provenance
    from fundrecon.domain.ports import EntityRepository


log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommitResult:
    record: FactRecord
    created: bool


@dataclass(slots=True)
class ReconciliationCommitter:
    clock: Callable[[], datetime]

    def commit(
        self,
        entities: EntityRepository,
        entity_id: UUID,
        key: FactKey,
        value: FactValue,
        provenance: Provenance,
        *,
        expected_version: int | None = None,
    ) -> CommitResult:
        entity = canonical_entity(entities, entity_id)
        for record in entity.history:
            if record.key == key and record.same_commit(value, provenance):
                log.debug("Commit for %s %s already applied at v%d", entity.id, key, record.version)
                return CommitResult(record=record, created=False)

        current = entity.version_of(key)
        if expected_version is not None and expected_version != current:
            raise StaleCommitError(entity.id, key, expected=expected_version, actual=current)

        record = FactRecord(
            key=key,
            value=value,
            provenance=provenance,
            version=current + 1,
            committed_at=self.clock(),
        )
        entities.append_fact(entity.id, record, expected_version=current)
        log.info(
            "Committed %s %s = %s (v%d, %s)",
            entity.id,
            key,
            describe_value(value),
            record.version,
            provenance.rule,
        )
        return CommitResult(record=record, created=True)


def canonical_entity(entities: EntityRepository, entity_id: UUID) -> Entity:
    entity = entities.get(entity_id)
    if entity is None:
        raise UnknownEntityError(f"Unknown entity {entity_id}")
    if not entity.is_canonical:
        target = entities.get(entity.resolved_id)
        if target is None:
            raise UnknownEntityError(f"Unknown merge target {entity.resolved_id}")
        return target
    return entity
