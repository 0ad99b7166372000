"""Entity resolution: map an observed name onto a canonical entity.

Matching runs in three passes, most specific first:
1. exact normalized key
2. exact normalized alias
3. fuzzy similarity (``rapidfuzz`` token-sort ratio) above the policy floor

A fuzzy match whose runner-up is within the ambiguity margin is not guessed:
a provisional entity is created and an identity task is queued for review.
Callers serialize ``resolve`` per entity kind (see ``ReconciliationEngine``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rapidfuzz import fuzz

from fundrecon.domain.errors import AmbiguousIdentityError
from fundrecon.domain.model import (
    FactField,
    FactKey,
    TaskKind,
    TaskPriority,
    VerificationTask,
    new_entity,
)

from .names import normalize_name

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from fundrecon.config import ReconciliationPolicy
    from fundrecon.domain.model import Entity, EntityKind
    from fundrecon.domain.ports import ReconciliationRepositories


log = logging.getLogger(__name__)

IDENTITY_KEY = FactKey(FactField.IDENTITY)


@dataclass(frozen=True, slots=True)
class Resolution:
    entity: Entity
    matched_by: str
    score: float
    created: bool = False
    identity_task: VerificationTask | None = None

    @property
    def is_provisional(self) -> bool:
        return self.identity_task is not None


@dataclass(slots=True)
class EntityResolver:
    policy: ReconciliationPolicy
    clock: Callable[[], datetime]

    def resolve(
        self, name: str, kind: EntityKind, repositories: ReconciliationRepositories
    ) -> Resolution:
        normalized = normalize_name(name)
        if not normalized:
            raise ValueError(f"Cannot resolve blank name {name!r}")
        entities = repositories.entities

        exact = entities.find_by_key(kind, normalized)
        if exact is not None:
            return self._matched(exact, name, "key", 1.0, repositories)

        by_alias = _canonical_unique(repositories, entities.find_by_alias(kind, normalized))
        if len(by_alias) == 1:
            return self._matched(by_alias[0], name, "alias", 1.0, repositories)

        try:
            if len(by_alias) > 1:
                raise AmbiguousIdentityError(
                    name, kind, candidates=tuple(entity.id for entity in by_alias), score=1.0
                )
            match = self._fuzzy_match(name, normalized, kind, repositories)
        except AmbiguousIdentityError as exc:
            log.info("%s", exc)
            return self._provisional(name, normalized, kind, exc, repositories)

        if match is not None:
            entity, score = match
            return self._matched(entity, name, "fuzzy", score, repositories)

        entity = new_entity(kind, name=name, normalized_key=normalized)
        entities.add(entity)
        log.info("Created %s %s for %r", kind, entity.id, name)
        return Resolution(entity=entity, matched_by="new", score=1.0, created=True)

    def _fuzzy_match(
        self,
        name: str,
        normalized: str,
        kind: EntityKind,
        repositories: ReconciliationRepositories,
    ) -> tuple[Entity, float] | None:
        scored = sorted(
            (
                (_similarity(normalized, candidate), candidate)
                for candidate in repositories.entities.candidates(kind)
            ),
            key=lambda item: (-item[0], str(item[1].id)),
        )
        above_floor = [item for item in scored if item[0] >= self.policy.similarity_floor]
        if not above_floor:
            return None
        best_score, best = above_floor[0]
        rivals = [
            candidate
            for score, candidate in above_floor[1:]
            if best_score - score <= self.policy.ambiguity_margin
        ]
        if rivals:
            raise AmbiguousIdentityError(
                name,
                kind,
                candidates=(best.id, *(candidate.id for candidate in rivals)),
                score=best_score,
            )
        return best, best_score

    def _matched(
        self,
        entity: Entity,
        name: str,
        matched_by: str,
        score: float,
        repositories: ReconciliationRepositories,
    ) -> Resolution:
        if not entity.is_canonical:
            canonical = repositories.entities.get(entity.resolved_id)
            if canonical is not None:
                entity = canonical
        if not entity.has_alias(name):
            repositories.entities.add_alias(entity.id, name)
            entity.aliases.append(name)
            log.debug("Recorded alias %r for %s", name, entity.id)
        return Resolution(entity=entity, matched_by=matched_by, score=score)

    def _provisional(
        self,
        name: str,
        normalized: str,
        kind: EntityKind,
        error: AmbiguousIdentityError,
        repositories: ReconciliationRepositories,
    ) -> Resolution:
        entity = new_entity(kind, name=name, normalized_key=normalized)
        repositories.entities.add(entity)
        now = self.clock()
        task = repositories.tasks.add(
            VerificationTask(
                kind=TaskKind.LOW_CONFIDENCE,
                subject_ref=entity.id,
                entity_id=entity.id,
                key=IDENTITY_KEY,
                priority=TaskPriority.MEDIUM,
                created_at=now,
                due_at=now + self.policy.sla.due_after(TaskPriority.MEDIUM),
                candidates=error.candidates,
            )
        )
        log.info("Queued identity review %s for provisional %s %r", task.task_id, kind, name)
        return Resolution(
            entity=entity,
            matched_by="provisional",
            score=error.score,
            created=True,
            identity_task=task,
        )


def _similarity(normalized: str, candidate: Entity) -> float:
    names = {candidate.normalized_key, *(normalize_name(alias) for alias in candidate.aliases)}
    return max(fuzz.token_sort_ratio(normalized, other) for other in names) / 100.0


def _canonical_unique(
    repositories: ReconciliationRepositories, entities: list[Entity]
) -> list[Entity]:
    seen: dict[str, Entity] = {}
    for entity in entities:
        canonical = entity
        if not entity.is_canonical:
            canonical = repositories.entities.get(entity.resolved_id) or entity
        seen.setdefault(str(canonical.id), canonical)
    return [seen[key] for key in sorted(seen)]
