"""Conflict detection over the live claims of one (entity, key).

Live claims are the latest unsettled claim per source, gathered across the
entity and everything soft-merged into it. Evaluation either commits, opens a
review (conflict or low-confidence task), attaches to an open conflict, or
holds while a review is pending. A pending low-confidence review gives way
once a second source reports: agreement commits and closes it, disagreement
turns it into a conflict review. Callers hold the entity lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from itertools import combinations
from typing import TYPE_CHECKING

from fundrecon.domain.model import (
    PRIORITY_RANK,
    CommitRule,
    Conflict,
    Provenance,
    TaskKind,
    TaskStatus,
    VerificationTask,
)

from .claims import observation_order
from .commit import canonical_entity
from .compare import values_agree
from .vocabulary import priority_for

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime
    from uuid import UUID

    from fundrecon.config import ReconciliationPolicy
    from fundrecon.domain.model import FactKey, FactRecord
    from fundrecon.domain.ports import ReconciliationRepositories

    from .claims import FactClaim
    from .commit import ReconciliationCommitter
    from .scoring import ConfidenceScorer


log = logging.getLogger(__name__)


class EvaluationOutcome(StrEnum):
    COMMITTED = "committed"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"
    LOW_CONFIDENCE = "low_confidence"
    ATTACHED = "attached"
    HELD = "held"
    EMPTY = "empty"


@dataclass(frozen=True, slots=True)
class Evaluation:
    entity_id: UUID
    key: FactKey
    outcome: EvaluationOutcome
    record: FactRecord | None = None
    conflict: Conflict | None = None
    task: VerificationTask | None = None


@dataclass(slots=True)
class ConflictDetector:
    policy: ReconciliationPolicy
    scorer: ConfidenceScorer
    committer: ReconciliationCommitter
    clock: Callable[[], datetime]

    def live_claims(
        self, repositories: ReconciliationRepositories, entity_id: UUID, key: FactKey
    ) -> list[FactClaim]:
        members = repositories.entities.members(entity_id)
        latest: dict[str, FactClaim] = {}
        for claim in sorted(repositories.claims.for_key(members, key), key=observation_order):
            latest[claim.source_id] = claim
        return [latest[source_id] for source_id in sorted(latest)]

    def evaluate(
        self, repositories: ReconciliationRepositories, entity_id: UUID, key: FactKey
    ) -> Evaluation:
        entity = canonical_entity(repositories.entities, entity_id)
        live = self.live_claims(repositories, entity.id, key)

        conflict = repositories.conflicts.open_for(entity.id, key)
        if conflict is not None:
            return self._attach(repositories, conflict, live)
        review = repositories.tasks.open_for(entity.id, key)
        if review is not None and (review.kind is not TaskKind.LOW_CONFIDENCE or len(live) < 2):
            log.debug("Holding %s %s while review %s is open", entity.id, key, review.task_id)
            return Evaluation(entity.id, key, EvaluationOutcome.HELD, task=review)
        if not live:
            return Evaluation(entity.id, key, EvaluationOutcome.EMPTY)

        as_of = self.clock()
        if len(live) == 1:
            return self._single(repositories, entity.id, key, live[0], as_of=as_of)
        if self._all_agree(key, live):
            evaluation = self._agreement(repositories, entity.id, key, live, as_of=as_of)
            if review is None:
                return evaluation
            closed = self._close_corroborated(repositories, review, live, as_of=as_of)
            return replace(evaluation, task=closed)
        return self._open_conflict(repositories, entity.id, key, live, as_of=as_of, review=review)

    def _attach(
        self,
        repositories: ReconciliationRepositories,
        conflict: Conflict,
        live: list[FactClaim],
    ) -> Evaluation:
        contending = [
            claim
            for claim_id in conflict.contending_claims
            if (claim := repositories.claims.get(claim_id)) is not None
        ]
        newcomers = [
            claim.claim_id
            for claim in live
            if claim.claim_id not in conflict.contending_claims
            and any(not self._agree(conflict.key, claim, other) for other in contending)
        ]
        if not newcomers:
            return Evaluation(
                conflict.entity_id, conflict.key, EvaluationOutcome.HELD, conflict=conflict
            )
        updated = repositories.conflicts.attach(conflict.conflict_id, newcomers)
        log.info("Attached %d claim(s) to open conflict %s", len(newcomers), conflict.conflict_id)
        return Evaluation(
            conflict.entity_id, conflict.key, EvaluationOutcome.ATTACHED, conflict=updated
        )

    def _single(
        self,
        repositories: ReconciliationRepositories,
        entity_id: UUID,
        key: FactKey,
        claim: FactClaim,
        *,
        as_of: datetime,
    ) -> Evaluation:
        confidence = self.scorer.score(claim, (), as_of=as_of)
        if confidence >= self.policy.auto_accept_threshold:
            return self._commit(
                repositories,
                entity_id,
                key,
                claim,
                Provenance.of([claim.claim_id], rule=CommitRule.AUTO_SINGLE),
            )
        priority = priority_for(key)
        task = repositories.tasks.add(
            VerificationTask(
                kind=TaskKind.LOW_CONFIDENCE,
                subject_ref=claim.claim_id,
                entity_id=entity_id,
                key=key,
                priority=priority,
                created_at=as_of,
                due_at=as_of + self.policy.sla.due_after(priority),
            )
        )
        log.info(
            "Queued low-confidence review %s for %s %s (confidence %.3f)",
            task.task_id,
            entity_id,
            key,
            confidence,
        )
        return Evaluation(entity_id, key, EvaluationOutcome.LOW_CONFIDENCE, task=task)

    def _agreement(
        self,
        repositories: ReconciliationRepositories,
        entity_id: UUID,
        key: FactKey,
        live: list[FactClaim],
        *,
        as_of: datetime,
    ) -> Evaluation:
        winner = max(
            live,
            key=lambda claim: (
                self.scorer.score(claim, live, as_of=as_of),
                claim.observed_at,
                claim.source_id,
            ),
        )
        return self._commit(
            repositories,
            entity_id,
            key,
            winner,
            Provenance.of([claim.claim_id for claim in live], rule=CommitRule.AUTO_AGREEMENT),
        )

    def _open_conflict(
        self,
        repositories: ReconciliationRepositories,
        entity_id: UUID,
        key: FactKey,
        live: list[FactClaim],
        *,
        as_of: datetime,
        review: VerificationTask | None = None,
    ) -> Evaluation:
        conflict = repositories.conflicts.add(
            Conflict(
                entity_id=entity_id,
                key=key,
                contending_claims=tuple(claim.claim_id for claim in live),
                detected_at=as_of,
            )
        )
        priority = priority_for(key)
        due_at = as_of + self.policy.sla.due_after(priority)
        if review is None:
            task = repositories.tasks.add(
                VerificationTask(
                    kind=TaskKind.CONFLICT,
                    subject_ref=conflict.conflict_id,
                    entity_id=entity_id,
                    key=key,
                    priority=priority,
                    created_at=as_of,
                    due_at=due_at,
                )
            )
        else:
            task = repositories.tasks.retarget(
                review.task_id,
                update=lambda current: replace(
                    current,
                    kind=TaskKind.CONFLICT,
                    subject_ref=conflict.conflict_id,
                    priority=min(current.priority, priority, key=PRIORITY_RANK.__getitem__),
                    due_at=min(current.due_at, due_at),
                ),
            )
            log.info("Review %s on %s %s became a conflict review", task.task_id, entity_id, key)
        log.info(
            "Conflict %s on %s %s between %d sources; task %s (%s)",
            conflict.conflict_id,
            entity_id,
            key,
            len(live),
            task.task_id,
            priority,
        )
        return Evaluation(entity_id, key, EvaluationOutcome.CONFLICT, conflict=conflict, task=task)

    def _commit(
        self,
        repositories: ReconciliationRepositories,
        entity_id: UUID,
        key: FactKey,
        winner: FactClaim,
        provenance: Provenance,
    ) -> Evaluation:
        entity = canonical_entity(repositories.entities, entity_id)
        current = entity.current_facts.get(key)
        if current is not None and current.covers(winner.value, provenance.claim_ids):
            return Evaluation(entity_id, key, EvaluationOutcome.UNCHANGED, record=current)
        result = self.committer.commit(
            repositories.entities,
            entity_id,
            key,
            winner.value,
            provenance,
            expected_version=entity.version_of(key),
        )
        return Evaluation(entity_id, key, EvaluationOutcome.COMMITTED, record=result.record)

    def _close_corroborated(
        self,
        repositories: ReconciliationRepositories,
        review: VerificationTask,
        live: list[FactClaim],
        *,
        as_of: datetime,
    ) -> VerificationTask:
        sources = ", ".join(claim.source_id for claim in live)
        closed = repositories.tasks.transition(
            review.task_id,
            target=TaskStatus.VERIFIED,
            update=lambda current: replace(
                current,
                status=TaskStatus.VERIFIED,
                resolution_notes=f"Corroborated by {sources}",
                resolved_at=as_of,
            ),
        )
        log.info("Closed review %s: corroborated by %s", review.task_id, sources)
        return closed

    def _all_agree(self, key: FactKey, claims: Iterable[FactClaim]) -> bool:
        return all(self._agree(key, left, right) for left, right in combinations(claims, 2))

    def _agree(self, key: FactKey, left: FactClaim, right: FactClaim) -> bool:
        return values_agree(
            key.field, left.value, right.value, money_tolerance=self.policy.money_tolerance
        )
