"""Reconciliation engine: orchestrates normalize -> resolve -> store -> evaluate.

Each stage runs in its own unit of work. Entity resolution is serialized per
entity kind and everything touching one entity's claims, reviews or facts is
serialized per entity, so different entities reconcile in parallel.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from fundrecon.domain.errors import IncompleteResolutionError
from fundrecon.domain.model import (
    CommitRule,
    EntityKind,
    EntityMerge,
    MergeReason,
    Provenance,
    SourceKind,
    TaskKind,
    TaskStatus,
    ValueKind,
)

from .claims import FactClaim
from .commit import ReconciliationCommitter, canonical_entity
from .detect import ConflictDetector, Evaluation, EvaluationOutcome
from .locks import KeyedLock
from .names import normalize_name
from .normalize import DefaultFactNormalizer
from .resolve import IDENTITY_KEY, EntityResolver, Resolution
from .scoring import REVIEWER_SOURCE_ID, ConfidenceScorer, SourceRegistry
from .values import describe_value
from .vocabulary import coerce_value, spec_for

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator
    from contextlib import AbstractContextManager

    from fundrecon.config import ReconciliationPolicy
    from fundrecon.domain.errors import MalformedRecordError
    from fundrecon.domain.model import FactKey, FactValue, VerificationTask
    from fundrecon.domain.ports import ReconciliationRepositories, ReconciliationUnitOfWork

    from .normalize import FactNormalizer
    from .records import RawRecord


log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class IngestReport:
    """Summary of one ingestion run."""

    records_seen: int = 0
    claims_stored: int = 0
    duplicates: int = 0
    entities_created: int = 0
    provisional_entities: int = 0
    malformed: list[MalformedRecordError] = field(default_factory=list["MalformedRecordError"])
    dropped_fields: Counter[str] = field(default_factory=Counter[str])
    outcomes: Counter[EvaluationOutcome] = field(default_factory=Counter[EvaluationOutcome])

    def merge(self, other: IngestReport) -> None:
        self.records_seen += other.records_seen
        self.claims_stored += other.claims_stored
        self.duplicates += other.duplicates
        self.entities_created += other.entities_created
        self.provisional_entities += other.provisional_entities
        self.malformed.extend(other.malformed)
        self.dropped_fields.update(other.dropped_fields)
        self.outcomes.update(other.outcomes)


class ReconciliationEngine:
    def __init__(
        self,
        uow_factory: Callable[[], ReconciliationUnitOfWork],
        *,
        policy: ReconciliationPolicy,
        sources: SourceRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
        normalizer: FactNormalizer | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.policy = policy
        self.clock = clock
        self.normalizer: FactNormalizer = normalizer or DefaultFactNormalizer(clock=clock)
        self.scorer = ConfidenceScorer(policy=policy, sources=sources or SourceRegistry())
        self.committer = ReconciliationCommitter(clock=clock)
        self.detector = ConflictDetector(
            policy=policy, scorer=self.scorer, committer=self.committer, clock=clock
        )
        self.resolver = EntityResolver(policy=policy, clock=clock)
        self._locks = KeyedLock()

    # ----------------------------------------------------------------- locking

    def entity_lock(self, entity_id: UUID) -> AbstractContextManager[None]:
        return self._locks.hold(("entity", entity_id))

    def _kind_lock(self, kind: EntityKind) -> AbstractContextManager[None]:
        return self._locks.hold(("resolve", kind))

    # --------------------------------------------------------------- ingestion

    def ingest(self, record: RawRecord) -> IngestReport:
        return self.ingest_batch((record,))

    def ingest_batch(self, records: Iterable[RawRecord]) -> IngestReport:
        normalized = self.normalizer.normalize_batch(records)
        report = IngestReport(
            records_seen=normalized.records_seen,
            malformed=list(normalized.malformed),
            dropped_fields=Counter(normalized.dropped_fields),
        )
        for claim in normalized.claims:
            self._ingest_claim(claim, report)
        log.info(
            "Ingested %d records: %d claims stored, %d duplicates, outcomes %s",
            report.records_seen,
            report.claims_stored,
            report.duplicates,
            dict(report.outcomes),
        )
        return report

    def _ingest_claim(self, claim: FactClaim, report: IngestReport) -> None:
        resolution = self.resolve_entity(claim.entity_key, claim.entity_kind)
        _count_resolution(resolution, report)
        value = claim.value
        if spec_for(claim.fact_field).value_kind is ValueKind.INVESTOR_SET:
            value = self._resolve_investors(claim.value, report)
        bound = claim.resolved_to(resolution.entity.id, value=value)

        with self.entity_lock(resolution.entity.id), self.uow_factory() as uow:
            repositories = uow.repositories
            if not repositories.claims.add(bound):
                log.debug("Skipping duplicate claim %s from %s", bound.key, bound.source_id)
                report.duplicates += 1
                return
            report.claims_stored += 1
            evaluation = self.detector.evaluate(repositories, resolution.entity.id, bound.key)
            uow.commit()
        report.outcomes[evaluation.outcome] += 1

    def resolve_entity(self, name: str, kind: EntityKind) -> Resolution:
        with self._kind_lock(kind), self.uow_factory() as uow:
            resolution = self.resolver.resolve(name, kind, uow.repositories)
            uow.commit()
        return resolution

    def _resolve_investors(self, names: FactValue, report: IngestReport) -> frozenset[str]:
        if not isinstance(names, frozenset):
            raise TypeError(f"Expected a set of investor names, got {names!r}")
        resolved: set[str] = set()
        for name in sorted(names):
            resolution = self.resolve_entity(name, EntityKind.INVESTOR)
            _count_resolution(resolution, report)
            resolved.add(str(resolution.entity.id))
        return frozenset(resolved)

    # -------------------------------------------------------------- evaluation

    def evaluate(self, entity_id: UUID, key: FactKey) -> Evaluation:
        with self.entity_lock(entity_id), self.uow_factory() as uow:
            evaluation = self.detector.evaluate(uow.repositories, entity_id, key)
            uow.commit()
        return evaluation

    def live_claims(self, entity_id: UUID, key: FactKey) -> list[FactClaim]:
        with self.uow_factory() as uow:
            return self.detector.live_claims(uow.repositories, entity_id, key)

    def score(self, claim: FactClaim, *, as_of: datetime | None = None) -> float:
        """Confidence of ``claim`` against the other live claims for its key."""

        if claim.entity_id is None:
            return self.scorer.score(claim, (), as_of=as_of or self.clock())
        others = self.live_claims(claim.entity_id, claim.key)
        return self.scorer.score(claim, others, as_of=as_of or self.clock())

    # ------------------------------------------------------------- resolutions

    def coerce_chosen_value(
        self, repositories: ReconciliationRepositories, key: FactKey, raw: object
    ) -> FactValue:
        """Turn a reviewer-supplied value into the canonical value for ``key``."""

        if key == IDENTITY_KEY:
            try:
                return str(UUID(str(raw)))
            except ValueError as exc:
                raise IncompleteResolutionError(f"Not an entity id: {raw!r}") from exc
        try:
            value = coerce_value(key.field, raw)
        except ValueError as exc:
            raise IncompleteResolutionError(f"Invalid value for {key}: {exc}") from exc
        if isinstance(value, frozenset):
            return frozenset(self._investor_refs(repositories, value))
        return value  # type: ignore[return-value]

    def _investor_refs(
        self, repositories: ReconciliationRepositories, names: frozenset[str]
    ) -> Iterator[str]:
        for name in sorted(names):
            try:
                entity = repositories.entities.get(UUID(name))
            except ValueError:
                entity = repositories.entities.find_by_key(
                    EntityKind.INVESTOR, normalize_name(name)
                )
            if entity is None:
                raise IncompleteResolutionError(f"Unknown investor {name!r}")
            yield str(entity.resolved_id)

    def apply_resolution(
        self, repositories: ReconciliationRepositories, task: VerificationTask
    ) -> Evaluation | None:
        """Apply a terminal reviewer decision; caller holds the entity lock.

        Verified decisions append a reviewer claim and commit its value; every
        claim covered by the task is settled; the key is then re-evaluated.
        """

        if task.key == IDENTITY_KEY:
            self._apply_identity(repositories, task)
            return None

        now = self.clock()
        covered: tuple[UUID, ...]
        if task.kind is TaskKind.CONFLICT:
            conflict = repositories.conflicts.get(task.subject_ref)
            covered = () if conflict is None else conflict.contending_claims
        else:
            covered = (task.subject_ref,)

        if task.status is TaskStatus.VERIFIED:
            value = task.chosen_value
            if value is None:
                subject = repositories.claims.get(task.subject_ref)
                if subject is None:
                    raise IncompleteResolutionError(f"Task {task.task_id} needs a chosen value")
                value = subject.value
            reviewer_claim = self._reviewer_claim(repositories, task, value, now)
            repositories.claims.add(reviewer_claim)
            entity = canonical_entity(repositories.entities, task.entity_id)
            self.committer.commit(
                repositories.entities,
                entity.id,
                task.key,
                value,
                Provenance.of(
                    [*covered, reviewer_claim.claim_id],
                    rule=CommitRule.VERIFIED,
                    task_id=task.task_id,
                ),
                expected_version=entity.version_of(task.key),
            )
        else:
            log.info("Task %s rejected: %s", task.task_id, task.resolution_notes)

        repositories.claims.settle(covered, task_id=task.task_id)
        if task.kind is TaskKind.CONFLICT:
            repositories.conflicts.resolve(task.subject_ref, at=now)
        return self.detector.evaluate(repositories, task.entity_id, task.key)

    def _reviewer_claim(
        self,
        repositories: ReconciliationRepositories,
        task: VerificationTask,
        value: FactValue,
        now: datetime,
    ) -> FactClaim:
        entity = canonical_entity(repositories.entities, task.entity_id)
        return FactClaim(
            entity_kind=entity.kind,
            entity_key=entity.name,
            key=task.key,
            value=value,
            source_id=REVIEWER_SOURCE_ID,
            source_kind=SourceKind.MANUAL,
            observed_at=now,
            ingested_at=now,
            evidence=f"task {task.task_id}: {task.resolution_notes or describe_value(value)}",
            entity_id=entity.id,
        )

    def _apply_identity(
        self, repositories: ReconciliationRepositories, task: VerificationTask
    ) -> None:
        if task.status is not TaskStatus.VERIFIED or task.chosen_value is None:
            log.info("Keeping provisional entity %s as distinct", task.entity_id)
            return
        target = UUID(str(task.chosen_value))
        self._merge(
            repositories,
            source_id=task.entity_id,
            target_id=target,
            reason=MergeReason.IDENTITY_REVIEW,
            created_by=task.assignee,
        )

    # ------------------------------------------------------------------ merges

    def merge(
        self,
        source_id: UUID,
        target_id: UUID,
        *,
        reason: MergeReason = MergeReason.MANUAL,
        created_by: str | None = None,
    ) -> EntityMerge:
        first, second = sorted((source_id, target_id), key=str)
        with self.entity_lock(first), self.entity_lock(second), self.uow_factory() as uow:
            merge = self._merge(
                uow.repositories,
                source_id=source_id,
                target_id=target_id,
                reason=reason,
                created_by=created_by,
            )
            uow.commit()
        return merge

    def _merge(
        self,
        repositories: ReconciliationRepositories,
        *,
        source_id: UUID,
        target_id: UUID,
        reason: MergeReason,
        created_by: str | None,
    ) -> EntityMerge:
        source = canonical_entity(repositories.entities, source_id)
        target = canonical_entity(repositories.entities, target_id)
        if source.id == target.id:
            raise ValueError(f"Cannot merge entity {source.id} into itself")
        if source.kind is not target.kind:
            raise ValueError(
                f"Cannot merge {source.kind} {source.id} into {target.kind} {target.id}"
            )
        merge = EntityMerge(
            entity_kind=source.kind,
            source_id=source.id,
            target_id=target.id,
            reason=reason,
            created_at=self.clock(),
            created_by=created_by,
        )
        repositories.entities.merge(merge)
        for alias in source.aliases:
            if not target.has_alias(alias):
                repositories.entities.add_alias(target.id, alias)
        log.info("Merged %s %s into %s (%s)", source.kind, source.id, target.id, reason)
        members = repositories.entities.members(target.id)
        for key in sorted(repositories.claims.keys_for(members)):
            self.detector.evaluate(repositories, target.id, key)
        return merge


def _count_resolution(resolution: Resolution, report: IngestReport) -> None:
    if resolution.created:
        report.entities_created += 1
    if resolution.is_provisional:
        report.provisional_entities += 1
