"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING
from uuid import UUID

from fundrecon.adapters.export import write_tasks_csv
from fundrecon.adapters.sources import load_jsonl
from fundrecon.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from fundrecon.config import get_reconciliation_policy
from fundrecon.domain.errors import UnknownEntityError
from fundrecon.domain.graph import Graph, build, funding_rounds_from_entities
from fundrecon.domain.model import EntityKind
from fundrecon.domain.ports.unit_of_work import ReconciliationUnitOfWork
from fundrecon.domain.reconciliation import IngestReport, ReconciliationEngine, normalize_name
from fundrecon.domain.verification import VerificationQueue

if TYPE_CHECKING:
    from pathlib import Path

    from fundrecon.config import ReconciliationPolicy
    from fundrecon.domain.model import Entity, TaskStatus

UnitOfWorkFactory = Callable[[], ReconciliationUnitOfWork]


log = getLogger(__name__)


def _default_unit_of_work_factory() -> UnitOfWorkFactory:
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork


def build_engine(
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    policy: ReconciliationPolicy | None = None,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        unit_of_work_factory or _default_unit_of_work_factory(),
        policy=policy or get_reconciliation_policy(),
    )


def ingest_files(paths: list[Path], *, engine: ReconciliationEngine | None = None) -> IngestReport:
    """Load JSON-lines source files and reconcile every record."""

    effective_engine = engine or build_engine()
    report = IngestReport()
    for path in paths:
        loaded = load_jsonl(path)
        log.info("Loaded %d records from %s", len(loaded.records), path)
        file_report = effective_engine.ingest_batch(loaded.records)
        file_report.malformed.extend(loaded.errors)
        report.merge(file_report)
    log.info(
        "Finished ingest: records=%s, stored=%s, duplicates=%s, malformed=%s",
        report.records_seen,
        report.claims_stored,
        report.duplicates,
        len(report.malformed),
    )
    return report


def build_verification_queue(*, engine: ReconciliationEngine | None = None) -> VerificationQueue:
    return VerificationQueue(engine or build_engine())


def export_queue_csv(
    path: Path,
    *,
    status: TaskStatus | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> int:
    uow_factory = unit_of_work_factory or _default_unit_of_work_factory()
    with uow_factory() as uow:
        tasks = uow.repositories.tasks.query(status=status)
        names = {entity.id: entity.name for entity in uow.repositories.entities.list_all()}
    with path.open("w", encoding="utf-8", newline="") as handle:
        written = write_tasks_csv(tasks, handle, entity_names=names)
    log.info("Exported %d tasks to %s", written, path)
    return written


def build_co_investment_graph(
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    cancel: Callable[[], bool] | None = None,
) -> Graph:
    """Snapshot the co-investment graph from committed round facts."""

    uow_factory = unit_of_work_factory or _default_unit_of_work_factory()
    with uow_factory() as uow:
        entities = uow.repositories.entities.list_all()
    labels = {str(entity.id): entity.name for entity in entities}
    return build(funding_rounds_from_entities(entities), labels=labels, cancel=cancel)


def find_entity(
    reference: str,
    *,
    kind: EntityKind | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Entity:
    """Look up an entity by id or by (normalized) name."""

    uow_factory = unit_of_work_factory or _default_unit_of_work_factory()
    with uow_factory() as uow:
        entities = uow.repositories.entities
        entity = _by_id(entities.get, reference)
        if entity is None:
            key = normalize_name(reference)
            kinds = (kind,) if kind is not None else (EntityKind.COMPANY, EntityKind.INVESTOR)
            for candidate_kind in kinds:
                entity = entities.find_by_key(candidate_kind, key)
                if entity is not None:
                    break
        if entity is not None and not entity.is_canonical:
            entity = entities.get(entity.resolved_id) or entity
    if entity is None:
        raise UnknownEntityError(f"No entity matches {reference!r}")
    return entity


def _by_id(getter: Callable[[UUID], Entity | None], reference: str) -> Entity | None:
    try:
        return getter(UUID(reference))
    except ValueError:
        return None
