"""Ports (protocols) the reconciliation core depends on."""

from fundrecon.domain.ports.persistence import (
    ClaimRepository,
    ConflictRepository,
    EntityRepository,
    TaskRepository,
)
from fundrecon.domain.ports.unit_of_work import (
    ReconciliationRepositories,
    ReconciliationUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "ClaimRepository",
    "ConflictRepository",
    "EntityRepository",
    "ReconciliationRepositories",
    "ReconciliationUnitOfWork",
    "RepositoryCollection",
    "TaskRepository",
    "UnitOfWork",
]
