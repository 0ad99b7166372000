"""SQLAlchemy adapter package for fundrecon."""

from __future__ import annotations

from .repositories import (
    SqlAlchemyClaimRepository,
    SqlAlchemyConflictRepository,
    SqlAlchemyEntityRepository,
    SqlAlchemyTaskRepository,
)
from .tables import create_all_tables, metadata
from .unit_of_work import SqlAlchemyUnitOfWork, shutdown, startup

__all__ = [
    "SqlAlchemyClaimRepository",
    "SqlAlchemyConflictRepository",
    "SqlAlchemyEntityRepository",
    "SqlAlchemyTaskRepository",
    "SqlAlchemyUnitOfWork",
    "create_all_tables",
    "metadata",
    "shutdown",
    "startup",
]
