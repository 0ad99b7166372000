from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from fundrecon.adapters.memory import InMemoryStore, InMemoryUnitOfWork, in_memory_uow_factory
from fundrecon.adapters.sqlalchemy import create_all_tables
from fundrecon.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, shutdown, startup
from fundrecon.config import ReconciliationPolicy
from fundrecon.domain.reconciliation import ReconciliationEngine
from fundrecon.domain.verification import VerificationQueue
from tests.helpers.records import NOW, MutableClock

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(NOW)


@pytest.fixture
def policy() -> ReconciliationPolicy:
    return ReconciliationPolicy()


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def memory_unit_of_work(memory_store: InMemoryStore) -> Callable[[], InMemoryUnitOfWork]:
    return in_memory_uow_factory(memory_store)


@pytest.fixture
def engine(
    memory_unit_of_work: Callable[[], InMemoryUnitOfWork],
    policy: ReconciliationPolicy,
    clock: MutableClock,
) -> ReconciliationEngine:
    return ReconciliationEngine(memory_unit_of_work, policy=policy, clock=clock)


@pytest.fixture
def queue(engine: ReconciliationEngine) -> VerificationQueue:
    return VerificationQueue(engine)


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()
