from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from dimrecon.adapters.sqlalchemy import start_mappers
from dimrecon.adapters.sqlalchemy.mappings import create_all_tables
from dimrecon.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    register_history_tables,
    shutdown,
    startup,
)
from dimrecon.domain.rules import RuleRegistry  # noqa: TC001
from tests.support.repositories import FakeUnitOfWork, fake_repositories
from tests.support.rules import sample_registry

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from dimrecon.domain.ports import EngineRepositories


@pytest.fixture
def registry() -> RuleRegistry:
    return sample_registry()


@pytest.fixture
def repositories() -> EngineRepositories:
    return fake_repositories()


@pytest.fixture
def fake_unit_of_work(repositories: EngineRepositories) -> Callable[[], FakeUnitOfWork]:
    return lambda: FakeUnitOfWork(repositories)


@pytest.fixture
def sqlite_engine(registry: RuleRegistry) -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    start_mappers()
    register_history_tables(registry)
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True, expire_on_commit=False)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine, registry: RuleRegistry
) -> Iterator[Callable[[], SqlAlchemyUnitOfWork]]:
    startup(engine=sqlite_engine, registry=registry, force=True)

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()
