from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, inspect

from dimrecon.adapters.sqlalchemy.history_tables import (
    history_table,
    register_history_table,
    registered_entity_types,
)
from dimrecon.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    configured_engine,
    ensure_started,
    is_started,
    shutdown,
    startup,
)
from tests.helpers.records import make_merged
from tests.support.rules import broken_rules, facility_rules, sample_registry, veteran_rules

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemyUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b
    assert is_started()


def test_startup_creates_history_tables_for_valid_entity_types() -> None:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine, registry=sample_registry(broken_rules()), force=True)

    tables = set(inspect(engine).get_table_names())
    assert {"crosswalk", "key_link", "merged_entity", "reconciliation_log", "batch_run"} <= tables
    assert {"dim_veteran", "dim_facility_history"} <= tables
    assert "dim_broken" not in tables
    assert "broken" not in registered_entity_types()


def test_ensure_started_registers_late_entity_types(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    ensure_started(sample_registry())

    assert "dim_veteran" in inspect(sqlite_engine).get_table_names()


def test_history_table_registration_is_stable() -> None:
    table = register_history_table(veteran_rules())

    assert register_history_table(veteran_rules()) is table
    assert history_table("veteran") is table
    assert register_history_table(facility_rules()).name == "dim_facility_history"
    assert history_table("facility").name == "dim_facility_history"


def test_unit_of_work_commits_and_rolls_back(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with SqlAlchemyUnitOfWork() as uow:
        uow.repositories.merged_entities.upsert([make_merged("vet-1", ssn="123")])
        uow.commit()

    with pytest.raises(RuntimeError, match="boom"), SqlAlchemyUnitOfWork() as uow:
        uow.repositories.merged_entities.upsert([make_merged("vet-2", ssn="456")])
        raise RuntimeError("boom")

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.merged_entities.get("veteran", "vet-1") is not None
        assert uow.repositories.merged_entities.get("veteran", "vet-2") is None


def test_repositories_are_unavailable_outside_the_context(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories
