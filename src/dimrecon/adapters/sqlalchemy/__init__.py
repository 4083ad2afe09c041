"""SQLAlchemy adapter package for dimrecon."""

from __future__ import annotations

from .history_tables import MissingHistoryTableError, history_table, register_history_table
from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyBatchRunRepository,
    SqlAlchemyCrosswalkRepository,
    SqlAlchemyHistoryRepository,
    SqlAlchemyMergedEntityRepository,
    SqlAlchemyReconciliationLogRepository,
    UnsupportedDialectError,
)
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    configured_engine,
    ensure_started,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "MissingHistoryTableError",
    "SqlAlchemyBatchRunRepository",
    "SqlAlchemyCrosswalkRepository",
    "SqlAlchemyHistoryRepository",
    "SqlAlchemyMergedEntityRepository",
    "SqlAlchemyReconciliationLogRepository",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "UnsupportedDialectError",
    "configured_engine",
    "create_all_tables",
    "ensure_started",
    "history_table",
    "is_started",
    "mapper_registry",
    "register_history_table",
    "shutdown",
    "start_mappers",
    "startup",
]
