"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import (
    BatchRunRepository,
    CrosswalkRepository,
    HistoryRepository,
    KeyOwner,
    MergedEntityRepository,
    ReconciliationLogRepository,
    StaleVersionError,
)
from .unit_of_work import (
    EngineRepositories,
    EngineUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "BatchRunRepository",
    "CrosswalkRepository",
    "EngineRepositories",
    "EngineUnitOfWork",
    "HistoryRepository",
    "KeyOwner",
    "MergedEntityRepository",
    "ReconciliationLogRepository",
    "RepositoryCollection",
    "StaleVersionError",
    "UnitOfWork",
]
