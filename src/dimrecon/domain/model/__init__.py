"""Public domain model surface."""

from __future__ import annotations

from dimrecon.domain.model.audit import BatchRun, ReconciliationLogEntry, log_entry_id
from dimrecon.domain.model.enums import (
    CheckKind,
    ConflictType,
    MergeStrategy,
    RunStatus,
    SurrogateKeySource,
    Transform,
)
from dimrecon.domain.model.records import (
    BusinessKey,
    CrosswalkEntry,
    DimensionVersion,
    KeyLink,
    MatchKey,
    MergedEntity,
    SourceRecord,
)

__all__ = [  # noqa: RUF022
    # records
    "SourceRecord",
    "CrosswalkEntry",
    "KeyLink",
    "MergedEntity",
    "DimensionVersion",
    "MatchKey",
    "BusinessKey",
    # audit
    "ReconciliationLogEntry",
    "BatchRun",
    "log_entry_id",
    # enums
    "CheckKind",
    "ConflictType",
    "MergeStrategy",
    "RunStatus",
    "SurrogateKeySource",
    "Transform",
]
