"""Append-only audit records: reconciliation conflicts and batch runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import NAMESPACE_URL, UUID, uuid4, uuid5

from .enums import ConflictType, RunStatus

if TYPE_CHECKING:
    from datetime import datetime

_LOG_ENTRY_NAMESPACE = uuid5(NAMESPACE_URL, "dimrecon:reconciliation-log")


def log_entry_id(
    *,
    entity_type: str,
    batch_id: str,
    canonical_id: str,
    conflict_type: ConflictType,
    field_name: str,
    discriminator: str = "",
) -> UUID:
    """Deterministic id so that replaying a batch never duplicates its log entries."""

    name = "|".join(
        (entity_type, batch_id, canonical_id, str(conflict_type), field_name, discriminator)
    )
    return uuid5(_LOG_ENTRY_NAMESPACE, name)


@dataclass(eq=False, kw_only=True)
class ReconciliationLogEntry:
    """A disagreement between sources and how it was resolved."""

    canonical_id: str
    entity_type: str
    field_name: str
    values_by_source: dict[str, object]
    resolution_rule: str
    resolved_value: object
    batch_id: str
    timestamp: datetime
    conflict_type: ConflictType = ConflictType.FIELD_MISMATCH
    id: UUID = field(default_factory=uuid4)


@dataclass(eq=False, kw_only=True)
class BatchRun:
    """Execution log row for one entity type within one batch."""

    entity_type: str
    batch_id: str
    status: RunStatus
    processed_at: datetime
    records_read: int = 0
    crosswalk_entries: int = 0
    conflicts: int = 0
    duplicates: int = 0
    inserted: int = 0
    expired: int = 0
    unchanged: int = 0
    rejected: int = 0
    error_message: str | None = None
    id: UUID = field(default_factory=uuid4)
