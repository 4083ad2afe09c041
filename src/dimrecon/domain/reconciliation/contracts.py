"""Shared result types for the resolve and merge stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dimrecon.domain.model import (
        CrosswalkEntry,
        KeyLink,
        MergedEntity,
        ReconciliationLogEntry,
        SourceRecord,
    )


@dataclass(frozen=True, slots=True, kw_only=True)
class ResolvedRecord:
    record: SourceRecord
    canonical_id: str
    confidence: float
    method: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ResolveResult:
    """Output of resolving one batch.

    ``resolved`` holds the records that go on to the merge, in processing order.
    Records dropped as in-source duplicates only appear in ``duplicates``.
    """

    entity_type: str
    batch_id: str | None
    resolved: tuple[ResolvedRecord, ...] = ()
    entries: tuple[CrosswalkEntry, ...] = ()
    key_links: tuple[KeyLink, ...] = ()
    duplicates: tuple[ReconciliationLogEntry, ...] = ()

    def records_by_canonical(self) -> dict[str, tuple[SourceRecord, ...]]:
        grouped: dict[str, list[SourceRecord]] = {}
        for item in self.resolved:
            grouped.setdefault(item.canonical_id, []).append(item.record)
        return {canonical_id: tuple(grouped[canonical_id]) for canonical_id in sorted(grouped)}


@dataclass(frozen=True, slots=True, kw_only=True)
class MergeResult:
    entity: MergedEntity
    conflicts: tuple[ReconciliationLogEntry, ...] = ()
