"""Orchestrator for one entity type's batch.

The engine runs the resolve, merge and history stages in order against one
repository collection. It never commits: the caller owns the unit of work, so
a batch either lands completely or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from dimrecon.domain.history import HistoryManager
from dimrecon.domain.reconciliation import AttributeMerger, EntityResolver

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from dimrecon.domain.history import ApplyResult
    from dimrecon.domain.model import MergedEntity, SourceRecord
    from dimrecon.domain.ports import (
        CrosswalkRepository,
        EngineRepositories,
        HistoryRepository,
    )
    from dimrecon.domain.reconciliation import MergeResult, ResolveResult
    from dimrecon.domain.rules import RuleRegistry


class ResolveBatch(Protocol):
    def resolve(
        self,
        entity_type: str,
        batch: Sequence[SourceRecord],
        *,
        crosswalk: CrosswalkRepository,
    ) -> ResolveResult: ...


class MergeResolvedBatch(Protocol):
    def merge_all(
        self,
        resolution: ResolveResult,
        *,
        observed_at: datetime | None = None,
    ) -> list[MergeResult]: ...


class ApplyHistory(Protocol):
    def apply(
        self,
        entity_type: str,
        merged_stream: Iterable[MergedEntity],
        batch_time: datetime,
        *,
        history: HistoryRepository,
    ) -> ApplyResult: ...


@dataclass(slots=True, kw_only=True)
class BatchReport:
    entity_type: str
    batch_id: str | None
    records_read: int
    crosswalk_entries: int
    duplicates: int
    conflicts: int
    apply: ApplyResult


@dataclass(slots=True)
class ReconciliationEngine:
    """Run resolve, merge and history maintenance for one batch."""

    registry: RuleRegistry
    resolver: ResolveBatch
    merger: MergeResolvedBatch
    history: ApplyHistory

    @classmethod
    def for_registry(cls, registry: RuleRegistry) -> ReconciliationEngine:
        return cls(
            registry=registry,
            resolver=EntityResolver(registry),
            merger=AttributeMerger(registry),
            history=HistoryManager(registry),
        )

    def run(
        self,
        entity_type: str,
        batch: Sequence[SourceRecord],
        batch_time: datetime,
        *,
        repositories: EngineRepositories,
    ) -> BatchReport:
        """Process ``batch`` and stage every write on ``repositories``."""

        self.registry.require(entity_type)
        resolution = self.resolver.resolve(entity_type, batch, crosswalk=repositories.crosswalk)
        repositories.crosswalk.upsert_entries(resolution.entries)
        repositories.crosswalk.add_key_links(resolution.key_links)

        merges = self.merger.merge_all(resolution, observed_at=batch_time)
        conflicts = [entry for merge in merges for entry in merge.conflicts]
        repositories.reconciliation_log.add_all([*resolution.duplicates, *conflicts])
        entities = [merge.entity for merge in merges]
        repositories.merged_entities.upsert(entities)

        applied = self.history.apply(
            entity_type, entities, batch_time, history=repositories.history
        )
        return BatchReport(
            entity_type=entity_type,
            batch_id=resolution.batch_id,
            records_read=len(batch),
            crosswalk_entries=len(resolution.entries),
            duplicates=len(resolution.duplicates),
            conflicts=len(conflicts),
            apply=applied,
        )
