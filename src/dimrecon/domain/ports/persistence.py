"""Ports for persisting reconciliation state and dimension history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

    from dimrecon.domain.model import (
        BatchRun,
        BusinessKey,
        CrosswalkEntry,
        DimensionVersion,
        KeyLink,
        MatchKey,
        MergedEntity,
        ReconciliationLogEntry,
    )


@dataclass(frozen=True, slots=True, order=True)
class KeyOwner:
    """A previously persisted source record that carried a given match key."""

    canonical_id: str
    source_system: str
    source_record_id: str


@runtime_checkable
class CrosswalkRepository(Protocol):
    """Durable mapping between source records and canonical ids."""

    def find_key_owners(
        self,
        entity_type: str,
        keys: Collection[MatchKey],
        *,
        exclude_batch_id: str | None = None,
    ) -> dict[MatchKey, tuple[KeyOwner, ...]]:
        """Return owners per key, ignoring links first written by ``exclude_batch_id``."""
        ...

    def upsert_entries(self, entries: Sequence[CrosswalkEntry]) -> int: ...

    def add_key_links(self, links: Sequence[KeyLink]) -> int: ...

    def entries_for(self, entity_type: str, canonical_id: str) -> tuple[CrosswalkEntry, ...]: ...


@runtime_checkable
class ReconciliationLogRepository(Protocol):
    """Append-only conflict log."""

    def add_all(self, entries: Sequence[ReconciliationLogEntry]) -> int:
        """Append entries whose id is not stored yet and return how many were new."""
        ...

    def entries_for(
        self,
        entity_type: str,
        *,
        batch_id: str | None = None,
        canonical_id: str | None = None,
    ) -> tuple[ReconciliationLogEntry, ...]: ...


@runtime_checkable
class MergedEntityRepository(Protocol):
    """Latest merged view per canonical entity, used for quality reads."""

    def upsert(self, entities: Sequence[MergedEntity]) -> int: ...

    def get(self, entity_type: str, canonical_id: str) -> MergedEntity | None: ...


@runtime_checkable
class HistoryRepository(Protocol):
    """Row storage for SCD Type 2 dimension tables.

    ``supersede`` expires ``current`` at the replacement's ``effective_start`` and
    inserts the replacement; callers run it inside the unit of work's transaction
    so both writes become visible together.
    """

    def current_versions(
        self, entity_type: str, business_keys: Collection[BusinessKey]
    ) -> dict[BusinessKey, DimensionVersion]: ...

    def insert(self, entity_type: str, version: DimensionVersion) -> None: ...

    def supersede(
        self, entity_type: str, current: DimensionVersion, replacement: DimensionVersion
    ) -> None: ...

    def versions(
        self, entity_type: str, business_key: BusinessKey | None = None
    ) -> tuple[DimensionVersion, ...]: ...

    def next_surrogate_sequence(self, entity_type: str) -> int: ...


@runtime_checkable
class BatchRunRepository(Protocol):
    """Execution log of batch runs."""

    def add(self, run: BatchRun) -> None: ...

    def runs_for(self, entity_type: str, batch_id: str | None = None) -> tuple[BatchRun, ...]: ...


class StaleVersionError(RuntimeError):
    """Raised when the version to supersede is no longer current."""
