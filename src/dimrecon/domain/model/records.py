"""Records flowing through a reconciliation batch.

Source records arrive from upstream extraction and are read-only here. Crosswalk
entries and key links are the resolver's durable memory, merged entities are the
merger's output, and dimension versions are rows of an SCD Type 2 history table.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

type MatchKey = tuple[str, ...]
type BusinessKey = tuple[str, ...]


@dataclass(frozen=True, slots=True, kw_only=True)
class SourceRecord:
    """One observation of an entity from one source system."""

    entity_type: str
    source_system: str
    source_record_id: str
    batch_id: str
    source_timestamp: datetime
    natural_keys: Mapping[str, object] = field(default_factory=dict)
    attributes: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.source_timestamp.tzinfo is None:
            raise ValueError("source_timestamp must be timezone-aware")
        object.__setattr__(self, "natural_keys", MappingProxyType(dict(self.natural_keys)))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def identity(self) -> tuple[str, str]:
        return (self.source_system, self.source_record_id)

    def value_for(self, column: str) -> object | None:
        """Look a column up in the natural keys first, then in the attributes."""

        if column in self.natural_keys:
            return self.natural_keys[column]
        return self.attributes.get(column)


@dataclass(frozen=True, slots=True, kw_only=True)
class CrosswalkEntry:
    entity_type: str
    canonical_id: str
    source_system: str
    source_record_id: str
    match_confidence: float
    match_method: str
    batch_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class KeyLink:
    """A normalised match key observed on a source record that resolved to ``canonical_id``."""

    entity_type: str
    match_key: MatchKey
    canonical_id: str
    source_system: str
    source_record_id: str
    batch_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class MergedEntity:
    entity_type: str
    canonical_id: str
    merged_attributes: Mapping[str, object]
    quality_score: float
    quality_issues: tuple[str, ...]
    record_hash: str
    batch_id: str
    source_systems: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "merged_attributes", MappingProxyType(dict(self.merged_attributes))
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class DimensionVersion:
    """One row of a dimension history table.

    ``effective_end`` is ``None`` while the version is open.
    """

    surrogate_key: str
    business_key: BusinessKey
    canonical_id: str
    attribute_snapshot: Mapping[str, object]
    record_hash: str
    is_current: bool
    effective_start: datetime
    effective_end: datetime | None
    created_at: datetime
    batch_id: str

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "attribute_snapshot", MappingProxyType(dict(self.attribute_snapshot))
        )

    @property
    def is_open(self) -> bool:
        return self.effective_end is None

    def expired(self, at: datetime) -> DimensionVersion:
        return replace(self, is_current=False, effective_end=at)
