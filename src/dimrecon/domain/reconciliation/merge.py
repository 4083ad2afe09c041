"""Attribute merge: collapse the records of one canonical entity into one row.

For every field claimed by a system-of-record rule the merger standardises the
candidate value of each source, picks a winner by precedence or recency, and
logs one conflict entry when the non-absent candidates disagree. Quality is
scored on the merged attributes and the tracked columns are hashed for change
detection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dimrecon.domain.model import (
    ConflictType,
    MergedEntity,
    MergeStrategy,
    ReconciliationLogEntry,
    log_entry_id,
)

from .contracts import MergeResult
from .hashing import canonical_json, record_hash
from .quality import assess_quality
from .standardize import standardize_value

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import datetime

    from dimrecon.domain.model import SourceRecord
    from dimrecon.domain.rules import EntityTypeRules, RuleRegistry, SystemOfRecordRule

    from .contracts import ResolveResult

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Candidate:
    source_system: str
    value: object
    source_timestamp: datetime


@dataclass(slots=True)
class AttributeMerger:
    registry: RuleRegistry

    def merge(
        self,
        entity_type: str,
        canonical_id: str,
        records: Sequence[SourceRecord],
        *,
        observed_at: datetime | None = None,
    ) -> MergeResult:
        """Merge ``records`` (all resolved to ``canonical_id``) into one entity.

        The result depends only on the records' content, never on their order.
        """

        rules = self.registry.require(entity_type)
        if not records:
            raise ValueError(f"No records to merge for {entity_type} {canonical_id}")

        by_source = _latest_per_source(records)
        batch_id = max(record.batch_id for record in records)
        logged_at = observed_at or max(record.source_timestamp for record in records)

        merged: dict[str, object] = {}
        conflicts: list[ReconciliationLogEntry] = []
        field_rules = {name: sor for sor in rules.system_of_record for name in sor.fields}
        for field_name, sor in sorted(field_rules.items()):
            candidates = _candidates(rules, field_name, by_source)
            winner = _pick(sor, candidates)
            merged[field_name] = None if winner is None else winner.value
            if len({canonical_json(candidate.value) for candidate in candidates}) > 1:
                conflicts.append(
                    ReconciliationLogEntry(
                        id=log_entry_id(
                            entity_type=entity_type,
                            batch_id=batch_id,
                            canonical_id=canonical_id,
                            conflict_type=ConflictType.FIELD_MISMATCH,
                            field_name=field_name,
                        ),
                        canonical_id=canonical_id,
                        entity_type=entity_type,
                        field_name=field_name,
                        values_by_source={c.source_system: c.value for c in candidates},
                        resolution_rule=sor.resolution_rule,
                        resolved_value=merged[field_name],
                        batch_id=batch_id,
                        timestamp=logged_at,
                    )
                )

        quality = assess_quality(merged, rules.scoring)
        entity = MergedEntity(
            entity_type=entity_type,
            canonical_id=canonical_id,
            merged_attributes=merged,
            quality_score=quality.score,
            quality_issues=quality.issues,
            record_hash=record_hash(merged, rules.scd.tracked_columns),
            batch_id=batch_id,
            source_systems=tuple(sorted(by_source)),
        )
        if conflicts:
            log.info(
                "Merged %s %s with conflicts on %s",
                entity_type,
                canonical_id,
                ", ".join(entry.field_name for entry in conflicts),
            )
        return MergeResult(entity=entity, conflicts=tuple(conflicts))

    def merge_all(
        self,
        resolution: ResolveResult,
        *,
        observed_at: datetime | None = None,
    ) -> list[MergeResult]:
        """Merge every canonical entity of a resolved batch, ordered by canonical id."""

        return [
            self.merge(resolution.entity_type, canonical_id, records, observed_at=observed_at)
            for canonical_id, records in resolution.records_by_canonical().items()
        ]


def _latest_per_source(records: Sequence[SourceRecord]) -> dict[str, SourceRecord]:
    latest: dict[str, SourceRecord] = {}
    for record in sorted(
        records, key=lambda item: (item.source_timestamp, item.source_record_id)
    ):
        latest[record.source_system] = record
    return dict(sorted(latest.items()))


def _candidates(
    rules: EntityTypeRules, field_name: str, by_source: Mapping[str, SourceRecord]
) -> list[_Candidate]:
    standardization = rules.standardization_for(field_name)
    candidates: list[_Candidate] = []
    for source_system, record in by_source.items():
        value = standardize_value(
            record.value_for(field_name),
            source_system=source_system,
            standardization=standardization,
        )
        if value is not None:
            candidates.append(_Candidate(source_system, value, record.source_timestamp))
    return candidates


def _pick(sor: SystemOfRecordRule, candidates: Sequence[_Candidate]) -> _Candidate | None:
    if not candidates:
        return None
    if sor.strategy is MergeStrategy.MOST_RECENT:
        latest = max(candidate.source_timestamp for candidate in candidates)
        candidates = [c for c in candidates if c.source_timestamp == latest]
    return min(candidates, key=lambda candidate: sor.rank(candidate.source_system))
