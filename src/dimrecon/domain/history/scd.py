"""SCD Type 2 history maintenance.

``HistoryManager.apply`` turns a stream of merged entities into history rows for
one entity type. An entity whose tracked-attribute hash matches the current row
is left alone; a changed entity expires the current row at ``batch_time`` and
opens a new version; an unseen business key opens its first version. Historical
rows are never edited apart from closing them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import uuid4

from dimrecon.domain.model import DimensionVersion, SurrogateKeySource
from dimrecon.domain.reconciliation.hashing import tracked_snapshot
from dimrecon.domain.rules import CANONICAL_ID_COLUMN

from .integrity import check_integrity

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from dimrecon.domain.model import BusinessKey, MergedEntity
    from dimrecon.domain.ports import HistoryRepository
    from dimrecon.domain.rules import EntityTypeRules, RuleRegistry, SCDConfig

    from .integrity import IntegrityReport

log = logging.getLogger(__name__)


class RejectionReason(StrEnum):
    NULL_BUSINESS_KEY = "null_business_key"
    DUPLICATE_BUSINESS_KEY = "duplicate_business_key"
    STALE_BATCH_TIME = "stale_batch_time"


@dataclass(frozen=True, slots=True, kw_only=True)
class RejectedEntity:
    canonical_id: str
    business_key: BusinessKey | None
    reason: RejectionReason


@dataclass(slots=True, kw_only=True)
class ApplyResult:
    entity_type: str
    inserted: int = 0
    expired: int = 0
    unchanged: int = 0
    rejected: list[RejectedEntity] = field(default_factory=list)
    integrity: IntegrityReport | None = None

    @property
    def writes(self) -> int:
        return self.inserted + self.expired


def business_key_for(entity: MergedEntity, scd: SCDConfig) -> BusinessKey | None:
    """Build the business key, or ``None`` when any component is missing."""

    parts: list[str] = []
    for column in scd.business_key_columns:
        if column == CANONICAL_ID_COLUMN:
            value: object = entity.canonical_id
        else:
            value = entity.merged_attributes.get(column)
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        parts.append(str(value))
    return tuple(parts)


@dataclass(slots=True)
class HistoryManager:
    registry: RuleRegistry

    def apply(
        self,
        entity_type: str,
        merged_stream: Iterable[MergedEntity],
        batch_time: datetime,
        *,
        history: HistoryRepository,
    ) -> ApplyResult:
        if batch_time.tzinfo is None:
            raise ValueError("batch_time must be timezone-aware")
        rules = self.registry.require(entity_type)
        result = ApplyResult(entity_type=entity_type)

        keyed = self._key_stream(entity_type, rules, merged_stream, result)
        current = history.current_versions(entity_type, list(keyed))
        for business_key in sorted(keyed):
            entity = keyed[business_key]
            existing = current.get(business_key)
            if existing is None:
                history.insert(
                    entity_type,
                    self._new_version(rules, business_key, entity, batch_time, history),
                )
                result.inserted += 1
            elif existing.record_hash == entity.record_hash:
                result.unchanged += 1
            elif batch_time <= existing.effective_start:
                log.warning(
                    "Rejected %s %s: batch time %s is not after current version start %s",
                    entity_type,
                    "/".join(business_key),
                    batch_time.isoformat(),
                    existing.effective_start.isoformat(),
                )
                result.rejected.append(
                    RejectedEntity(
                        canonical_id=entity.canonical_id,
                        business_key=business_key,
                        reason=RejectionReason.STALE_BATCH_TIME,
                    )
                )
            else:
                history.supersede(
                    entity_type,
                    existing,
                    self._new_version(rules, business_key, entity, batch_time, history),
                )
                result.expired += 1
                result.inserted += 1

        result.integrity = check_integrity(entity_type, history.versions(entity_type))
        log.info(
            "Applied %s history: inserted=%s, expired=%s, unchanged=%s, rejected=%s",
            entity_type,
            result.inserted,
            result.expired,
            result.unchanged,
            len(result.rejected),
        )
        return result

    @staticmethod
    def _key_stream(
        entity_type: str,
        rules: EntityTypeRules,
        merged_stream: Iterable[MergedEntity],
        result: ApplyResult,
    ) -> dict[BusinessKey, MergedEntity]:
        keyed: dict[BusinessKey, MergedEntity] = {}
        for entity in sorted(merged_stream, key=lambda item: item.canonical_id):
            business_key = business_key_for(entity, rules.scd)
            if business_key is None:
                reason = RejectionReason.NULL_BUSINESS_KEY
            elif business_key in keyed:
                reason = RejectionReason.DUPLICATE_BUSINESS_KEY
            else:
                keyed[business_key] = entity
                continue
            log.warning(
                "Rejected %s %s: %s",
                entity_type,
                entity.canonical_id,
                reason,
            )
            result.rejected.append(
                RejectedEntity(
                    canonical_id=entity.canonical_id,
                    business_key=business_key,
                    reason=reason,
                )
            )
        return keyed

    @staticmethod
    def _new_version(
        rules: EntityTypeRules,
        business_key: BusinessKey,
        entity: MergedEntity,
        batch_time: datetime,
        history: HistoryRepository,
    ) -> DimensionVersion:
        if rules.scd.surrogate_key_source is SurrogateKeySource.SEQUENCE:
            surrogate_key = str(history.next_surrogate_sequence(rules.entity_type))
        else:
            surrogate_key = uuid4().hex
        return DimensionVersion(
            surrogate_key=surrogate_key,
            business_key=business_key,
            canonical_id=entity.canonical_id,
            attribute_snapshot=tracked_snapshot(
                entity.merged_attributes, rules.scd.tracked_columns
            ),
            record_hash=entity.record_hash,
            is_current=True,
            effective_start=batch_time,
            effective_end=None,
            created_at=batch_time,
            batch_id=entity.batch_id,
        )
