"""Entity resolution: assign a canonical id to every source record in a batch.

Responsibilities of this stage:
- apply match rules in priority order against persisted key links and against
  records resolved earlier in the same batch
- a record seen earlier in the same batch keeps the id it got there
- fall back to the record's previous crosswalk link, then mint a new id
- keep one record per (canonical id, source system) and log the rest as
  in-source duplicates
- produce crosswalk entries and key links without writing them

Records are processed in ``(source_timestamp, source_system, source_record_id)``
order and persisted links first written by the batch being resolved are ignored,
so resolving the same batch twice yields the same assignments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final
from uuid import NAMESPACE_URL, uuid5

from dimrecon.domain.model import (
    ConflictType,
    CrosswalkEntry,
    KeyLink,
    ReconciliationLogEntry,
    log_entry_id,
)

from .contracts import ResolvedRecord, ResolveResult
from .keys import SOURCE_RECORD_METHOD, match_key_for, source_record_key

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from dimrecon.domain.model import MatchKey, SourceRecord
    from dimrecon.domain.ports import CrosswalkRepository, KeyOwner
    from dimrecon.domain.rules import MatchRule, RuleRegistry

log = logging.getLogger(__name__)

NEW_ENTITY_METHOD: Final[str] = "new_entity"
PRIOR_CROSSWALK_METHOD: Final[str] = "prior_crosswalk"
EXACT_CONFIDENCE: Final[float] = 100.0
DUPLICATE_RESOLUTION_RULE: Final[str] = "earliest_source_timestamp"

_CANONICAL_NAMESPACE = uuid5(NAMESPACE_URL, "dimrecon:canonical-id")


def mint_canonical_id(entity_type: str, source_system: str, source_record_id: str) -> str:
    return str(uuid5(_CANONICAL_NAMESPACE, f"{entity_type}|{source_system}|{source_record_id}"))


def ordered_batch(batch: Sequence[SourceRecord]) -> list[SourceRecord]:
    return sorted(
        batch,
        key=lambda record: (
            record.source_timestamp,
            record.source_system,
            record.source_record_id,
        ),
    )


def batch_id_of(entity_type: str, batch: Sequence[SourceRecord]) -> str | None:
    """Return the shared batch id, rejecting foreign or mixed records."""

    batch_ids = {record.batch_id for record in batch}
    foreign = sorted({record.entity_type for record in batch} - {entity_type})
    if foreign:
        raise ValueError(f"Batch for {entity_type!r} contains records of {', '.join(foreign)}")
    if len(batch_ids) > 1:
        raise ValueError(f"Batch mixes batch ids: {', '.join(sorted(batch_ids))}")
    return next(iter(batch_ids), None)


@dataclass(slots=True, kw_only=True)
class _Match:
    canonical_id: str
    confidence: float
    method: str


@dataclass(slots=True)
class EntityResolver:
    registry: RuleRegistry

    def resolve(
        self,
        entity_type: str,
        batch: Sequence[SourceRecord],
        *,
        crosswalk: CrosswalkRepository,
    ) -> ResolveResult:
        rules = self.registry.require(entity_type)
        batch_id = batch_id_of(entity_type, batch)
        if batch_id is None:
            return ResolveResult(entity_type=entity_type, batch_id=None)

        records = ordered_batch(batch)
        match_rules = rules.ordered_match_rules
        keys_by_record = [_rule_keys(record, match_rules) for record in records]
        lookup: set[MatchKey] = {key for keys in keys_by_record for _, key in keys}
        lookup.update(source_record_key(record) for record in records)
        prior = crosswalk.find_key_owners(entity_type, lookup, exclude_batch_id=batch_id)

        in_batch: dict[MatchKey, str] = {}
        winners: dict[tuple[str, str], SourceRecord] = {}
        resolved: list[ResolvedRecord] = []
        entries: list[CrosswalkEntry] = []
        links: list[KeyLink] = []
        duplicates: list[ReconciliationLogEntry] = []

        for record, rule_keys in zip(records, keys_by_record, strict=True):
            match = _match(entity_type, record, rule_keys, prior, in_batch)
            owner = (match.canonical_id, record.source_system)
            winner = winners.get(owner)
            if winner is not None:
                log.warning(
                    "Duplicate %s record in source %s: %s and %s both resolve to %s; keeping %s",
                    entity_type,
                    record.source_system,
                    winner.source_record_id,
                    record.source_record_id,
                    match.canonical_id,
                    winner.source_record_id,
                )
                duplicates.append(
                    _duplicate_entry(record, winner, match, ordinal=len(duplicates))
                )
                continue

            winners[owner] = record
            resolved.append(
                ResolvedRecord(
                    record=record,
                    canonical_id=match.canonical_id,
                    confidence=match.confidence,
                    method=match.method,
                )
            )
            entries.append(
                CrosswalkEntry(
                    entity_type=entity_type,
                    canonical_id=match.canonical_id,
                    source_system=record.source_system,
                    source_record_id=record.source_record_id,
                    match_confidence=match.confidence,
                    match_method=match.method,
                    batch_id=batch_id,
                )
            )
            for key in (*(key for _, key in rule_keys), source_record_key(record)):
                in_batch.setdefault(key, match.canonical_id)
                links.append(
                    KeyLink(
                        entity_type=entity_type,
                        match_key=key,
                        canonical_id=match.canonical_id,
                        source_system=record.source_system,
                        source_record_id=record.source_record_id,
                        batch_id=batch_id,
                    )
                )

        log.info(
            "Resolved %s batch %s: records=%s, canonical=%s, duplicates=%s",
            entity_type,
            batch_id,
            len(records),
            len({item.canonical_id for item in resolved}),
            len(duplicates),
        )
        return ResolveResult(
            entity_type=entity_type,
            batch_id=batch_id,
            resolved=tuple(resolved),
            entries=tuple(entries),
            key_links=tuple(links),
            duplicates=tuple(duplicates),
        )


def _rule_keys(
    record: SourceRecord, match_rules: Sequence[MatchRule]
) -> tuple[tuple[MatchRule, MatchKey], ...]:
    keys: list[tuple[MatchRule, MatchKey]] = []
    for rule in match_rules:
        key = match_key_for(record, rule)
        if key is not None:
            keys.append((rule, key))
    return tuple(keys)


def _match(
    entity_type: str,
    record: SourceRecord,
    rule_keys: Sequence[tuple[MatchRule, MatchKey]],
    prior: Mapping[MatchKey, tuple[KeyOwner, ...]],
    in_batch: Mapping[MatchKey, str],
) -> _Match:
    same_record = in_batch.get(source_record_key(record))
    if same_record is not None:
        return _Match(
            canonical_id=same_record, confidence=EXACT_CONFIDENCE, method=SOURCE_RECORD_METHOD
        )
    for rule, key in rule_keys:
        candidates = {
            owner.canonical_id
            for owner in prior.get(key, ())
            if (owner.source_system, owner.source_record_id) != record.identity
        }
        if key in in_batch:
            candidates.add(in_batch[key])
        if candidates:
            canonical_id = min(candidates)
            if len(candidates) > 1:
                log.warning(
                    "Key %s of %s record %s/%s matches %s canonical ids; using %s",
                    rule.method,
                    entity_type,
                    record.source_system,
                    record.source_record_id,
                    len(candidates),
                    canonical_id,
                )
            return _Match(canonical_id=canonical_id, confidence=rule.confidence, method=rule.method)

    previous = prior.get(source_record_key(record), ())
    if previous:
        return _Match(
            canonical_id=min(owner.canonical_id for owner in previous),
            confidence=EXACT_CONFIDENCE,
            method=PRIOR_CROSSWALK_METHOD,
        )
    return _Match(
        canonical_id=mint_canonical_id(entity_type, record.source_system, record.source_record_id),
        confidence=EXACT_CONFIDENCE,
        method=NEW_ENTITY_METHOD,
    )


def _duplicate_entry(
    record: SourceRecord, winner: SourceRecord, match: _Match, *, ordinal: int
) -> ReconciliationLogEntry:
    """Log a discarded duplicate; ``ordinal`` counts earlier duplicates in the batch."""

    kept = f"{winner.source_system}/{winner.source_record_id}"
    label = f"{record.source_system}/{record.source_record_id}"
    if label == kept:
        label = f"{label}@{record.source_timestamp.isoformat()}"
    return ReconciliationLogEntry(
        id=log_entry_id(
            entity_type=record.entity_type,
            batch_id=record.batch_id,
            canonical_id=match.canonical_id,
            conflict_type=ConflictType.DUPLICATE_IN_SOURCE,
            field_name=match.method,
            discriminator=f"{label}#{ordinal}",
        ),
        canonical_id=match.canonical_id,
        entity_type=record.entity_type,
        field_name=match.method,
        values_by_source={
            kept: winner.source_timestamp.isoformat(),
            label: record.source_timestamp.isoformat(),
        },
        resolution_rule=DUPLICATE_RESOLUTION_RULE,
        resolved_value=winner.source_record_id,
        batch_id=record.batch_id,
        timestamp=record.source_timestamp,
        conflict_type=ConflictType.DUPLICATE_IN_SOURCE,
    )
