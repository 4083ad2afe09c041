"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import json
import logging
from itertools import batched
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import bindparam, delete, func, select, true, update
from sqlalchemy.dialects import postgresql, sqlite

from dimrecon.adapters.sqlalchemy.history_tables import history_table
from dimrecon.adapters.sqlalchemy.mappings import (
    batch_run_table,
    crosswalk_table,
    key_link_table,
    merged_entity_table,
    reconciliation_log_table,
)
from dimrecon.domain.model import (
    BatchRun,
    CrosswalkEntry,
    DimensionVersion,
    MergedEntity,
    ReconciliationLogEntry,
)
from dimrecon.domain.ports import KeyOwner, StaleVersionError
from dimrecon.domain.reconciliation.keys import serialize_key

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

    from sqlalchemy import Row, Table
    from sqlalchemy.orm import Session

    from dimrecon.domain.model import BusinessKey, KeyLink, MatchKey

log = logging.getLogger(__name__)

_IN_CLAUSE_CHUNK: Final[int] = 500


class UnsupportedDialectError(RuntimeError):
    """Raised when an upsert is requested on a backend without ON CONFLICT support."""


def _insert_for(session: Session, table: Table) -> Any:
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert(table)
    if dialect == "postgresql":
        return postgresql.insert(table)
    raise UnsupportedDialectError(f"Upserts are not supported on {dialect!r}")


def serialize_business_key(key: BusinessKey) -> str:
    return json.dumps(list(key), separators=(",", ":"), ensure_ascii=False)


def deserialize_business_key(value: str) -> BusinessKey:
    return tuple(str(part) for part in json.loads(value))


class SqlAlchemyCrosswalkRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_key_owners(
        self,
        entity_type: str,
        keys: Collection[MatchKey],
        *,
        exclude_batch_id: str | None = None,
    ) -> dict[MatchKey, tuple[KeyOwner, ...]]:
        if not keys:
            return {}
        by_string = {serialize_key(key): key for key in keys}
        owners: dict[MatchKey, set[KeyOwner]] = {}
        for chunk in batched(sorted(by_string), _IN_CLAUSE_CHUNK):
            stmt = (
                select(
                    key_link_table.c.match_key,
                    key_link_table.c.canonical_id,
                    key_link_table.c.source_system,
                    key_link_table.c.source_record_id,
                )
                .where(key_link_table.c.entity_type == entity_type)
                .where(key_link_table.c.match_key.in_(chunk))
            )
            if exclude_batch_id is not None:
                stmt = stmt.where(key_link_table.c.first_batch_id != exclude_batch_id)
            for match_key, canonical_id, source_system, source_record_id in self.session.execute(
                stmt
            ):
                owners.setdefault(by_string[match_key], set()).add(
                    KeyOwner(canonical_id, source_system, source_record_id)
                )
        return {key: tuple(sorted(found)) for key, found in owners.items()}

    def upsert_entries(self, entries: Sequence[CrosswalkEntry]) -> int:
        if not entries:
            return 0
        by_record = {
            (entry.entity_type, entry.source_system, entry.source_record_id): entry
            for entry in entries
        }
        self._release_moved_records(list(by_record.values()))
        rows = {
            (entry.entity_type, entry.canonical_id, entry.source_system): {
                "entity_type": entry.entity_type,
                "canonical_id": entry.canonical_id,
                "source_system": entry.source_system,
                "source_record_id": entry.source_record_id,
                "match_confidence": entry.match_confidence,
                "match_method": entry.match_method,
                "batch_id": entry.batch_id,
            }
            for entry in by_record.values()
        }
        stmt = _insert_for(self.session, crosswalk_table)
        stmt = stmt.on_conflict_do_update(
            index_elements=["entity_type", "canonical_id", "source_system"],
            set_={
                name: stmt.excluded[name]
                for name in ("source_record_id", "match_confidence", "match_method", "batch_id")
            },
        )
        self.session.execute(stmt, list(rows.values()))
        return len(rows)

    def _release_moved_records(self, entries: Sequence[CrosswalkEntry]) -> None:
        """Drop links of these source records that point at another canonical id."""

        stmt = (
            delete(crosswalk_table)
            .where(crosswalk_table.c.entity_type == bindparam("b_entity_type"))
            .where(crosswalk_table.c.source_system == bindparam("b_source_system"))
            .where(crosswalk_table.c.source_record_id == bindparam("b_source_record_id"))
            .where(crosswalk_table.c.canonical_id != bindparam("b_canonical_id"))
        )
        result = self.session.execute(
            stmt,
            [
                {
                    "b_entity_type": entry.entity_type,
                    "b_source_system": entry.source_system,
                    "b_source_record_id": entry.source_record_id,
                    "b_canonical_id": entry.canonical_id,
                }
                for entry in entries
            ],
        )
        if result.rowcount > 0:
            log.info("Moved %s crosswalk entries to a new canonical id", result.rowcount)

    def add_key_links(self, links: Sequence[KeyLink]) -> int:
        if not links:
            return 0
        rows = {
            (link.entity_type, link.match_key, link.source_system, link.source_record_id): {
                "entity_type": link.entity_type,
                "match_key": serialize_key(link.match_key),
                "canonical_id": link.canonical_id,
                "source_system": link.source_system,
                "source_record_id": link.source_record_id,
                "first_batch_id": link.batch_id,
                "last_batch_id": link.batch_id,
            }
            for link in links
        }
        stmt = _insert_for(self.session, key_link_table)
        stmt = stmt.on_conflict_do_update(
            index_elements=["entity_type", "match_key", "source_system", "source_record_id"],
            set_={
                "canonical_id": stmt.excluded.canonical_id,
                "last_batch_id": stmt.excluded.last_batch_id,
            },
        )
        self.session.execute(stmt, list(rows.values()))
        return len(rows)

    def entries_for(self, entity_type: str, canonical_id: str) -> tuple[CrosswalkEntry, ...]:
        stmt = (
            select(crosswalk_table)
            .where(crosswalk_table.c.entity_type == entity_type)
            .where(crosswalk_table.c.canonical_id == canonical_id)
            .order_by(crosswalk_table.c.source_system)
        )
        return tuple(
            CrosswalkEntry(
                entity_type=row.entity_type,
                canonical_id=row.canonical_id,
                source_system=row.source_system,
                source_record_id=row.source_record_id,
                match_confidence=row.match_confidence,
                match_method=row.match_method,
                batch_id=row.batch_id,
            )
            for row in self.session.execute(stmt)
        )


class SqlAlchemyReconciliationLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_all(self, entries: Sequence[ReconciliationLogEntry]) -> int:
        unique = {entry.id: entry for entry in entries}
        if not unique:
            return 0
        existing: set[object] = set()
        for chunk in batched(list(unique), _IN_CLAUSE_CHUNK):
            stmt = select(reconciliation_log_table.c.id).where(
                reconciliation_log_table.c.id.in_(chunk)
            )
            existing.update(self.session.execute(stmt).scalars())
        fresh = [entry for entry_id, entry in unique.items() if entry_id not in existing]
        self.session.add_all(fresh)
        return len(fresh)

    def entries_for(
        self,
        entity_type: str,
        *,
        batch_id: str | None = None,
        canonical_id: str | None = None,
    ) -> tuple[ReconciliationLogEntry, ...]:
        stmt = select(ReconciliationLogEntry).where(
            reconciliation_log_table.c.entity_type == entity_type
        )
        if batch_id is not None:
            stmt = stmt.where(reconciliation_log_table.c.batch_id == batch_id)
        if canonical_id is not None:
            stmt = stmt.where(reconciliation_log_table.c.canonical_id == canonical_id)
        stmt = stmt.order_by(
            reconciliation_log_table.c.canonical_id,
            reconciliation_log_table.c.field_name,
            reconciliation_log_table.c.timestamp,
        )
        return tuple(self.session.execute(stmt).scalars())


class SqlAlchemyMergedEntityRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def upsert(self, entities: Sequence[MergedEntity]) -> int:
        if not entities:
            return 0
        rows = {
            (entity.entity_type, entity.canonical_id): {
                "entity_type": entity.entity_type,
                "canonical_id": entity.canonical_id,
                "merged_attributes": dict(entity.merged_attributes),
                "quality_score": entity.quality_score,
                "quality_issues": list(entity.quality_issues),
                "record_hash": entity.record_hash,
                "batch_id": entity.batch_id,
                "source_systems": list(entity.source_systems),
            }
            for entity in entities
        }
        stmt = _insert_for(self.session, merged_entity_table)
        stmt = stmt.on_conflict_do_update(
            index_elements=["entity_type", "canonical_id"],
            set_={
                name: stmt.excluded[name]
                for name in (
                    "merged_attributes",
                    "quality_score",
                    "quality_issues",
                    "record_hash",
                    "batch_id",
                    "source_systems",
                )
            },
        )
        self.session.execute(stmt, list(rows.values()))
        return len(rows)

    def get(self, entity_type: str, canonical_id: str) -> MergedEntity | None:
        stmt = (
            select(merged_entity_table)
            .where(merged_entity_table.c.entity_type == entity_type)
            .where(merged_entity_table.c.canonical_id == canonical_id)
        )
        row = self.session.execute(stmt).one_or_none()
        if row is None:
            return None
        return MergedEntity(
            entity_type=row.entity_type,
            canonical_id=row.canonical_id,
            merged_attributes=row.merged_attributes,
            quality_score=row.quality_score,
            quality_issues=tuple(row.quality_issues),
            record_hash=row.record_hash,
            batch_id=row.batch_id,
            source_systems=tuple(row.source_systems),
        )


class SqlAlchemyHistoryRepository:
    """History rows live in one table per entity type, written with Core statements."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def current_versions(
        self, entity_type: str, business_keys: Collection[BusinessKey]
    ) -> dict[BusinessKey, DimensionVersion]:
        table = history_table(entity_type)
        wanted = sorted({serialize_business_key(key) for key in business_keys})
        current: dict[BusinessKey, DimensionVersion] = {}
        for chunk in batched(wanted, _IN_CLAUSE_CHUNK):
            stmt = (
                select(table)
                .where(table.c.is_current == true())
                .where(table.c.business_key.in_(chunk))
            )
            for row in self.session.execute(stmt):
                version = _version_from_row(row)
                current[version.business_key] = version
        return current

    def insert(self, entity_type: str, version: DimensionVersion) -> None:
        table = history_table(entity_type)
        self.session.execute(table.insert().values(**_row_for(version)))

    def supersede(
        self, entity_type: str, current: DimensionVersion, replacement: DimensionVersion
    ) -> None:
        table = history_table(entity_type)
        closed = current.expired(replacement.effective_start)
        result = self.session.execute(
            update(table)
            .where(table.c.surrogate_key == current.surrogate_key)
            .where(table.c.is_current == true())
            .values(is_current=closed.is_current, effective_end=closed.effective_end)
        )
        if result.rowcount != 1:
            raise StaleVersionError(
                f"{entity_type} version {current.surrogate_key} is no longer current"
            )
        self.session.execute(table.insert().values(**_row_for(replacement)))

    def versions(
        self, entity_type: str, business_key: BusinessKey | None = None
    ) -> tuple[DimensionVersion, ...]:
        table = history_table(entity_type)
        stmt = select(table).order_by(
            table.c.business_key, table.c.effective_start, table.c.surrogate_key
        )
        if business_key is not None:
            stmt = stmt.where(table.c.business_key == serialize_business_key(business_key))
        return tuple(_version_from_row(row) for row in self.session.execute(stmt))

    def next_surrogate_sequence(self, entity_type: str) -> int:
        table = history_table(entity_type)
        count = self.session.execute(select(func.count()).select_from(table)).scalar_one()
        return int(count) + 1


class SqlAlchemyBatchRunRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, run: BatchRun) -> None:
        self.session.add(run)

    def runs_for(self, entity_type: str, batch_id: str | None = None) -> tuple[BatchRun, ...]:
        stmt = select(BatchRun).where(batch_run_table.c.entity_type == entity_type)
        if batch_id is not None:
            stmt = stmt.where(batch_run_table.c.batch_id == batch_id)
        stmt = stmt.order_by(batch_run_table.c.processed_at)
        return tuple(self.session.execute(stmt).scalars())


def _row_for(version: DimensionVersion) -> dict[str, object]:
    return {
        "surrogate_key": version.surrogate_key,
        "business_key": serialize_business_key(version.business_key),
        "canonical_id": version.canonical_id,
        "attribute_snapshot": dict(version.attribute_snapshot),
        "record_hash": version.record_hash,
        "is_current": version.is_current,
        "effective_start": version.effective_start,
        "effective_end": version.effective_end,
        "created_at": version.created_at,
        "batch_id": version.batch_id,
    }


def _version_from_row(row: Row[Any]) -> DimensionVersion:
    return DimensionVersion(
        surrogate_key=row.surrogate_key,
        business_key=deserialize_business_key(row.business_key),
        canonical_id=row.canonical_id,
        attribute_snapshot=row.attribute_snapshot,
        record_hash=row.record_hash,
        is_current=row.is_current,
        effective_start=row.effective_start,
        effective_end=row.effective_end,
        created_at=row.created_at,
        batch_id=row.batch_id,
    )


if TYPE_CHECKING:
    from dimrecon.domain.ports import (
        BatchRunRepository,
        CrosswalkRepository,
        HistoryRepository,
        MergedEntityRepository,
        ReconciliationLogRepository,
    )

    _session_stub = cast("Session", object())
    _crosswalk_repo: CrosswalkRepository = SqlAlchemyCrosswalkRepository(_session_stub)
    _log_repo: ReconciliationLogRepository = SqlAlchemyReconciliationLogRepository(_session_stub)
    _merged_repo: MergedEntityRepository = SqlAlchemyMergedEntityRepository(_session_stub)
    _history_repo: HistoryRepository = SqlAlchemyHistoryRepository(_session_stub)
    _run_repo: BatchRunRepository = SqlAlchemyBatchRunRepository(_session_stub)
