"""SQLAlchemy metadata for reconciliation state and dimension history."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Dialect,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)

from dimrecon.domain.model import BatchRun, ConflictType, ReconciliationLogEntry, RunStatus

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Crosswalk --------------------------------------------------------------------

crosswalk_table = Table(
    "crosswalk",
    mapper_registry.metadata,
    Column("entity_type", String(100), primary_key=True),
    Column("canonical_id", String(64), primary_key=True),
    Column("source_system", String(100), primary_key=True),
    Column("source_record_id", String, nullable=False),
    Column("match_confidence", Float, nullable=False),
    Column("match_method", String(100), nullable=False),
    Column("batch_id", String, nullable=False),
    Index(
        "ix_crosswalk_source_record",
        "entity_type",
        "source_system",
        "source_record_id",
        unique=True,
    ),
)

key_link_table = Table(
    "key_link",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entity_type", String(100), nullable=False),
    Column("match_key", String, nullable=False),
    Column("canonical_id", String(64), nullable=False),
    Column("source_system", String(100), nullable=False),
    Column("source_record_id", String, nullable=False),
    Column("first_batch_id", String, nullable=False),
    Column("last_batch_id", String, nullable=False),
    UniqueConstraint("entity_type", "match_key", "source_system", "source_record_id"),
    Index("ix_key_link_lookup", "entity_type", "match_key"),
)

# Merge output -----------------------------------------------------------------

merged_entity_table = Table(
    "merged_entity",
    mapper_registry.metadata,
    Column("entity_type", String(100), primary_key=True),
    Column("canonical_id", String(64), primary_key=True),
    Column("merged_attributes", JSON, nullable=False),
    Column("quality_score", Float, nullable=False),
    Column("quality_issues", JSON, nullable=False),
    Column("record_hash", String(64), nullable=False),
    Column("batch_id", String, nullable=False),
    Column("source_systems", JSON, nullable=False),
)

# Audit ------------------------------------------------------------------------

reconciliation_log_table = Table(
    "reconciliation_log",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("entity_type", String(100), nullable=False),
    Column("canonical_id", String(64), nullable=False),
    Column("field_name", String, nullable=False),
    Column("conflict_type", Enum(ConflictType, native_enum=False), nullable=False),
    Column("values_by_source", JSON, nullable=False),
    Column("resolution_rule", String, nullable=False),
    Column("resolved_value", JSON, nullable=True),
    Column("batch_id", String, nullable=False),
    Column("logged_at", UTCDateTime(), key="timestamp", nullable=False),
    Index("ix_reconciliation_log_batch", "entity_type", "batch_id"),
    Index("ix_reconciliation_log_entity", "entity_type", "canonical_id"),
)

batch_run_table = Table(
    "batch_run",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("entity_type", String(100), nullable=False),
    Column("batch_id", String, nullable=False),
    Column("status", Enum(RunStatus, native_enum=False), nullable=False),
    Column("processed_at", UTCDateTime(), nullable=False),
    Column("records_read", Integer, nullable=False, default=0),
    Column("crosswalk_entries", Integer, nullable=False, default=0),
    Column("conflicts", Integer, nullable=False, default=0),
    Column("duplicates", Integer, nullable=False, default=0),
    Column("inserted", Integer, nullable=False, default=0),
    Column("expired", Integer, nullable=False, default=0),
    Column("unchanged", Integer, nullable=False, default=0),
    Column("rejected", Integer, nullable=False, default=0),
    Column("error_message", String, nullable=True),
    Index("ix_batch_run_entity_batch", "entity_type", "batch_id"),
)


@cache
def start_mappers() -> orm.registry:
    """Map the append-only audit records onto their tables."""

    log.info("Starting SQLAlchemy mappers")
    mapper_registry.map_imperatively(ReconciliationLogEntry, reconciliation_log_table)
    mapper_registry.map_imperatively(BatchRun, batch_run_table)
    orm.configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    mapper_registry.metadata.create_all(engine)
