"""Per-entity-type SCD Type 2 tables.

Every entity type gets its own table (``dim_<entity_type>`` unless configured
otherwise) with identical columns. Tables are registered on the shared metadata
when the adapter starts so that ``create_all`` creates them alongside the rest.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Column, Index, String, Table, true

from dimrecon.adapters.sqlalchemy.mappings import UTCDateTime, mapper_registry

if TYPE_CHECKING:
    from dimrecon.domain.rules import EntityTypeRules


class MissingHistoryTableError(LookupError):
    """Raised when an entity type's history table was never registered."""


_LOCK = threading.Lock()
_TABLES_BY_ENTITY_TYPE: dict[str, Table] = {}


def _build_table(table_name: str) -> Table:
    table = Table(
        table_name,
        mapper_registry.metadata,
        Column("surrogate_key", String(64), primary_key=True),
        Column("business_key", String, nullable=False),
        Column("canonical_id", String(64), nullable=False),
        Column("attribute_snapshot", JSON, nullable=False),
        Column("record_hash", String(64), nullable=False),
        Column("is_current", Boolean, nullable=False),
        Column("effective_start", UTCDateTime(), nullable=False),
        Column("effective_end", UTCDateTime(), nullable=True),
        Column("created_at", UTCDateTime(), nullable=False),
        Column("batch_id", String, nullable=False),
        Index(f"ix_{table_name}_business_key", "business_key", "effective_start"),
    )
    Index(
        f"uq_{table_name}_current",
        table.c.business_key,
        unique=True,
        sqlite_where=table.c.is_current == true(),
        postgresql_where=table.c.is_current == true(),
    )
    return table


def register_history_table(rules: EntityTypeRules) -> Table:
    """Return the history table for ``rules``, defining it on first use."""

    with _LOCK:
        registered = _TABLES_BY_ENTITY_TYPE.get(rules.entity_type)
        if registered is not None:
            if registered.name != rules.table_name:
                raise ValueError(
                    f"Entity type {rules.entity_type!r} already uses table {registered.name!r}"
                )
            return registered
        if rules.table_name in mapper_registry.metadata.tables:
            raise ValueError(f"Table {rules.table_name!r} is already in use")
        table = _build_table(rules.table_name)
        _TABLES_BY_ENTITY_TYPE[rules.entity_type] = table
        return table


def history_table(entity_type: str) -> Table:
    try:
        return _TABLES_BY_ENTITY_TYPE[entity_type]
    except KeyError as exc:
        raise MissingHistoryTableError(
            f"No history table registered for entity type {entity_type!r}; "
            "pass the rule registry to startup()"
        ) from exc


def registered_entity_types() -> tuple[str, ...]:
    return tuple(sorted(_TABLES_BY_ENTITY_TYPE))
