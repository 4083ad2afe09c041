"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class MergeStrategy(StrEnum):
    PRECEDENCE = "precedence"
    MOST_RECENT = "most_recent"


class CheckKind(StrEnum):
    NOT_NULL = "not_null"
    RANGE = "range"
    PATTERN = "pattern"
    ALLOWED_VALUES = "allowed_values"


class Transform(StrEnum):
    STRIP = "strip"
    UPPER = "upper"
    LOWER = "lower"
    COLLAPSE_WHITESPACE = "collapse_whitespace"


class SurrogateKeySource(StrEnum):
    UUID = "uuid"
    SEQUENCE = "sequence"


class ConflictType(StrEnum):
    """Kinds of reconciliation events written to the conflict log."""

    FIELD_MISMATCH = "field_mismatch"
    DUPLICATE_IN_SOURCE = "duplicate_in_source"


class RunStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
