"""Rule registry: match rules, system-of-record rules, scoring and SCD settings."""

from __future__ import annotations

from .definitions import (
    CANONICAL_ID_COLUMN,
    DEFAULT_MAX_SCORE,
    EntityTypeRules,
    FieldStandardization,
    MatchRule,
    ScoringRule,
    SCDConfig,
    SystemOfRecordRule,
)
from .registry import RuleRegistry, validate
from .validation import ConfigError, ConfigErrorCode, validate_all, validate_entity_rules

__all__ = [
    "CANONICAL_ID_COLUMN",
    "DEFAULT_MAX_SCORE",
    "ConfigError",
    "ConfigErrorCode",
    "EntityTypeRules",
    "FieldStandardization",
    "MatchRule",
    "RuleRegistry",
    "SCDConfig",
    "ScoringRule",
    "SystemOfRecordRule",
    "validate",
    "validate_all",
    "validate_entity_rules",
]
