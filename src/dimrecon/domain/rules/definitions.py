"""Per-entity-type rule definitions held by the rule registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from dimrecon.domain.model.enums import CheckKind, MergeStrategy, SurrogateKeySource

if TYPE_CHECKING:
    from collections.abc import Mapping

    from dimrecon.domain.model.enums import Transform

CANONICAL_ID_COLUMN: Final[str] = "canonical_id"
"""Pseudo business-key column that refers to the resolver's canonical id."""

DEFAULT_MAX_SCORE: Final[float] = 100.0


@dataclass(frozen=True, slots=True, kw_only=True)
class SCDConfig:
    business_key_columns: tuple[str, ...]
    tracked_columns: tuple[str, ...]
    surrogate_key_source: SurrogateKeySource = SurrogateKeySource.UUID
    table_name: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class MatchRule:
    """Natural-key rule: records agreeing on all ``key_columns`` are the same entity."""

    priority: int
    key_columns: tuple[str, ...]
    confidence: float
    method: str


@dataclass(frozen=True, slots=True, kw_only=True)
class SystemOfRecordRule:
    """Which source wins each field of ``group``.

    ``precedence`` lists sources from most to least trusted; sources that are not
    listed rank after the listed ones, alphabetically.
    """

    group: str
    fields: tuple[str, ...]
    precedence: tuple[str, ...]
    strategy: MergeStrategy = MergeStrategy.PRECEDENCE

    def rank(self, source_system: str) -> tuple[int, str]:
        try:
            return (self.precedence.index(source_system), source_system)
        except ValueError:
            return (len(self.precedence), source_system)

    @property
    def resolution_rule(self) -> str:
        if self.strategy is MergeStrategy.MOST_RECENT:
            return f"{MergeStrategy.MOST_RECENT}:{self.group}"
        return f"{MergeStrategy.PRECEDENCE}:{'>'.join(self.precedence)}"


@dataclass(frozen=True, slots=True, kw_only=True)
class ScoringRule:
    field: str
    weight: float
    check: CheckKind = CheckKind.NOT_NULL
    minimum: float | None = None
    maximum: float | None = None
    pattern: str | None = None
    allowed_values: frozenset[str] = frozenset()
    description: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldStandardization:
    """Clean-up applied to a field's value before comparison and merge.

    ``code_mappings`` maps a source system to its own code table, applied first;
    ``transforms`` run afterwards, in order.
    """

    field: str
    transforms: tuple[Transform, ...] = ()
    code_mappings: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen = {
            source: MappingProxyType(dict(codes)) for source, codes in self.code_mappings.items()
        }
        object.__setattr__(self, "code_mappings", MappingProxyType(frozen))


@dataclass(frozen=True, slots=True, kw_only=True)
class EntityTypeRules:
    entity_type: str
    scd: SCDConfig
    match_rules: tuple[MatchRule, ...]
    system_of_record: tuple[SystemOfRecordRule, ...]
    scoring: tuple[ScoringRule, ...] = ()
    max_score: float = DEFAULT_MAX_SCORE
    standardization: tuple[FieldStandardization, ...] = ()

    @property
    def table_name(self) -> str:
        return self.scd.table_name or f"dim_{self.entity_type}"

    @property
    def ordered_match_rules(self) -> tuple[MatchRule, ...]:
        return tuple(sorted(self.match_rules, key=lambda rule: (rule.priority, rule.method)))

    @property
    def merged_fields(self) -> tuple[str, ...]:
        return tuple(sorted({name for rule in self.system_of_record for name in rule.fields}))

    def rule_for_field(self, field_name: str) -> SystemOfRecordRule | None:
        for rule in self.system_of_record:
            if field_name in rule.fields:
                return rule
        return None

    def standardization_for(self, field_name: str) -> FieldStandardization | None:
        for standardization in self.standardization:
            if standardization.field == field_name:
                return standardization
        return None
