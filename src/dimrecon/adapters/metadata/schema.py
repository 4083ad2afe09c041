"""Pydantic models describing the rules metadata document (TOML)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dimrecon.domain.model.enums import CheckKind, MergeStrategy, SurrogateKeySource, Transform
from dimrecon.domain.rules.definitions import DEFAULT_MAX_SCORE


def _strip_names(values: list[str]) -> list[str]:
    return [value.strip() for value in values]


class MetadataBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ScdSection(MetadataBaseModel):
    business_key: list[str]
    tracked: list[str]
    surrogate_key: SurrogateKeySource = SurrogateKeySource.UUID
    table: str | None = None

    _strip = field_validator("business_key", "tracked")(_strip_names)


class MatchRuleSection(MetadataBaseModel):
    priority: int
    keys: list[str]
    confidence: float
    method: str


class SystemOfRecordSection(MetadataBaseModel):
    group: str
    fields: list[str]
    precedence: list[str] = Field(default_factory=list)
    strategy: MergeStrategy = MergeStrategy.PRECEDENCE


class ScoringSection(MetadataBaseModel):
    field: str
    weight: float
    check: CheckKind = CheckKind.NOT_NULL
    minimum: float | None = Field(default=None, alias="min")
    maximum: float | None = Field(default=None, alias="max")
    pattern: str | None = None
    allowed: list[str] = Field(default_factory=list)
    description: str | None = None


class StandardizationSection(MetadataBaseModel):
    field: str
    transforms: list[Transform] = Field(default_factory=list)
    code_map: dict[str, dict[str, str]] = Field(default_factory=dict)


class EntityTypeSection(MetadataBaseModel):
    scd: ScdSection
    match: list[MatchRuleSection] = Field(default_factory=list)
    system_of_record: list[SystemOfRecordSection] = Field(default_factory=list)
    scoring: list[ScoringSection] = Field(default_factory=list)
    max_score: float = DEFAULT_MAX_SCORE
    standardize: list[StandardizationSection] = Field(default_factory=list)


class MetadataDocument(MetadataBaseModel):
    source_systems: list[str]
    entity_types: dict[str, EntityTypeSection] = Field(default_factory=dict)
