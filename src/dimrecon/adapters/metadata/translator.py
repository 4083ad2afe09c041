"""Translate the validated metadata document into the rule registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dimrecon.domain.rules import (
    EntityTypeRules,
    FieldStandardization,
    MatchRule,
    RuleRegistry,
    ScoringRule,
    SCDConfig,
    SystemOfRecordRule,
)

if TYPE_CHECKING:
    from .schema import EntityTypeSection, MetadataDocument


def translate_document(document: MetadataDocument) -> RuleRegistry:
    return RuleRegistry.from_rules(
        source_systems=document.source_systems,
        rules=[
            translate_entity_type(entity_type, section)
            for entity_type, section in document.entity_types.items()
        ],
    )


def translate_entity_type(entity_type: str, section: EntityTypeSection) -> EntityTypeRules:
    return EntityTypeRules(
        entity_type=entity_type,
        scd=SCDConfig(
            business_key_columns=tuple(section.scd.business_key),
            tracked_columns=tuple(section.scd.tracked),
            surrogate_key_source=section.scd.surrogate_key,
            table_name=section.scd.table,
        ),
        match_rules=tuple(
            MatchRule(
                priority=rule.priority,
                key_columns=tuple(rule.keys),
                confidence=rule.confidence,
                method=rule.method,
            )
            for rule in section.match
        ),
        system_of_record=tuple(
            SystemOfRecordRule(
                group=rule.group,
                fields=tuple(rule.fields),
                precedence=tuple(rule.precedence),
                strategy=rule.strategy,
            )
            for rule in section.system_of_record
        ),
        scoring=tuple(
            ScoringRule(
                field=rule.field,
                weight=rule.weight,
                check=rule.check,
                minimum=rule.minimum,
                maximum=rule.maximum,
                pattern=rule.pattern,
                allowed_values=frozenset(rule.allowed),
                description=rule.description,
            )
            for rule in section.scoring
        ),
        max_score=section.max_score,
        standardization=tuple(
            FieldStandardization(
                field=rule.field,
                transforms=tuple(rule.transforms),
                code_mappings=rule.code_map,
            )
            for rule in section.standardize
        ),
    )
