"""Structural validation of entity-type rules.

Validation never raises: it returns every problem it finds so that operators can
fix a metadata document in one pass. The registry turns a non-empty result into a
``RuleConfigurationError`` when an entity type is actually requested.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from dimrecon.domain.model.enums import CheckKind

from .definitions import CANONICAL_ID_COLUMN

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Iterable

    from .definitions import EntityTypeRules, ScoringRule

    type _Reporter = Callable[[ConfigErrorCode, str], None]


class ConfigErrorCode(StrEnum):
    EMPTY_BUSINESS_KEY = "empty_business_key"
    EMPTY_TRACKED_COLUMNS = "empty_tracked_columns"
    NO_MATCH_RULES = "no_match_rules"
    EMPTY_MATCH_KEY = "empty_match_key"
    DUPLICATE_MATCH_PRIORITY = "duplicate_match_priority"
    DUPLICATE_MATCH_METHOD = "duplicate_match_method"
    CONFIDENCE_OUT_OF_RANGE = "confidence_out_of_range"
    UNKNOWN_SOURCE_SYSTEM = "unknown_source_system"
    EMPTY_PRECEDENCE = "empty_precedence"
    AMBIGUOUS_FIELD_STRATEGY = "ambiguous_field_strategy"
    MISSING_FIELD_STRATEGY = "missing_field_strategy"
    SCORING_WEIGHT_OVERFLOW = "scoring_weight_overflow"
    INVALID_SCORING_RULE = "invalid_scoring_rule"


@dataclass(frozen=True, slots=True)
class ConfigError:
    entity_type: str
    code: ConfigErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.entity_type}: [{self.code}] {self.message}"


def validate_entity_rules(
    rules: EntityTypeRules, *, source_systems: Collection[str]
) -> list[ConfigError]:
    """Return every structural problem in ``rules``; an empty list means usable."""

    errors: list[ConfigError] = []

    def report(code: ConfigErrorCode, message: str) -> None:
        errors.append(ConfigError(rules.entity_type, code, message))

    if not rules.scd.business_key_columns:
        report(ConfigErrorCode.EMPTY_BUSINESS_KEY, "SCD config declares no business key columns")
    if not rules.scd.tracked_columns:
        report(ConfigErrorCode.EMPTY_TRACKED_COLUMNS, "SCD config declares no tracked columns")

    _check_match_rules(rules, report)
    _check_system_of_record(rules, source_systems, report)
    _check_scoring(rules, report)

    for standardization in rules.standardization:
        for source in sorted(set(standardization.code_mappings) - set(source_systems)):
            report(
                ConfigErrorCode.UNKNOWN_SOURCE_SYSTEM,
                f"code mapping for field {standardization.field!r} names unknown source {source!r}",
            )

    return errors


def _check_match_rules(rules: EntityTypeRules, report: _Reporter) -> None:
    if not rules.match_rules:
        report(ConfigErrorCode.NO_MATCH_RULES, "no match rules declared")
    priorities = Counter(rule.priority for rule in rules.match_rules)
    for priority, count in sorted(priorities.items()):
        if count > 1:
            report(
                ConfigErrorCode.DUPLICATE_MATCH_PRIORITY,
                f"{count} match rules share priority {priority}",
            )
    methods = Counter(rule.method for rule in rules.match_rules)
    for method, count in sorted(methods.items()):
        if count > 1:
            report(
                ConfigErrorCode.DUPLICATE_MATCH_METHOD,
                f"{count} match rules share method name {method!r}",
            )
    for rule in rules.match_rules:
        if not rule.key_columns:
            report(
                ConfigErrorCode.EMPTY_MATCH_KEY, f"match rule {rule.method!r} has no key columns"
            )
        if not 0 <= rule.confidence <= 100:
            report(
                ConfigErrorCode.CONFIDENCE_OUT_OF_RANGE,
                f"match rule {rule.method!r} has confidence {rule.confidence}, expected 0..100",
            )


def _check_system_of_record(
    rules: EntityTypeRules, source_systems: Collection[str], report: _Reporter
) -> None:
    owners: dict[str, list[str]] = {}
    for sor in rules.system_of_record:
        if not sor.precedence:
            report(ConfigErrorCode.EMPTY_PRECEDENCE, f"group {sor.group!r} lists no sources")
        for source in sor.precedence:
            if source not in source_systems:
                report(
                    ConfigErrorCode.UNKNOWN_SOURCE_SYSTEM,
                    f"group {sor.group!r} names unknown source {source!r}",
                )
        for field_name in sor.fields:
            owners.setdefault(field_name, []).append(sor.group)

    for field_name, groups in sorted(owners.items()):
        if len(groups) > 1:
            report(
                ConfigErrorCode.AMBIGUOUS_FIELD_STRATEGY,
                f"field {field_name!r} is claimed by groups {', '.join(groups)}",
            )

    required = {*rules.scd.tracked_columns, *(rule.field for rule in rules.scoring)}
    required.update(col for col in rules.scd.business_key_columns if col != CANONICAL_ID_COLUMN)
    for field_name in sorted(required - owners.keys()):
        report(
            ConfigErrorCode.MISSING_FIELD_STRATEGY,
            f"field {field_name!r} has no system-of-record rule",
        )


def _check_scoring(rules: EntityTypeRules, report: _Reporter) -> None:
    total = sum(rule.weight for rule in rules.scoring)
    if total > rules.max_score:
        report(
            ConfigErrorCode.SCORING_WEIGHT_OVERFLOW,
            f"scoring weights sum to {total:g}, above the maximum of {rules.max_score:g}",
        )
    for rule in rules.scoring:
        problem = _scoring_rule_problem(rule)
        if problem is not None:
            report(ConfigErrorCode.INVALID_SCORING_RULE, f"field {rule.field!r}: {problem}")


def _scoring_rule_problem(rule: ScoringRule) -> str | None:  # noqa: PLR0911
    if rule.weight < 0:
        return "weight must not be negative"
    if rule.check is CheckKind.RANGE:
        if rule.minimum is None and rule.maximum is None:
            return "range check needs a minimum or a maximum"
        if rule.minimum is not None and rule.maximum is not None and rule.minimum > rule.maximum:
            return "range minimum is above its maximum"
    if rule.check is CheckKind.PATTERN:
        if not rule.pattern:
            return "pattern check needs a pattern"
        try:
            re.compile(rule.pattern)
        except re.error as exc:
            return f"invalid pattern: {exc}"
    if rule.check is CheckKind.ALLOWED_VALUES and not rule.allowed_values:
        return "allowed-values check needs at least one value"
    return None


def validate_all(
    rules: Iterable[EntityTypeRules], *, source_systems: Collection[str]
) -> list[ConfigError]:
    errors: list[ConfigError] = []
    for entity_rules in sorted(rules, key=lambda item: item.entity_type):
        errors.extend(validate_entity_rules(entity_rules, source_systems=source_systems))
    return errors
