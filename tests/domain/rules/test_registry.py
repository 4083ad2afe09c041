from __future__ import annotations

from dataclasses import replace

import pytest

from dimrecon.config import ConfigurationError, RuleConfigurationError
from dimrecon.domain.model import CheckKind, MergeStrategy
from dimrecon.domain.rules import (
    ConfigErrorCode,
    MatchRule,
    RuleRegistry,
    ScoringRule,
    SystemOfRecordRule,
    validate,
)
from tests.support.rules import (
    SOURCE_SYSTEMS,
    broken_rules,
    facility_rules,
    sample_registry,
    veteran_rules,
)


def _codes(registry: RuleRegistry, entity_type: str) -> set[ConfigErrorCode]:
    return {error.code for error in registry.errors_for(entity_type)}


def test_sample_rules_are_valid() -> None:
    registry = sample_registry()

    assert registry.validate() == []
    assert registry.entity_types == ("facility", "veteran")
    assert registry.valid_entity_types() == ("facility", "veteran")


def test_duplicate_entity_type_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        RuleRegistry.from_rules(
            source_systems=SOURCE_SYSTEMS, rules=[veteran_rules(), veteran_rules()]
        )


def test_require_returns_rules_for_valid_entity_type() -> None:
    registry = sample_registry()

    rules = registry.require("veteran")

    assert rules.table_name == "dim_veteran"
    assert [rule.method for rule in rules.ordered_match_rules] == ["ssn_exact", "name_dob"]


def test_require_unknown_entity_type_raises() -> None:
    with pytest.raises(RuleConfigurationError) as exc:
        sample_registry().require("unknown")

    assert exc.value.entity_type == "unknown"
    assert exc.value.errors == ()


def test_invalid_entity_type_is_isolated() -> None:
    registry = sample_registry(broken_rules())

    with pytest.raises(RuleConfigurationError) as exc:
        registry.require("broken")

    codes = {error.code for error in exc.value.errors}
    assert ConfigErrorCode.EMPTY_BUSINESS_KEY in codes
    assert ConfigErrorCode.EMPTY_TRACKED_COLUMNS in codes
    assert registry.valid_entity_types() == ("facility", "veteran")
    assert registry.require("veteran").entity_type == "veteran"


def test_validate_reports_every_problem_in_entity_order() -> None:
    registry = sample_registry(broken_rules())

    errors = validate(registry)

    assert errors == registry.validate()
    assert {error.entity_type for error in errors} == {"broken"}


def test_field_claimed_by_two_groups_is_ambiguous() -> None:
    rules = veteran_rules()
    clash = SystemOfRecordRule(group="clash", fields=("rating",), precedence=("B",))
    registry = sample_registry(
        replace(rules, entity_type="clashing", system_of_record=(*rules.system_of_record, clash))
    )

    assert ConfigErrorCode.AMBIGUOUS_FIELD_STRATEGY in _codes(registry, "clashing")


def test_tracked_column_without_strategy_is_reported() -> None:
    rules = veteran_rules()
    registry = sample_registry(
        replace(
            rules,
            entity_type="partial",
            system_of_record=tuple(sor for sor in rules.system_of_record if sor.group != "contact"),
        )
    )

    errors = registry.errors_for("partial")

    assert [error.code for error in errors] == [ConfigErrorCode.MISSING_FIELD_STRATEGY]
    assert "'email'" in errors[0].message


def test_unknown_source_in_precedence_is_reported() -> None:
    rules = facility_rules()
    registry = sample_registry(
        replace(
            rules,
            entity_type="site",
            scd=replace(rules.scd, table_name=None),
            system_of_record=(
                SystemOfRecordRule(
                    group="facility",
                    fields=("station", "name", "region"),
                    precedence=("C", "Z"),
                    strategy=MergeStrategy.PRECEDENCE,
                ),
            ),
        )
    )

    assert _codes(registry, "site") == {ConfigErrorCode.UNKNOWN_SOURCE_SYSTEM}


def test_match_rule_problems_are_reported() -> None:
    rules = facility_rules()
    registry = sample_registry(
        replace(
            rules,
            entity_type="site",
            match_rules=(
                MatchRule(priority=1, key_columns=("station",), confidence=100, method="station"),
                MatchRule(priority=1, key_columns=(), confidence=120, method="station"),
            ),
        )
    )

    assert _codes(registry, "site") == {
        ConfigErrorCode.DUPLICATE_MATCH_PRIORITY,
        ConfigErrorCode.DUPLICATE_MATCH_METHOD,
        ConfigErrorCode.EMPTY_MATCH_KEY,
        ConfigErrorCode.CONFIDENCE_OUT_OF_RANGE,
    }


def test_no_match_rules_is_reported() -> None:
    registry = sample_registry(replace(facility_rules(), entity_type="site", match_rules=()))

    assert _codes(registry, "site") == {ConfigErrorCode.NO_MATCH_RULES}


def test_scoring_weights_may_not_exceed_max_score() -> None:
    rules = veteran_rules()
    registry = sample_registry(replace(rules, entity_type="heavy", max_score=50))

    assert _codes(registry, "heavy") == {ConfigErrorCode.SCORING_WEIGHT_OVERFLOW}


@pytest.mark.parametrize(
    "scoring",
    [
        ScoringRule(field="name", weight=-1),
        ScoringRule(field="name", weight=10, check=CheckKind.RANGE),
        ScoringRule(field="name", weight=10, check=CheckKind.RANGE, minimum=5, maximum=1),
        ScoringRule(field="name", weight=10, check=CheckKind.PATTERN, pattern="("),
        ScoringRule(field="name", weight=10, check=CheckKind.ALLOWED_VALUES),
    ],
)
def test_malformed_scoring_rule_is_reported(scoring: ScoringRule) -> None:
    registry = sample_registry(replace(facility_rules(), entity_type="site", scoring=(scoring,)))

    assert _codes(registry, "site") == {ConfigErrorCode.INVALID_SCORING_RULE}


def test_config_error_renders_entity_and_code() -> None:
    error = sample_registry(broken_rules()).errors_for("broken")[0]

    assert str(error).startswith("broken: [empty_business_key]")


def test_system_of_record_rank_puts_unlisted_sources_last() -> None:
    sor = SystemOfRecordRule(group="g", fields=("f",), precedence=("B", "A"))

    ranked = sorted(["C", "A", "D", "B"], key=sor.rank)

    assert ranked == ["B", "A", "C", "D"]
    assert sor.resolution_rule == "precedence:B>A"
