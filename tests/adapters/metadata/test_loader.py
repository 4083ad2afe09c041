from __future__ import annotations

from pathlib import Path

import pytest

from dimrecon.adapters.metadata import load_rule_registry, parse_rule_registry
from dimrecon.config import ConfigurationError, MissingConfigurationError
from dimrecon.domain.model import MergeStrategy, SurrogateKeySource, Transform
from dimrecon.domain.rules import ConfigErrorCode
from tests.support.rules import sample_registry

RULES_PATH = Path(__file__).resolve().parents[2] / "data" / "rules.toml"


def _minimal_document(**overrides: object) -> dict[str, object]:
    section: dict[str, object] = {
        "scd": {"business_key": ["code"], "tracked": ["name"]},
        "match": [{"priority": 1, "keys": ["code"], "confidence": 100, "method": "code"}],
        "system_of_record": [{"group": "all", "fields": ["code", "name"], "precedence": ["A"]}],
    }
    section.update(overrides)
    return {"source_systems": ["A"], "entity_types": {"site": section}}


def test_rules_document_loads_into_registry() -> None:
    registry = load_rule_registry(RULES_PATH)

    assert registry == sample_registry()
    assert registry.validate() == []


def test_loaded_rules_keep_enums_and_code_maps() -> None:
    registry = load_rule_registry(RULES_PATH)

    veteran = registry.require("veteran")
    status = veteran.standardization_for("status")
    assert status is not None
    assert status.transforms == (Transform.STRIP, Transform.UPPER)
    assert status.code_mappings["B"]["0"] == "INACTIVE"
    status_rule = veteran.rule_for_field("status")
    assert status_rule is not None
    assert status_rule.strategy is MergeStrategy.MOST_RECENT
    facility = registry.require("facility")
    assert facility.scd.surrogate_key_source is SurrogateKeySource.SEQUENCE
    assert facility.table_name == "dim_facility_history"


def test_missing_rules_file_is_reported(tmp_path: Path) -> None:
    with pytest.raises(MissingConfigurationError):
        load_rule_registry(tmp_path / "absent.toml")


def test_malformed_toml_is_a_configuration_error(tmp_path: Path) -> None:
    path = tmp_path / "rules.toml"
    path.write_text("source_systems = [", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="not valid TOML"):
        load_rule_registry(path)


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Invalid rules document"):
        parse_rule_registry(_minimal_document(merge_everything=True))


def test_unknown_enum_value_is_rejected() -> None:
    document = _minimal_document(
        scoring=[{"field": "name", "weight": 10, "check": "spellcheck"}],
    )

    with pytest.raises(ConfigurationError):
        parse_rule_registry(document)


def test_structural_problems_are_left_to_validation() -> None:
    registry = parse_rule_registry(_minimal_document(match=[]))

    assert [error.code for error in registry.validate()] == [ConfigErrorCode.NO_MATCH_RULES]


def test_business_key_names_are_trimmed() -> None:
    document = _minimal_document(scd={"business_key": [" code "], "tracked": ["name"]})

    registry = parse_rule_registry(document)

    assert registry.entity_rules["site"].scd.business_key_columns == ("code",)
