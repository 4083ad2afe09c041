from __future__ import annotations

import pytest

from dimrecon.domain.model import CheckKind
from dimrecon.domain.reconciliation import assess_quality
from dimrecon.domain.reconciliation.quality import check_passes
from dimrecon.domain.rules import ScoringRule
from tests.support.rules import veteran_rules

RATING = ScoringRule(field="rating", weight=30, check=CheckKind.RANGE, minimum=0, maximum=100)


def test_entity_without_scoring_rules_scores_full_marks() -> None:
    assessment = assess_quality({"name": None}, ())

    assert assessment.score == 100.0
    assert assessment.issues == ()


def test_fully_valid_entity_scores_full_marks() -> None:
    attributes = {"ssn": "123", "rating": 70, "email": "x@y.com", "status": "ACTIVE"}

    assessment = assess_quality(attributes, veteran_rules().scoring)

    assert assessment.score == 100.0
    assert assessment.issues == ()


def test_score_is_the_passed_share_of_total_weight() -> None:
    attributes = {"ssn": "123", "rating": 140, "email": "not-an-email", "status": "ACTIVE"}

    assessment = assess_quality(attributes, veteran_rules().scoring)

    assert assessment.score == 40.0
    assert assessment.issues == (
        "email: invalid email address",
        "rating: outside range [0, 100]",
    )


def test_missing_value_fails_every_check() -> None:
    assessment = assess_quality({}, veteran_rules().scoring)

    assert assessment.score == 0.0
    assert "ssn: missing value" in assessment.issues


def test_score_is_rounded() -> None:
    rules = (
        ScoringRule(field="a", weight=1),
        ScoringRule(field="b", weight=1),
        ScoringRule(field="c", weight=1),
    )

    assessment = assess_quality({"a": "x"}, rules)

    assert assessment.score == 33.33


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, True), (100, True), ("55.5", True), (-1, False), ("n/a", False), (True, False)],
)
def test_range_check(value: object, expected: bool) -> None:  # noqa: FBT001
    assert check_passes(RATING, value) is expected


def test_open_ended_range_only_checks_its_bound() -> None:
    rule = ScoringRule(field="rating", weight=1, check=CheckKind.RANGE, minimum=10)

    assert check_passes(rule, 1_000)
    assert not check_passes(rule, 9)
