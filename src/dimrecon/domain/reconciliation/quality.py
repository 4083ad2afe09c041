"""Rule-based data quality scoring of merged entities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dimrecon.domain.model.enums import CheckKind

from .standardize import is_absent

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from dimrecon.domain.rules import ScoringRule


@dataclass(frozen=True, slots=True)
class QualityAssessment:
    score: float
    issues: tuple[str, ...]


def check_passes(rule: ScoringRule, value: object) -> bool:
    if is_absent(value):
        return False
    match rule.check:
        case CheckKind.NOT_NULL:
            return True
        case CheckKind.RANGE:
            number = _as_number(value)
            if number is None:
                return False
            if rule.minimum is not None and number < rule.minimum:
                return False
            return not (rule.maximum is not None and number > rule.maximum)
        case CheckKind.PATTERN:
            return rule.pattern is not None and re.fullmatch(rule.pattern, str(value)) is not None
        case CheckKind.ALLOWED_VALUES:
            return str(value) in rule.allowed_values


def assess_quality(
    attributes: Mapping[str, object], rules: Sequence[ScoringRule]
) -> QualityAssessment:
    """Score ``attributes`` as the passed share of the total rule weight, 0 to 100.

    Without rules every entity scores 100. Issues name each failed field once.
    """

    total = sum(rule.weight for rule in rules)
    if not rules or total <= 0:
        return QualityAssessment(score=100.0, issues=())

    passed = 0.0
    issues: set[str] = set()
    for rule in rules:
        if check_passes(rule, attributes.get(rule.field)):
            passed += rule.weight
        else:
            issues.add(f"{rule.field}: {rule.description or _default_issue(rule)}")
    return QualityAssessment(score=round(100 * passed / total, 2), issues=tuple(sorted(issues)))


def _default_issue(rule: ScoringRule) -> str:
    match rule.check:
        case CheckKind.NOT_NULL:
            return "missing value"
        case CheckKind.RANGE:
            return f"outside range [{_bound(rule.minimum)}, {_bound(rule.maximum)}]"
        case CheckKind.PATTERN:
            return f"does not match {rule.pattern}"
        case CheckKind.ALLOWED_VALUES:
            return "not an allowed value"


def _bound(value: float | None) -> str:
    return "-" if value is None else f"{value:g}"


def _as_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    try:
        return float(str(value))
    except ValueError:
        return None
