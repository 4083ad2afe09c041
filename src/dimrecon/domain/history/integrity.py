"""Structural checks over an entity type's dimension history."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from dimrecon.domain.model import BusinessKey, DimensionVersion


class ViolationKind(StrEnum):
    MULTIPLE_CURRENT = "multiple_current"
    OVERLAPPING_INTERVALS = "overlapping_intervals"
    CURRENT_ROW_CLOSED = "current_row_closed"
    EXPIRED_ROW_OPEN = "expired_row_open"
    INVERTED_INTERVAL = "inverted_interval"


@dataclass(frozen=True, slots=True, kw_only=True)
class Violation:
    business_key: BusinessKey
    kind: ViolationKind
    surrogate_keys: tuple[str, ...]

    def __str__(self) -> str:
        return f"{'/'.join(self.business_key)}: {self.kind} ({', '.join(self.surrogate_keys)})"


@dataclass(frozen=True, slots=True, kw_only=True)
class IntegrityReport:
    entity_type: str
    checked_keys: int
    violations: tuple[Violation, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations


class IntegrityViolation(RuntimeError):  # noqa: N818
    """Raised after a batch commits when its dimension history is inconsistent."""

    def __init__(self, report: IntegrityReport) -> None:
        self.report = report
        shown = "; ".join(str(violation) for violation in report.violations[:5])
        super().__init__(
            f"{len(report.violations)} integrity violation(s) in {report.entity_type}: {shown}"
        )


def check_integrity(entity_type: str, versions: Iterable[DimensionVersion]) -> IntegrityReport:
    """Check every business key for one current row and non-overlapping intervals."""

    by_key: dict[BusinessKey, list[DimensionVersion]] = {}
    for version in versions:
        by_key.setdefault(version.business_key, []).append(version)

    violations: list[Violation] = []
    for business_key in sorted(by_key):
        violations.extend(_check_key(business_key, by_key[business_key]))
    return IntegrityReport(
        entity_type=entity_type,
        checked_keys=len(by_key),
        violations=tuple(violations),
    )


def _check_key(business_key: BusinessKey, rows: Sequence[DimensionVersion]) -> list[Violation]:
    def violation(kind: ViolationKind, *offenders: DimensionVersion) -> Violation:
        return Violation(
            business_key=business_key,
            kind=kind,
            surrogate_keys=tuple(row.surrogate_key for row in offenders),
        )

    found: list[Violation] = []
    current = [row for row in rows if row.is_current]
    if len(current) > 1:
        found.append(violation(ViolationKind.MULTIPLE_CURRENT, *current))
    for row in rows:
        if row.is_current and not row.is_open:
            found.append(violation(ViolationKind.CURRENT_ROW_CLOSED, row))
        if not row.is_current and row.is_open:
            found.append(violation(ViolationKind.EXPIRED_ROW_OPEN, row))
        if row.effective_end is not None and row.effective_end < row.effective_start:
            found.append(violation(ViolationKind.INVERTED_INTERVAL, row))

    ordered = sorted(rows, key=lambda row: (row.effective_start, row.surrogate_key))
    reach: DimensionVersion | None = None
    for row in ordered:
        if reach is not None and _ends_after(reach, row.effective_start):
            found.append(violation(ViolationKind.OVERLAPPING_INTERVALS, reach, row))
        reach = _later_ending(reach, row)
    return found


def _ends_after(row: DimensionVersion, moment: datetime) -> bool:
    return row.effective_end is None or row.effective_end > moment


def _later_ending(left: DimensionVersion | None, right: DimensionVersion) -> DimensionVersion:
    if left is None:
        return right
    if left.effective_end is None:
        return left
    if right.effective_end is None or right.effective_end > left.effective_end:
        return right
    return left
