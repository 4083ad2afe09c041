"""SCD Type 2 dimension history."""

from __future__ import annotations

from .integrity import (
    IntegrityReport,
    IntegrityViolation,
    Violation,
    ViolationKind,
    check_integrity,
)
from .scd import ApplyResult, HistoryManager, RejectedEntity, RejectionReason, business_key_for

__all__ = [
    "ApplyResult",
    "HistoryManager",
    "IntegrityReport",
    "IntegrityViolation",
    "RejectedEntity",
    "RejectionReason",
    "Violation",
    "ViolationKind",
    "business_key_for",
    "check_integrity",
]
