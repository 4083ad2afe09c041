"""Reconciliation stages: resolve source records, then merge them per entity."""

from __future__ import annotations

from .contracts import MergeResult, ResolvedRecord, ResolveResult
from .hashing import canonical_json, record_hash
from .merge import AttributeMerger
from .quality import QualityAssessment, assess_quality
from .resolve import (
    NEW_ENTITY_METHOD,
    PRIOR_CROSSWALK_METHOD,
    EntityResolver,
    mint_canonical_id,
)

__all__ = [
    "NEW_ENTITY_METHOD",
    "PRIOR_CROSSWALK_METHOD",
    "AttributeMerger",
    "EntityResolver",
    "MergeResult",
    "QualityAssessment",
    "ResolveResult",
    "ResolvedRecord",
    "assess_quality",
    "canonical_json",
    "mint_canonical_id",
    "record_hash",
]
