"""Deterministic match keys derived from source records.

A match key is ``(method, value, ...)`` where each value is the NFKC-normalised,
whitespace-collapsed, case-folded text of one key column. Keys built by
different rules never collide because the method name leads the tuple.
"""

from __future__ import annotations

import json
import unicodedata
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from dimrecon.domain.model import MatchKey, SourceRecord
    from dimrecon.domain.rules import MatchRule

SOURCE_RECORD_METHOD: Final[str] = "source_record"


def normalize_key_value(value: object) -> str | None:
    if value is None:
        return None
    text = unicodedata.normalize("NFKC", str(value))
    text = " ".join(text.split()).casefold()
    return text or None


def match_key_for(record: SourceRecord, rule: MatchRule) -> MatchKey | None:
    """Return the rule's key for ``record``, or ``None`` if any key column is blank."""

    values: list[str] = []
    for column in rule.key_columns:
        normalized = normalize_key_value(record.value_for(column))
        if normalized is None:
            return None
        values.append(normalized)
    return (rule.method, *values)


def source_record_key(record: SourceRecord) -> MatchKey:
    """Key that remembers which canonical id a source record was last linked to."""

    return (SOURCE_RECORD_METHOD, record.source_system, record.source_record_id)


def serialize_key(key: MatchKey) -> str:
    return json.dumps(list(key), separators=(",", ":"), ensure_ascii=False)
