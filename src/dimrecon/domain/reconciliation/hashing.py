"""Canonical JSON and content hashing for merged attributes."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Set
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


def _json_default(value: object) -> object:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, Set):
        return sorted(value, key=str)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _canonical_number(value: object) -> object:
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, Decimal) and value.is_finite():
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Mapping):
        return {key: _canonical_number(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_canonical_number(item) for item in value]
    return value


def canonical_json(value: object) -> str:
    """Serialise ``value`` with sorted keys and no insignificant whitespace.

    Numbers compare by value, so ``70``, ``70.0`` and ``Decimal("70")`` serialise alike.
    """

    return json.dumps(
        _canonical_number(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def tracked_snapshot(
    attributes: Mapping[str, object], tracked_columns: Iterable[str]
) -> dict[str, object]:
    return {column: attributes.get(column) for column in sorted(set(tracked_columns))}


def record_hash(attributes: Mapping[str, object], tracked_columns: Iterable[str]) -> str:
    """SHA-256 over the tracked columns only; untracked changes never alter the hash."""

    snapshot = tracked_snapshot(attributes, tracked_columns)
    return hashlib.sha256(canonical_json(snapshot).encode("utf-8")).hexdigest()
