"""Value standardization applied before comparing and merging source values."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dimrecon.domain.model.enums import Transform

if TYPE_CHECKING:
    from collections.abc import Callable

    from dimrecon.domain.rules import FieldStandardization

_TRANSFORMS: dict[Transform, Callable[[str], str]] = {
    Transform.STRIP: str.strip,
    Transform.UPPER: str.upper,
    Transform.LOWER: str.lower,
    Transform.COLLAPSE_WHITESPACE: lambda text: " ".join(text.split()),
}


def is_absent(value: object) -> bool:
    """Missing values and blank strings never take part in a merge."""

    return value is None or (isinstance(value, str) and not value.strip())


def standardize_value(
    value: object,
    *,
    source_system: str,
    standardization: FieldStandardization | None,
) -> object | None:
    if is_absent(value):
        return None
    if standardization is None or not isinstance(value, str):
        return value

    codes = standardization.code_mappings.get(source_system)
    if codes:
        value = codes.get(value.strip(), value)
    for transform in standardization.transforms:
        value = _TRANSFORMS[transform](value)
    return None if is_absent(value) else value
