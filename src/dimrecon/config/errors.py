"""Configuration error definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from dimrecon.domain.rules.validation import ConfigError


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""


class RuleConfigurationError(ConfigurationError):
    """Raised when an entity type cannot run because its rules are unusable."""

    def __init__(self, entity_type: str, errors: Sequence[ConfigError] = ()) -> None:
        self.entity_type = entity_type
        self.errors = tuple(errors)
        if self.errors:
            details = "; ".join(str(error) for error in self.errors)
            message = f"Invalid rules for entity type {entity_type!r}: {details}"
        else:
            message = f"No rules registered for entity type {entity_type!r}"
        super().__init__(message)
