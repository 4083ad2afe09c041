"""Rule registry: the single source of per-entity-type configuration."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from dimrecon.config.errors import ConfigurationError, RuleConfigurationError

from .validation import validate_all, validate_entity_rules

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .definitions import EntityTypeRules
    from .validation import ConfigError


@dataclass(frozen=True, slots=True)
class RuleRegistry:
    """Immutable registry of entity-type rules and the known source systems."""

    source_systems: frozenset[str]
    entity_rules: Mapping[str, EntityTypeRules]

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_systems", frozenset(self.source_systems))
        object.__setattr__(self, "entity_rules", MappingProxyType(dict(self.entity_rules)))

    @classmethod
    def from_rules(
        cls, *, source_systems: Iterable[str], rules: Iterable[EntityTypeRules]
    ) -> RuleRegistry:
        by_type: dict[str, EntityTypeRules] = {}
        for entity_rules in rules:
            if entity_rules.entity_type in by_type:
                raise ConfigurationError(
                    f"Entity type {entity_rules.entity_type!r} is declared more than once"
                )
            by_type[entity_rules.entity_type] = entity_rules
        return cls(frozenset(source_systems), by_type)

    @property
    def entity_types(self) -> tuple[str, ...]:
        return tuple(sorted(self.entity_rules))

    def validate(self) -> list[ConfigError]:
        return validate_all(self.entity_rules.values(), source_systems=self.source_systems)

    def errors_for(self, entity_type: str) -> list[ConfigError]:
        rules = self.entity_rules.get(entity_type)
        if rules is None:
            return []
        return validate_entity_rules(rules, source_systems=self.source_systems)

    def require(self, entity_type: str) -> EntityTypeRules:
        """Return usable rules for ``entity_type`` or raise ``RuleConfigurationError``."""

        rules = self.entity_rules.get(entity_type)
        if rules is None:
            raise RuleConfigurationError(entity_type)
        errors = validate_entity_rules(rules, source_systems=self.source_systems)
        if errors:
            raise RuleConfigurationError(entity_type, errors)
        return rules

    def valid_entity_types(self) -> tuple[str, ...]:
        return tuple(
            entity_type for entity_type in self.entity_types if not self.errors_for(entity_type)
        )


def validate(registry: RuleRegistry) -> list[ConfigError]:
    """Return every rule problem in ``registry``, ordered by entity type."""

    return registry.validate()
