"""Load the rule registry from a TOML metadata document."""

from __future__ import annotations

import logging
import tomllib
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from dimrecon.config.errors import ConfigurationError, MissingConfigurationError

from .schema import MetadataDocument
from .translator import translate_document

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from dimrecon.domain.rules import RuleRegistry

log = logging.getLogger(__name__)


def load_rule_registry(path: Path) -> RuleRegistry:
    try:
        with path.open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise MissingConfigurationError(f"Rules file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Rules file {path} is not valid TOML: {exc}") from exc
    registry = parse_rule_registry(document)
    log.info("Loaded rules for %s entity type(s) from %s", len(registry.entity_types), path)
    return registry


def parse_rule_registry(document: Mapping[str, Any]) -> RuleRegistry:
    """Validate the document's shape; structural rule problems are left to ``validate``."""

    try:
        model = MetadataDocument.model_validate(document)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid rules document: {exc}") from exc
    return translate_document(model)
