"""Rules metadata adapter (TOML document to rule registry)."""

from __future__ import annotations

from .loader import load_rule_registry, parse_rule_registry

__all__ = ["load_rule_registry", "parse_rule_registry"]
