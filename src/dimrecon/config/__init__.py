"""Application configuration helpers."""

from __future__ import annotations

from .engine import EngineConfig, get_engine_config
from .env import positive_int_env, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError, RuleConfigurationError
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "EngineConfig",
    "MissingConfigurationError",
    "RuleConfigurationError",
    "StorageConfig",
    "configure_logging",
    "get_database_config",
    "get_engine_config",
    "get_storage_config",
    "positive_int_env",
    "require_env_vars",
]
