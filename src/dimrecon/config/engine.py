"""Reconciliation engine runtime configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import positive_int_env, require_env_vars

RULES_PATH_ENV: Final[str] = "DIMRECON_RULES_PATH"
MAX_WORKERS_ENV: Final[str] = "DIMRECON_MAX_WORKERS"
DEFAULT_MAX_WORKERS: Final[int] = 4


@dataclass(frozen=True, slots=True)
class EngineConfig:
    rules_path: Path | None
    max_workers: int = DEFAULT_MAX_WORKERS

    def require_rules_path(self) -> Path:
        if self.rules_path is not None:
            return self.rules_path
        return Path(require_env_vars([RULES_PATH_ENV])[RULES_PATH_ENV]).expanduser()


def get_engine_config(*, rules_path: Path | None = None) -> EngineConfig:
    """Build the engine configuration from explicit overrides and the environment."""

    if rules_path is None:
        env_path = os.getenv(RULES_PATH_ENV)
        rules_path = Path(env_path).expanduser() if env_path and env_path.strip() else None
    return EngineConfig(
        rules_path=rules_path,
        max_workers=positive_int_env(MAX_WORKERS_ENV, default=DEFAULT_MAX_WORKERS),
    )
