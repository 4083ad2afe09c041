"""JSON Lines batch file adapter."""

from __future__ import annotations

from .reader import BatchFileError, group_by_entity_type, iter_batch_file, read_batch_file

__all__ = ["BatchFileError", "group_by_entity_type", "iter_batch_file", "read_batch_file"]
