"""Pydantic models describing JSON Lines batch files."""

from __future__ import annotations

from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class BatchBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class SourceRecordPayload(BatchBaseModel):
    entity_type: str = Field(min_length=1)
    source_system: str = Field(min_length=1)
    source_record_id: str = Field(min_length=1)
    batch_id: str = Field(min_length=1)
    source_timestamp: AwareDatetime
    natural_keys: dict[str, Any] = Field(default_factory=dict)
    attributes: dict[str, Any] = Field(default_factory=dict)
