"""Read source-record batches from JSON Lines files."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from dimrecon.domain.model import SourceRecord

from .schema import SourceRecordPayload

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

log = logging.getLogger(__name__)


class BatchFileError(ValueError):
    """Raised when a batch file line cannot be parsed."""

    def __init__(self, path: Path, line_number: int, reason: str) -> None:
        self.path = path
        self.line_number = line_number
        super().__init__(f"{path}:{line_number}: {reason}")


def translate_payload(payload: SourceRecordPayload) -> SourceRecord:
    return SourceRecord(
        entity_type=payload.entity_type,
        source_system=payload.source_system,
        source_record_id=payload.source_record_id,
        batch_id=payload.batch_id,
        source_timestamp=payload.source_timestamp,
        natural_keys=payload.natural_keys,
        attributes=payload.attributes,
    )


def iter_batch_file(path: Path) -> Iterator[SourceRecord]:
    with path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                payload = SourceRecordPayload.model_validate_json(line)
            except ValidationError as exc:
                raise BatchFileError(path, line_number, str(exc)) from exc
            yield translate_payload(payload)


def read_batch_file(path: Path) -> list[SourceRecord]:
    records = list(iter_batch_file(path))
    log.info("Read %s source record(s) from %s", len(records), path)
    return records


def group_by_entity_type(records: Iterable[SourceRecord]) -> dict[str, list[SourceRecord]]:
    grouped: dict[str, list[SourceRecord]] = {}
    for record in records:
        grouped.setdefault(record.entity_type, []).append(record)
    return dict(sorted(grouped.items()))
