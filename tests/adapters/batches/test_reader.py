from __future__ import annotations

from pathlib import Path

import pytest

from dimrecon.adapters.batches import BatchFileError, group_by_entity_type, read_batch_file
from tests.helpers.records import at

BATCH_PATH = Path(__file__).resolve().parents[2] / "data" / "batch.jsonl"


def test_batch_file_yields_source_records() -> None:
    records = read_batch_file(BATCH_PATH)

    assert [record.identity for record in records] == [("A", "1"), ("B", "9"), ("C", "501")]
    first = records[0]
    assert first.entity_type == "veteran"
    assert first.source_timestamp == at(0)
    assert first.natural_keys == {"ssn": "123"}
    assert first.attributes["rating"] == 70


def test_numeric_record_ids_are_read_as_text() -> None:
    facility = read_batch_file(BATCH_PATH)[2]

    assert facility.source_record_id == "501"
    assert facility.value_for("station") == "501"


def test_records_group_by_entity_type() -> None:
    grouped = group_by_entity_type(read_batch_file(BATCH_PATH))

    assert list(grouped) == ["facility", "veteran"]
    assert len(grouped["veteran"]) == 2


def test_naive_timestamp_is_rejected_with_its_line(tmp_path: Path) -> None:
    path = tmp_path / "batch.jsonl"
    path.write_text(
        '{"entity_type": "veteran", "source_system": "A", "source_record_id": "1", '
        '"batch_id": "b", "source_timestamp": "2024-01-01T00:00:00"}\n',
        encoding="utf-8",
    )

    with pytest.raises(BatchFileError) as exc:
        read_batch_file(path)

    assert exc.value.line_number == 1
    assert str(exc.value).startswith(f"{path}:1:")


def test_malformed_line_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "batch.jsonl"
    path.write_text("\n{not json\n", encoding="utf-8")

    with pytest.raises(BatchFileError) as exc:
        read_batch_file(path)

    assert exc.value.line_number == 2
