from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from dimrecon.config import RuleConfigurationError
from dimrecon.domain.model import ConflictType, KeyLink
from dimrecon.domain.reconciliation import (
    NEW_ENTITY_METHOD,
    PRIOR_CROSSWALK_METHOD,
    EntityResolver,
    mint_canonical_id,
)
from dimrecon.domain.reconciliation.resolve import DUPLICATE_RESOLUTION_RULE
from tests.helpers.records import at, make_record
from tests.support.repositories import FakeCrosswalkRepository
from tests.support.rules import sample_registry

if TYPE_CHECKING:
    from dimrecon.domain.reconciliation import ResolveResult


@pytest.fixture
def resolver() -> EntityResolver:
    return EntityResolver(sample_registry())


@pytest.fixture
def crosswalk() -> FakeCrosswalkRepository:
    return FakeCrosswalkRepository()


def _persist(crosswalk: FakeCrosswalkRepository, result: ResolveResult) -> None:
    crosswalk.upsert_entries(result.entries)
    crosswalk.add_key_links(result.key_links)


def _assignments(result: ResolveResult) -> dict[tuple[str, str], str]:
    return {item.record.identity: item.canonical_id for item in result.resolved}


def test_records_sharing_a_natural_key_share_a_canonical_id(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [
        make_record("B", "9", natural_keys={"ssn": "123"}, rating=80),
        make_record("A", "1", natural_keys={"ssn": "123"}, rating=70),
    ]

    result = resolver.resolve("veteran", batch, crosswalk=crosswalk)

    expected = mint_canonical_id("veteran", "A", "1")
    assert _assignments(result) == {("A", "1"): expected, ("B", "9"): expected}
    methods = {item.record.source_system: item.method for item in result.resolved}
    assert methods == {"A": NEW_ENTITY_METHOD, "B": "ssn_exact"}
    assert [entry.match_confidence for entry in result.entries] == [100.0, 95]
    assert result.duplicates == ()


def test_lower_priority_rule_matches_when_the_first_key_is_missing(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [
        make_record("A", "1", ssn="123", last_name="Smith", birth_date="1970-01-01"),
        make_record(
            "B", "7", timestamp=at(5), last_name=" SMITH", birth_date="1970-01-01"
        ),
    ]

    result = resolver.resolve("veteran", batch, crosswalk=crosswalk)

    second = result.resolved[1]
    assert second.canonical_id == result.resolved[0].canonical_id
    assert (second.method, second.confidence) == ("name_dob", 80)


def test_unmatched_records_get_distinct_canonical_ids(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [make_record("A", "1", ssn="111"), make_record("A", "2", ssn="222")]

    result = resolver.resolve("veteran", batch, crosswalk=crosswalk)

    assert len(set(_assignments(result).values())) == 2


def test_later_duplicate_from_same_source_is_logged_and_dropped(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [
        make_record("A", "2", timestamp=at(5), ssn="123", rating=90),
        make_record("A", "1", timestamp=at(0), ssn="123", rating=70),
    ]

    result = resolver.resolve("veteran", batch, crosswalk=crosswalk)

    assert [item.record.source_record_id for item in result.resolved] == ["1"]
    assert [entry.source_record_id for entry in result.entries] == ["1"]
    assert {link.source_record_id for link in result.key_links} == {"1"}
    (duplicate,) = result.duplicates
    assert duplicate.conflict_type is ConflictType.DUPLICATE_IN_SOURCE
    assert duplicate.canonical_id == mint_canonical_id("veteran", "A", "1")
    assert duplicate.resolved_value == "1"
    assert duplicate.resolution_rule == DUPLICATE_RESOLUTION_RULE
    assert duplicate.values_by_source == {
        "A/1": at(0).isoformat(),
        "A/2": at(5).isoformat(),
    }


def test_each_repeat_of_one_source_record_gets_its_own_log_entry(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [make_record("A", "1", timestamp=at(minute), ssn="123") for minute in (2, 0, 1)]

    result = resolver.resolve("veteran", batch, crosswalk=crosswalk)

    assert [item.record.source_timestamp for item in result.resolved] == [at(0)]
    assert len(result.entries) == 1
    assert len(result.duplicates) == 2
    assert len({entry.id for entry in result.duplicates}) == 2
    assert [entry.values_by_source for entry in result.duplicates] == [
        {"A/1": at(0).isoformat(), f"A/1@{at(1).isoformat()}": at(1).isoformat()},
        {"A/1": at(0).isoformat(), f"A/1@{at(2).isoformat()}": at(2).isoformat()},
    ]


def test_record_seen_earlier_in_the_batch_keeps_its_canonical_id(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [
        make_record("A", "1", timestamp=at(0), ssn="123"),
        make_record("A", "1", timestamp=at(1), ssn="456"),
    ]

    result = resolver.resolve("veteran", batch, crosswalk=crosswalk)

    assert [entry.source_record_id for entry in result.entries] == ["1"]
    (duplicate,) = result.duplicates
    assert duplicate.canonical_id == mint_canonical_id("veteran", "A", "1")


def test_relinked_record_moves_its_crosswalk_entry(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    first = [
        make_record("A", "1", ssn="111"),
        make_record("B", "9", timestamp=at(1), ssn="222"),
    ]
    _persist(crosswalk, resolver.resolve("veteran", first, crosswalk=crosswalk))

    second = [make_record("A", "1", batch_id="batch-2", ssn="222")]
    _persist(crosswalk, resolver.resolve("veteran", second, crosswalk=crosswalk))

    other_id = mint_canonical_id("veteran", "B", "9")
    assert crosswalk.entries_for("veteran", mint_canonical_id("veteran", "A", "1")) == ()
    assert [entry.source_record_id for entry in crosswalk.entries_for("veteran", other_id)] == [
        "1",
        "9",
    ]


def test_resolution_ignores_input_order(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [
        make_record("A", "1", ssn="123"),
        make_record("B", "9", timestamp=at(1), ssn="123"),
        make_record("C", "4", timestamp=at(2), ssn="555"),
        make_record("A", "3", timestamp=at(3), ssn="555"),
    ]

    forward = resolver.resolve("veteran", batch, crosswalk=crosswalk)
    backward = resolver.resolve(
        "veteran", list(reversed(batch)), crosswalk=FakeCrosswalkRepository()
    )

    assert forward == backward


def test_replaying_a_batch_reproduces_its_assignments(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [
        make_record("A", "1", ssn="123"),
        make_record("B", "9", timestamp=at(1), ssn="123"),
    ]
    first = resolver.resolve("veteran", batch, crosswalk=crosswalk)
    _persist(crosswalk, first)

    replay = resolver.resolve("veteran", batch, crosswalk=crosswalk)

    assert replay == first


def test_later_batch_reuses_persisted_canonical_ids(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    first = resolver.resolve(
        "veteran", [make_record("A", "1", ssn="123")], crosswalk=crosswalk
    )
    _persist(crosswalk, first)
    canonical_id = first.resolved[0].canonical_id

    second = resolver.resolve(
        "veteran",
        [make_record("C", "5", batch_id="batch-2", timestamp=at(days=1), ssn="123")],
        crosswalk=crosswalk,
    )

    (item,) = second.resolved
    assert (item.canonical_id, item.method) == (canonical_id, "ssn_exact")


def test_record_keeps_its_canonical_id_when_its_keys_change(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    first = resolver.resolve(
        "veteran", [make_record("A", "1", ssn="123")], crosswalk=crosswalk
    )
    _persist(crosswalk, first)

    second = resolver.resolve(
        "veteran",
        [make_record("A", "1", batch_id="batch-2", timestamp=at(days=1), ssn="124")],
        crosswalk=crosswalk,
    )

    (item,) = second.resolved
    assert item.canonical_id == first.resolved[0].canonical_id
    assert item.method == PRIOR_CROSSWALK_METHOD


def test_ambiguous_prior_match_picks_smallest_canonical_id(
    resolver: EntityResolver,
    crosswalk: FakeCrosswalkRepository,
    caplog: pytest.LogCaptureFixture,
) -> None:
    key = ("ssn_exact", "123")
    crosswalk.add_key_links(
        [
            KeyLink(
                entity_type="veteran",
                match_key=key,
                canonical_id=canonical_id,
                source_system=source,
                source_record_id="x",
                batch_id="batch-0",
            )
            for canonical_id, source in (("zz-entity", "A"), ("aa-entity", "B"))
        ]
    )

    with caplog.at_level(logging.WARNING):
        result = resolver.resolve(
            "veteran", [make_record("C", "1", ssn="123")], crosswalk=crosswalk
        )

    assert result.resolved[0].canonical_id == "aa-entity"
    assert "matches 2 canonical ids" in caplog.text


def test_empty_batch_resolves_to_nothing(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    result = resolver.resolve("veteran", [], crosswalk=crosswalk)

    assert result.batch_id is None
    assert result.resolved == ()


def test_mixed_batch_ids_are_rejected(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [make_record("A", "1", ssn="1"), make_record("A", "2", batch_id="batch-2", ssn="2")]

    with pytest.raises(ValueError, match="mixes batch ids"):
        resolver.resolve("veteran", batch, crosswalk=crosswalk)


def test_foreign_entity_type_is_rejected(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    batch = [make_record("A", "1", entity_type="facility", station="X")]

    with pytest.raises(ValueError, match="facility"):
        resolver.resolve("veteran", batch, crosswalk=crosswalk)


def test_unknown_entity_type_is_a_configuration_error(
    resolver: EntityResolver, crosswalk: FakeCrosswalkRepository
) -> None:
    with pytest.raises(RuleConfigurationError):
        resolver.resolve("unknown", [], crosswalk=crosswalk)
