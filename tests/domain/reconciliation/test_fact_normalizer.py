from __future__ import annotations

import pytest

from fundrecon.domain.errors import MalformedRecordError
from fundrecon.domain.model import EntityKind, FactField, FactKey, PartialDate, SourceKind
from fundrecon.domain.reconciliation import DefaultFactNormalizer, RoundReport
from tests.helpers.records import NOW, OBSERVED, api_record, manual_record, news_record


def _normalizer() -> DefaultFactNormalizer:
    return DefaultFactNormalizer(clock=lambda: NOW)


def test_api_record_fields_become_typed_claims() -> None:
    normalized = _normalizer().normalize(
        api_record("Acme Robotics", {"total_funding": "$15M", "HQ": "Berlin", "founded": "2019"})
    )

    by_key = {claim.key: claim for claim in normalized.claims}
    assert by_key[FactKey(FactField.TOTAL_FUNDING)].value == 1_500_000_000
    assert by_key[FactKey(FactField.HEADQUARTERS)].value == "Berlin"
    assert by_key[FactKey(FactField.FOUNDED)].value == PartialDate(2019)
    claim = by_key[FactKey(FactField.TOTAL_FUNDING)]
    assert claim.source_kind is SourceKind.API
    assert claim.observed_at == OBSERVED
    assert claim.ingested_at == NOW
    assert claim.entity_key == "Acme Robotics"
    assert not claim.is_resolved


def test_unknown_fields_are_dropped_and_counted() -> None:
    normalized = _normalizer().normalize(
        api_record("Acme", {"total_funding": 1_000, "favorite_color": "blue", "mascot": "owl"})
    )

    assert [claim.fact_field for claim in normalized.claims] == [FactField.TOTAL_FUNDING]
    assert normalized.dropped_fields == {"favorite_color": 1, "mascot": 1}


def test_fields_outside_the_entity_kind_are_dropped() -> None:
    normalized = _normalizer().normalize(
        api_record(
            "Sequoia Capital",
            {"website": "sequoiacap.com", "total_funding": "$1B"},
            kind=EntityKind.INVESTOR,
        )
    )

    assert [claim.fact_field for claim in normalized.claims] == [FactField.WEBSITE]
    assert normalized.dropped_fields == {"investor:total_funding": 1}


def test_unparsable_values_are_dropped_as_invalid() -> None:
    normalized = _normalizer().normalize(
        api_record("Acme", {"total_funding": "a lot", "sector": "Robotics"})
    )

    assert [claim.fact_field for claim in normalized.claims] == [FactField.SECTOR]
    assert normalized.dropped_fields == {"invalid:total_funding": 1}


def test_round_fields_are_scoped_by_round_type() -> None:
    record = api_record(
        "Acme",
        {"round_type": "Series A", "amount": "$10M"},
        rounds=(
            RoundReport(
                round_type="Seed",
                amount="$2M",
                announced="2021-03",
                lead_investors=("Accel",),
                participants=("GV", "Index Ventures"),
            ),
        ),
    )

    keys = {claim.key: claim.value for claim in _normalizer().normalize(record).claims}

    assert keys[FactKey(FactField.ROUND_TYPE)] == "series_a"
    assert keys[FactKey(FactField.ROUND_AMOUNT, "series_a")] == 1_000_000_000
    assert keys[FactKey(FactField.ROUND_AMOUNT, "seed")] == 200_000_000
    assert keys[FactKey(FactField.ROUND_DATE, "seed")] == PartialDate(2021, 3)
    assert keys[FactKey(FactField.LEAD_INVESTOR, "seed")] == frozenset({"Accel"})
    assert keys[FactKey(FactField.PARTICIPANTS, "seed")] == frozenset({"GV", "Index Ventures"})


def test_record_without_name_is_malformed() -> None:
    with pytest.raises(MalformedRecordError, match="does not name an entity"):
        _normalizer().normalize(api_record("   ", {"total_funding": "$1M"}))


def test_record_without_recognizable_fields_is_malformed() -> None:
    with pytest.raises(MalformedRecordError, match="no recognizable"):
        _normalizer().normalize(api_record("Acme", {"mascot": "owl"}))


def test_manual_record_requires_author() -> None:
    with pytest.raises(MalformedRecordError, match="author"):
        _normalizer().normalize(manual_record("Acme", {"sector": "Robotics"}, entered_by=" "))


def test_news_record_is_mined_for_round_facts() -> None:
    normalized = _normalizer().normalize(
        news_record("Acme Robotics raises $12M Series A led by Sequoia Capital.")
    )

    keys = {claim.key: claim for claim in normalized.claims}
    assert keys[FactKey(FactField.ROUND_TYPE)].value == "series_a"
    assert keys[FactKey(FactField.ROUND_AMOUNT, "series_a")].value == 1_200_000_000
    assert keys[FactKey(FactField.ROUND_DATE, "series_a")].value == PartialDate(2024, 5, 31)
    assert keys[FactKey(FactField.LEAD_INVESTOR, "series_a")].value == frozenset(
        {"Sequoia Capital"}
    )
    assert {claim.entity_key for claim in normalized.claims} == {"Acme Robotics"}
    assert {claim.source_kind for claim in normalized.claims} == {SourceKind.NEWS}


def test_news_without_company_is_malformed() -> None:
    with pytest.raises(MalformedRecordError):
        _normalizer().normalize(news_record("A $5M round was announced today."))


def test_batch_collects_malformed_records() -> None:
    report = _normalizer().normalize_batch(
        [
            api_record("Acme", {"total_funding": "$1M", "mascot": "owl"}),
            api_record("", {"total_funding": "$1M"}),
            manual_record("Globex", {"sector": "Energy"}),
        ]
    )

    assert report.records_seen == 3
    assert len(report.claims) == 2
    assert len(report.malformed) == 1
    assert report.dropped_fields == {"mascot": 1}
