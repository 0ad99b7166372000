from __future__ import annotations

from datetime import date

import pytest

from fundrecon.domain.model import DatePrecision, FactField, FactKey, PartialDate, usd


def test_partial_date_precision_follows_given_parts() -> None:
    assert PartialDate(2023).precision is DatePrecision.YEAR
    assert PartialDate(2023, 4).precision is DatePrecision.MONTH
    assert PartialDate(2023, 4, 17).precision is DatePrecision.DAY


def test_partial_date_rejects_day_without_month() -> None:
    with pytest.raises(ValueError, match="requires a month"):
        PartialDate(2023, None, 4)


def test_partial_date_rejects_impossible_calendar_date() -> None:
    with pytest.raises(ValueError):
        PartialDate(2023, 2, 30)


def test_partial_date_consistency_uses_coarser_precision() -> None:
    assert PartialDate(2023).consistent_with(PartialDate(2023, 4, 17))
    assert PartialDate(2023, 4).consistent_with(PartialDate(2023, 4, 2))
    assert not PartialDate(2023, 4).consistent_with(PartialDate(2023, 5, 2))
    assert not PartialDate(2022).consistent_with(PartialDate(2023))


def test_partial_date_isoformat_keeps_precision() -> None:
    assert PartialDate(2023).isoformat() == "2023"
    assert PartialDate(2023, 4).isoformat() == "2023-04"
    assert PartialDate.from_date(date(2023, 4, 7)).isoformat() == "2023-04-07"


def test_fact_key_renders_scope() -> None:
    assert str(FactKey(FactField.TOTAL_FUNDING)) == "total_funding"
    assert str(FactKey(FactField.ROUND_AMOUNT, "series_a")) == "round_amount[series_a]"


def test_fact_keys_are_hashable_and_ordered() -> None:
    keys = {FactKey(FactField.ROUND_AMOUNT, "seed"), FactKey(FactField.ROUND_AMOUNT, "seed")}
    assert len(keys) == 1
    ordered = sorted(
        [FactKey(FactField.ROUND_AMOUNT, "series_b"), FactKey(FactField.ROUND_AMOUNT, "seed")]
    )
    assert ordered[0].scope == "seed"


def test_usd_converts_to_cents() -> None:
    assert usd(15_000_000) == 1_500_000_000
    assert usd(0.5) == 50
